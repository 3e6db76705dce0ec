from __future__ import annotations

import logging
import sys
from typing import Sequence

import yaml

from . import api
from .backends import MockBackend
from .cli import parse_args
from .usd_context import shutdown_usd_context

LOG = logging.getLogger(__name__)

_OPERATIONS = {
    "usd-to-unity": api.usd_to_unity_package,
    "unity-to-usd": api.unity_to_usd,
    "import-package": api.import_unity_package,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    try:
        settings = api.load_settings(
            args.config_path,
            asset_root=getattr(args, "asset_root", None),
            scene_name=getattr(args, "scene_name", None),
            output_up_axis=getattr(args, "up_axis", None),
            output_meters_per_unit=getattr(args, "meters_per_unit", None),
        )
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    backend = MockBackend() if args.mock else None
    try:
        outcome = _OPERATIONS[args.command](args.source, args.dest, backend=backend, settings=settings)
    finally:
        shutdown_usd_context()

    for note in outcome.warnings:
        LOG.warning("Unsupported: %s", note)
    if not outcome.ok:
        print(f"Error: [{outcome.kind.value}] {outcome.message}", file=sys.stderr)
        return 1
    print(outcome.message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
