from __future__ import annotations

import argparse
from typing import Sequence


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Settings file (YAML or JSON) overriding the conversion defaults",
    )
    parser.add_argument(
        "--mock",
        dest="mock",
        action="store_true",
        help="Use the mock backend: report success without reading or writing files",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        dest="verbose",
        action="store_true",
        help="Enable debug logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse the CLI arguments for the converter."""

    parser = argparse.ArgumentParser(
        prog="usdunity",
        description="Convert between USD stages and Unity packages/scenes",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    to_unity = subparsers.add_parser("usd-to-unity", help="Convert a USD stage into a .unitypackage")
    to_unity.add_argument("source", help="USD stage (.usd, .usda, .usdc)")
    to_unity.add_argument("dest", help="Output .unitypackage path")
    to_unity.add_argument(
        "--asset-root",
        dest="asset_root",
        default=None,
        help="Project folder the package installs into (default: Assets/USD_Import)",
    )
    to_unity.add_argument(
        "--scene-name",
        dest="scene_name",
        default=None,
        help="Name of the generated .unity scene (default: the stage file stem)",
    )
    _add_common_options(to_unity)

    to_usd = subparsers.add_parser(
        "unity-to-usd", help="Convert a Unity scene, prefab, project directory or package into USD"
    )
    to_usd.add_argument("source", help=".unity, .prefab, .unitypackage or a directory")
    to_usd.add_argument("dest", help="Output stage (.usd, .usda, .usdc)")
    to_usd.add_argument(
        "--up-axis",
        dest="up_axis",
        choices=("Y", "Z", "y", "z"),
        default=None,
        help="Up axis of the written stage (default: Y)",
    )
    to_usd.add_argument(
        "--meters-per-unit",
        dest="meters_per_unit",
        type=float,
        default=None,
        help="metersPerUnit of the written stage (default: 1.0)",
    )
    _add_common_options(to_usd)

    importer = subparsers.add_parser("import-package", help="Extract a .unitypackage into a directory")
    importer.add_argument("source", help="Input .unitypackage")
    importer.add_argument("dest", help="Directory that receives the package contents")
    _add_common_options(importer)

    return parser.parse_args(argv)


__all__ = ["parse_args"]
