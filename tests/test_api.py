"""Tests for the conversion façade and backend selection."""

import pytest

from usdunity import api, usd_context
from usdunity.archive import PackageEntry, write_package
from usdunity.backends import BackendReport, ConversionBackend, MockBackend, PxrBackend, select_backend
from usdunity.errors import BridgeError, ErrorKind, NotFoundError, UnsupportedFeature
from usdunity.identifiers import derive_guid
from usdunity.unity_model import MetaRecord
from usdunity.usd_context import Readiness


class _RaisingBackend(ConversionBackend):
    def __init__(self, exc):
        self.exc = exc

    def usd_to_unity_package(self, source, dest, settings=None):
        raise self.exc


class _BadReportBackend(ConversionBackend):
    def usd_to_unity_package(self, source, dest, settings=None):
        return 42


class _WarningBackend(ConversionBackend):
    def usd_to_unity_package(self, source, dest, settings=None):
        note = UnsupportedFeature("/World/Sun", "DistantLight")
        return BackendReport(message="done", warnings=[note], outputs=[dest])


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "scene.usda"
    path.write_text("#usda 1.0\n", encoding="utf-8")
    return path


class TestArgumentValidation:
    def test_missing_source_is_not_found(self, tmp_path):
        dest = tmp_path / "out.unitypackage"

        outcome = api.usd_to_unity_package(str(tmp_path / "nope.usda"), str(dest), backend=MockBackend())

        assert not outcome.ok
        assert outcome.kind is ErrorKind.NOT_FOUND
        assert not dest.exists()

    def test_empty_source(self, tmp_path):
        outcome = api.unity_to_usd("", str(tmp_path / "out.usda"), backend=MockBackend())
        assert outcome.kind is ErrorKind.NOT_FOUND

    def test_empty_destination(self, source_file):
        outcome = api.usd_to_unity_package(str(source_file), "  ", backend=MockBackend())
        assert outcome.kind is ErrorKind.IO_ERROR

    def test_non_string_source(self, tmp_path):
        outcome = api.import_unity_package(123, str(tmp_path), backend=MockBackend())
        assert outcome.kind is ErrorKind.NOT_FOUND


class TestOutcome:
    def test_mock_success(self, source_file, tmp_path):
        dest = tmp_path / "out.unitypackage"

        outcome = api.usd_to_unity_package(source_file, dest, backend=MockBackend())

        assert outcome.ok
        assert outcome.as_tuple() == ("ok", outcome.message)
        assert outcome.message.startswith("Mock converted USD")
        assert outcome.unwrap() == outcome.message
        assert not dest.exists()

    def test_warnings_are_carried(self, source_file, tmp_path):
        outcome = api.usd_to_unity_package(source_file, tmp_path / "o.unitypackage", backend=_WarningBackend())

        assert outcome.ok
        assert [note.source_type for note in outcome.warnings] == ["DistantLight"]

    def test_unwrap_raises_typed_error(self, tmp_path):
        outcome = api.usd_to_unity_package(str(tmp_path / "nope.usda"), str(tmp_path / "o"), backend=MockBackend())

        assert outcome.as_tuple()[0] == "error"
        with pytest.raises(NotFoundError):
            outcome.unwrap()


class TestErrorClassification:
    @pytest.mark.parametrize(
        "exc,kind",
        [
            (RuntimeError("boom"), ErrorKind.BRIDGE_ERROR),
            (FileNotFoundError(2, "missing", "x.usda"), ErrorKind.NOT_FOUND),
            (PermissionError(13, "denied"), ErrorKind.IO_ERROR),
            (ValueError("bad number"), ErrorKind.FORMAT_ERROR),
        ],
    )
    def test_backend_faults(self, source_file, tmp_path, exc, kind):
        outcome = api.usd_to_unity_package(source_file, tmp_path / "o.unitypackage", backend=_RaisingBackend(exc))

        assert not outcome.ok
        assert outcome.kind is kind

    def test_non_report_is_bridge_error(self, source_file, tmp_path):
        outcome = api.usd_to_unity_package(source_file, tmp_path / "o.unitypackage", backend=_BadReportBackend())
        assert outcome.kind is ErrorKind.BRIDGE_ERROR


class TestBackendSelection:
    def test_ready_selects_pxr(self):
        assert isinstance(select_backend(Readiness.READY), PxrBackend)

    def test_mock_selects_mock(self):
        assert isinstance(select_backend(Readiness.MOCK), MockBackend)

    def test_unavailable_is_bridge_error(self):
        with pytest.raises(BridgeError):
            select_backend(Readiness.UNAVAILABLE)

    def test_unavailable_still_imports_packages(self):
        assert isinstance(select_backend(Readiness.UNAVAILABLE, requires_usd=False), PxrBackend)

    def test_env_forces_mock(self, monkeypatch, source_file, tmp_path):
        monkeypatch.setenv("USDUNITY_USD_MODE", "mock")

        outcome = api.unity_to_usd(source_file, tmp_path / "out.usda")

        assert outcome.ok
        assert outcome.message.startswith("Mock converted Unity")

    def test_import_package_without_backend(self, tmp_path):
        guid = derive_guid("tests", "notes")
        archive = write_package(
            [PackageEntry("Assets/Notes.txt", MetaRecord(guid=guid), b"hello")],
            tmp_path / "notes.unitypackage",
        )

        outcome = api.import_unity_package(archive, tmp_path / "project")

        assert outcome.ok, outcome.message
        assert (tmp_path / "project" / "Assets" / "Notes.txt").read_bytes() == b"hello"
        assert (tmp_path / "project" / "Assets" / "Notes.txt.meta").is_file()


class TestUsdContext:
    def test_mock_mode_blocks_pxr_access(self):
        assert usd_context.get_mode() is None

        usd_context.initialize_usd(mode="mock")

        assert usd_context.get_mode() == "mock"
        assert usd_context.readiness() is Readiness.MOCK
        with pytest.raises(RuntimeError):
            usd_context.get_pxr_module("Usd")

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            usd_context.initialize_usd(mode="kit")
