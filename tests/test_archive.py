"""Tests for .unitypackage packing and extraction."""

import io
import tarfile

import pytest

from usdunity.archive import PackageEntry, extract_package, read_package, write_package
from usdunity.errors import FormatError, IoError
from usdunity.identifiers import derive_guid
from usdunity.unity_model import MetaRecord
from usdunity.unity_yaml import dump_meta

SCENE_GUID = derive_guid("tests", "scene")
FOLDER_GUID = derive_guid("tests", "folder")


def _entries():
    return [
        PackageEntry(
            pathname="Assets/USD_Import/Scene.unity",
            meta=MetaRecord.for_scene(SCENE_GUID),
            asset=b"%YAML 1.1\n",
        ),
        PackageEntry(pathname="Assets/USD_Import", meta=MetaRecord.for_folder(FOLDER_GUID)),
    ]


def _raw_archive(path, members):
    with tarfile.open(str(path), mode="w:gz") as tar:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


class TestWritePackage:
    def test_deterministic_bytes(self, tmp_path):
        first = write_package(_entries(), tmp_path / "a.unitypackage")
        second = write_package(list(reversed(_entries())), tmp_path / "b.unitypackage")

        assert first.read_bytes() == second.read_bytes()

    def test_guid_folder_layout(self, tmp_path):
        path = write_package(_entries(), tmp_path / "out.unitypackage")

        with tarfile.open(str(path), mode="r:gz") as tar:
            names = tar.getnames()
            pathname = tar.extractfile(f"{SCENE_GUID}/pathname").read().decode("utf-8")

        assert f"{SCENE_GUID}/asset" in names
        assert f"{SCENE_GUID}/asset.meta" in names
        assert f"{FOLDER_GUID}/asset.meta" in names
        assert f"{FOLDER_GUID}/asset" not in names
        assert pathname == "Assets/USD_Import/Scene.unity"

    def test_duplicate_guid(self, tmp_path):
        entries = _entries()
        entries.append(PackageEntry("Assets/Other.unity", MetaRecord.for_scene(SCENE_GUID), b"x"))
        with pytest.raises(FormatError):
            write_package(entries, tmp_path / "dup.unitypackage")
        assert not (tmp_path / "dup.unitypackage").exists()

    def test_entry_without_meta(self, tmp_path):
        with pytest.raises(FormatError):
            write_package([PackageEntry("Assets/x.txt", None, b"x")], tmp_path / "bad.unitypackage")

    def test_destination_is_directory(self, tmp_path):
        with pytest.raises(IoError):
            write_package(_entries(), tmp_path)


class TestReadPackage:
    def test_reads_entries(self, tmp_path):
        path = write_package(_entries(), tmp_path / "out.unitypackage")

        entries = {entry.pathname: entry for entry in read_package(path)}

        assert set(entries) == {"Assets/USD_Import/Scene.unity", "Assets/USD_Import"}
        assert entries["Assets/USD_Import/Scene.unity"].guid == SCENE_GUID
        assert entries["Assets/USD_Import/Scene.unity"].asset == b"%YAML 1.1\n"
        assert entries["Assets/USD_Import"].is_folder

    def test_pathname_layout_without_pathname_member(self, tmp_path):
        meta = dump_meta(MetaRecord.for_scene(SCENE_GUID)).encode("utf-8")
        path = _raw_archive(
            tmp_path / "alt.unitypackage",
            [("Assets/Notes.txt/asset", b"hello"), ("Assets/Notes.txt/asset.meta", meta)],
        )

        (entry,) = read_package(path)

        assert entry.pathname == "Assets/Notes.txt"
        assert entry.asset == b"hello"

    def test_not_gzip(self, tmp_path):
        path = tmp_path / "plain.unitypackage"
        path.write_bytes(b"this is not a package")
        with pytest.raises(FormatError):
            read_package(path)

    def test_empty_archive(self, tmp_path):
        path = _raw_archive(tmp_path / "empty.unitypackage", [])
        with pytest.raises(FormatError):
            read_package(path)

    def test_bad_meta(self, tmp_path):
        path = _raw_archive(
            tmp_path / "badmeta.unitypackage",
            [("abc/asset", b"x"), ("abc/asset.meta", b"guid: nope\n"), ("abc/pathname", b"Assets/x")],
        )
        with pytest.raises(FormatError):
            read_package(path)


class TestExtractPackage:
    def test_preserves_pathnames(self, tmp_path):
        archive = write_package(_entries(), tmp_path / "out.unitypackage")
        project = tmp_path / "project"

        written = extract_package(archive, project)

        scene = project / "Assets" / "USD_Import" / "Scene.unity"
        assert scene.read_bytes() == b"%YAML 1.1\n"
        assert f"guid: {SCENE_GUID}" in (project / "Assets" / "USD_Import" / "Scene.unity.meta").read_text()
        assert (project / "Assets" / "USD_Import.meta").is_file()
        assert scene in written
        assert not [p for p in project.iterdir() if p.name.startswith(".usdunity")]

    def test_member_traversal_rejected(self, tmp_path):
        archive = _raw_archive(tmp_path / "evil.unitypackage", [("../../evil", b"pwned")])
        out = tmp_path / "a" / "b"

        with pytest.raises(IoError):
            extract_package(archive, out)

        assert not (tmp_path / "evil").exists()
        assert not out.exists() or not any(out.iterdir())

    def test_pathname_traversal_rejected(self, tmp_path):
        meta = dump_meta(MetaRecord.for_scene(SCENE_GUID)).encode("utf-8")
        archive = _raw_archive(
            tmp_path / "evil2.unitypackage",
            [
                (f"{SCENE_GUID}/asset", b"pwned"),
                (f"{SCENE_GUID}/asset.meta", meta),
                (f"{SCENE_GUID}/pathname", b"../../evil"),
            ],
        )
        out = tmp_path / "a" / "b"

        with pytest.raises(IoError):
            extract_package(archive, out)

        assert not (tmp_path / "evil").exists()
        assert not out.exists() or not any(out.iterdir())

    def test_absolute_member_rejected(self, tmp_path):
        archive = _raw_archive(tmp_path / "abs.unitypackage", [("/etc/evil", b"x")])
        with pytest.raises(IoError):
            extract_package(archive, tmp_path / "out")
