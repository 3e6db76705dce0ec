"""Tests for the Unity YAML dialect and .meta files."""

import pytest

from usdunity.errors import FormatError
from usdunity.unity_model import (
    MetaRecord,
    UnityDocument,
    file_ref,
    game_object_fields,
    transform_fields,
)
from usdunity.unity_yaml import UNITY_YAML_HEADER, dump_document, dump_meta, parse_document, parse_meta

SCENE_TEXT = """%YAML 1.1
%TAG !u! tag:unity3d.com,2011:
--- !u!1 &100
GameObject:
  m_ObjectHideFlags: 0
  m_Component:
  - component: {fileID: 200}
  m_Name: Root
--- !u!4 &200
Transform:
  m_GameObject: {fileID: 100}
  m_LocalPosition: {x: 1, y: 2, z: 3}
  m_Children: []
  m_Father: {fileID: 0}
--- !u!4 &300 stripped
Transform:
  m_CorrespondingSourceObject: {fileID: 400000, guid: 00000000000000001000000000000000, type: 3}
"""


def _small_document():
    document = UnityDocument()
    game_object = document.new_object("GameObject")
    transform = document.new_object("Transform")
    game_object.fields = game_object_fields("Cube", [transform.file_id])
    transform.fields = transform_fields(
        game_object.file_id,
        {"x": 0.0, "y": 1.0, "z": 0.0},
        {"x": 0.0, "y": 0.0, "z": 0.0, "w": 1.0},
        {"x": 1.0, "y": 1.0, "z": 1.0},
    )
    return document


class TestDumpDocument:
    def test_header_and_tags(self):
        text = dump_document(_small_document())

        assert text.startswith(UNITY_YAML_HEADER)
        assert "--- !u!1 &1\nGameObject:\n" in text
        assert "--- !u!4 &2\nTransform:\n" in text

    def test_references_are_flow_mappings(self):
        text = dump_document(_small_document())

        assert "m_Father: {fileID: 0}" in text
        assert "- component: {fileID: 2}" in text
        assert "&id" not in text

    def test_dump_then_parse(self):
        parsed = parse_document(dump_document(_small_document()))

        assert [obj.type_name for obj in parsed] == ["GameObject", "Transform"]
        assert parsed.get(1).get("m_Name") == "Cube"
        assert parsed.get(2).get("m_LocalPosition") == {"x": 0.0, "y": 1.0, "z": 0.0}
        parsed.validate_references()


class TestParseDocument:
    def test_parses_objects(self):
        document = parse_document(SCENE_TEXT, source="Main.unity")

        assert len(document) == 3
        assert document.get(100).type_name == "GameObject"
        assert document.get(200).get("m_Father") == {"fileID": 0}

    def test_stripped_flag_and_digit_guid(self):
        stripped = parse_document(SCENE_TEXT).get(300)

        assert stripped.stripped
        assert stripped.get("m_CorrespondingSourceObject")["guid"] == "00000000000000001000000000000000"

    def test_missing_header(self):
        with pytest.raises(FormatError):
            parse_document("--- !u!1 &1\nGameObject: {}\n")

    def test_no_documents(self):
        with pytest.raises(FormatError):
            parse_document("%YAML 1.1\nfoo: bar\n")

    def test_reserved_file_id(self):
        with pytest.raises(FormatError):
            parse_document("%YAML 1.1\n--- !u!1 &0\nGameObject: {}\n")

    def test_malformed_body(self):
        with pytest.raises(FormatError):
            parse_document("%YAML 1.1\n--- !u!1 &1\nGameObject: [unclosed\n")

    def test_duplicate_file_id(self):
        with pytest.raises(FormatError):
            parse_document("%YAML 1.1\n--- !u!1 &1\nGameObject: {}\n--- !u!1 &1\nGameObject: {}\n")

    def test_dangling_reference(self):
        document = UnityDocument()
        transform = document.new_object("Transform")
        transform.fields = {"m_GameObject": file_ref(99)}
        with pytest.raises(FormatError):
            document.validate_references()


class TestMeta:
    def test_native_asset_meta(self):
        guid = "0123456789abcdef0123456789abcdef"
        text = dump_meta(MetaRecord.for_native_asset(guid, 4300000))

        assert text.startswith("fileFormatVersion: 2\nguid: 0123456789abcdef0123456789abcdef\n")
        assert "NativeFormatImporter:" in text
        assert "mainObjectFileID: 4300000" in text

        parsed = parse_meta(text)
        assert parsed.guid == guid
        assert parsed.importer == "NativeFormatImporter"
        assert not parsed.folder_asset

    def test_folder_meta(self):
        text = dump_meta(MetaRecord.for_folder("ab" * 16))

        assert "folderAsset: yes\n" in text
        assert parse_meta(text).folder_asset

    def test_digit_only_guid_keeps_leading_zeros(self):
        meta = parse_meta("fileFormatVersion: 2\nguid: 00000000000000000000000000001234\n")
        assert meta.guid == "00000000000000000000000000001234"

    def test_invalid_guid(self):
        with pytest.raises(FormatError):
            dump_meta(MetaRecord(guid="not-a-guid"))
        with pytest.raises(FormatError):
            parse_meta("fileFormatVersion: 2\nguid: xyz\n")

    def test_not_a_mapping(self):
        with pytest.raises(FormatError):
            parse_meta("- just\n- a list\n")
