"""Tests for the native mesh and material codecs."""

import numpy as np
import pytest

from usdunity.errors import FormatError
from usdunity.unity_assets import MaterialData, MeshData, decode_material, decode_mesh, encode_material, encode_mesh
from usdunity.unity_model import MATERIAL_MAIN_FILE_ID, MESH_MAIN_FILE_ID
from usdunity.unity_yaml import dump_document, parse_document


def _triangle():
    return MeshData(
        name="Tri",
        positions=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        triangles=np.array([[0, 2, 1]]),
    )


class TestMeshCodec:
    def test_main_object(self):
        document = encode_mesh(_triangle())
        mesh = document.get(MESH_MAIN_FILE_ID)

        assert mesh is not None
        assert mesh.class_id == 43
        assert mesh.get("m_VertexData")["m_VertexCount"] == 3
        assert mesh.get("m_IndexFormat") == 0

    def test_through_yaml_text(self):
        text = dump_document(encode_mesh(_triangle()))
        decoded = decode_mesh(parse_document(text, source="Tri.asset"))

        assert decoded.name == "Tri"
        np.testing.assert_array_almost_equal(decoded.positions, _triangle().positions)
        np.testing.assert_array_equal(decoded.triangles, [[0, 2, 1]])

    def test_index_buffer_starting_with_zero_digits(self):
        """u16 indices 0,1,2 serialize as an all-digit hex string."""
        mesh = MeshData("Tri", _triangle().positions, np.array([[0, 1, 2]]))
        text = dump_document(encode_mesh(mesh))
        # Unity writes the blob unquoted.
        unity_text = text.replace("'000001000200'", "000001000200")

        assert "m_IndexBuffer: 000001000200\n" in unity_text
        for candidate in (text, unity_text):
            np.testing.assert_array_equal(decode_mesh(parse_document(candidate)).triangles, [[0, 1, 2]])

    def test_large_mesh_uses_32bit_indices(self):
        count = 70000
        mesh = MeshData("Big", np.zeros((count, 3)), np.array([[0, 1, count - 1]]))
        document = encode_mesh(mesh)

        assert document.get(MESH_MAIN_FILE_ID).get("m_IndexFormat") == 1
        np.testing.assert_array_equal(decode_mesh(document).triangles, [[0, 1, count - 1]])

    def test_out_of_range_index(self):
        with pytest.raises(FormatError):
            encode_mesh(MeshData("Bad", np.zeros((3, 3)), np.array([[0, 1, 3]])))

    def test_truncated_vertex_data(self):
        document = encode_mesh(_triangle())
        vertex_data = document.get(MESH_MAIN_FILE_ID).get("m_VertexData")
        vertex_data["_typelessdata"] = vertex_data["_typelessdata"][:16]
        with pytest.raises(FormatError):
            decode_mesh(document)

    def test_interleaved_stream(self):
        """Positions followed by normals in the same stream."""
        positions = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0], [7.0, 8.0, 9.0]], dtype="<f4")
        normals = np.zeros((3, 3), dtype="<f4")
        interleaved = np.hstack([positions, normals]).astype("<f4")
        document = encode_mesh(_triangle())
        mesh = document.get(MESH_MAIN_FILE_ID)
        vertex_data = mesh.get("m_VertexData")
        vertex_data["m_Channels"][1] = {"stream": 0, "offset": 12, "format": 0, "dimension": 3}
        vertex_data["_typelessdata"] = interleaved.tobytes().hex()
        vertex_data["m_DataSize"] = interleaved.nbytes

        decoded = decode_mesh(document)

        np.testing.assert_array_almost_equal(decoded.positions, positions)

    def test_missing_mesh_object(self):
        with pytest.raises(FormatError):
            decode_mesh(encode_material(MaterialData("M")))


class TestMaterialCodec:
    def test_roundtrip_values(self):
        material = MaterialData("Red", color=(1.0, 0.0, 0.0, 0.5), metallic=0.25, roughness=0.75)
        document = parse_document(dump_document(encode_material(material)))

        assert document.get(MATERIAL_MAIN_FILE_ID).class_id == 21
        decoded = decode_material(document)
        assert decoded.name == "Red"
        assert decoded.color == pytest.approx((1.0, 0.0, 0.0, 0.5))
        assert decoded.metallic == pytest.approx(0.25)
        assert decoded.roughness == pytest.approx(0.75)

    def test_color_property_written(self):
        text = dump_document(encode_material(MaterialData("Blue", color=(0.0, 0.0, 1.0, 1.0))))
        assert "_Color: {r: 0.0, g: 0.0, b: 1.0, a: 1.0}" in text

    def test_urp_property_names(self):
        document = encode_material(MaterialData("Urp"))
        saved = document.get(MATERIAL_MAIN_FILE_ID).get("m_SavedProperties")
        saved["m_Colors"] = [{"_BaseColor": {"r": 0.1, "g": 0.2, "b": 0.3, "a": 1.0}}]
        saved["m_Floats"] = [{"_Smoothness": 0.9}]

        decoded = decode_material(document)

        assert decoded.color == pytest.approx((0.1, 0.2, 0.3, 1.0))
        assert decoded.roughness == pytest.approx(0.1)
