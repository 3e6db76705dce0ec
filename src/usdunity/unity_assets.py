"""Codecs for the native Unity assets the converters exchange: meshes and materials.

Mesh geometry is stored the way Unity serializes it in text mode: vertex
streams as a hex blob (``_typelessdata``) described by ``m_Channels`` and an
index buffer as hex.  Only float positions are written; on read, any layout
whose position channel is float32 x3 in stream 0 is accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np

from .errors import FormatError
from .unity_model import (
    MATERIAL_MAIN_FILE_ID,
    MESH_MAIN_FILE_ID,
    STANDARD_SHADER_FILE_ID,
    STANDARD_SHADER_GUID,
    CLASS_IDS,
    FlowMap,
    UnityDocument,
    UnityObject,
    file_ref,
)

LOG = logging.getLogger(__name__)

_CHANNEL_COUNT = 14
# VertexAttributeFormat -> byte size
_FORMAT_SIZES = {0: 4, 1: 2, 2: 1, 3: 1, 4: 2, 5: 2, 6: 1, 7: 1, 8: 2, 9: 2, 10: 4, 11: 4}
_INDEX_DTYPES = {0: np.dtype("<u2"), 1: np.dtype("<u4")}


@dataclass
class MeshData:
    """Triangle mesh in Unity space (left-handed, clockwise front faces)."""

    name: str
    positions: np.ndarray  # (N, 3) float
    triangles: np.ndarray  # (M, 3) int


@dataclass
class MaterialData:
    name: str
    color: Tuple[float, float, float, float] = (0.8, 0.8, 0.8, 1.0)
    metallic: float = 0.0
    roughness: float = 0.5


def _asset_header(name: str) -> Dict[str, Any]:
    return {
        "m_ObjectHideFlags": 0,
        "m_CorrespondingSourceObject": file_ref(0),
        "m_PrefabInstance": file_ref(0),
        "m_PrefabAsset": file_ref(0),
        "m_Name": name,
    }


def _aabb(positions: np.ndarray) -> Dict[str, FlowMap]:
    if positions.size == 0:
        zero = FlowMap(x=0.0, y=0.0, z=0.0)
        return {"m_Center": zero, "m_Extent": FlowMap(zero)}
    lo = positions.min(axis=0)
    hi = positions.max(axis=0)
    center = (lo + hi) * 0.5
    extent = (hi - lo) * 0.5
    return {
        "m_Center": FlowMap(x=float(center[0]), y=float(center[1]), z=float(center[2])),
        "m_Extent": FlowMap(x=float(extent[0]), y=float(extent[1]), z=float(extent[2])),
    }


# ---------------- Mesh ----------------

def encode_mesh(mesh: MeshData) -> UnityDocument:
    positions = np.asarray(mesh.positions, dtype="<f4").reshape(-1, 3)
    triangles = np.asarray(mesh.triangles, dtype=np.int64).reshape(-1, 3)
    vertex_count = positions.shape[0]
    if triangles.size and (triangles.min() < 0 or triangles.max() >= vertex_count):
        raise FormatError(f"Mesh '{mesh.name}' has indices outside its {vertex_count} vertices")

    index_format = 0 if vertex_count <= 0xFFFF else 1
    indices = triangles.reshape(-1).astype(_INDEX_DTYPES[index_format])
    channels = [FlowMap(stream=0, offset=0, format=0, dimension=3)]
    channels.extend(FlowMap(stream=0, offset=0, format=0, dimension=0) for _ in range(_CHANNEL_COUNT - 1))
    bounds = _aabb(positions.astype(float))

    fields = _asset_header(mesh.name)
    fields.update(
        {
            "serializedVersion": 10,
            "m_SubMeshes": [
                {
                    "serializedVersion": 2,
                    "firstByte": 0,
                    "indexCount": int(indices.size),
                    "topology": 0,
                    "baseVertex": 0,
                    "firstVertex": 0,
                    "vertexCount": int(vertex_count),
                    "localAABB": dict(bounds),
                }
            ],
            "m_IsReadable": 1,
            "m_KeepVertices": 1,
            "m_KeepIndices": 1,
            "m_IndexFormat": index_format,
            "m_IndexBuffer": indices.tobytes().hex(),
            "m_VertexData": {
                "serializedVersion": 2,
                "m_VertexCount": int(vertex_count),
                "m_Channels": channels,
                "m_DataSize": int(positions.nbytes),
                "_typelessdata": positions.tobytes().hex(),
            },
            "m_LocalAABB": dict(bounds),
            "m_MeshUsageFlags": 0,
        }
    )
    document = UnityDocument()
    document.add(UnityObject(MESH_MAIN_FILE_ID, CLASS_IDS["Mesh"], "Mesh", fields))
    return document


def _hex_bytes(value: Any) -> bytes:
    if value is None or value == "":
        return b""
    text = "".join(str(value).split())
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise FormatError(f"Invalid hex payload ({len(text)} chars)") from exc


def _main_object(document: UnityDocument, type_name: str, source: str) -> UnityObject:
    candidates = document.of_type(type_name)
    if not candidates:
        raise FormatError(f"{source}: no {type_name} object found")
    return candidates[0]


def decode_mesh(document: UnityDocument, *, source: str = "<mesh>") -> MeshData:
    obj = _main_object(document, "Mesh", source)
    name = str(obj.get("m_Name") or "Mesh")
    vertex_data = obj.get("m_VertexData") or {}
    if not isinstance(vertex_data, dict):
        raise FormatError(f"{source}: m_VertexData is not a mapping")
    vertex_count = int(vertex_data.get("m_VertexCount", 0) or 0)
    channels = vertex_data.get("m_Channels") or []
    if not channels:
        raise FormatError(f"{source}: mesh has no vertex channels")

    stride = 0
    for channel in channels:
        if int(channel.get("stream", 0)) != 0:
            continue
        dimension = int(channel.get("dimension", 0)) & 0xF
        if dimension:
            fmt = int(channel.get("format", 0))
            if fmt not in _FORMAT_SIZES:
                raise FormatError(f"{source}: unknown vertex format {fmt}")
            stride = max(stride, int(channel.get("offset", 0)) + dimension * _FORMAT_SIZES[fmt])
    position = channels[0]
    if int(position.get("dimension", 0)) & 0xF != 3 or int(position.get("format", 0)) != 0:
        raise FormatError(f"{source}: only float32 x3 positions are supported")
    if int(position.get("stream", 0)) != 0:
        raise FormatError(f"{source}: positions outside vertex stream 0 are not supported")

    raw = _hex_bytes(vertex_data.get("_typelessdata"))
    if len(raw) < vertex_count * stride:
        raise FormatError(f"{source}: vertex data holds {len(raw)} bytes, need {vertex_count * stride}")
    offset = int(position.get("offset", 0))
    if vertex_count:
        block = np.frombuffer(raw[: vertex_count * stride], dtype=np.uint8).reshape(vertex_count, stride)
        positions = block[:, offset: offset + 12].copy().view("<f4").reshape(vertex_count, 3).astype(float)
    else:
        positions = np.zeros((0, 3), dtype=float)

    index_format = int(obj.get("m_IndexFormat", 0) or 0)
    if index_format not in _INDEX_DTYPES:
        raise FormatError(f"{source}: unknown index format {index_format}")
    dtype = _INDEX_DTYPES[index_format]
    submeshes = obj.get("m_SubMeshes") or []
    index_bytes = _hex_bytes(obj.get("m_IndexBuffer"))
    all_indices = np.frombuffer(index_bytes, dtype=dtype).astype(np.int64)

    triangles: List[np.ndarray] = []
    if not submeshes:
        submeshes = [{"firstByte": 0, "indexCount": all_indices.size, "topology": 0, "baseVertex": 0}]
    for sm in submeshes:
        topology = int(sm.get("topology", 0))
        if topology != 0:
            LOG.warning("%s: submesh topology %d is not triangles; skipped", source, topology)
            continue
        start = int(sm.get("firstByte", 0)) // dtype.itemsize
        count = int(sm.get("indexCount", 0))
        chunk = all_indices[start: start + count] + int(sm.get("baseVertex", 0))
        if chunk.size != count or count % 3:
            raise FormatError(f"{source}: submesh index range is truncated")
        triangles.append(chunk.reshape(-1, 3))
    tris = np.concatenate(triangles) if triangles else np.zeros((0, 3), dtype=np.int64)
    if tris.size and (tris.min() < 0 or tris.max() >= vertex_count):
        raise FormatError(f"{source}: triangle indices exceed vertex count {vertex_count}")
    return MeshData(name=name, positions=positions, triangles=tris)


# ---------------- Material ----------------

def encode_material(material: MaterialData) -> UnityDocument:
    r, g, b, a = (float(c) for c in material.color)
    fields = _asset_header(material.name)
    fields.update(
        {
            "m_Shader": file_ref(STANDARD_SHADER_FILE_ID, STANDARD_SHADER_GUID, 0),
            "m_ShaderKeywords": "",
            "m_LightmapFlags": 4,
            "m_EnableInstancingVariants": 0,
            "m_DoubleSidedGI": 0,
            "m_CustomRenderQueue": -1,
            "stringTagMap": FlowMap(),
            "disabledShaderPasses": [],
            "m_SavedProperties": {
                "serializedVersion": 3,
                "m_TexEnvs": [],
                "m_Floats": [
                    {"_Glossiness": float(1.0 - material.roughness)},
                    {"_Metallic": float(material.metallic)},
                ],
                "m_Colors": [{"_Color": FlowMap(r=r, g=g, b=b, a=a)}],
            },
        }
    )
    document = UnityDocument()
    document.add(UnityObject(MATERIAL_MAIN_FILE_ID, CLASS_IDS["Material"], "Material", fields))
    return document


def _saved_entries(saved: Dict[str, Any], key: str) -> Dict[str, Any]:
    entries: Dict[str, Any] = {}
    raw = saved.get(key) or []
    # Older serializations store a mapping instead of a list of single-key mappings.
    if isinstance(raw, dict):
        return dict(raw)
    for item in raw:
        if isinstance(item, dict):
            entries.update(item)
    return entries


def decode_material(document: UnityDocument, *, source: str = "<material>") -> MaterialData:
    obj = _main_object(document, "Material", source)
    saved = obj.get("m_SavedProperties") or {}
    colors = _saved_entries(saved, "m_Colors")
    floats = _saved_entries(saved, "m_Floats")
    color_map = colors.get("_Color") or colors.get("_BaseColor") or {}
    color = (
        float(color_map.get("r", 0.8)),
        float(color_map.get("g", 0.8)),
        float(color_map.get("b", 0.8)),
        float(color_map.get("a", 1.0)),
    )
    glossiness = float(floats.get("_Glossiness", floats.get("_Smoothness", 0.5)))
    return MaterialData(
        name=str(obj.get("m_Name") or "Material"),
        color=color,
        metallic=float(floats.get("_Metallic", 0.0)),
        roughness=min(max(1.0 - glossiness, 0.0), 1.0),
    )


__all__ = [
    "MaterialData",
    "MeshData",
    "decode_material",
    "decode_mesh",
    "encode_material",
    "encode_mesh",
]
