"""In-memory model of Unity serialized files: objects, documents and meta records.

A Unity text asset is a sequence of objects, each tagged with its class id and a
file identifier local to the file.  Objects point at each other with
``{fileID: N}`` mappings; references into other assets add ``guid`` and
``type``.  The builders at the bottom produce the field layouts Unity writes for
the handful of classes the translators emit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .errors import FormatError
from .identifiers import FileIdAllocator

CLASS_IDS: Dict[str, int] = {
    "GameObject": 1,
    "Transform": 4,
    "Camera": 20,
    "Material": 21,
    "MeshRenderer": 23,
    "OcclusionCullingSettings": 29,
    "MeshFilter": 33,
    "Mesh": 43,
    "Rigidbody": 54,
    "MeshCollider": 64,
    "BoxCollider": 65,
    "RenderSettings": 104,
    "Light": 108,
    "MonoBehaviour": 114,
    "SphereCollider": 135,
    "CapsuleCollider": 136,
    "SkinnedMeshRenderer": 137,
    "LightmapSettings": 157,
    "NavMeshSettings": 196,
    "RectTransform": 224,
    "PrefabInstance": 1001,
}
CLASS_NAMES: Dict[int, str] = {value: key for key, value in CLASS_IDS.items()}

SCENE_SETTINGS_TYPES = frozenset(
    {"OcclusionCullingSettings", "RenderSettings", "LightmapSettings", "NavMeshSettings"}
)
TRANSFORM_TYPES = frozenset({"Transform", "RectTransform"})

# Main-object file ids Unity uses inside native .asset/.mat files.
MESH_MAIN_FILE_ID = 4300000
MATERIAL_MAIN_FILE_ID = 2100000
NATIVE_ASSET_REF_TYPE = 2

# Unity's built-in Default-Material.
DEFAULT_MATERIAL_GUID = "0000000000000000f000000000000000"
DEFAULT_MATERIAL_FILE_ID = 10303
# Built-in Standard shader.
STANDARD_SHADER_GUID = "0000000000000000f000000000000000"
STANDARD_SHADER_FILE_ID = 46


class FlowMap(dict):
    """A mapping that serializes in YAML flow style, e.g. ``{fileID: 0}``."""


def file_ref(file_id: int = 0, guid: Optional[str] = None, ref_type: Optional[int] = None) -> FlowMap:
    ref = FlowMap(fileID=int(file_id))
    if guid is not None:
        ref["guid"] = guid
        ref["type"] = int(NATIVE_ASSET_REF_TYPE if ref_type is None else ref_type)
    return ref


def ref_file_id(value: Any) -> int:
    if isinstance(value, dict):
        try:
            return int(value.get("fileID", 0) or 0)
        except (TypeError, ValueError):
            return 0
    return 0


def ref_guid(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        guid = value.get("guid")
        return str(guid) if guid else None
    return None


@dataclass
class UnityObject:
    file_id: int
    class_id: int
    type_name: str
    fields: Dict[str, Any] = field(default_factory=dict)
    stripped: bool = False

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


class UnityDocument:
    """Ordered collection of objects from one serialized file."""

    def __init__(self, objects: Optional[Sequence[UnityObject]] = None, *, allocator: Optional[FileIdAllocator] = None):
        self._objects: List[UnityObject] = []
        self._index: Dict[int, UnityObject] = {}
        self._allocator = allocator or FileIdAllocator()
        for obj in objects or ():
            self.add(obj)

    def __iter__(self) -> Iterator[UnityObject]:
        return iter(self._objects)

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._index

    def add(self, obj: UnityObject) -> UnityObject:
        if obj.file_id in self._index:
            raise FormatError(f"Duplicate fileID {obj.file_id} ({obj.type_name})")
        self._allocator.reserve(obj.file_id)
        self._objects.append(obj)
        self._index[obj.file_id] = obj
        return obj

    def new_object(self, type_name: str, fields: Optional[Dict[str, Any]] = None) -> UnityObject:
        class_id = CLASS_IDS[type_name]
        file_id = self._allocator.allocate()
        obj = UnityObject(file_id=file_id, class_id=class_id, type_name=type_name, fields=dict(fields or {}))
        self._objects.append(obj)
        self._index[file_id] = obj
        return obj

    def get(self, file_id: int) -> Optional[UnityObject]:
        return self._index.get(int(file_id))

    def of_type(self, *type_names: str) -> List[UnityObject]:
        wanted = set(type_names)
        return [obj for obj in self._objects if obj.type_name in wanted]

    def validate_references(self) -> None:
        """Every guid-less, non-null fileID must point at an object in this document."""
        for obj in self._objects:
            for ref in _iter_refs(obj.fields):
                target = ref_file_id(ref)
                if target == 0 or ref_guid(ref):
                    continue
                if target not in self._index:
                    raise FormatError(
                        f"{obj.type_name} &{obj.file_id} references missing fileID {target}"
                    )


def _iter_refs(value: Any) -> Iterator[dict]:
    if isinstance(value, dict):
        if "fileID" in value:
            yield value
        for item in value.values():
            yield from _iter_refs(item)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_refs(item)


@dataclass
class MetaRecord:
    guid: str
    file_format_version: int = 2
    importer: str = "DefaultImporter"
    importer_settings: Dict[str, Any] = field(default_factory=dict)
    folder_asset: bool = False

    @classmethod
    def for_folder(cls, guid: str, file_format_version: int = 2) -> "MetaRecord":
        return cls(
            guid=guid,
            file_format_version=file_format_version,
            importer="DefaultImporter",
            importer_settings=_common_importer_settings(),
            folder_asset=True,
        )

    @classmethod
    def for_scene(cls, guid: str, file_format_version: int = 2) -> "MetaRecord":
        return cls(
            guid=guid,
            file_format_version=file_format_version,
            importer="DefaultImporter",
            importer_settings=_common_importer_settings(),
        )

    @classmethod
    def for_native_asset(cls, guid: str, main_object_file_id: int, file_format_version: int = 2) -> "MetaRecord":
        settings = {"mainObjectFileID": int(main_object_file_id)}
        settings.update(_common_importer_settings())
        return cls(
            guid=guid,
            file_format_version=file_format_version,
            importer="NativeFormatImporter",
            importer_settings=settings,
        )


def _common_importer_settings() -> Dict[str, Any]:
    return {
        "externalObjects": FlowMap(),
        "userData": "",
        "assetBundleName": "",
        "assetBundleVariant": "",
    }


# ---------------- Field builders ----------------

def _object_header() -> Dict[str, Any]:
    return {
        "m_ObjectHideFlags": 0,
        "m_CorrespondingSourceObject": file_ref(0),
        "m_PrefabInstance": file_ref(0),
        "m_PrefabAsset": file_ref(0),
    }


def game_object_fields(name: str, component_ids: Sequence[int], layer: int = 0) -> Dict[str, Any]:
    fields = _object_header()
    fields.update(
        {
            "serializedVersion": 6,
            "m_Component": [{"component": file_ref(cid)} for cid in component_ids],
            "m_Layer": int(layer),
            "m_Name": name,
            "m_TagString": "Untagged",
            "m_Icon": file_ref(0),
            "m_NavMeshLayer": 0,
            "m_StaticEditorFlags": 0,
            "m_IsActive": 1,
        }
    )
    return fields


def transform_fields(
    game_object_id: int,
    position: Dict[str, float],
    rotation: Dict[str, float],
    scale: Dict[str, float],
    *,
    children: Sequence[int] = (),
    father: int = 0,
    root_order: int = 0,
) -> Dict[str, Any]:
    fields = _object_header()
    fields.update(
        {
            "m_GameObject": file_ref(game_object_id),
            "serializedVersion": 2,
            "m_LocalRotation": FlowMap(rotation),
            "m_LocalPosition": FlowMap(position),
            "m_LocalScale": FlowMap(scale),
            "m_ConstrainProportionsScale": 0,
            "m_Children": [file_ref(cid) for cid in children],
            "m_Father": file_ref(father),
            "m_RootOrder": int(root_order),
            "m_LocalEulerAnglesHint": FlowMap(x=0, y=0, z=0),
        }
    )
    return fields


def mesh_filter_fields(game_object_id: int, mesh_guid: Optional[str]) -> Dict[str, Any]:
    fields = _object_header()
    fields["m_GameObject"] = file_ref(game_object_id)
    fields["m_Mesh"] = file_ref(MESH_MAIN_FILE_ID, mesh_guid) if mesh_guid else file_ref(0)
    return fields


def mesh_renderer_fields(game_object_id: int, material_refs: Sequence[FlowMap]) -> Dict[str, Any]:
    fields = _object_header()
    fields.update(
        {
            "m_GameObject": file_ref(game_object_id),
            "m_Enabled": 1,
            "m_CastShadows": 1,
            "m_ReceiveShadows": 1,
            "m_DynamicOccludee": 1,
            "m_MotionVectors": 1,
            "m_LightProbeUsage": 1,
            "m_ReflectionProbeUsage": 1,
            "m_Materials": list(material_refs),
            "m_StaticBatchInfo": FlowMap(firstSubMesh=0, subMeshCount=0),
            "m_SortingLayerID": 0,
            "m_SortingOrder": 0,
        }
    )
    return fields


def default_material_ref() -> FlowMap:
    return file_ref(DEFAULT_MATERIAL_FILE_ID, DEFAULT_MATERIAL_GUID, 0)


__all__ = [
    "CLASS_IDS",
    "CLASS_NAMES",
    "DEFAULT_MATERIAL_GUID",
    "MATERIAL_MAIN_FILE_ID",
    "MESH_MAIN_FILE_ID",
    "SCENE_SETTINGS_TYPES",
    "STANDARD_SHADER_FILE_ID",
    "STANDARD_SHADER_GUID",
    "TRANSFORM_TYPES",
    "FlowMap",
    "MetaRecord",
    "UnityDocument",
    "UnityObject",
    "default_material_ref",
    "file_ref",
    "game_object_fields",
    "mesh_filter_fields",
    "mesh_renderer_fields",
    "ref_file_id",
    "ref_guid",
    "transform_fields",
]
