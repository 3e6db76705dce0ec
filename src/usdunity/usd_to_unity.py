"""USD stage -> Unity package translation.

The stage is walked depth-first in document order.  Grouping prims become a
GameObject with a Transform, meshes additionally get a MeshFilter and
MeshRenderer pointing at a native mesh asset, and materials become ``.mat``
assets.  Prim types with no Unity counterpart are reported as
:class:`~usdunity.errors.UnsupportedFeature` and their subtree is skipped.

Root transforms carry the stage's up-axis/units correction; every transform
and every vertex is mirrored on X for Unity's left-handed frame.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from .archive import PackageEntry, write_package
from .config.settings import CONVERSION_DEFAULTS, ConversionSettings
from .errors import FormatError, UnsupportedFeature
from .identifiers import derive_guid
from .io_utils import PathLike, path_stem
from .naming import sanitize_filename, unique_name
from .pxr_utils import Usd, UsdGeom, UsdShade
from .unity_assets import MaterialData, MeshData, encode_material, encode_mesh
from .unity_model import (
    MATERIAL_MAIN_FILE_ID,
    MESH_MAIN_FILE_ID,
    FlowMap,
    MetaRecord,
    UnityDocument,
    default_material_ref,
    file_ref,
    game_object_fields,
    mesh_filter_fields,
    mesh_renderer_fields,
    transform_fields,
)
from .unity_yaml import dump_document
from .utils.matrix_utils import (
    axis_correction_matrix,
    gf_to_np,
    mirror_x_points,
    quat_dict,
    reverse_winding,
    triangulate_faces,
    usd_local_to_unity,
    vec3_dict,
)

LOG = logging.getLogger(__name__)

GROUP_TYPES = frozenset({"", "Xform", "Scope", "SkelRoot"})
MESH_TYPES = frozenset({"Mesh"})
MATERIAL_TYPES = frozenset({"Material"})
# Consumed by their owning Mesh/Material; never reported.
CONSUMED_TYPES = frozenset({"GeomSubset", "Shader", "NodeGraph"})


@dataclass
class UnityPackageBuild:
    """Everything a USD->Unity run produced, before it is written to disk."""

    scene_pathname: str
    entries: List[PackageEntry]
    warnings: List[UnsupportedFeature] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    up_axis: str = "Y"
    meters_per_unit: float = 1.0


@dataclass
class _AssetRecord:
    pathname: str
    guid: str
    document: UnityDocument
    meta: MetaRecord


class UsdToUnityTranslator:
    """Builds the package entries for one stage; create one per conversion."""

    def __init__(self, settings: ConversionSettings = CONVERSION_DEFAULTS):
        self.settings = settings
        self.warnings: List[UnsupportedFeature] = []
        self._document = UnityDocument()
        self._meshes: "OrderedDict[str, _AssetRecord]" = OrderedDict()
        self._materials: "OrderedDict[str, _AssetRecord]" = OrderedDict()
        self._used_files: Dict[str, int] = {}
        self._correction = np.eye(4)
        self._stage_key = ""
        self._game_objects = 0

    # ---------------- entry points ----------------

    def build_from_file(self, usd_path: PathLike) -> UnityPackageBuild:
        stage = open_stage(usd_path)
        return self.build(stage, stage_key=path_stem(usd_path))

    def build(self, stage, *, stage_key: str) -> UnityPackageBuild:
        if self._game_objects or len(self._document):
            raise RuntimeError("UsdToUnityTranslator instances are single-use")
        self._stage_key = stage_key
        up_axis = str(UsdGeom.GetStageUpAxis(stage) or "Y").upper()
        meters_per_unit = float(UsdGeom.GetStageMetersPerUnit(stage) or 1.0)
        try:
            self._correction = axis_correction_matrix(up_axis, meters_per_unit)
        except ValueError as exc:
            raise FormatError(f"Stage {stage_key}: {exc}") from exc
        LOG.info(
            "Translating stage %s (upAxis=%s, metersPerUnit=%s)", stage_key, up_axis, meters_per_unit
        )

        emitted = 0
        for prim in _children(stage.GetPseudoRoot()):
            if self._visit(prim, father_id=0, order=emitted, is_root=True) is not None:
                emitted += 1
        if self._game_objects == 0 and not self._materials:
            LOG.warning("Stage %s produced no GameObjects", stage_key)

        self._document.validate_references()
        entries = self._package_entries()
        scene_name = _scene_file_name(self.settings, stage_key)
        return UnityPackageBuild(
            scene_pathname=f"{self.settings.asset_root}/{scene_name}.unity",
            entries=entries,
            warnings=list(self.warnings),
            counts={
                "game_objects": self._game_objects,
                "meshes": len(self._meshes),
                "materials": len(self._materials),
                "unsupported": len(self.warnings),
            },
            up_axis=up_axis,
            meters_per_unit=meters_per_unit,
        )

    # ---------------- traversal ----------------

    def _note_unsupported(self, prim, reason: str = "no Unity counterpart") -> None:
        note = UnsupportedFeature(str(prim.GetPath()), str(prim.GetTypeName()) or "<untyped>", reason)
        LOG.warning("Skipping %s", note)
        self.warnings.append(note)

    def _visit(self, prim, *, father_id: int, order: int, is_root: bool) -> Optional[int]:
        """Emit the GameObject for ``prim`` and its subtree; returns its Transform fileID."""
        type_name = str(prim.GetTypeName())
        if type_name in MATERIAL_TYPES:
            self._material_asset(prim)
            return None
        if type_name in CONSUMED_TYPES:
            return None
        if type_name not in GROUP_TYPES and type_name not in MESH_TYPES:
            self._note_unsupported(prim)
            return None

        game_object = self._document.new_object("GameObject")
        transform = self._document.new_object("Transform")
        components = [transform.file_id]
        self._game_objects += 1

        if type_name in MESH_TYPES:
            mesh_record = self._mesh_asset(prim)
            if mesh_record is not None:
                mesh_filter = self._document.new_object(
                    "MeshFilter", mesh_filter_fields(game_object.file_id, mesh_record.guid)
                )
                renderer = self._document.new_object(
                    "MeshRenderer",
                    mesh_renderer_fields(game_object.file_id, [self._bound_material_ref(prim)]),
                )
                components.extend([mesh_filter.file_id, renderer.file_id])

        position, rotation, scale = usd_local_to_unity(
            _local_matrix(prim), self._correction if is_root else None
        )

        child_ids: List[int] = []
        for child in _children(prim):
            child_id = self._visit(child, father_id=transform.file_id, order=len(child_ids), is_root=False)
            if child_id is not None:
                child_ids.append(child_id)

        game_object.fields = game_object_fields(prim.GetName(), components, self.settings.unity_layer)
        transform.fields = transform_fields(
            game_object.file_id,
            vec3_dict(position),
            quat_dict(rotation),
            vec3_dict(scale),
            children=child_ids,
            father=father_id,
            root_order=order,
        )
        return transform.file_id

    # ---------------- assets ----------------

    def _asset_pathname(self, folder: str, name: str, suffix: str, fallback: str) -> str:
        base = sanitize_filename(name, fallback)
        stem = unique_name(f"{folder}/{base}", self._used_files)
        return f"{self.settings.asset_root}/{stem}{suffix}"

    def _mesh_asset(self, prim) -> Optional[_AssetRecord]:
        key = str(prim.GetPath())
        if key in self._meshes:
            return self._meshes[key]
        try:
            mesh = read_mesh(prim)
        except ValueError as exc:
            self._note_unsupported(prim, f"unreadable mesh topology: {exc}")
            return None
        guid = derive_guid(self.settings.guid_namespace, f"{self._stage_key}{key}:mesh")
        record = _AssetRecord(
            pathname=self._asset_pathname("Meshes", prim.GetName(), ".asset", "Mesh"),
            guid=guid,
            document=encode_mesh(mesh),
            meta=MetaRecord.for_native_asset(guid, MESH_MAIN_FILE_ID, self.settings.meta_format_version),
        )
        self._meshes[key] = record
        return record

    def _material_asset(self, prim) -> _AssetRecord:
        key = str(prim.GetPath())
        if key in self._materials:
            return self._materials[key]
        guid = derive_guid(self.settings.guid_namespace, f"{self._stage_key}{key}:material")
        record = _AssetRecord(
            pathname=self._asset_pathname("Materials", prim.GetName(), ".mat", "Material"),
            guid=guid,
            document=encode_material(read_material(prim)),
            meta=MetaRecord.for_native_asset(guid, MATERIAL_MAIN_FILE_ID, self.settings.meta_format_version),
        )
        self._materials[key] = record
        return record

    def _bound_material_ref(self, prim) -> FlowMap:
        material, _relationship = UsdShade.MaterialBindingAPI(prim).ComputeBoundMaterial()
        if not material:
            return default_material_ref()
        record = self._material_asset(material.GetPrim())
        return file_ref(MATERIAL_MAIN_FILE_ID, record.guid)

    def _package_entries(self) -> List[PackageEntry]:
        settings = self.settings
        version = settings.meta_format_version
        entries: List[PackageEntry] = []

        if settings.include_folder_entries:
            folders = _folder_chain(settings.asset_root)
            if self._meshes:
                folders.append(f"{settings.asset_root}/Meshes")
            if self._materials:
                folders.append(f"{settings.asset_root}/Materials")
            for folder in folders:
                guid = derive_guid(settings.guid_namespace, f"folder:{folder}")
                entries.append(PackageEntry(pathname=folder, meta=MetaRecord.for_folder(guid, version)))

        scene_name = _scene_file_name(settings, self._stage_key)
        scene_pathname = f"{settings.asset_root}/{scene_name}.unity"
        scene_guid = derive_guid(settings.guid_namespace, f"{self._stage_key}:scene")
        entries.append(
            PackageEntry(
                pathname=scene_pathname,
                meta=MetaRecord.for_scene(scene_guid, version),
                asset=dump_document(self._document).encode("utf-8"),
            )
        )
        for record in list(self._meshes.values()) + list(self._materials.values()):
            entries.append(
                PackageEntry(
                    pathname=record.pathname,
                    meta=record.meta,
                    asset=dump_document(record.document).encode("utf-8"),
                )
            )
        return entries


# ---------------- pxr readers ----------------

def open_stage(usd_path: PathLike):
    path = str(Path(usd_path))
    try:
        stage = Usd.Stage.Open(path)
    except Exception as exc:
        raise FormatError(f"Failed to open USD stage {path}: {exc}") from exc
    if not stage:
        raise FormatError(f"Failed to open USD stage {path}")
    return stage


def _children(prim):
    return prim.GetFilteredChildren(Usd.TraverseInstanceProxies(Usd.PrimDefaultPredicate))


def _local_matrix(prim) -> np.ndarray:
    if not prim.IsA(UsdGeom.Xformable):
        return np.eye(4)
    return gf_to_np(UsdGeom.Xformable(prim).GetLocalTransformation())


def read_mesh(prim) -> MeshData:
    """Read a UsdGeomMesh as a Unity-space triangle mesh."""
    mesh = UsdGeom.Mesh(prim)
    points = mesh.GetPointsAttr().Get()
    counts = mesh.GetFaceVertexCountsAttr().Get()
    indices = mesh.GetFaceVertexIndicesAttr().Get()
    positions = np.array([tuple(p) for p in points], dtype=float).reshape(-1, 3) if points else np.zeros((0, 3))
    triangles = triangulate_faces(list(counts or []), list(indices or []))
    if triangles.size and (triangles.min() < 0 or triangles.max() >= positions.shape[0]):
        raise ValueError(f"face indices exceed the {positions.shape[0]} authored points")
    if mesh.GetOrientationAttr().Get() == UsdGeom.Tokens.leftHanded:
        triangles = reverse_winding(triangles)
    return MeshData(
        name=prim.GetName(),
        positions=mirror_x_points(positions),
        triangles=reverse_winding(triangles),
    )


def _preview_surface(material_prim):
    for descendant in Usd.PrimRange(material_prim):
        if descendant.GetTypeName() != "Shader":
            continue
        shader = UsdShade.Shader(descendant)
        if shader.GetIdAttr().Get() == "UsdPreviewSurface":
            return shader
    return None


def _input_value(shader, name: str, default):
    shader_input = shader.GetInput(name)
    if not shader_input:
        return default
    value = shader_input.Get()
    return default if value is None else value


def read_material(material_prim) -> MaterialData:
    data = MaterialData(name=material_prim.GetName())
    shader = _preview_surface(material_prim)
    if shader is None:
        LOG.debug("Material %s has no UsdPreviewSurface; using defaults", material_prim.GetPath())
        return data
    color = _input_value(shader, "diffuseColor", data.color[:3])
    opacity = _input_value(shader, "opacity", 1.0)
    data.color = (float(color[0]), float(color[1]), float(color[2]), float(opacity))
    data.metallic = float(_input_value(shader, "metallic", data.metallic))
    data.roughness = float(_input_value(shader, "roughness", data.roughness))
    return data


def _folder_chain(asset_root: str) -> List[str]:
    parts = asset_root.split("/")
    return ["/".join(parts[: idx + 1]) for idx in range(1, len(parts))]


def _scene_file_name(settings: ConversionSettings, stage_key: str) -> str:
    return sanitize_filename(settings.scene_name or stage_key, "Scene")


def convert_usd_to_unity_package(
    usd_path: PathLike,
    dest_path: PathLike,
    *,
    settings: ConversionSettings = CONVERSION_DEFAULTS,
) -> Tuple[UnityPackageBuild, Path]:
    """Translate ``usd_path`` and write the package to ``dest_path`` atomically."""
    build = UsdToUnityTranslator(settings).build_from_file(usd_path)
    written = write_package(build.entries, dest_path)
    return build, written


__all__ = [
    "UnityPackageBuild",
    "UsdToUnityTranslator",
    "convert_usd_to_unity_package",
    "open_stage",
    "read_material",
    "read_mesh",
]
