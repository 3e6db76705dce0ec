"""Unity scene/prefab -> USD stage translation."""

from __future__ import annotations

import contextlib
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .archive import extract_package
from .config.settings import CONVERSION_DEFAULTS, ConversionSettings
from .errors import FormatError, IoError, NotFoundError, UnsupportedFeature
from .io_utils import PathLike, atomic_output, path_stem
from .naming import sanitize_name, unique_name
from .pxr_utils import Gf, Sdf, Usd, UsdGeom, UsdShade, Vt
from .unity_assets import MaterialData, MeshData, decode_material, decode_mesh
from .unity_model import (
    DEFAULT_MATERIAL_GUID,
    SCENE_SETTINGS_TYPES,
    TRANSFORM_TYPES,
    UnityDocument,
    UnityObject,
    ref_file_id,
    ref_guid,
)
from .unity_yaml import parse_document, parse_meta
from .utils.matrix_utils import (
    axis_correction_matrix,
    mirror_x_points,
    quat_from_mapping,
    reverse_winding,
    unity_to_usd_local,
    vec3_from_mapping,
)

LOG = logging.getLogger(__name__)

SCENE_SUFFIXES = (".unity", ".prefab")
PACKAGE_SUFFIX = ".unitypackage"
USD_SUFFIXES = (".usd", ".usda", ".usdc")
LOOKS_SCOPE = "Looks"

_IDENTITY_QUAT = np.array([0.0, 0.0, 0.0, 1.0])
_EPS = 1.0e-9


@dataclass
class UsdStageBuild:
    dest: Path
    scenes: List[Path]
    warnings: List[UnsupportedFeature] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class _Scene:
    label: str
    document: UnityDocument
    components: Dict[int, List[UnityObject]]
    roots: List[UnityObject]


# ---------------- Input discovery ----------------

def _scan_scenes(root: Path) -> List[Path]:
    found = [
        path
        for path in root.rglob("*")
        if path.is_file() and path.suffix.lower() in SCENE_SUFFIXES
        and not any(part.startswith(".") for part in path.relative_to(root).parts)
    ]
    return sorted(found, key=lambda p: p.relative_to(root).as_posix())


def _index_root_for(scene_file: Path) -> Path:
    for parent in scene_file.parents:
        if parent.name == "Assets":
            return parent
    return scene_file.parent


def build_guid_index(root: PathLike) -> Dict[str, Path]:
    """Map every GUID declared by a ``.meta`` under ``root`` to the asset it describes."""
    index: Dict[str, Path] = {}
    for meta_path in sorted(Path(root).rglob("*.meta")):
        try:
            meta = parse_meta(meta_path.read_text(encoding="utf-8-sig"), source=str(meta_path))
        except (FormatError, UnicodeDecodeError) as exc:
            LOG.warning("Skipping unreadable meta file %s: %s", meta_path, exc)
            continue
        asset_path = meta_path.with_name(meta_path.name[: -len(".meta")])
        previous = index.get(meta.guid)
        if previous is not None and previous != asset_path:
            LOG.warning("GUID %s declared by both %s and %s", meta.guid, previous, asset_path)
            continue
        index[meta.guid] = asset_path
    LOG.debug("Indexed %d GUID(s) under %s", len(index), root)
    return index


@contextlib.contextmanager
def resolve_unity_input(source: PathLike) -> Iterator[Tuple[List[Path], Path]]:
    """Yield ``(scene_files, index_root)`` for a scene file, a directory or a package."""
    path = Path(source)
    if not path.exists():
        raise NotFoundError(f"Unity source not found: {path}")
    if path.is_dir():
        scenes = _scan_scenes(path)
        if not scenes:
            raise FormatError(f"No .unity or .prefab files under {path}")
        yield scenes, path
        return
    suffix = path.suffix.lower()
    if suffix == PACKAGE_SUFFIX:
        with tempfile.TemporaryDirectory(prefix="usdunity-pkg-") as tmp_name:
            tmp = Path(tmp_name)
            extract_package(path, tmp)
            scenes = _scan_scenes(tmp)
            if not scenes:
                raise FormatError(f"{path.name} contains no .unity or .prefab asset")
            yield scenes, tmp
        return
    if suffix in SCENE_SUFFIXES:
        yield [path], _index_root_for(path.resolve())
        return
    raise FormatError(f"Unsupported Unity source '{path.name}'; expected .unity, .prefab, .unitypackage or a directory")


# ---------------- Translator ----------------

class UnityToUsdTranslator:
    """Turns one or more parsed Unity documents into a single USD stage."""

    def __init__(self, settings: ConversionSettings = CONVERSION_DEFAULTS):
        self.settings = settings
        self.warnings: List[UnsupportedFeature] = []
        self._guid_index: Dict[str, Path] = {}
        self._correction = axis_correction_matrix(settings.output_up_axis, settings.output_meters_per_unit)
        self._mesh_cache: Dict[str, Optional[MeshData]] = {}
        self._material_paths: Dict[str, Optional[object]] = {}
        self._looks_names: Dict[str, int] = {}
        self._counts = {"prims": 0, "meshes": 0, "materials": 0, "placeholders": 0}

    # ---------------- entry points ----------------

    def convert(self, source: PathLike, dest: PathLike) -> UsdStageBuild:
        dest_path = Path(dest)
        if dest_path.suffix.lower() not in USD_SUFFIXES:
            raise IoError(f"Destination {dest_path.name} must end in one of {', '.join(USD_SUFFIXES)}")
        with resolve_unity_input(source) as (scene_files, index_root):
            self._guid_index = build_guid_index(index_root)
            scenes = [self._load_scene(scene_file) for scene_file in scene_files]
            stage = self.build_stage(scenes)
            with atomic_output(dest_path) as staged:
                if not stage.GetRootLayer().Export(str(staged)):
                    raise IoError(f"Failed to export USD layer to {dest_path}")
        LOG.info("Wrote %s (%d prim(s), %d note(s))", dest_path, self._counts["prims"], len(self.warnings))
        return UsdStageBuild(
            dest=dest_path,
            scenes=list(scene_files),
            warnings=list(self.warnings),
            counts=dict(self._counts, scenes=len(scene_files)),
        )

    def build_stage(self, scenes: Sequence[_Scene]):
        stage = Usd.Stage.CreateInMemory()
        up_axis = UsdGeom.Tokens.z if self.settings.output_up_axis == "Z" else UsdGeom.Tokens.y
        UsdGeom.SetStageUpAxis(stage, up_axis)
        UsdGeom.SetStageMetersPerUnit(stage, self.settings.output_meters_per_unit)

        root_names: Dict[str, int] = {LOOKS_SCOPE: 1}
        top_level: List[object] = []
        wrap = len(scenes) > 1
        for scene in scenes:
            if wrap:
                name = unique_name(sanitize_name(path_stem(scene.label), "Scene"), root_names)
                wrapper = UsdGeom.Xform.Define(stage, Sdf.Path.absoluteRootPath.AppendChild(name))
                self._counts["prims"] += 1
                top_level.append(wrapper.GetPrim())
                parent_path, names = wrapper.GetPath(), {}
            else:
                parent_path, names = Sdf.Path.absoluteRootPath, root_names
            for root in scene.roots:
                prim = self._emit(stage, scene, root, parent_path, names, is_root=True, visiting=set())
                if prim is not None and not wrap:
                    top_level.append(prim)

        if len(top_level) == 1:
            stage.SetDefaultPrim(top_level[0])
        return stage

    # ---------------- parsing ----------------

    def _note(self, source_path: str, source_type: str, reason: str) -> None:
        note = UnsupportedFeature(source_path, source_type, reason)
        LOG.warning("Skipping %s", note)
        self.warnings.append(note)

    def _load_scene(self, scene_file: Path) -> _Scene:
        label = scene_file.name
        try:
            text = scene_file.read_text(encoding="utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FormatError(f"{label}: not a text-serialized Unity file") from exc
        document = parse_document(text, source=label)
        return self.index_scene(document, label)

    def index_scene(self, document: UnityDocument, label: str) -> _Scene:
        game_objects = 0
        components: Dict[int, List[UnityObject]] = {}
        roots: List[UnityObject] = []
        for obj in document:
            if obj.type_name == "PrefabInstance":
                self._note(f"{label}:&{obj.file_id}", obj.type_name, "prefab instances are not expanded")
                continue
            if obj.stripped:
                self._note(f"{label}:&{obj.file_id}", obj.type_name, "stripped prefab object")
                continue
            if obj.type_name in SCENE_SETTINGS_TYPES:
                continue
            if obj.type_name == "GameObject":
                game_objects += 1
                owned = []
                for item in obj.get("m_Component") or []:
                    comp = document.get(_component_id(item))
                    if comp is not None and not comp.stripped:
                        owned.append(comp)
                components[obj.file_id] = owned
            elif obj.type_name in TRANSFORM_TYPES and ref_file_id(obj.get("m_Father")) == 0:
                roots.append(obj)

        if game_objects == 0:
            raise FormatError(f"{label}: no GameObjects found")
        if not roots:
            raise FormatError(f"{label}: no root Transform (m_Father fileID 0) found")
        roots.sort(key=lambda t: int(t.get("m_RootOrder", 0) or 0))
        return _Scene(label=label, document=document, components=components, roots=roots)

    # ---------------- emission ----------------

    def _emit(self, stage, scene: _Scene, transform: UnityObject, parent_path, names, *, is_root, visiting):
        if transform.file_id in visiting:
            raise FormatError(f"{scene.label}: Transform &{transform.file_id} is reached more than once")
        visiting.add(transform.file_id)
        document = scene.document
        go_id = ref_file_id(transform.get("m_GameObject"))
        game_object = document.get(go_id)
        if game_object is None or game_object.type_name != "GameObject":
            raise FormatError(f"{scene.label}: Transform &{transform.file_id} has no GameObject (&{go_id})")
        if game_object.stripped:
            return None

        name = unique_name(sanitize_name(game_object.get("m_Name"), "GameObject"), names)
        path = parent_path.AppendChild(name)
        label_path = f"{scene.label}:{path}"

        mesh_filter = renderer = None
        unsupported: List[UnityObject] = []
        for comp in scene.components.get(go_id, []):
            if comp.type_name in TRANSFORM_TYPES:
                continue
            if comp.type_name == "MeshFilter":
                mesh_filter = comp
            elif comp.type_name == "MeshRenderer":
                renderer = comp
            else:
                unsupported.append(comp)

        mesh = self._resolve_mesh(mesh_filter, label_path) if mesh_filter is not None else None
        if mesh is not None:
            usd_mesh = UsdGeom.Mesh.Define(stage, path)
            _author_mesh(usd_mesh, mesh)
            self._counts["meshes"] += 1
            prim = usd_mesh.GetPrim()
            material = self._resolve_material(stage, renderer, label_path) if renderer is not None else None
            if material is not None:
                UsdShade.MaterialBindingAPI.Apply(prim).Bind(material)
        else:
            prim = UsdGeom.Xform.Define(stage, path).GetPrim()
            if renderer is not None and mesh_filter is None:
                LOG.debug("%s has a MeshRenderer without a MeshFilter", label_path)
        self._counts["prims"] += 1

        translation, rotation, scale = unity_to_usd_local(
            vec3_from_mapping(transform.get("m_LocalPosition")),
            quat_from_mapping(transform.get("m_LocalRotation")),
            vec3_from_mapping(transform.get("m_LocalScale"), (1.0, 1.0, 1.0)),
            self._correction if is_root else None,
        )
        _author_xform_ops(UsdGeom.Xformable(prim), translation, rotation, scale)

        child_names: Dict[str, int] = {}
        for child_ref in transform.get("m_Children") or []:
            child = document.get(ref_file_id(child_ref))
            if child is None:
                raise FormatError(
                    f"{scene.label}: Transform &{transform.file_id} lists missing child &{ref_file_id(child_ref)}"
                )
            if child.stripped:
                continue
            self._emit(stage, scene, child, path, child_names, is_root=False, visiting=visiting)

        for comp in unsupported:
            self._placeholder(stage, path, child_names, comp, label_path)
        return prim

    def _placeholder(self, stage, parent_path, names, component: UnityObject, label_path: str) -> None:
        name = unique_name(sanitize_name(component.type_name, "Component"), names)
        placeholder = UsdGeom.Xform.Define(stage, parent_path.AppendChild(name)).GetPrim()
        placeholder.SetMetadata(
            "comment", f"Unity {component.type_name} component (fileID {component.file_id}) has no USD mapping"
        )
        self._counts["prims"] += 1
        self._counts["placeholders"] += 1
        self._note(label_path, component.type_name, "component has no USD counterpart; placeholder emitted")

    # ---------------- referenced assets ----------------

    def _asset_for(self, guid: Optional[str]) -> Optional[Path]:
        if not guid or guid == DEFAULT_MATERIAL_GUID:
            return None
        return self._guid_index.get(guid)

    def _load_asset(self, asset: Path, decode, label_path: str, kind: str):
        """Decode a referenced asset; an unreadable one becomes a note and ``None``."""
        try:
            document = parse_document(asset.read_text(encoding="utf-8-sig"), source=asset.name)
            return decode(document, source=asset.name)
        except (FormatError, UnicodeDecodeError, OSError) as exc:
            self._note(label_path, kind, f"{asset.name} could not be read: {exc}")
            return None

    def _resolve_mesh(self, mesh_filter: UnityObject, label_path: str) -> Optional[MeshData]:
        guid = ref_guid(mesh_filter.get("m_Mesh"))
        if guid in self._mesh_cache:
            return self._mesh_cache[guid]
        asset = self._asset_for(guid)
        mesh: Optional[MeshData] = None
        if asset is None:
            LOG.info("%s: mesh %s is not in the project; emitting an Xform", label_path, guid or "<none>")
        elif asset.suffix.lower() != ".asset":
            self._note(label_path, "Mesh", f"mesh source {asset.name} is not a native Unity mesh asset")
        else:
            mesh = self._load_asset(asset, decode_mesh, label_path, "Mesh")
        if guid:
            self._mesh_cache[guid] = mesh
        return mesh

    def _resolve_material(self, stage, renderer: UnityObject, label_path: str):
        refs = [ref for ref in renderer.get("m_Materials") or [] if ref_guid(ref)]
        if len(refs) > 1:
            LOG.debug("%s: binding the first of %d materials", label_path, len(refs))
        for ref in refs:
            guid = ref_guid(ref)
            if guid in self._material_paths:
                material = self._material_paths[guid]
                if material is None:
                    continue
                return material
            asset = self._asset_for(guid)
            if asset is None or asset.suffix.lower() != ".mat":
                continue
            data = self._load_asset(asset, decode_material, label_path, "Material")
            if data is None:
                self._material_paths[guid] = None
                continue
            material = _author_material(stage, data, self._looks_names)
            self._counts["materials"] += 1
            self._material_paths[guid] = material
            return material
        return None


# ---------------- pxr authoring ----------------

def _component_id(item) -> int:
    if not isinstance(item, dict):
        return 0
    if "component" in item:
        return ref_file_id(item["component"])
    # Pre-2018 layout: ``- 4: {fileID: N}`` keyed by class id.
    for value in item.values():
        return ref_file_id(value)
    return 0


def _author_xform_ops(xformable, translation, rotation, scale) -> None:
    xformable.ClearXformOpOrder()
    precision = UsdGeom.XformOp.PrecisionDouble
    if np.any(np.abs(translation) > _EPS):
        xformable.AddTranslateOp(precision).Set(Gf.Vec3d(*(float(v) for v in translation)))
    if np.any(np.abs(np.asarray(rotation) - _IDENTITY_QUAT) > _EPS):
        x, y, z, w = (float(v) for v in rotation)
        xformable.AddOrientOp(precision).Set(Gf.Quatd(w, Gf.Vec3d(x, y, z)))
    if np.any(np.abs(np.asarray(scale) - 1.0) > _EPS):
        xformable.AddScaleOp(precision).Set(Gf.Vec3d(*(float(v) for v in scale)))


def _author_mesh(usd_mesh, mesh: MeshData) -> None:
    points = mirror_x_points(mesh.positions)
    triangles = reverse_winding(mesh.triangles)
    usd_mesh.CreatePointsAttr(Vt.Vec3fArray([Gf.Vec3f(*(float(c) for c in p)) for p in points]))
    usd_mesh.CreateFaceVertexCountsAttr(Vt.IntArray([3] * int(triangles.shape[0])))
    usd_mesh.CreateFaceVertexIndicesAttr(Vt.IntArray([int(i) for i in triangles.reshape(-1)]))
    usd_mesh.CreateSubdivisionSchemeAttr(UsdGeom.Tokens.none)
    if points.shape[0]:
        lo, hi = points.min(axis=0), points.max(axis=0)
        usd_mesh.CreateExtentAttr(
            Vt.Vec3fArray([Gf.Vec3f(*(float(v) for v in lo)), Gf.Vec3f(*(float(v) for v in hi))])
        )


def _author_material(stage, data: MaterialData, names: Dict[str, int]):
    looks = Sdf.Path.absoluteRootPath.AppendChild(LOOKS_SCOPE)
    if not stage.GetPrimAtPath(looks):
        UsdGeom.Scope.Define(stage, looks)
    path = looks.AppendChild(unique_name(sanitize_name(data.name, "Material"), names))
    material = UsdShade.Material.Define(stage, path)
    shader = UsdShade.Shader.Define(stage, path.AppendChild("PreviewSurface"))
    shader.CreateIdAttr("UsdPreviewSurface")
    r, g, b, a = (float(c) for c in data.color)
    shader.CreateInput("diffuseColor", Sdf.ValueTypeNames.Color3f).Set(Gf.Vec3f(r, g, b))
    shader.CreateInput("opacity", Sdf.ValueTypeNames.Float).Set(a)
    shader.CreateInput("metallic", Sdf.ValueTypeNames.Float).Set(float(data.metallic))
    shader.CreateInput("roughness", Sdf.ValueTypeNames.Float).Set(float(data.roughness))
    material.CreateSurfaceOutput().ConnectToSource(shader.ConnectableAPI(), "surface")
    return material


def convert_unity_to_usd(
    source: PathLike,
    dest: PathLike,
    *,
    settings: ConversionSettings = CONVERSION_DEFAULTS,
) -> UsdStageBuild:
    return UnityToUsdTranslator(settings).convert(source, dest)


__all__ = [
    "UnityToUsdTranslator",
    "UsdStageBuild",
    "build_guid_index",
    "convert_unity_to_usd",
    "resolve_unity_input",
]
