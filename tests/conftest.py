"""Shared fixtures for the usdunity test suite."""

import pytest

from usdunity.usd_context import shutdown_usd_context


@pytest.fixture(autouse=True)
def fresh_usd_context(monkeypatch):
    """Every test starts without a selected USD mode or an env override."""
    monkeypatch.delenv("USDUNITY_USD_MODE", raising=False)
    shutdown_usd_context()
    yield
    shutdown_usd_context()


@pytest.fixture
def pxr():
    return pytest.importorskip("pxr")


@pytest.fixture
def stage_factory(pxr, tmp_path):
    """Create and save a small USD stage; ``build`` receives the open stage."""
    from pxr import Usd, UsdGeom

    def _make(name="Scene.usda", build=None, up_axis="Y", meters_per_unit=1.0):
        path = tmp_path / name
        stage = Usd.Stage.CreateNew(str(path))
        UsdGeom.SetStageUpAxis(stage, UsdGeom.Tokens.z if up_axis == "Z" else UsdGeom.Tokens.y)
        UsdGeom.SetStageMetersPerUnit(stage, meters_per_unit)
        if build is not None:
            build(stage)
        stage.GetRootLayer().Save()
        return path

    return _make


@pytest.fixture
def add_quad_mesh(pxr):
    """Factory for a unit quad in the XZ plane, one face."""
    from pxr import Gf, UsdGeom, Vt

    def _add(stage, path):
        mesh = UsdGeom.Mesh.Define(stage, path)
        mesh.CreatePointsAttr(
            Vt.Vec3fArray([Gf.Vec3f(0, 0, 0), Gf.Vec3f(1, 0, 0), Gf.Vec3f(1, 0, 1), Gf.Vec3f(0, 0, 1)])
        )
        mesh.CreateFaceVertexCountsAttr(Vt.IntArray([4]))
        mesh.CreateFaceVertexIndicesAttr(Vt.IntArray([0, 1, 2, 3]))
        return mesh

    return _add
