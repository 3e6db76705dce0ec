from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

log = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]

_SCALE_EPS = 1.0e-12


# ---------------- Matrix helpers ----------------
# Internally every 4x4 is column-vector (p' = M @ p, translation in the last
# column). Gf.Matrix4d is row-vector, so conversions transpose.

def gf_to_np(mat) -> np.ndarray:
    """Convert a Gf.Matrix4d (row-vector) into a column-vector numpy 4x4."""
    rows = [[float(mat[i][j]) for j in range(4)] for i in range(4)]
    return np.array(rows, dtype=float).T


def axis_correction_matrix(up_axis: str = "Y", meters_per_unit: float = 1.0) -> np.ndarray:
    """Matrix taking stage space (given up-axis and units) into Y-up metres.

    Z-up stages are rotated -90 degrees about X so that +Z lands on +Y.
    """
    axis = str(up_axis or "Y").strip().upper()
    scale = float(meters_per_unit)
    if scale <= 0.0:
        raise ValueError("metersPerUnit must be greater than zero")
    correction = np.eye(4)
    if axis == "Z":
        correction[:3, :3] = np.array(
            [
                [1.0, 0.0, 0.0],
                [0.0, 0.0, 1.0],
                [0.0, -1.0, 0.0],
            ]
        )
    elif axis != "Y":
        raise ValueError(f"Unsupported up axis '{up_axis}'")
    correction[:3, :3] *= scale
    return correction


# ---------------- Quaternions ----------------

def quaternion_from_matrix(R: np.ndarray) -> np.ndarray:
    """Convert a 3x3 rotation matrix to quaternion [x, y, z, w] with w >= 0."""
    trace = np.trace(R)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (R[2, 1] - R[1, 2]) * s
        y = (R[0, 2] - R[2, 0]) * s
        z = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s

    quat = np.array([x, y, z, w], dtype=float)
    quat /= np.linalg.norm(quat)
    if quat[3] < 0.0:
        quat = -quat
    return quat


def matrix_from_quaternion(q: Sequence[float]) -> np.ndarray:
    """Convert quaternion [x, y, z, w] to a 3x3 rotation matrix."""
    x, y, z, w = (float(v) for v in q)
    norm = np.sqrt(x * x + y * y + z * z + w * w)
    if norm < _SCALE_EPS:
        return np.eye(3)
    x, y, z, w = x / norm, y / norm, z / norm, w / norm

    return np.array([
        [1 - 2*(y*y + z*z), 2*(x*y - w*z), 2*(x*z + w*y)],
        [2*(x*y + w*z), 1 - 2*(x*x + z*z), 2*(y*z - w*x)],
        [2*(x*z - w*y), 2*(y*z + w*x), 1 - 2*(x*x + y*y)],
    ])


# ---------------- TRS ----------------

def decompose_trs(matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split a column-vector 4x4 into translation, quaternion [x, y, z, w] and scale.

    Shear is discarded. A negative determinant is carried on the X scale.
    """
    m = np.asarray(matrix, dtype=float)
    translation = m[:3, 3].copy()
    basis = m[:3, :3].copy()
    scale = np.linalg.norm(basis, axis=0)
    if np.linalg.det(basis) < 0.0:
        scale[0] = -scale[0]
    safe = np.where(np.abs(scale) < _SCALE_EPS, 1.0, scale)
    rotation = basis / safe
    if np.any(np.abs(scale) < _SCALE_EPS):
        log.debug("Degenerate scale %s; rotation falls back to identity", scale)
        rotation = np.eye(3)
    return translation, quaternion_from_matrix(rotation), scale


def compose_trs(translation: Sequence[float], rotation: Sequence[float], scale: Sequence[float]) -> np.ndarray:
    matrix = np.eye(4)
    matrix[:3, :3] = matrix_from_quaternion(rotation) @ np.diag(np.asarray(scale, dtype=float))
    matrix[:3, 3] = np.asarray(translation, dtype=float)
    return matrix


def mirror_x_trs(
    translation: Sequence[float], rotation: Sequence[float], scale: Sequence[float]
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Conjugate a TRS by the X mirror; applying it twice is the identity."""
    t = np.asarray(translation, dtype=float)
    q = np.asarray(rotation, dtype=float)
    return (
        np.array([-t[0], t[1], t[2]]),
        np.array([q[0], -q[1], -q[2], q[3]]),
        np.asarray(scale, dtype=float).copy(),
    )


def usd_local_to_unity(
    local_matrix: np.ndarray, correction: Optional[np.ndarray] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """USD local transform -> Unity TRS; ``correction`` applies to root prims only."""
    m = np.asarray(local_matrix, dtype=float)
    if correction is not None:
        m = correction @ m
    return mirror_x_trs(*decompose_trs(m))


def unity_to_usd_local(
    translation: Sequence[float],
    rotation: Sequence[float],
    scale: Sequence[float],
    correction: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Unity TRS -> USD TRS; ``correction`` is the output stage's correction, inverted here."""
    m = compose_trs(*mirror_x_trs(translation, rotation, scale))
    if correction is not None:
        m = np.linalg.inv(correction) @ m
    return decompose_trs(m)


# ---------------- Geometry ----------------

def mirror_x_points(points: np.ndarray) -> np.ndarray:
    pts = np.array(points, dtype=float).reshape(-1, 3)
    pts[:, 0] = -pts[:, 0]
    return pts


def triangulate_faces(face_counts: Sequence[int], face_indices: Sequence[int]) -> np.ndarray:
    """Fan-triangulate polygons; returns an (N, 3) int array. Faces under 3 vertices are dropped."""
    counts = np.asarray(face_counts, dtype=np.int64).reshape(-1)
    indices = np.asarray(face_indices, dtype=np.int64).reshape(-1)
    if int(counts.sum()) != indices.size:
        raise ValueError(
            f"faceVertexCounts sum {int(counts.sum())} does not match {indices.size} face indices"
        )
    triangles = []
    offset = 0
    for count in counts:
        count = int(count)
        if count >= 3:
            anchor = indices[offset]
            for k in range(1, count - 1):
                triangles.append((anchor, indices[offset + k], indices[offset + k + 1]))
        offset += count
    if not triangles:
        return np.zeros((0, 3), dtype=np.int64)
    return np.array(triangles, dtype=np.int64)


def reverse_winding(triangles: np.ndarray) -> np.ndarray:
    tris = np.asarray(triangles, dtype=np.int64).reshape(-1, 3)
    return tris[:, [0, 2, 1]].copy()


def vec3_dict(values: Sequence[float]) -> dict:
    return {"x": float(values[0]), "y": float(values[1]), "z": float(values[2])}


def quat_dict(values: Sequence[float]) -> dict:
    return {"x": float(values[0]), "y": float(values[1]), "z": float(values[2]), "w": float(values[3])}


def vec3_from_mapping(data, default: Vec3 = (0.0, 0.0, 0.0)) -> np.ndarray:
    if not isinstance(data, dict):
        return np.array(default, dtype=float)
    return np.array(
        [float(data.get("x", default[0])), float(data.get("y", default[1])), float(data.get("z", default[2]))]
    )


def quat_from_mapping(data) -> np.ndarray:
    if not isinstance(data, dict):
        return np.array([0.0, 0.0, 0.0, 1.0])
    return np.array(
        [float(data.get("x", 0.0)), float(data.get("y", 0.0)), float(data.get("z", 0.0)), float(data.get("w", 1.0))]
    )


__all__ = [
    "axis_correction_matrix",
    "compose_trs",
    "decompose_trs",
    "gf_to_np",
    "matrix_from_quaternion",
    "mirror_x_points",
    "mirror_x_trs",
    "quat_dict",
    "quat_from_mapping",
    "quaternion_from_matrix",
    "reverse_winding",
    "triangulate_faces",
    "unity_to_usd_local",
    "usd_local_to_unity",
    "vec3_dict",
    "vec3_from_mapping",
]
