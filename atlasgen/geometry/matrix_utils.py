"""
Matrix utilities for baking node transforms.

glTF stores 4x4 matrices column-major and quaternions as [x, y, z, w]. Everything
here works on row-major numpy matrices acting on column vectors, so
``world = parent @ local`` and ``p' = M @ p``.
"""

from typing import List, Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from atlasgen.document.model import Node


def identity() -> np.ndarray:
    return np.eye(4, dtype=np.float64)


def from_gltf_matrix(values: Sequence[float]) -> np.ndarray:
    """Convert a column-major glTF matrix (16 floats) to a 4x4 array."""
    return np.array(values, dtype=np.float64).reshape(4, 4).T


def to_gltf_matrix(matrix: np.ndarray) -> List[float]:
    """Convert a 4x4 array to a column-major glTF matrix."""
    return [float(v) for v in np.asarray(matrix).T.reshape(16)]


def compose_trs(
    translation: Optional[Sequence[float]] = None,
    rotation: Optional[Sequence[float]] = None,
    scale: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """
    Build T * R * S.

    Args:
        translation: [x, y, z]
        rotation: Quaternion [x, y, z, w] (glTF order, same as scipy)
        scale: [x, y, z]

    Returns:
        4x4 matrix
    """
    matrix = identity()
    linear = np.eye(3)
    if rotation is not None and np.linalg.norm(rotation) > 0:
        linear = Rotation.from_quat(list(rotation)).as_matrix()
    if scale is not None:
        linear = linear @ np.diag(np.asarray(scale, dtype=np.float64))
    matrix[:3, :3] = linear
    if translation is not None:
        matrix[:3, 3] = np.asarray(translation, dtype=np.float64)
    return matrix


def local_matrix(node: Node) -> np.ndarray:
    """A node's local transform: explicit matrix, else TRS, else identity."""
    if node.matrix is not None:
        return from_gltf_matrix(node.matrix)
    if node.has_transform:
        return compose_trs(node.translation, node.rotation, node.scale)
    return identity()


def normal_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Inverse-transpose of the upper-left 3x3, via cofactors.

    Returns identity for singular matrices.
    """
    r0, r1, r2 = np.asarray(matrix, dtype=np.float64)[:3, :3]
    cofactors = np.array([np.cross(r1, r2), np.cross(r2, r0), np.cross(r0, r1)])
    det = float(np.dot(r0, cofactors[0]))
    if det == 0:
        return np.eye(3)
    return cofactors / det


def transform_points(points: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Apply a 4x4 transform to (n, 3) points.

    The homogeneous divide only happens where w is neither 0 nor 1.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    result = points @ matrix[:3, :3].T + matrix[:3, 3]
    w = points @ matrix[3, :3] + matrix[3, 3]
    divide = (w != 0) & (w != 1)
    if divide.any():
        result[divide] /= w[divide][:, None]
    return result.astype(np.float32)


def transform_directions(vectors: np.ndarray, normal_m: np.ndarray) -> np.ndarray:
    """Apply a 3x3 normal matrix to (n, 3) vectors and renormalize. Zero vectors stay zero."""
    vectors = np.asarray(vectors, dtype=np.float64).reshape(-1, 3)
    result = vectors @ normal_m.T
    lengths = np.linalg.norm(result, axis=1)
    nonzero = lengths > 0
    result[nonzero] /= lengths[nonzero][:, None]
    return result.astype(np.float32)
