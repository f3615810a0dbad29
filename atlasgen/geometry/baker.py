"""
Geometry baking.

Walks the node hierarchy, accumulates world transforms and emits one
transform-applied copy of every primitive instance.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from atlasgen.document.model import Accessor, Document, Material, Node, Primitive
from atlasgen.exceptions import MissingAttributeError, SceneGraphError
from atlasgen.geometry.matrix_utils import (
    identity,
    local_matrix,
    normal_matrix,
    transform_directions,
    transform_points,
)

logger = logging.getLogger(__name__)

TRIANGLES = 4


def iter_node_transforms(roots: List[Node]) -> Iterator[Tuple[Node, np.ndarray]]:
    """
    Yield (node, world matrix) for every node under ``roots``, depth first.

    Raises:
        SceneGraphError: If a node is reached twice (cycle or shared child)
    """
    visited = set()
    stack = [(root, identity()) for root in reversed(roots)]
    while stack:
        node, parent_world = stack.pop()
        if node in visited:
            raise SceneGraphError(f"Node '{node.name}' is reachable more than once (cycle or shared child)")
        visited.add(node)

        world = parent_world @ local_matrix(node)
        yield node, world
        for child in reversed(node.children):
            stack.append((child, world))


def iter_instances(document: Document) -> Iterator[Tuple[Node, np.ndarray]]:
    """Node instances of every scene; roots shared between scenes are visited once."""
    if not document.scenes:
        yield from iter_node_transforms(document.root_nodes())
        return

    seen = set()
    for scene in document.scenes:
        roots = [node for node in scene.nodes if node not in seen]
        seen.update(roots)
        yield from iter_node_transforms(roots)


def bake_primitive(primitive: Primitive, world: np.ndarray) -> Primitive:
    """
    Copy a primitive with its geometry moved into world space.

    Positions get the full transform, normals and tangents the normal matrix
    (tangent w is kept). Other attributes and morph targets pass through.

    Raises:
        MissingAttributeError: If the primitive has no POSITION
    """
    position = primitive.get_attribute('POSITION')
    if position is None:
        raise MissingAttributeError("Primitive has no POSITION attribute")

    baked = Primitive(
        attributes=dict(primitive.attributes),
        indices=primitive.indices,
        material=primitive.material,
        mode=primitive.mode,
        targets=primitive.targets,
    )
    baked.set_attribute('POSITION', Accessor(transform_points(position.array, world), 'VEC3'))

    normal = primitive.get_attribute('NORMAL')
    tangent = primitive.get_attribute('TANGENT')
    if normal is None and tangent is None:
        return baked

    normal_m = normal_matrix(world)
    if normal is not None:
        baked.set_attribute('NORMAL', Accessor(transform_directions(normal.array, normal_m), 'VEC3'))
    if tangent is not None:
        source = np.asarray(tangent.array, dtype=np.float32).reshape(-1, 4)
        result = source.copy()
        result[:, :3] = transform_directions(source[:, :3], normal_m)
        baked.set_attribute('TANGENT', Accessor(result, 'VEC4'))
    return baked


def bake_document(document: Document) -> List[Primitive]:
    """Baked primitives of every mesh instance, in traversal order."""
    baked = []
    for node, world in iter_instances(document):
        if node.mesh is None:
            continue
        for primitive in node.mesh.primitives:
            baked.append(bake_primitive(primitive, world))
    logger.debug(f"Baked {len(baked)} primitive instance(s)")
    return baked


def triangle_area(positions: np.ndarray, indices: Optional[np.ndarray] = None) -> float:
    """Total area of a triangle list. Triangles with out-of-range indices are ignored."""
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    if indices is None:
        count = positions.shape[0] // 3
        triangles = positions[:count * 3].reshape(-1, 3, 3)
    else:
        flat = np.asarray(indices, dtype=np.int64).reshape(-1)
        faces = flat[:(flat.shape[0] // 3) * 3].reshape(-1, 3)
        faces = faces[(faces < positions.shape[0]).all(axis=1)]
        triangles = positions[faces]

    if triangles.shape[0] == 0:
        return 0.0
    cross = np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])
    return float(0.5 * np.linalg.norm(cross, axis=1).sum())


def material_areas(document: Document) -> Dict[Material, float]:
    """
    World-space surface area per material, summed over every instance.

    Non-triangle primitives and primitives without POSITION contribute nothing.
    """
    areas: Dict[Material, float] = {}
    for node, world in iter_instances(document):
        if node.mesh is None:
            continue
        for primitive in node.mesh.primitives:
            position = primitive.get_attribute('POSITION')
            if primitive.material is None or position is None or primitive.mode != TRIANGLES:
                continue
            indices = primitive.indices.array if primitive.indices is not None else None
            area = triangle_area(transform_points(position.array, world), indices)
            areas[primitive.material] = areas.get(primitive.material, 0.0) + area
    return areas
