"""
Primitive merging.

Concatenates triangle primitives that share a material into one primitive.
"""

import logging
from typing import List, Optional

import numpy as np

from atlasgen.document.model import Accessor, Material, Primitive
from atlasgen.geometry.baker import TRIANGLES

logger = logging.getLogger(__name__)

# Skinning data is not carried through a merge
DROPPED_PREFIXES = ('JOINTS_', 'WEIGHTS_')

UINT16_MAX_VERTICES = 65535


def _mergeable_semantics(primitives: List[Primitive]) -> List[str]:
    """Attributes present on every primitive with one width and consistent counts."""
    kept = []
    for semantic in primitives[0].list_semantics():
        if semantic.startswith(DROPPED_PREFIXES):
            continue
        accessors = [p.get_attribute(semantic) for p in primitives]
        if any(a is None for a in accessors):
            logger.debug(f"Dropping {semantic} on merge: not present on every primitive")
            continue
        if len({(a.type, a.element_size) for a in accessors}) > 1:
            logger.debug(f"Dropping {semantic} on merge: mixed widths")
            continue
        if any(a.count != p.vertex_count for a, p in zip(accessors, primitives)):
            logger.debug(f"Dropping {semantic} on merge: count does not match vertex count")
            continue
        kept.append(semantic)
    return kept


def merge_primitives(primitives: List[Primitive], material: Optional[Material] = None) -> Primitive:
    """
    Concatenate primitives into one indexed triangle primitive.

    Args:
        primitives: Triangle primitives to merge (at least one)
        material: Material of the result

    Returns:
        Merged primitive. Indices are uint32 when the vertex count exceeds
        65535, uint16 otherwise.
    """
    counts = [p.vertex_count for p in primitives]
    total = sum(counts)

    attributes = {}
    for semantic in _mergeable_semantics(primitives):
        accessors = [p.get_attribute(semantic) for p in primitives]
        first = accessors[0]
        array = np.concatenate([a.array for a in accessors], axis=0)
        if array.shape[0] != total:
            continue
        attributes[semantic] = Accessor(array, first.type, normalized=first.normalized)

    parts = []
    offset = 0
    for primitive, count in zip(primitives, counts):
        if primitive.indices is None:
            local = np.arange(count, dtype=np.int64)
        else:
            local = np.asarray(primitive.indices.array, dtype=np.int64).reshape(-1)
        parts.append(local + offset)
        offset += count

    dtype = np.uint32 if total > UINT16_MAX_VERTICES else np.uint16
    indices = Accessor(np.concatenate(parts).astype(dtype), 'SCALAR')

    return Primitive(attributes=attributes, indices=indices, material=material, mode=TRIANGLES)


def merge_by_material(primitives: List[Primitive]) -> List[Primitive]:
    """
    Merge triangle primitives per material, in order of first appearance.

    Non-triangle primitives are returned unmerged after the merged ones.
    """
    groups = []
    by_material = {}
    passthrough = []
    for primitive in primitives:
        if primitive.mode != TRIANGLES:
            passthrough.append(primitive)
            continue
        key = id(primitive.material) if primitive.material is not None else None
        if key not in by_material:
            by_material[key] = []
            groups.append((primitive.material, by_material[key]))
        by_material[key].append(primitive)

    merged = [merge_primitives(group, material) for material, group in groups]
    logger.info(
        f"Merged {len(primitives) - len(passthrough)} primitive(s) into {len(merged)}"
        + (f"; {len(passthrough)} non-triangle primitive(s) kept as-is" if passthrough else "")
    )
    return merged + passthrough
