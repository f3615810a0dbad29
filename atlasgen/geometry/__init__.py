"""
Geometry baking and merging.

Moves every primitive instance into world space and merges primitives that
share a material.
"""
from .baker import bake_document, bake_primitive, iter_node_transforms, material_areas
from .merger import merge_by_material, merge_primitives

__all__ = [
    'bake_document',
    'bake_primitive',
    'iter_node_transforms',
    'material_areas',
    'merge_by_material',
    'merge_primitives',
]
