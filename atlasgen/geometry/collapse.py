"""
Collapse a processed document into one mesh on one node.

After atlasing, every packed material is replaced by the merged material of its
atlas bin, all geometry is baked into world space and merged per material, and
the old scene objects are disposed.
"""

import logging
from typing import List, Optional

from atlasgen.document.model import Document, Material, Mesh
from atlasgen.geometry.baker import bake_document
from atlasgen.geometry.merger import merge_by_material
from atlasgen.texturing.channels import Channel, get_texture, set_texture
from atlasgen.texturing.pipeline import AtlasResult

logger = logging.getLogger(__name__)

MERGED_MATERIAL_NAME = 'Atlas_Merged'
MERGED_MESH_NAME = 'Merged'
MERGED_NODE_NAME = 'MergedNode'


def merged_material_name(bin_index: int) -> str:
    if bin_index == 0:
        return MERGED_MATERIAL_NAME
    return f"{MERGED_MATERIAL_NAME}_{bin_index}"


def create_merged_materials(document: Document, result: AtlasResult) -> List[Material]:
    """
    One material per atlas bin, wired to each channel's atlas texture for that bin.

    Without an ORM atlas the metallic/roughness factors come from the first
    material packed into the bin.
    """
    sources = {}
    if result.canonical is not None:
        for material, mapping in result.channels[result.canonical].mappings.items():
            sources.setdefault(mapping.bin_index, material)

    materials = []
    for bin_index in range(result.bin_count):
        merged = document.create_material(merged_material_name(bin_index))
        for channel, texture in result.atlas_textures(bin_index).items():
            set_texture(merged, channel, texture)

        source = sources.get(bin_index)
        if source is not None:
            merged.double_sided = source.double_sided
            merged.alpha_mode = source.alpha_mode
            merged.alpha_cutoff = source.alpha_cutoff
            if get_texture(merged, Channel.ORM) is None:
                merged.metallic_factor = source.metallic_factor
                merged.roughness_factor = source.roughness_factor
        materials.append(merged)
    return materials


def prune_unused_textures(document: Document) -> int:
    """Dispose textures no material references. Returns the number removed."""
    used = {id(texture) for material in document.materials for texture in material.textures()}
    unused = [t for t in document.textures if id(t) not in used]
    for texture in unused:
        document.dispose_texture(texture)
    if unused:
        logger.debug(f"Pruned {len(unused)} unused texture(s)")
    return len(unused)


def collapse_to_single_mesh_and_material(document: Document, result: Optional[AtlasResult] = None) -> Optional[Mesh]:
    """
    Bake and merge the whole document into a single mesh.

    Args:
        document: Document to modify in place
        result: Atlas run result; packed materials are swapped for their bin's
            merged material. Materials that were not packed keep their own.

    Returns:
        The merged mesh, or None when the document has no geometry
    """
    result = result or AtlasResult()
    baked = bake_document(document)

    merged_materials = create_merged_materials(document, result)
    for primitive in baked:
        bin_index = result.bin_for(primitive.material) if primitive.material is not None else None
        if bin_index is not None:
            primitive.material = merged_materials[bin_index]

    primitives = merge_by_material(baked)

    scene = document.scenes[0] if document.scenes else document.create_scene('Scene')
    for other in document.scenes[1:]:
        document.dispose_scene(other)
    for node in list(document.nodes):
        document.dispose_node(node)
    for mesh in list(document.meshes):
        document.dispose_mesh(mesh)

    used = {id(p.material) for p in primitives if p.material is not None}
    for material in list(document.materials):
        if id(material) not in used:
            document.dispose_material(material)

    mesh = None
    if primitives:
        mesh = document.create_mesh(MERGED_MESH_NAME)
        mesh.primitives = primitives
        node = document.create_node(MERGED_NODE_NAME, mesh)
        scene.nodes.append(node)
    else:
        logger.warning("Document has no geometry to merge")

    pruned = prune_unused_textures(document)
    logger.info(
        f"Collapsed into {len(primitives)} primitive(s), {len(document.materials)} material(s); "
        f"pruned {pruned} texture(s)"
    )
    return mesh
