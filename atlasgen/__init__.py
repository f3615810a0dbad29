"""
atlasgen - Texture atlas packing and geometry merging for glTF/GLB models

Packs every material's textures into shared per-channel atlases, rewrites UVs
to match, and bakes the scene into a single mesh driven by a single material.
"""

from atlasgen.convert import ProcessResult, process_file
from atlasgen.document.gltf_io import read_gltf, write_gltf
from atlasgen.geometry.collapse import collapse_to_single_mesh_and_material
from atlasgen.schema.options import AtlasOptions
from atlasgen.texturing.pipeline import AtlasResult, process_atlas

__version__ = "0.1.0"
__all__ = [
    "AtlasOptions",
    "AtlasResult",
    "ProcessResult",
    "collapse_to_single_mesh_and_material",
    "process_atlas",
    "process_file",
    "read_gltf",
    "write_gltf",
]
