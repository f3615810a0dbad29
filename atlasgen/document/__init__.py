"""In-memory scene document and glTF/GLB I/O."""
from .model import (
    Accessor,
    Document,
    Material,
    Mesh,
    Node,
    Primitive,
    Scene,
    Texture,
    TextureInfo,
    TextureTransform,
)
from .gltf_io import merge_documents, read_gltf, write_gltf

__all__ = [
    'Accessor',
    'Document',
    'Material',
    'Mesh',
    'Node',
    'Primitive',
    'Scene',
    'Texture',
    'TextureInfo',
    'TextureTransform',
    'merge_documents',
    'read_gltf',
    'write_gltf',
]
