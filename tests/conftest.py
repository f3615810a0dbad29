"""
Shared fixtures: small in-memory documents with Pillow-generated textures.
"""

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from atlasgen.document.model import Accessor, Document, Primitive, TextureInfo


def png_bytes(width, height, color=(255, 0, 0, 255)):
    """Encode a solid-color PNG."""
    buf = BytesIO()
    Image.new('RGBA', (width, height), color).save(buf, format='PNG')
    return buf.getvalue()


def quad_primitive(material=None, size=1.0, uv=None):
    """Unit quad in the XY plane: 4 vertices, 2 indexed triangles."""
    positions = np.array(
        [[0, 0, 0], [size, 0, 0], [size, size, 0], [0, size, 0]],
        dtype=np.float32,
    )
    normals = np.tile(np.array([0, 0, 1], dtype=np.float32), (4, 1))
    if uv is None:
        uv = [[0, 0], [1, 0], [1, 1], [0, 1]]
    return Primitive(
        attributes={
            'POSITION': Accessor(positions, 'VEC3'),
            'NORMAL': Accessor(normals, 'VEC3'),
            'TEXCOORD_0': Accessor(np.array(uv, dtype=np.float32), 'VEC2'),
        },
        indices=Accessor(np.array([0, 1, 2, 0, 2, 3], dtype=np.uint16), 'SCALAR'),
        material=material,
    )


def build_document(entries):
    """
    Build a document with one material, mesh and root node per entry.

    Args:
        entries: List of dicts with keys 'name', optional 'basecolor' / 'normal' /
            'orm' / 'emissive' (a (width, height) tuple) and optional 'size'
            (quad edge length)
    """
    document = Document()
    scene = document.create_scene('Scene')
    colors = [(255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255), (255, 255, 0, 255)]
    slots = {
        'basecolor': 'base_color_texture',
        'normal': 'normal_texture',
        'orm': 'metallic_roughness_texture',
        'emissive': 'emissive_texture',
    }
    for i, entry in enumerate(entries):
        material = document.create_material(entry['name'])
        for key, slot in slots.items():
            if key in entry:
                width, height = entry[key]
                texture = document.create_texture(
                    f"{entry['name']}_{key}",
                    png_bytes(width, height, colors[i % len(colors)]),
                    'image/png',
                )
                setattr(material, slot, TextureInfo(texture=texture))
        mesh = document.create_mesh(f"{entry['name']}_mesh")
        mesh.primitives.append(quad_primitive(material, size=entry.get('size', 1.0)))
        node = document.create_node(f"{entry['name']}_node", mesh)
        node.translation = [float(i * 2), 0.0, 0.0]
        scene.nodes.append(node)
    return document


@pytest.fixture
def make_document():
    return build_document


@pytest.fixture
def three_texture_document():
    """1024, 512 and 256 pixel base color textures on three quads."""
    return build_document([
        {'name': 'Large', 'basecolor': (1024, 1024)},
        {'name': 'Medium', 'basecolor': (512, 512)},
        {'name': 'Small', 'basecolor': (256, 256)},
    ])
