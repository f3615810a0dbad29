"""
Tests for UV remapping into atlas rects
"""

import logging

import numpy as np
import pytest

from atlasgen.document.model import Accessor, Document, Material, Primitive, Texture, TextureInfo, TextureTransform
from atlasgen.texturing.channels import Channel
from atlasgen.texturing.rect_packer import Rect
from atlasgen.texturing.uv_remap import (
    MaterialMapping,
    UVRemapper,
    bake_texture_transform,
    next_texcoord_index,
    remap_uvs,
)

from conftest import quad_primitive


def _mapping(material, rect=None, atlas_size=(1024, 1024), channel=Channel.BASE_COLOR):
    rect = rect or Rect(x=256, y=0, width=256, height=256)
    return MaterialMapping.build(
        material, channel, rect, Texture('Atlas_basecolor_0'), 0, atlas_size,
        getattr(material, channel.slots[0]),
    )


def _textured_material(transform=None, tex_coord=0):
    material = Material(name='Wood')
    material.base_color_texture = TextureInfo(texture=Texture('wood'), tex_coord=tex_coord, transform=transform)
    return material


class TestRemapMath:
    """Test the coordinate formulas"""

    def test_remap_into_rect(self):
        uv = np.array([[0, 0], [1, 0], [1, 1]], dtype=np.float32)
        result = remap_uvs(uv, Rect(x=256, y=0, width=256, height=256), 1024, 1024)
        np.testing.assert_allclose(result, [[0.25, 0.0], [0.5, 0.0], [0.5, 0.25]])

    def test_remap_non_square_atlas_axes(self):
        uv = np.array([[1, 1]], dtype=np.float32)
        result = remap_uvs(uv, Rect(x=0, y=512, width=512, height=256), 1024, 2048)
        np.testing.assert_allclose(result, [[0.5, 0.375]])

    def test_bake_scale_then_offset(self):
        uv = np.array([[1, 1], [0, 0]], dtype=np.float32)
        transform = TextureTransform(offset=(0.5, 0.0), scale=(0.5, 0.5))
        np.testing.assert_allclose(bake_texture_transform(uv, transform), [[1.0, 0.5], [0.5, 0.0]])

    def test_bake_rotation(self):
        uv = np.array([[1, 0]], dtype=np.float32)
        transform = TextureTransform(rotation=np.pi / 2)
        np.testing.assert_allclose(bake_texture_transform(uv, transform), [[0.0, 1.0]], atol=1e-6)

    def test_next_texcoord_index(self):
        primitive = quad_primitive()
        assert next_texcoord_index(primitive) == 1
        primitive.set_attribute('TEXCOORD_0', None)
        assert next_texcoord_index(primitive) == 0


class TestMaterialMapping:
    """Test mapping snapshots"""

    def test_transform_tex_coord_overrides_info(self):
        material = _textured_material(TextureTransform(tex_coord=1))
        mapping = _mapping(material)
        assert mapping.tex_coord == 1
        assert mapping.has_transform

    def test_uv_rect(self):
        rect = _mapping(_textured_material()).uv_rect()
        assert (rect.x, rect.y, rect.w, rect.h, rect.atlas_w, rect.atlas_h) == (256, 0, 256, 256, 1024, 1024)


class TestUVRemapper:
    """Test per-primitive remapping"""

    def test_remap_writes_texcoord_0(self):
        material = _textured_material()
        primitive = quad_primitive(material)
        diagnostic = UVRemapper().remap_primitive(primitive, _mapping(material))

        uv = primitive.get_attribute('TEXCOORD_0').array
        assert uv.min(axis=0).tolist() == pytest.approx([0.25, 0.0])
        assert uv.max(axis=0).tolist() == pytest.approx([0.5, 0.25])
        assert diagnostic.pre_max == pytest.approx((1.0, 1.0))
        assert diagnostic.post_max == pytest.approx((0.5, 0.25))

    def test_second_remap_is_noop(self):
        material = _textured_material()
        primitive = quad_primitive(material)
        remapper = UVRemapper()
        mapping = _mapping(material)

        remapper.remap_primitive(primitive, mapping)
        first = primitive.get_attribute('TEXCOORD_0').array.copy()
        assert remapper.remap_primitive(primitive, mapping) is None
        np.testing.assert_array_equal(primitive.get_attribute('TEXCOORD_0').array, first)
        assert remapper.is_remapped(primitive)

    def test_shared_accessor_not_modified(self):
        material = _textured_material()
        shared = Accessor(np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=np.float32), 'VEC2')
        first = quad_primitive(material)
        second = quad_primitive(material)
        first.set_attribute('TEXCOORD_0', shared)
        second.set_attribute('TEXCOORD_0', shared)

        remapper = UVRemapper()
        mapping = _mapping(material)
        remapper.remap_primitive(first, mapping)
        remapper.remap_primitive(second, mapping)

        assert shared.array.max() == 1.0
        np.testing.assert_allclose(
            first.get_attribute('TEXCOORD_0').array,
            second.get_attribute('TEXCOORD_0').array,
        )

    def test_transform_baked_for_every_primitive(self):
        material = _textured_material(TextureTransform(offset=(0.5, 0.0), scale=(0.5, 1.0)))
        document = Document()
        document.materials.append(material)
        mesh = document.create_mesh('m')
        mesh.primitives = [quad_primitive(material), quad_primitive(material)]

        mapping = _mapping(material, rect=Rect(x=0, y=0, width=1024, height=1024))
        diagnostics = UVRemapper().remap_document(document, {material: mapping})

        assert len(diagnostics) == 2
        for primitive in mesh.primitives:
            uv = primitive.get_attribute('TEXCOORD_0').array
            assert uv[:, 0].min() == pytest.approx(0.5)
            assert uv[:, 0].max() == pytest.approx(1.0)
        assert material.base_color_texture.transform is None
        assert material.base_color_texture.tex_coord == 0

    def test_secondary_sets_cleared(self):
        material = _textured_material(tex_coord=1)
        primitive = quad_primitive(material)
        primitive.set_attribute('TEXCOORD_1', Accessor(np.full((4, 2), 0.5, dtype=np.float32), 'VEC2'))

        UVRemapper().remap_primitive(primitive, _mapping(material))

        assert primitive.list_semantics().count('TEXCOORD_1') == 0
        np.testing.assert_allclose(primitive.get_attribute('TEXCOORD_0').array, np.tile([0.375, 0.125], (4, 1)))
        assert material.base_color_texture.tex_coord == 0

    def test_missing_texcoord_skipped(self, caplog):
        material = _textured_material()
        primitive = quad_primitive(material)
        primitive.set_attribute('TEXCOORD_0', None)
        with caplog.at_level(logging.WARNING):
            assert UVRemapper().remap_primitive(primitive, _mapping(material)) is None
        assert 'TEXCOORD_0' in caplog.text

    def test_other_slot_transform_dropped(self, caplog):
        material = _textured_material()
        material.normal_texture = TextureInfo(texture=Texture('n'), transform=TextureTransform(scale=(2.0, 2.0)))
        with caplog.at_level(logging.WARNING):
            UVRemapper().remap_primitive(quad_primitive(material), _mapping(material))
        assert material.normal_texture.transform is None
        assert 'Dropping texture transform' in caplog.text

    def test_remap_document_rewires_slot(self):
        material = _textured_material()
        document = Document()
        document.materials.append(material)
        document.create_mesh('m').primitives.append(quad_primitive(material))
        other = Primitive(attributes={}, material=Material(name='Untouched'))
        document.meshes[0].primitives.append(other)

        mapping = _mapping(material)
        UVRemapper().remap_document(document, {material: mapping})

        assert material.base_color_texture.texture is mapping.atlas_texture
        assert other.attributes == {}
