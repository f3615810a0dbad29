"""
Tests for texture sizing and the Pillow codec helpers
"""

import io

import pytest
from PIL import Image

from atlasgen.document.model import Texture
from atlasgen.exceptions import ImageDecodeError
from atlasgen.texturing import image_codec
from atlasgen.texturing.sizer import TextureEntry, prepare_entry, suggest_target_size

from conftest import png_bytes


class TestSuggestTargetSize:
    """Test power-of-two target selection"""

    def test_resolution_only(self):
        assert suggest_target_size(1024, 1024, 4096) == 1024
        assert suggest_target_size(300, 300, 4096) == 256
        assert suggest_target_size(4096, 4096, 2048) == 2048

    def test_small_sources_keep_own_size(self):
        """Sources under 256 are not upscaled to the minimum"""
        assert suggest_target_size(100, 100, 4096) == 64

    def test_non_square_uses_short_side(self):
        assert suggest_target_size(1024, 512, 4096) == 512

    def test_area_buckets(self):
        assert suggest_target_size(4096, 4096, 4096, relative_area=1.0) == 2048
        assert suggest_target_size(4096, 4096, 4096, relative_area=0.4) == 1024
        assert suggest_target_size(4096, 4096, 4096, relative_area=0.2) == 512
        assert suggest_target_size(4096, 4096, 4096, relative_area=0.0) == 256

    def test_area_bucket_never_upscales(self):
        assert suggest_target_size(512, 512, 4096, relative_area=1.0) == 512

    def test_area_bucket_clamped_to_max_size(self):
        assert suggest_target_size(4096, 4096, 1024, relative_area=1.0) == 1024


class TestPrepareEntry:
    """Test decoding, downscaling and resizing of one texture"""

    def test_native_size_kept(self):
        entry = prepare_entry(TextureEntry(texture=Texture('a', png_bytes(512, 512))), 4096)
        assert (entry.width, entry.height) == (512, 512)
        assert (entry.natural_width, entry.natural_height) == (512, 512)
        assert entry.image.size == (512, 512)

    def test_resize_to_bucket(self):
        entry = prepare_entry(TextureEntry(texture=Texture('a', png_bytes(1024, 1024))), 4096, relative_area=0.0)
        assert (entry.width, entry.height) == (256, 256)
        assert entry.image.size == (256, 256)

    def test_non_square_source_stretched_not_cropped(self):
        """The whole source must land in the square target since UVs address all of it"""
        source = Image.new('RGBA', (2048, 1024), (255, 0, 0, 255))
        source.paste((0, 255, 0, 255), (0, 0, 256, 1024))
        source.paste((0, 0, 255, 255), (1792, 0, 2048, 1024))
        buffer = io.BytesIO()
        source.save(buffer, format='PNG')

        entry = prepare_entry(TextureEntry(texture=Texture('wide', buffer.getvalue())), 4096, relative_area=0.0)

        assert entry.image.size == (256, 256)
        left = entry.image.convert('RGBA').getpixel((4, 128))
        right = entry.image.convert('RGBA').getpixel((251, 128))
        assert left[1] > 240 and left[0] < 15
        assert right[2] > 240 and right[0] < 15

    def test_resize_ceiling_applies_before_sizing(self):
        texture = Texture('wide', png_bytes(2048, 1024))
        entry = prepare_entry(TextureEntry(texture=texture), 4096, resize_mode='downscale', resize_ceil=512)
        assert entry.image.size == (512, 256)
        assert (entry.width, entry.height) == (256, 256)

    def test_resize_ceiling_ignored_without_downscale(self):
        texture = Texture('big', png_bytes(1024, 1024))
        entry = prepare_entry(TextureEntry(texture=texture), 4096, resize_mode='none', resize_ceil=512)
        assert entry.width == 1024

    def test_undecodable_image_raises(self):
        with pytest.raises(ImageDecodeError):
            prepare_entry(TextureEntry(texture=Texture('bad', b'not an image')), 4096)

    def test_missing_image_raises(self):
        with pytest.raises(ImageDecodeError):
            prepare_entry(TextureEntry(texture=Texture('empty')), 4096)


class TestImageCodec:
    """Test Pillow helpers"""

    def test_image_size(self):
        assert image_codec.image_size(png_bytes(64, 32)) == (64, 32)

    def test_resize_inside_preserves_aspect(self):
        image = Image.new('RGBA', (200, 100))
        assert image_codec.resize(image, 100, 100, fit='inside').size == (100, 50)

    def test_resize_cover_fills_box(self):
        image = Image.new('RGBA', (200, 100))
        assert image_codec.resize(image, 64, 64, fit='cover').size == (64, 64)

    def test_composite_places_images(self):
        red = image_codec.solid(4, 4, (255, 0, 0, 255))
        canvas = image_codec.composite(16, 16, [(red, 8, 8)])
        assert canvas.getpixel((9, 9)) == (255, 0, 0, 255)
        assert canvas.getpixel((0, 0)) == (0, 0, 0, 0)

    def test_encode_formats(self):
        image = image_codec.solid(8, 8, (10, 20, 30, 255))
        for fmt, mime in (('png', 'image/png'), ('jpeg', 'image/jpeg'), ('webp', 'image/webp')):
            data, encoded_mime = image_codec.encode(image, fmt, quality=90)
            assert encoded_mime == mime
            assert image_codec.image_size(data) == (8, 8)

    def test_encode_lossless_webp(self):
        image = image_codec.solid(8, 8, (128, 128, 255, 255))
        data, _ = image_codec.encode(image, 'webp', lossless=True)
        assert image_codec.decode(data).getpixel((0, 0)) == (128, 128, 255, 255)

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            image_codec.encode(image_codec.solid(2, 2, (0, 0, 0, 255)), 'bmp')
