"""
Tests for the MaxRects packer and the atlas sizing search
"""

import pytest

from atlasgen.exceptions import AtlasCapacityError
from atlasgen.texturing.atlas_packer import (
    can_pack,
    find_best_scale_for_single_bin,
    pack_into_atlas,
    pack_items,
)
from atlasgen.texturing.rect_packer import (
    MaxRectsPacker,
    PackItem,
    clamp_power_of_2,
    nearest_power_of_2,
    next_power_of_2,
    pack_bins,
    sort_items,
)


def _items(*sizes):
    return [PackItem(id=i, width=w, height=h) for i, (w, h) in enumerate(sizes)]


def _overlaps(a, b, padding):
    return not (
        a.x + a.width + padding <= b.x
        or b.x + b.width + padding <= a.x
        or a.y + a.height + padding <= b.y
        or b.y + b.height + padding <= a.y
    )


class TestPowerOfTwo:
    """Test power-of-two helpers"""

    def test_next_power_of_2(self):
        assert next_power_of_2(1) == 1
        assert next_power_of_2(256) == 256
        assert next_power_of_2(257) == 512
        assert next_power_of_2(1000) == 1024

    def test_nearest_power_of_2_rounds_down(self):
        assert nearest_power_of_2(1) == 1
        assert nearest_power_of_2(300) == 256
        assert nearest_power_of_2(1024) == 1024

    def test_clamp_power_of_2(self):
        assert clamp_power_of_2(100, 256, 4096) == 256
        assert clamp_power_of_2(5000, 256, 4096) == 4096
        assert clamp_power_of_2(700, 256, 4096) == 512


class TestMaxRectsPacker:
    """Test single-bin and multi-bin placement"""

    def test_first_item_at_origin(self):
        packer = MaxRectsPacker(512, padding=2)
        rect = packer.insert(PackItem(id=0, width=100, height=50))
        assert (rect.x, rect.y, rect.width, rect.height) == (0, 0, 100, 50)

    def test_item_may_touch_bin_edge(self):
        """An item as large as the bin fits because padding extends the usable area"""
        packer = MaxRectsPacker(256, padding=2)
        assert packer.insert(PackItem(id=0, width=256, height=256)) is not None

    def test_padding_separates_rects(self):
        """Two half-size items do not fit side by side once padding is reserved"""
        packer = MaxRectsPacker(256, padding=2)
        assert packer.insert(PackItem(id=0, width=128, height=128)) is not None
        assert packer.insert(PackItem(id=1, width=128, height=128)) is None

        unpadded = MaxRectsPacker(256, padding=0)
        assert unpadded.insert(PackItem(id=0, width=128, height=128)) is not None
        assert unpadded.insert(PackItem(id=1, width=128, height=128)) is not None

    def test_rects_do_not_overlap(self):
        items = _items((1024, 1024), (512, 512), (256, 256), (256, 128), (100, 300))
        bins = pack_bins(items, 2048, padding=2)
        assert len(bins) == 1
        rects = bins[0].rects
        assert len(rects) == 5
        for i, a in enumerate(rects):
            assert a.x + a.width <= 2048 and a.y + a.height <= 2048
            for b in rects[i + 1:]:
                assert not _overlaps(a, b, 2)

    def test_packing_is_deterministic(self):
        items = _items((300, 200), (200, 300), (128, 128), (64, 256))
        first = [(r.x, r.y) for r in pack_bins(items, 1024, padding=2)[0].rects]
        second = [(r.x, r.y) for r in pack_bins(items, 1024, padding=2)[0].rects]
        assert first == second

    def test_sort_keeps_input_order_for_ties(self):
        items = _items((64, 64), (128, 128), (64, 64), (64, 64))
        assert [i.id for i in sort_items(items)] == [1, 0, 2, 3]

    def test_overflow_opens_new_bins(self):
        items = _items((256, 256), (256, 256), (256, 256))
        bins = pack_bins(items, 256, padding=0)
        assert len(bins) == 3
        assert all(b.width == b.height == 256 for b in bins)

    def test_oversized_item_raises(self):
        with pytest.raises(AtlasCapacityError):
            pack_bins(_items((600, 10)), 512)

    def test_payload_carried_to_rect(self):
        item = PackItem(id=0, width=10, height=10, payload='texture')
        rect = pack_bins([item], 256)[0].rects[0]
        assert rect.payload == 'texture'


class TestAtlasSizing:
    """Test the bin size search"""

    def test_minimum_atlas_size(self):
        result = pack_into_atlas(_items((64, 64)), 4096, 2, 1)
        assert result.size == 256
        assert len(result.bins) == 1

    def test_three_textures_fit_2048(self):
        result = pack_into_atlas(_items((1024, 1024), (512, 512), (256, 256)), 2048, 2, 1)
        assert result.size == 2048
        assert len(result.bins) == 1
        assert len(result.bins[0].rects) == 3

    def test_capacity_error_carries_configuration(self):
        with pytest.raises(AtlasCapacityError) as exc_info:
            pack_into_atlas(_items((1024, 1024), (512, 512), (256, 256)), 1024, 2, 1)
        error = exc_info.value
        assert error.max_size == 1024
        assert error.max_bins == 1
        assert error.padding == 2
        assert error.item_count == 3

    def test_multiple_bins_allowed(self):
        result = pack_into_atlas(_items((1024, 1024), (512, 512), (256, 256)), 1024, 2, 2)
        assert result.size == 1024
        assert len(result.bins) == 2

    def test_empty_input(self):
        result = pack_into_atlas([], 4096, 2, 1)
        assert result.bins == []


class TestSingleBinScale:
    """Test the downscale search for single-bin packing"""

    def test_fitting_input_keeps_full_scale(self):
        items = _items((512, 512), (256, 256))
        assert find_best_scale_for_single_bin(items, 1024, 2) == 1.0

    def test_scale_found_between_bounds(self):
        items = _items((1024, 1024), (512, 512), (256, 256))
        scale = find_best_scale_for_single_bin(items, 1024, 2)
        assert 0.5 <= scale < 1.0
        assert can_pack(items, 1024, 2, 1, scale)

    def test_scale_below_floor_raises(self):
        items = _items((1024, 1024), (1024, 1024))
        with pytest.raises(AtlasCapacityError):
            find_best_scale_for_single_bin(items, 1024, 2, min_scale=0.3)

    def test_pack_items_scales_rects(self):
        items = _items((1024, 1024), (512, 512), (256, 256))
        result = pack_items(items, 1024, padding=2, max_bins=1, resize_mode='downscale')
        assert result.scale < 1.0
        assert len(result.bins) == 1
        assert all(r.width < 1024 for r in result.bins[0].rects)

    def test_pack_items_without_downscale_fails(self):
        items = _items((1024, 1024), (512, 512), (256, 256))
        with pytest.raises(AtlasCapacityError):
            pack_items(items, 1024, padding=2, max_bins=1, resize_mode='none')
