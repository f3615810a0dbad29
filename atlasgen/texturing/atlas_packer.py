"""
Atlas sizing search.

Finds the smallest square power-of-two bin size that holds every item within
the allowed number of bins, and, when everything has to go into one bin, the
largest uniform downscale that makes it fit.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List

from atlasgen.exceptions import AtlasCapacityError
from atlasgen.texturing.rect_packer import AtlasBin, PackItem, next_power_of_2, pack_bins

logger = logging.getLogger(__name__)

MIN_ATLAS_SIZE = 256
SCALE_SEARCH_ITERATIONS = 10


@dataclass
class PackResult:
    size: int
    bins: List[AtlasBin] = field(default_factory=list)
    scale: float = 1.0


def pack_into_atlas(items: List[PackItem], max_size: int, padding: int, max_bins: int) -> PackResult:
    """
    Pack items into at most ``max_bins`` square bins of the smallest workable size.

    Starts at the next power of two holding the largest item (at least 256) and
    doubles until the bin count fits.

    Raises:
        AtlasCapacityError: If no size up to max_size works
    """
    if not items:
        return PackResult(size=MIN_ATLAS_SIZE)

    max_dim = max(max(item.width, item.height) for item in items)
    size = next_power_of_2(max(max_dim, MIN_ATLAS_SIZE))

    while size <= max_size:
        bins = pack_bins(items, size, padding)
        if len(bins) <= max_bins:
            logger.debug(f"Packed {len(items)} item(s) into {len(bins)} bin(s) of {size}x{size}")
            return PackResult(size=size, bins=bins)
        size *= 2

    raise AtlasCapacityError(
        f"Could not pack {len(items)} texture(s) into <= {max_bins} atlas bin(s) within max size {max_size}",
        max_size=max_size,
        max_bins=max_bins,
        padding=padding,
        item_count=len(items),
    )


def scale_items(items: List[PackItem], scale: float) -> List[PackItem]:
    """Scale item dimensions uniformly (floor, minimum 1 px)."""
    if scale == 1.0:
        return list(items)
    return [
        PackItem(
            id=item.id,
            width=max(1, math.floor(item.width * scale)),
            height=max(1, math.floor(item.height * scale)),
            payload=item.payload,
        )
        for item in items
    ]


def can_pack(items: List[PackItem], max_size: int, padding: int, max_bins: int, scale: float = 1.0) -> bool:
    try:
        pack_into_atlas(scale_items(items, scale), max_size, padding, max_bins)
    except AtlasCapacityError:
        return False
    return True


def find_best_scale_for_single_bin(
    items: List[PackItem],
    max_size: int,
    padding: int,
    min_scale: float = 0.01,
) -> float:
    """
    Find the largest uniform scale at which all items fit one bin.

    Tries 1.0, then halves from 0.5 until something fits, then refines between
    the last failing and the first fitting scale by binary search.

    Raises:
        AtlasCapacityError: If even min_scale does not fit
    """
    if can_pack(items, max_size, padding, 1, 1.0):
        return 1.0

    failing = 1.0
    fitting = 0.5
    while not can_pack(items, max_size, padding, 1, fitting):
        failing = fitting
        fitting *= 0.5
        if fitting < min_scale:
            raise AtlasCapacityError(
                f"Could not fit {len(items)} texture(s) into a single {max_size}x{max_size} atlas "
                f"even at scale {min_scale}",
                max_size=max_size,
                max_bins=1,
                padding=padding,
                item_count=len(items),
            )

    best = fitting
    low, high = fitting, failing
    for _ in range(SCALE_SEARCH_ITERATIONS):
        mid = (low + high) / 2
        if can_pack(items, max_size, padding, 1, mid):
            best = low = mid
        else:
            high = mid

    logger.info(f"Downscaling atlas inputs by {best:.4f} to fit a single {max_size}x{max_size} bin")
    return best


def pack_items(
    items: List[PackItem],
    max_size: int,
    padding: int = 2,
    max_bins: int = 1,
    resize_mode: str = 'downscale',
    min_scale: float = 0.01,
) -> PackResult:
    """
    Pack items, downscaling them first when a single bin is required.

    Returns:
        PackResult whose rects carry the (possibly scaled) item sizes
    """
    max_bins = max(1, max_bins)
    scale = 1.0
    if max_bins == 1 and resize_mode == 'downscale' and items:
        scale = find_best_scale_for_single_bin(items, max_size, padding, min_scale)

    result = pack_into_atlas(scale_items(items, scale), max_size, padding, max_bins)
    result.scale = scale
    return result
