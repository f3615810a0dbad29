"""
MaxRects Rectangle Packer

Packs rectangles into square power-of-2 bins using the MaxRects algorithm with
best-short-side-fit placement (ties broken by long side). No rotation.

Padding is reserved on the right/bottom of every rect: a rect occupies
(width + padding) x (height + padding) inside a (size + padding) square, so rects
may touch the right/bottom edge of the bin.
"""

import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from atlasgen.exceptions import AtlasCapacityError


def next_power_of_2(n: int) -> int:
    """Return the next power of 2 >= n."""
    if n <= 1:
        return 1
    return 2 ** math.ceil(math.log2(n))


def nearest_power_of_2(n: float) -> int:
    """Return the largest power of 2 <= n (1 for n < 2)."""
    p = 1
    while p * 2 <= n:
        p *= 2
    return p


def clamp_power_of_2(n: float, low: int, high: int) -> int:
    """Snap n down to a power of 2, then clamp into [low, high]."""
    return max(low, min(high, nearest_power_of_2(n)))


@dataclass(frozen=True)
class PackItem:
    id: int
    width: int
    height: int
    payload: Any = field(default=None, compare=False)


@dataclass
class Rect:
    x: int
    y: int
    width: int
    height: int
    payload: Any = None


@dataclass
class AtlasBin:
    width: int
    height: int
    rects: List[Rect] = field(default_factory=list)


# Free rectangles are kept as (x, y, w, h) tuples
FreeRect = Tuple[int, int, int, int]


class MaxRectsPacker:
    """Packs rectangles into a single square bin."""

    def __init__(self, size: int, padding: int = 0):
        self.size = size
        self.padding = padding
        extent = size + padding
        self.free_rects: List[FreeRect] = [(0, 0, extent, extent)]
        self.rects: List[Rect] = []

    def find_position(self, width: int, height: int) -> Optional[Tuple[int, int]]:
        """Best short side fit for a padded rect. Returns (x, y) or None if it does not fit."""
        best = None
        best_score = None
        for fx, fy, fw, fh in self.free_rects:
            if width > fw or height > fh:
                continue
            leftover_h = fw - width
            leftover_v = fh - height
            score = (min(leftover_h, leftover_v), max(leftover_h, leftover_v))
            if best_score is None or score < best_score:
                best = (fx, fy)
                best_score = score
        return best

    def insert(self, item: PackItem) -> Optional[Rect]:
        """Try to place an item. Returns the placed Rect or None if the bin is full."""
        padded_w = item.width + self.padding
        padded_h = item.height + self.padding
        position = self.find_position(padded_w, padded_h)
        if position is None:
            return None

        x, y = position
        self._split_free_rects((x, y, padded_w, padded_h))
        self._prune_free_rects()

        rect = Rect(x=x, y=y, width=item.width, height=item.height, payload=item.payload)
        self.rects.append(rect)
        return rect

    def _split_free_rects(self, used: FreeRect) -> None:
        ux, uy, uw, uh = used
        result = []
        for free in self.free_rects:
            fx, fy, fw, fh = free
            if ux >= fx + fw or ux + uw <= fx or uy >= fy + fh or uy + uh <= fy:
                result.append(free)
                continue
            if ux > fx:
                result.append((fx, fy, ux - fx, fh))
            if ux + uw < fx + fw:
                result.append((ux + uw, fy, fx + fw - (ux + uw), fh))
            if uy > fy:
                result.append((fx, fy, fw, uy - fy))
            if uy + uh < fy + fh:
                result.append((fx, uy + uh, fw, fy + fh - (uy + uh)))
        self.free_rects = result

    def _prune_free_rects(self) -> None:
        rects = self.free_rects
        keep = [True] * len(rects)
        for i in range(len(rects)):
            if not keep[i]:
                continue
            for j in range(i + 1, len(rects)):
                if not keep[j]:
                    continue
                if _contains(rects[j], rects[i]):
                    keep[i] = False
                    break
                if _contains(rects[i], rects[j]):
                    keep[j] = False
        self.free_rects = [r for r, k in zip(rects, keep) if k]


def _contains(outer: FreeRect, inner: FreeRect) -> bool:
    ox, oy, ow, oh = outer
    ix, iy, iw, ih = inner
    return ix >= ox and iy >= oy and ix + iw <= ox + ow and iy + ih <= oy + oh


def sort_items(items: List[PackItem]) -> List[PackItem]:
    """Order items by (max side, area), largest first. Ties keep input order."""
    return sorted(items, key=lambda i: (max(i.width, i.height), i.width * i.height), reverse=True)


def pack_bins(items: List[PackItem], size: int, padding: int = 0) -> List[AtlasBin]:
    """
    Pack items into as many size x size bins as needed.

    An item that does not fit any open bin opens a new bin.

    Args:
        items: Items to pack
        size: Bin edge length
        padding: Pixels reserved right/bottom of each rect

    Returns:
        List of AtlasBin, in the order they were opened

    Raises:
        AtlasCapacityError: If an item is larger than an empty bin
    """
    packers: List[MaxRectsPacker] = []
    for item in sort_items(items):
        if item.width > size or item.height > size:
            raise AtlasCapacityError(
                f"Item {item.id} ({item.width}x{item.height}) does not fit a {size}x{size} bin",
                max_size=size,
                padding=padding,
                item_count=len(items),
            )
        for packer in packers:
            if packer.insert(item) is not None:
                break
        else:
            packer = MaxRectsPacker(size, padding)
            packer.insert(item)
            packers.append(packer)

    return [AtlasBin(width=p.size, height=p.size, rects=p.rects) for p in packers]
