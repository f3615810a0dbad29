"""
Texture sizing.

Chooses a square power-of-two target resolution for every source texture.
With surface-area data, textures whose materials cover more of the model get a
larger bucket. Without it, the source's own resolution decides. Textures are
never upscaled.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from PIL import Image

from atlasgen.document.model import Material, Texture
from atlasgen.exceptions import ImageDecodeError
from atlasgen.texturing import image_codec
from atlasgen.texturing.rect_packer import clamp_power_of_2, nearest_power_of_2

logger = logging.getLogger(__name__)

MIN_TEXTURE_SIZE = 256

# (minimum relative area, target size), checked in order
AREA_BUCKETS = (
    (0.6, 2048),
    (0.35, 1024),
    (0.15, 512),
)


@dataclass(eq=False)
class TextureEntry:
    """
    One source texture prepared for a channel pass.

    ``width``/``height`` are the target dimensions after sizing; ``image`` holds
    the pixels at (or, for non-square sources, near) that size. Fallback entries
    have no source texture.
    """
    texture: Optional[Texture]
    materials: List[Material] = field(default_factory=list)
    image: Optional[Image.Image] = None
    natural_width: int = 0
    natural_height: int = 0
    width: int = 0
    height: int = 0

    @property
    def name(self) -> str:
        if self.texture is None:
            return '(fallback)'
        return self.texture.name or '(unnamed)'


def suggest_target_size(
    width: int,
    height: int,
    max_size: int,
    relative_area: Optional[float] = None,
) -> int:
    """
    Pick a square power-of-two target size.

    Args:
        width: Source width
        height: Source height
        max_size: Largest allowed size
        relative_area: Material area / largest material area in the scene, or
            None when no area data is available

    Returns:
        Target edge length, never above the source's own nearest power of two
    """
    if relative_area is None:
        target = nearest_power_of_2(min(width, max_size))
    else:
        target = MIN_TEXTURE_SIZE
        for threshold, size in AREA_BUCKETS:
            if relative_area >= threshold:
                target = size
                break

    target = clamp_power_of_2(target, MIN_TEXTURE_SIZE, max_size)
    return min(target, nearest_power_of_2(max(1, min(width, height))))


def prepare_entry(
    entry: TextureEntry,
    max_size: int,
    relative_area: Optional[float] = None,
    resize_mode: str = 'downscale',
    resize_ceil: int = 0,
) -> TextureEntry:
    """
    Decode and size an entry's source texture in place.

    Args:
        entry: Entry with its source texture set
        max_size: Largest allowed target size
        relative_area: See suggest_target_size()
        resize_mode: 'downscale' allows shrinking sources above resize_ceil
        resize_ceil: Absolute ceiling for source dimensions (0 disables)

    Returns:
        The same entry

    Raises:
        ImageDecodeError: If the texture's dimensions cannot be determined
    """
    data = entry.texture.image if entry.texture is not None else None
    if not data:
        raise ImageDecodeError(f"Texture '{entry.name}' has no image data")

    width, height = image_codec.image_size(data)
    entry.natural_width, entry.natural_height = width, height
    image = image_codec.decode(data)

    if resize_mode == 'downscale' and resize_ceil > 0 and (width > resize_ceil or height > resize_ceil):
        scale = min(resize_ceil / width, resize_ceil / height)
        width = max(1, math.floor(width * scale))
        height = max(1, math.floor(height * scale))
        image = image_codec.resize(image, width, height, fit='inside')
        logger.debug(f"Downscaled '{entry.name}' to {width}x{height} (ceiling {resize_ceil})")

    target = suggest_target_size(width, height, max_size, relative_area)
    if target < min(width, height):
        image = image_codec.resize(image, target, target, fit='fill')

    entry.image = image
    entry.width = target
    entry.height = target
    logger.debug(
        f"Sized '{entry.name}' {entry.natural_width}x{entry.natural_height} -> {target}x{target}"
    )
    return entry
