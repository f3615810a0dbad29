"""
Image decode/resize/composite/encode helpers on top of Pillow.

All images are handled as RGBA internally.
"""

import logging
from io import BytesIO
from typing import Iterable, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from atlasgen.exceptions import ImageDecodeError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {
    'png': 'image/png',
    'jpeg': 'image/jpeg',
    'jpg': 'image/jpeg',
    'webp': 'image/webp',
}

RESAMPLE = Image.Resampling.LANCZOS


def image_size(data: bytes) -> Tuple[int, int]:
    """
    Read image dimensions from the header without decoding pixels.

    Raises:
        ImageDecodeError: If the data is not a readable image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError, TypeError) as e:
        raise ImageDecodeError(f"Cannot read image dimensions: {e}") from e

    if not width or not height:
        raise ImageDecodeError(f"Image reports invalid dimensions {width}x{height}")
    return width, height


def decode(data: bytes) -> Image.Image:
    """Decode encoded image bytes into an RGBA image."""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, TypeError) as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e

    if img.mode != 'RGBA':
        img = img.convert('RGBA')
    return img


def resize(image: Image.Image, width: int, height: int, fit: str = 'fill') -> Image.Image:
    """
    Resize an image.

    Args:
        image: Source image
        width: Target width
        height: Target height
        fit: 'fill' stretches to exactly width x height,
             'inside' preserves aspect within the box (result may be smaller on one axis),
             'cover' preserves aspect, fills the box and center-crops the overflow

    Returns:
        Resized image
    """
    width, height = max(1, int(width)), max(1, int(height))

    if fit == 'fill':
        if image.size == (width, height):
            return image
        return image.resize((width, height), RESAMPLE)

    if fit == 'inside':
        scale = min(width / image.width, height / image.height)
        size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
        if size == image.size:
            return image
        return image.resize(size, RESAMPLE)

    if fit == 'cover':
        return ImageOps.fit(image, (width, height), method=RESAMPLE)

    raise ValueError(f"Unknown resize fit: {fit}")


def solid(width: int, height: int, color: Tuple[int, int, int, int]) -> Image.Image:
    """Create a single-color RGBA image."""
    return Image.new('RGBA', (max(1, width), max(1, height)), tuple(color))


def composite(width: int, height: int, placements: Iterable[Tuple[Image.Image, int, int]]) -> Image.Image:
    """
    Paste sub-images onto a transparent canvas.

    Args:
        width: Canvas width
        height: Canvas height
        placements: (image, left, top) tuples

    Returns:
        RGBA canvas
    """
    canvas = Image.new('RGBA', (width, height), (0, 0, 0, 0))
    for image, left, top in placements:
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        canvas.paste(image, (int(left), int(top)))
    return canvas


def encode(image: Image.Image, fmt: str = 'png', quality: int = 85, lossless: bool = False) -> Tuple[bytes, str]:
    """
    Encode an image.

    Args:
        image: Image to encode
        fmt: 'png', 'jpeg' or 'webp'
        quality: Quality for lossy formats (0-100)
        lossless: WebP only; ignore quality and encode losslessly

    Returns:
        Tuple of (encoded bytes, MIME type)
    """
    fmt = fmt.lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported image format: {fmt}. Supported: png, jpeg, webp")

    buf = BytesIO()
    if fmt == 'png':
        image.save(buf, format='PNG')
    elif fmt in ('jpeg', 'jpg'):
        # JPEG has no alpha; keep full chroma resolution
        image.convert('RGB').save(buf, format='JPEG', quality=quality, subsampling=0)
    else:
        if lossless:
            image.save(buf, format='WEBP', lossless=True)
        else:
            image.save(buf, format='WEBP', quality=quality)

    return buf.getvalue(), SUPPORTED_FORMATS[fmt]
