"""
Cross-channel rect reuse.

Secondary channels are not packed on their own. They copy the canonical
channel's bins rect for rect, so a single remapped UV set addresses every
channel. A material without a texture in the secondary channel gets a solid
fallback tile of the channel's neutral color.
"""

import logging
from dataclasses import replace
from typing import Dict, List

from atlasgen.document.model import Material
from atlasgen.texturing import image_codec
from atlasgen.texturing.channels import Channel
from atlasgen.texturing.rect_packer import AtlasBin, Rect
from atlasgen.texturing.sizer import TextureEntry

logger = logging.getLogger(__name__)


def fallback_entry(channel: Channel, width: int, height: int, materials: List[Material]) -> TextureEntry:
    """Solid tile sized to a rect, in the channel's neutral color."""
    return TextureEntry(
        texture=None,
        materials=list(materials),
        image=image_codec.solid(width, height, channel.fallback_color),
        natural_width=width,
        natural_height=height,
        width=width,
        height=height,
    )


def reuse_rects(
    canonical_bins: List[AtlasBin],
    channel: Channel,
    entries: List[TextureEntry],
) -> List[AtlasBin]:
    """
    Build a channel's bins from the canonical layout.

    Args:
        canonical_bins: Bins of the canonical channel; each rect's payload is a TextureEntry
        channel: Channel being laid out
        entries: This channel's prepared texture entries

    Returns:
        Bins with identical count, sizes and rect geometry, carrying this
        channel's entries (or fallbacks)
    """
    by_material: Dict[int, TextureEntry] = {}
    for entry in entries:
        for material in entry.materials:
            by_material.setdefault(id(material), entry)

    placed_materials = set()
    fallbacks = 0
    bins = []
    for canonical in canonical_bins:
        rects = []
        for rect in canonical.rects:
            materials = list(rect.payload.materials)
            placed_materials.update(id(m) for m in materials)

            source = next((by_material[id(m)] for m in materials if id(m) in by_material), None)
            if source is None:
                payload = fallback_entry(channel, rect.width, rect.height, materials)
                fallbacks += 1
            else:
                payload = replace(source, materials=materials)

            rects.append(Rect(x=rect.x, y=rect.y, width=rect.width, height=rect.height, payload=payload))
        bins.append(AtlasBin(width=canonical.width, height=canonical.height, rects=rects))

    for entry in entries:
        if not any(id(m) in placed_materials for m in entry.materials):
            logger.warning(
                f"Dropping {channel.value} texture '{entry.name}': none of its materials has a canonical rect"
            )

    logger.debug(f"Reused {sum(len(b.rects) for b in bins)} rect(s) for {channel.value} ({fallbacks} fallback)")
    return bins
