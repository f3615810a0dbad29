"""
Texture channels handled by the atlas pipeline.

A channel maps to one or more material texture slots. ORM reads from the
metallic-roughness slot first and falls back to occlusion, and writes both.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from atlasgen.document.model import Material, Texture, TextureInfo

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    BASE_COLOR = 'basecolor'
    NORMAL = 'normal'
    ORM = 'orm'
    EMISSIVE = 'emissive'

    @property
    def slots(self) -> Tuple[str, ...]:
        return CHANNEL_SLOTS[self]

    @property
    def fallback_color(self) -> Tuple[int, int, int, int]:
        return FALLBACK_COLORS[self]

    @property
    def lossless(self) -> bool:
        """Data channels are encoded losslessly when the container allows it."""
        return self in (Channel.NORMAL, Channel.ORM)

    @classmethod
    def parse(cls, name: str) -> Optional['Channel']:
        """
        Resolve a user supplied channel name.

        Args:
            name: Channel name, case-insensitive (e.g. "baseColor", "base_color", "orm")

        Returns:
            Channel, or None if the name is unknown
        """
        key = name.strip().lower().replace('_', '').replace('-', '')
        return _ALIASES.get(key)


# Canonical channel priority
PRIORITY = (Channel.BASE_COLOR, Channel.NORMAL, Channel.ORM, Channel.EMISSIVE)

CHANNEL_SLOTS: Dict[Channel, Tuple[str, ...]] = {
    Channel.BASE_COLOR: ('base_color_texture',),
    Channel.NORMAL: ('normal_texture',),
    Channel.ORM: ('metallic_roughness_texture', 'occlusion_texture'),
    Channel.EMISSIVE: ('emissive_texture',),
}

FALLBACK_COLORS: Dict[Channel, Tuple[int, int, int, int]] = {
    Channel.BASE_COLOR: (255, 255, 255, 255),
    Channel.NORMAL: (128, 128, 255, 255),
    Channel.ORM: (255, 255, 255, 255),
    Channel.EMISSIVE: (0, 0, 0, 255),
}

_ALIASES = {
    'basecolor': Channel.BASE_COLOR,
    'albedo': Channel.BASE_COLOR,
    'diffuse': Channel.BASE_COLOR,
    'normal': Channel.NORMAL,
    'orm': Channel.ORM,
    'metallicroughness': Channel.ORM,
    'occlusion': Channel.ORM,
    'emissive': Channel.EMISSIVE,
}


def parse_channels(names: List[str]) -> List[Channel]:
    """Parse channel names, warning about and skipping unknown ones. Duplicates are dropped."""
    channels = []
    for name in names:
        channel = Channel.parse(name)
        if channel is None:
            logger.warning(f"Skipping unknown channel '{name}'")
            continue
        if channel not in channels:
            channels.append(channel)
    return channels


def get_info(material: Material, channel: Channel) -> Optional[TextureInfo]:
    """Return the first populated texture-info of the channel's slots."""
    for slot in channel.slots:
        info = getattr(material, slot)
        if info is not None:
            return info
    return None


def get_texture(material: Material, channel: Channel) -> Optional[Texture]:
    info = get_info(material, channel)
    return info.texture if info is not None else None


def set_texture(material: Material, channel: Channel, texture: Texture) -> None:
    """
    Point every slot of a channel at ``texture``.

    Existing texture-infos keep their texcoord, transform and scale/strength;
    empty slots get a fresh texture-info on set 0.
    """
    for slot in channel.slots:
        info = getattr(material, slot)
        if info is None:
            setattr(material, slot, TextureInfo(texture=texture))
        else:
            info.texture = texture
