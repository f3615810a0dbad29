"""
Texture atlasing.

Includes texture sizing, MaxRects packing, cross-channel rect reuse, UV remapping
and the pipeline tying them together.
"""
from .channels import Channel
from .pipeline import AtlasResult, ChannelResult, process_atlas
from .uv_remap import MaterialMapping, UVRemapper

__all__ = [
    'Channel',
    'AtlasResult',
    'ChannelResult',
    'process_atlas',
    'MaterialMapping',
    'UVRemapper',
]
