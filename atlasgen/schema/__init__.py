"""Options and layout schema definitions."""
from .options import AtlasOptions, DEFAULT_CHANNELS
from .layout import (
    LayoutRecord,
    AtlasLayout,
    RectLayout,
    UVDiagnostic,
    UVRect,
    dump_layout,
    load_layout,
)

__all__ = [
    "AtlasOptions",
    "DEFAULT_CHANNELS",
    "LayoutRecord",
    "AtlasLayout",
    "RectLayout",
    "UVDiagnostic",
    "UVRect",
    "dump_layout",
    "load_layout",
]
