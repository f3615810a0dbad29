"""
Layout records produced by an atlas run.

A LayoutRecord describes, for one channel, every atlas bin that was produced
and which texture/materials ended up in each rect. Records are purely
descriptive: nothing in the pipeline reads them back. They exist so that
verification tooling can check UV-vs-rect alignment and detect duplicate or
inconsistent rects across channels.

JSON shape (one entry per channel):

    {
      "channel": "basecolor",
      "atlases": [
        {"index": 0, "width": 2048, "height": 2048,
         "rects": [{"texture": "Wood", "materials": ["Table"],
                    "x": 0, "y": 0, "width": 1024, "height": 1024}]}
      ],
      "uv_diagnostics": [...]
    }
"""

from __future__ import annotations

import json
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, TypeAdapter


class RectLayout(BaseModel):
    texture: str = Field(..., description="Source texture name, '(unnamed)' or '(fallback)'.")
    materials: List[str] = Field(default_factory=list, description="Names of materials sampling this rect.")
    x: int
    y: int
    width: int
    height: int


class AtlasLayout(BaseModel):
    index: int = Field(..., description="Bin index within the channel.")
    width: int
    height: int
    rects: List[RectLayout] = Field(default_factory=list)


class UVRect(BaseModel):
    x: int
    y: int
    w: int
    h: int
    atlas_w: Optional[int] = None
    atlas_h: Optional[int] = None


class UVDiagnostic(BaseModel):
    """Per-material mapping entry, or per-primitive remap entry when pre/post ranges are set."""
    material: str
    channel: str
    tex_coord: int
    has_transform: bool = False
    rect: UVRect
    pre_min: Optional[Tuple[float, float]] = None
    pre_max: Optional[Tuple[float, float]] = None
    post_min: Optional[Tuple[float, float]] = None
    post_max: Optional[Tuple[float, float]] = None


class LayoutRecord(BaseModel):
    channel: str
    atlases: List[AtlasLayout] = Field(default_factory=list)
    uv_diagnostics: List[UVDiagnostic] = Field(default_factory=list)


_RECORDS = TypeAdapter(List[LayoutRecord])


def dump_layout(records: List[LayoutRecord], path: str) -> None:
    """Write layout records to a JSON file."""
    with open(path, 'w') as f:
        json.dump([r.model_dump() for r in records], f, indent=2)


def load_layout(path: str) -> List[LayoutRecord]:
    """Read layout records written by dump_layout()."""
    with open(path, 'r') as f:
        return _RECORDS.validate_python(json.load(f))
