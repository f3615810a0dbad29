"""
Verification of a processed document against its layout records.

Checks that every primitive's TEXCOORD_0 stays within its material's atlas rect
(or within the unit square for merged atlas materials), that no channel places
two rects on the same spot, and that every material sits on the same rect in
every channel.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field

from atlasgen.document.model import Document
from atlasgen.geometry.collapse import MERGED_MATERIAL_NAME
from atlasgen.schema.layout import LayoutRecord

logger = logging.getLogger(__name__)


class Bounds(BaseModel):
    min: Tuple[float, float, float]
    max: Tuple[float, float, float]


class UVCheck(BaseModel):
    material: str
    ok: bool
    u_min: float
    u_max: float
    v_min: float
    v_max: float
    expected: Dict[str, float]


class DuplicateRect(BaseModel):
    channel: str
    rect: str
    materials: List[str]


class CrossChannelInconsistency(BaseModel):
    material: str
    channels: Dict[str, str]


class VerificationReport(BaseModel):
    scenes: int = 0
    meshes: int = 0
    materials: int = 0
    textures: int = 0
    bounds: Optional[Bounds] = None
    uv_checks: List[UVCheck] = Field(default_factory=list)
    duplicates: List[DuplicateRect] = Field(default_factory=list)
    cross_channel_inconsistencies: List[CrossChannelInconsistency] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def material_rects(layout: List[LayoutRecord]) -> Dict[str, Dict[str, float]]:
    """Expected UV range per material name, from the rect each material was packed into."""
    rects = {}
    for record in layout:
        for atlas in record.atlases:
            for rect in atlas.rects:
                expected = {
                    'u_min': rect.x / atlas.width,
                    'v_min': rect.y / atlas.height,
                    'u_max': (rect.x + rect.width) / atlas.width,
                    'v_max': (rect.y + rect.height) / atlas.height,
                }
                for material in rect.materials:
                    rects[material] = expected
    return rects


def find_duplicate_rects(layout: List[LayoutRecord]) -> List[DuplicateRect]:
    """Rects of one channel and bin that occupy the exact same spot."""
    issues = []
    for record in layout:
        seen: Dict[str, List[str]] = {}
        for atlas in record.atlases:
            for rect in atlas.rects:
                key = f"{atlas.index}:{rect.x},{rect.y},{rect.width},{rect.height}"
                seen.setdefault(key, []).append(','.join(rect.materials))
        for key, materials in seen.items():
            if len(materials) > 1:
                issues.append(DuplicateRect(channel=record.channel, rect=key, materials=materials))
    return issues


def find_cross_channel_inconsistencies(layout: List[LayoutRecord]) -> List[CrossChannelInconsistency]:
    """Materials whose rect differs between channels."""
    per_material: Dict[str, Dict[str, str]] = {}
    for record in layout:
        for atlas in record.atlases:
            for rect in atlas.rects:
                key = f"{atlas.index}:{rect.x},{rect.y},{rect.width},{rect.height},{atlas.width},{atlas.height}"
                for material in rect.materials:
                    per_material.setdefault(material, {})[record.channel] = key

    return [
        CrossChannelInconsistency(material=material, channels=channels)
        for material, channels in per_material.items()
        if len(set(channels.values())) > 1
    ]


def verify_document(document: Document, layout: List[LayoutRecord], tolerance: float = 0.05) -> VerificationReport:
    """
    Check a processed document against the layout records of its atlas run.

    Args:
        document: Processed document
        layout: Layout records written during processing
        tolerance: Allowed UV overshoot, as a fraction of the atlas

    Returns:
        VerificationReport; ``errors`` is empty when everything checks out
    """
    report = VerificationReport(
        scenes=len(document.scenes),
        meshes=len(document.meshes),
        materials=len(document.materials),
        textures=len(document.textures),
    )

    primitives = list(document.iter_primitives())
    positions = [p.get_attribute('POSITION').array.reshape(-1, 3) for p in primitives if p.get_attribute('POSITION') is not None]
    positions = [p for p in positions if p.shape[0]]
    if not document.meshes:
        report.errors.append('No mesh found.')
    elif not positions:
        report.errors.append('Mesh has no vertices.')
    else:
        stacked = np.concatenate(positions, axis=0)
        low, high = stacked.min(axis=0), stacked.max(axis=0)
        report.bounds = Bounds(min=tuple(float(v) for v in low), max=tuple(float(v) for v in high))
        if np.all(low == high):
            report.errors.append('Bounds are degenerate (mesh may be empty).')

    rects = material_rects(layout)
    unit = {'u_min': 0.0, 'v_min': 0.0, 'u_max': 1.0, 'v_max': 1.0}
    for primitive in primitives:
        name = primitive.material.name if primitive.material is not None else ''
        uv = primitive.get_attribute('TEXCOORD_0')
        expected = unit if name.startswith(MERGED_MATERIAL_NAME) else rects.get(name)
        if expected is None or uv is None or uv.count == 0:
            continue

        array = uv.array.reshape(-1, 2)
        u_min, v_min = (float(v) for v in array.min(axis=0))
        u_max, v_max = (float(v) for v in array.max(axis=0))
        ok = (
            u_min >= expected['u_min'] - tolerance
            and u_max <= expected['u_max'] + tolerance
            and v_min >= expected['v_min'] - tolerance
            and v_max <= expected['v_max'] + tolerance
        )
        report.uv_checks.append(UVCheck(
            material=name, ok=ok,
            u_min=u_min, u_max=u_max, v_min=v_min, v_max=v_max,
            expected=expected,
        ))
        if not ok:
            report.errors.append(f"UV out of expected rect for material {name}")

    report.duplicates = find_duplicate_rects(layout)
    for duplicate in report.duplicates:
        report.errors.append(f"Duplicate {duplicate.channel} rect {duplicate.rect}")

    report.cross_channel_inconsistencies = find_cross_channel_inconsistencies(layout)
    for issue in report.cross_channel_inconsistencies:
        report.errors.append(f"Material {issue.material} has different rects across channels")

    logger.info(f"Verification finished with {len(report.errors)} error(s)")
    return report
