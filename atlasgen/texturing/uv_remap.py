"""
UV remapping into atlas rects.

Every primitive whose material was packed gets its UVs rewritten so that the
unit square lands on the material's rect inside the atlas:

    u' = u * (w / W) + x / W
    v' = v * (h / H) + y / H

A KHR_texture_transform on the sampled texture-info is baked into a fresh
TEXCOORD set first. Source buffers are never modified in place since accessors
may be shared between primitives.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from atlasgen.document.model import Accessor, Document, Material, Primitive, Texture, TextureInfo, TextureTransform
from atlasgen.schema.layout import UVDiagnostic, UVRect
from atlasgen.texturing.channels import Channel, set_texture
from atlasgen.texturing.rect_packer import Rect

logger = logging.getLogger(__name__)

TEXCOORD_PATTERN = re.compile(r'^TEXCOORD_(\d+)$')


@dataclass(eq=False)
class MaterialMapping:
    """Where one material's texture for one channel ended up."""
    material: Material
    channel: Channel
    rect: Rect
    atlas_texture: Texture
    bin_index: int
    atlas_width: int
    atlas_height: int
    tex_coord: int = 0
    info: Optional[TextureInfo] = None
    # Snapshot taken at packing time; the live texture-info is cleared after the first bake
    transform: Optional[TextureTransform] = None

    @property
    def has_transform(self) -> bool:
        return self.transform is not None

    @classmethod
    def build(
        cls,
        material: Material,
        channel: Channel,
        rect: Rect,
        atlas_texture: Texture,
        bin_index: int,
        atlas_size: Tuple[int, int],
        info: Optional[TextureInfo],
    ) -> 'MaterialMapping':
        transform = info.transform if info is not None else None
        tex_coord = info.tex_coord if info is not None else 0
        if transform is not None and transform.tex_coord is not None:
            tex_coord = transform.tex_coord
        return cls(
            material=material,
            channel=channel,
            rect=rect,
            atlas_texture=atlas_texture,
            bin_index=bin_index,
            atlas_width=atlas_size[0],
            atlas_height=atlas_size[1],
            tex_coord=tex_coord,
            info=info,
            transform=transform,
        )

    def uv_rect(self) -> UVRect:
        return UVRect(
            x=self.rect.x,
            y=self.rect.y,
            w=self.rect.width,
            h=self.rect.height,
            atlas_w=self.atlas_width,
            atlas_h=self.atlas_height,
        )


def bake_texture_transform(uv: np.ndarray, transform: TextureTransform) -> np.ndarray:
    """
    Apply scale, then rotation about the origin, then offset.

    Args:
        uv: (n, 2) texture coordinates
        transform: Transform to bake

    Returns:
        New (n, 2) float32 array
    """
    u = uv[:, 0].astype(np.float64) * transform.scale[0]
    v = uv[:, 1].astype(np.float64) * transform.scale[1]
    cos_r = math.cos(transform.rotation)
    sin_r = math.sin(transform.rotation)

    baked = np.empty((uv.shape[0], 2), dtype=np.float64)
    baked[:, 0] = u * cos_r - v * sin_r + transform.offset[0]
    baked[:, 1] = u * sin_r + v * cos_r + transform.offset[1]
    return baked.astype(np.float32)


def remap_uvs(uv: np.ndarray, rect: Rect, atlas_width: int, atlas_height: int) -> np.ndarray:
    """
    Map UVs from the unit square into a rect of the atlas.

    Returns:
        New (n, 2) float32 array
    """
    scale = np.array([rect.width / atlas_width, rect.height / atlas_height], dtype=np.float64)
    offset = np.array([rect.x / atlas_width, rect.y / atlas_height], dtype=np.float64)
    return (uv.astype(np.float64) * scale + offset).astype(np.float32)


def texcoord_indices(primitive: Primitive) -> List[int]:
    indices = []
    for semantic in primitive.list_semantics():
        match = TEXCOORD_PATTERN.match(semantic)
        if match:
            indices.append(int(match.group(1)))
    return sorted(indices)


def next_texcoord_index(primitive: Primitive) -> int:
    """One past the highest TEXCOORD_n on the primitive (0 when there is none)."""
    indices = texcoord_indices(primitive)
    return indices[-1] + 1 if indices else 0


def _uv_range(uv: np.ndarray) -> Tuple[Optional[Tuple[float, float]], Optional[Tuple[float, float]]]:
    if uv.shape[0] == 0:
        return None, None
    low = uv.min(axis=0)
    high = uv.max(axis=0)
    return (float(low[0]), float(low[1])), (float(high[0]), float(high[1]))


class UVRemapper:
    """
    Remaps primitives into atlas space, at most once per primitive.

    One instance covers one processing run.
    """

    def __init__(self):
        self._remapped = set()

    def is_remapped(self, primitive: Primitive) -> bool:
        return primitive in self._remapped

    def remap_primitive(self, primitive: Primitive, mapping: MaterialMapping) -> Optional[UVDiagnostic]:
        """
        Rewrite one primitive's TEXCOORD_0 into its material's atlas rect.

        Args:
            primitive: Primitive using mapping.material
            mapping: Canonical channel mapping of the material

        Returns:
            UV diagnostic, or None if the primitive was skipped
        """
        if primitive in self._remapped:
            return None

        uv_set = mapping.tex_coord
        source = primitive.get_attribute(f'TEXCOORD_{uv_set}')
        if source is None:
            logger.warning(
                f"Primitive of material '{mapping.material.name}' has no TEXCOORD_{uv_set}; UVs left unchanged"
            )
            return None

        working = source.array.astype(np.float32).reshape(-1, 2)
        pre_min, pre_max = _uv_range(working)

        if mapping.transform is not None:
            uv_set = next_texcoord_index(primitive)
            working = bake_texture_transform(working, mapping.transform)
            primitive.set_attribute(f'TEXCOORD_{uv_set}', Accessor(working, 'VEC2'))
            if mapping.info is not None:
                mapping.info.tex_coord = uv_set
                mapping.info.transform = None

        remapped = remap_uvs(working, mapping.rect, mapping.atlas_width, mapping.atlas_height)
        primitive.set_attribute('TEXCOORD_0', Accessor(remapped, 'VEC2'))
        for index in texcoord_indices(primitive):
            if index > 0:
                primitive.set_attribute(f'TEXCOORD_{index}', None)

        for info in mapping.material.texture_infos():
            info.tex_coord = 0
            if info.transform is not None:
                logger.warning(
                    f"Dropping texture transform on material '{mapping.material.name}': "
                    f"only the {mapping.channel.value} transform can be baked"
                )
                info.transform = None

        self._remapped.add(primitive)

        post_min, post_max = _uv_range(remapped)
        return UVDiagnostic(
            material=mapping.material.name or '(unnamed)',
            channel=mapping.channel.value,
            tex_coord=uv_set,
            has_transform=mapping.has_transform,
            rect=mapping.uv_rect(),
            pre_min=pre_min,
            pre_max=pre_max,
            post_min=post_min,
            post_max=post_max,
        )

    def remap_document(self, document: Document, mappings: Dict[Material, MaterialMapping]) -> List[UVDiagnostic]:
        """
        Remap every primitive whose material has a mapping, then point each
        mapped material's channel slot at its atlas texture.
        """
        diagnostics = []
        for primitive in document.iter_primitives():
            mapping = mappings.get(primitive.material)
            if mapping is None:
                continue
            diagnostic = self.remap_primitive(primitive, mapping)
            if diagnostic is not None:
                diagnostics.append(diagnostic)

        for material, mapping in mappings.items():
            set_texture(material, mapping.channel, mapping.atlas_texture)

        logger.info(f"Remapped {len(diagnostics)} primitive(s) into {len(mappings)} material rect(s)")
        return diagnostics
