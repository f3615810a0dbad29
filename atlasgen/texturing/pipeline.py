"""
Atlas pipeline.

One run over a document:

1. Resolve the requested channels and pick the canonical one (first channel
   by priority that actually has textures).
2. Canonical channel: collect and size its textures, pack them, render the
   atlas bins, remap UVs of every primitive into its material's rect.
3. Every other channel: collect and size its textures, copy the canonical
   layout rect for rect, render, and rewire the material slots.

Each pass produces a LayoutRecord describing the bins and rects.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from atlasgen.document.model import Document, Material, Texture
from atlasgen.geometry.baker import material_areas
from atlasgen.schema.layout import AtlasLayout, LayoutRecord, RectLayout, UVDiagnostic
from atlasgen.schema.options import AtlasOptions
from atlasgen.texturing import image_codec
from atlasgen.texturing.atlas_packer import pack_items
from atlasgen.texturing.channels import PRIORITY, Channel, get_info, get_texture, parse_channels, set_texture
from atlasgen.texturing.rect_packer import AtlasBin, PackItem
from atlasgen.texturing.rect_reuse import reuse_rects
from atlasgen.texturing.sizer import TextureEntry, prepare_entry
from atlasgen.texturing.uv_remap import MaterialMapping, UVRemapper

logger = logging.getLogger(__name__)


@dataclass
class ChannelResult:
    channel: Channel
    bins: List[AtlasBin]
    atlas_textures: List[Texture]
    mappings: Dict[Material, MaterialMapping]
    record: LayoutRecord
    scale: float = 1.0


@dataclass
class AtlasResult:
    """Outcome of process_atlas()."""
    canonical: Optional[Channel] = None
    channels: Dict[Channel, ChannelResult] = field(default_factory=dict)

    @property
    def layout(self) -> List[LayoutRecord]:
        return [result.record for result in self.channels.values()]

    @property
    def bin_count(self) -> int:
        if self.canonical is None:
            return 0
        return len(self.channels[self.canonical].bins)

    def atlas_textures(self, bin_index: int) -> Dict[Channel, Texture]:
        """Atlas texture of every channel for one bin."""
        return {
            channel: result.atlas_textures[bin_index]
            for channel, result in self.channels.items()
            if bin_index < len(result.atlas_textures)
        }

    def bin_for(self, material: Material) -> Optional[int]:
        """Bin holding a material's canonical rect, or None if it was not packed."""
        if self.canonical is None:
            return None
        mapping = self.channels[self.canonical].mappings.get(material)
        return mapping.bin_index if mapping is not None else None


def _has_image(texture: Optional[Texture]) -> bool:
    return texture is not None and bool(texture.image)


def resolve_channels(document: Document, options: AtlasOptions) -> Tuple[Optional[Channel], List[Channel]]:
    """
    Parse requested channels and pick the canonical one.

    Channels with an unsupported output format are skipped. Only a channel
    with at least one decodable texture source can be canonical.

    Returns:
        (canonical channel or None, channels in processing order with the canonical first)
    """
    channels = []
    for channel in parse_channels(options.channels):
        fmt = options.format_for(channel.value)
        if fmt not in image_codec.SUPPORTED_FORMATS:
            logger.warning(f"Skipping {channel.value}: unsupported format '{fmt}'")
            continue
        channels.append(channel)

    canonical = None
    for channel in PRIORITY:
        if channel in channels and any(_has_image(get_texture(m, channel)) for m in document.materials):
            canonical = channel
            break

    if canonical is None:
        return None, channels
    return canonical, [canonical] + [c for c in channels if c is not canonical]


def collect_entries(document: Document, channel: Channel) -> List[TextureEntry]:
    """One entry per distinct texture used by the channel, with the materials that use it."""
    entries: List[TextureEntry] = []
    by_texture: Dict[int, TextureEntry] = {}
    for material in document.materials:
        texture = get_texture(material, channel)
        if texture is None:
            continue
        if not texture.image:
            logger.warning(f"Skipping {channel.value} texture '{texture.name}' of '{material.name}': no image data")
            continue
        entry = by_texture.get(id(texture))
        if entry is None:
            entry = TextureEntry(texture=texture)
            by_texture[id(texture)] = entry
            entries.append(entry)
        entry.materials.append(material)
    return entries


def relative_areas(entries: List[TextureEntry], areas: Dict[Material, float]) -> List[Optional[float]]:
    """Largest relative area among each entry's materials, or None without area data."""
    max_area = max(areas.values(), default=0.0)
    if max_area <= 0:
        return [None] * len(entries)
    return [max((areas.get(m, 0.0) for m in entry.materials), default=0.0) / max_area for entry in entries]


def prepare_entries(entries: List[TextureEntry], options: AtlasOptions, areas: Dict[Material, float]) -> List[TextureEntry]:
    """Decode and size entries on a thread pool; results keep input order."""
    relative = relative_areas(entries, areas)

    def _prepare(args):
        entry, area = args
        return prepare_entry(entry, options.max_size, area, options.resize_mode, options.resize_ceil)

    with ThreadPoolExecutor(max_workers=options.workers) as executor:
        return list(executor.map(_prepare, zip(entries, relative)))


def render_bins(document: Document, bins: List[AtlasBin], channel: Channel, options: AtlasOptions) -> List[Texture]:
    """Composite every bin into an encoded atlas texture added to the document."""
    fmt = options.format_for(channel.value)
    textures = []
    for index, atlas_bin in enumerate(bins):
        placements = []
        for rect in atlas_bin.rects:
            image = image_codec.resize(rect.payload.image, rect.width, rect.height, fit='fill')
            placements.append((image, rect.x, rect.y))

        canvas = image_codec.composite(atlas_bin.width, atlas_bin.height, placements)
        data, mime = image_codec.encode(canvas, fmt, options.quality, lossless=channel.lossless)
        textures.append(document.create_texture(f"Atlas_{channel.value}_{index}", data, mime))
        logger.debug(f"Rendered {channel.value} atlas {index}: {atlas_bin.width}x{atlas_bin.height}, {len(data)} bytes")
    return textures


def build_mappings(
    bins: List[AtlasBin],
    textures: List[Texture],
    channel: Channel,
) -> Tuple[Dict[Material, MaterialMapping], LayoutRecord]:
    mappings: Dict[Material, MaterialMapping] = {}
    record = LayoutRecord(channel=channel.value)

    for index, (atlas_bin, texture) in enumerate(zip(bins, textures)):
        rects = []
        for rect in atlas_bin.rects:
            entry: TextureEntry = rect.payload
            for material in entry.materials:
                mapping = MaterialMapping.build(
                    material, channel, rect, texture, index,
                    (atlas_bin.width, atlas_bin.height), get_info(material, channel),
                )
                mappings[material] = mapping
                record.uv_diagnostics.append(UVDiagnostic(
                    material=material.name or '(unnamed)',
                    channel=channel.value,
                    tex_coord=mapping.tex_coord,
                    has_transform=mapping.has_transform,
                    rect=mapping.uv_rect(),
                ))
            rects.append(RectLayout(
                texture=entry.name,
                materials=[m.name for m in entry.materials if m.name],
                x=rect.x,
                y=rect.y,
                width=rect.width,
                height=rect.height,
            ))
        record.atlases.append(AtlasLayout(index=index, width=atlas_bin.width, height=atlas_bin.height, rects=rects))

    return mappings, record


def atlas_channel(
    document: Document,
    channel: Channel,
    options: AtlasOptions,
    areas: Dict[Material, float],
    canonical_bins: Optional[List[AtlasBin]] = None,
    remapper: Optional[UVRemapper] = None,
) -> Optional[ChannelResult]:
    """
    Run one channel pass.

    Args:
        document: Document being processed
        channel: Channel to atlas
        options: Run options
        areas: Material surface areas (empty when density-aware sizing is off)
        canonical_bins: Layout to reuse; None packs this channel as the canonical one
        remapper: UV remapper of the run; required for the canonical pass

    Returns:
        ChannelResult, or None when the channel has no textures
    """
    entries = collect_entries(document, channel)
    if not entries:
        logger.info(f"No {channel.value} textures found; skipping atlas")
        return None

    logger.info(f"Atlasing {len(entries)} {channel.value} texture(s)")
    entries = prepare_entries(entries, options, areas)

    scale = 1.0
    if canonical_bins is None:
        items = [PackItem(id=i, width=e.width, height=e.height, payload=e) for i, e in enumerate(entries)]
        packed = pack_items(
            items,
            options.max_size,
            options.padding,
            options.max_bins,
            options.resize_mode,
            options.min_scale,
        )
        bins, scale = packed.bins, packed.scale
    else:
        bins = reuse_rects(canonical_bins, channel, entries)

    textures = render_bins(document, bins, channel, options)
    mappings, record = build_mappings(bins, textures, channel)

    if canonical_bins is None:
        record.uv_diagnostics.extend(remapper.remap_document(document, mappings))
    else:
        for material, mapping in mappings.items():
            set_texture(material, channel, mapping.atlas_texture)

    logger.info(f"Built {channel.value} atlas(es); bins={len(bins)}")
    return ChannelResult(
        channel=channel,
        bins=bins,
        atlas_textures=textures,
        mappings=mappings,
        record=record,
        scale=scale,
    )


def process_atlas(document: Document, options: Optional[AtlasOptions] = None) -> AtlasResult:
    """
    Atlas every requested channel of a document and remap its UVs.

    Args:
        document: Document to modify in place
        options: Run options (defaults apply when omitted)

    Returns:
        AtlasResult with per-channel bins, atlas textures, material mappings
        and layout records

    Raises:
        ImageDecodeError: If a source texture cannot be read
        AtlasCapacityError: If the canonical channel cannot be packed
    """
    options = options or AtlasOptions()
    canonical, channels = resolve_channels(document, options)
    result = AtlasResult(canonical=canonical)
    if canonical is None:
        logger.info("No textures in the requested channels; nothing to atlas")
        return result

    logger.info(f"Canonical channel: {canonical.value}")
    areas = material_areas(document) if options.density_aware else {}
    remapper = UVRemapper()

    canonical_result = atlas_channel(document, canonical, options, areas, remapper=remapper)
    result.channels[canonical] = canonical_result

    for channel in channels[1:]:
        channel_result = atlas_channel(document, channel, options, areas, canonical_bins=canonical_result.bins)
        if channel_result is not None:
            result.channels[channel] = channel_result

    return result
