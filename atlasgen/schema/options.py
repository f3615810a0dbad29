"""
Atlas processing options.

Channel names and output formats are plain strings; unknown values are reported
and skipped by the pipeline. Numeric limits are validated here.
"""

from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CHANNELS = ["basecolor", "normal", "orm", "emissive"]


class AtlasOptions(BaseModel):
    """Configuration for one atlas processing run."""
    model_config = ConfigDict(extra='forbid')

    channels: List[str] = Field(default_factory=lambda: list(DEFAULT_CHANNELS), description="Texture channels to atlas (basecolor, normal, orm, emissive).")
    max_size: int = Field(default=4096, description="Maximum atlas dimension in pixels (power of two, >= 256).")
    padding: int = Field(default=2, ge=0, description="Padding in pixels between atlas rects.")
    formats: Dict[str, str] = Field(default_factory=dict, description="Output format per channel: png, jpeg or webp. Missing channels use webp.")
    quality: int = Field(default=85, ge=0, le=100, description="Quality (0-100) for lossy jpeg/webp output.")
    max_bins: int = Field(default=1, ge=1, description="Maximum number of atlas bins per channel.")
    resize_mode: Literal['downscale', 'none'] = Field(default='downscale', description="Whether oversized inputs and overfull atlases may be downscaled.")
    resize_ceil: int = Field(default=4096, ge=0, description="Absolute ceiling for source textures before sizing (0 disables).")
    density_aware: bool = Field(default=True, description="Size textures by the surface area their material covers.")
    min_scale: float = Field(default=0.01, gt=0, le=1, description="Smallest uniform downscale tried when fitting a single bin.")
    workers: int = Field(default=4, ge=1, description="Thread pool size for per-texture resize work.")

    @field_validator('max_size')
    @classmethod
    def _check_max_size(cls, v: int) -> int:
        if v < 256 or v & (v - 1):
            raise ValueError(f"max_size must be a power of two >= 256, got {v}")
        return v

    @field_validator('channels', mode='before')
    @classmethod
    def _split_channels(cls, v):
        # Accept "baseColor,normal" as well as a list
        if isinstance(v, str):
            return [part.strip() for part in v.split(',') if part.strip()]
        return v

    @field_validator('formats')
    @classmethod
    def _lower_formats(cls, v: Dict[str, str]) -> Dict[str, str]:
        return {key.lower(): fmt.lower() for key, fmt in v.items()}

    def format_for(self, channel_key: str) -> str:
        """Return the requested output format for a channel key."""
        return self.formats.get(channel_key, 'webp')
