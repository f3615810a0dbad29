"""Custom exceptions for atlas processing"""

from typing import Optional


class AtlasError(Exception):
    """Base exception for atlasgen errors"""
    pass


class InputDefectError(AtlasError):
    """Input data that cannot be processed (bad images, malformed geometry)"""
    pass


class ImageDecodeError(InputDefectError):
    """Image dimensions could not be determined"""
    pass


class MissingAttributeError(InputDefectError):
    """Primitive is missing a required vertex attribute"""
    pass


class SceneGraphError(InputDefectError):
    """Node hierarchy is cyclic or reuses a node"""
    pass


class AtlasCapacityError(AtlasError):
    """Rectangles cannot fit within the bin count and size limits"""

    def __init__(
        self,
        message: str,
        max_size: Optional[int] = None,
        max_bins: Optional[int] = None,
        padding: Optional[int] = None,
        item_count: Optional[int] = None,
    ):
        super().__init__(message)
        self.max_size = max_size
        self.max_bins = max_bins
        self.padding = padding
        self.item_count = item_count
