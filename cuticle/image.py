"""
ImageHandle - Metadata plus the lazy node that produces its pixels.
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np


class Coding(Enum):
    """Pixel coding of a raster."""
    NONE = 'none'
    PACKED = 'packed'


class Interpretation(Enum):
    """Colour interpretation of the bands."""
    DEVICE = 'device'
    SRGB = 'srgb'
    XYZ = 'xyz'


class Node:
    """
    A lazily evaluated raster.

    Subclasses implement region(); nothing is computed until a consumer asks
    for pixels.
    """

    def region(self, x0: int, y0: int, x1: int, y1: int):
        """Return the pixels in [x0, x1) x [y0, y1)."""
        raise NotImplementedError


class ArrayNode(Node):
    """Node over pixels that are already in memory."""

    def __init__(self, array: np.ndarray):
        self.array = array

    def region(self, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
        return self.array[y0:y1, x0:x1]


@dataclass(frozen=True)
class ImageHandle:
    """
    Reference to a raster at some point in the pipeline.

    Each stage takes a handle and derives a new one; handles are never
    shared between stages.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        bands: Number of bands, alpha included
        band_format: 'uchar', 'ushort', 'int' or 'float'
        coding: Pixel coding
        interpretation: Colour interpretation
        node: Lazy pixel producer
        mode: Pillow mode while the pixels are still in Pillow form
        has_alpha: True if the last band is alpha
        orientation: Orientation metadata, if any
        icc_profile: Attached ICC profile bytes, if any
        exif: Raw EXIF bytes, if any
    """
    width: int
    height: int
    bands: int
    band_format: str
    coding: Coding
    interpretation: Interpretation
    node: Node
    mode: Optional[str] = None
    has_alpha: bool = False
    orientation: Optional[str] = None
    icc_profile: Optional[bytes] = None
    exif: Optional[bytes] = None

    @property
    def has_profile(self) -> bool:
        return self.icc_profile is not None

    @property
    def colour_bands(self) -> int:
        return self.bands - 1 if self.has_alpha else self.bands

    def derive(self, **changes) -> 'ImageHandle':
        """New handle with some attributes replaced."""
        return dataclasses.replace(self, **changes)

    def region(self, x0: int, y0: int, x1: int, y1: int):
        return self.node.region(x0, y0, x1, y1)
