"""
Loader - Opens sources and picks the decode-time shrink.
"""

import logging
import threading
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .errors import DecodeFailure, SequentialReadError, UnsupportedFormat, stage_errors
from .image import Coding, ImageHandle, Interpretation, Node
from .orientation import read_orientation

# Formats whose decoder can shrink by a power of two while decoding
DRAFT_FORMATS = {'JPEG'}

PACKED_MODES = {'P', 'PA', '1'}

BAND_FORMATS = {
    'I': 'int',
    'F': 'float',
}


def band_format_for_mode(mode: str) -> str:
    """Band format name for a Pillow mode."""
    if mode.startswith('I;16'):
        return 'ushort'
    return BAND_FORMATS.get(mode, 'uchar')


def select_decode_shrink(integer_shrink: int, linear: bool = False) -> int:
    """
    Pick the decode-time shrink for a JPEG.

    libjpeg shrinks in Y of YCbCr, not in linear light, so linear mode
    always decodes at full size.

    Args:
        integer_shrink: Block shrink the plan asks for
        linear: True when processing in linear light

    Returns:
        1, 2, 4 or 8
    """
    if linear:
        return 1
    for shrink in (8, 4, 2):
        if integer_shrink >= shrink:
            return shrink
    return 1


def open_source(path: str) -> Image.Image:
    """
    Open a file with Pillow, reading only its header.

    Raises:
        UnsupportedFormat: If no decoder recognises the file
        DecodeFailure: If the file cannot be read
    """
    try:
        return Image.open(path)
    except UnidentifiedImageError as e:
        raise UnsupportedFormat("no decoder for this file", stage='probe', source=path) from e
    except OSError as e:
        raise DecodeFailure(str(e), stage='probe', source=path) from e


def probe_loader(path: str) -> str:
    """
    Find the decoder for a file by reading its header.

    Returns:
        Pillow format name, e.g. 'JPEG'

    Raises:
        UnsupportedFormat: If no decoder recognises the file
        DecodeFailure: If the file cannot be read
    """
    with open_source(path) as image:
        return image.format


class SourceImage(Node):
    """
    A source opened for sequential reading.

    Opening only reads the header. The first region request decodes the whole
    raster in its 8-bit or 16-bit source mode, after any decode-time shrink
    has been chosen, and keeps it until close. Only the float stages
    downstream are held a strip at a time. Regions must be requested with
    non-decreasing top rows.
    """

    def __init__(self, path: str, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or logging.getLogger(__name__)

        self._image = open_source(path)

        self.format = self._image.format
        self.full_size = self._image.size
        self.orientation = read_orientation(self._image)
        self.icc_profile = self._image.info.get('icc_profile') or None
        self.exif = self._image.info.get('exif') or None
        self.decode_shrink = 1

        self._lock = threading.Lock()
        self._loaded = False
        self._last_top = 0
        self._closed = False

    @property
    def width(self) -> int:
        return self._image.size[0]

    @property
    def height(self) -> int:
        return self._image.size[1]

    @property
    def mode(self) -> str:
        return self._image.mode

    @property
    def supports_decode_shrink(self) -> bool:
        return self.format in DRAFT_FORMATS

    def apply_decode_shrink(self, shrink: int) -> int:
        """
        Ask the decoder to shrink while decoding.

        Args:
            shrink: Requested factor (1, 2, 4 or 8)

        Returns:
            The factor actually applied
        """
        if shrink <= 1 or not self.supports_decode_shrink or self._loaded:
            return 1

        width, height = self.full_size
        requested = (max(1, width // shrink), max(1, height // shrink))
        with stage_errors('decode'):
            self._image.draft(self._image.mode, requested)

        self.decode_shrink = max(1, round(width / self.width))
        self.logger.debug(
            f"Loading {self.format} with factor {self.decode_shrink} pre-shrink "
            f"({width}x{height} -> {self.width}x{self.height})"
        )
        return self.decode_shrink

    def region(self, x0: int, y0: int, x1: int, y1: int) -> Image.Image:
        """Rows as a Pillow image in the source mode."""
        with self._lock:
            if self._closed:
                raise DecodeFailure("source already closed", stage='decode', source=self.path)
            if y0 < self._last_top:
                raise SequentialReadError(
                    f"out of order read at line {y0} (already at {self._last_top})",
                    stage='decode',
                    source=self.path,
                )
            self._last_top = y0

            with stage_errors('decode'):
                if not self._loaded:
                    self._image.load()
                    self._loaded = True
                return self._image.crop((x0, y0, x1, y1))

    def handle(self) -> ImageHandle:
        """Handle for the decoded raster."""
        mode = self.mode
        has_alpha = mode in ('RGBA', 'LA', 'PA') or (
            mode == 'P' and 'transparency' in self._image.info
        )
        return ImageHandle(
            width=self.width,
            height=self.height,
            bands=len(self._image.getbands()),
            band_format=band_format_for_mode(mode),
            coding=Coding.PACKED if mode in PACKED_MODES else Coding.NONE,
            interpretation=Interpretation.DEVICE,
            node=self,
            mode=mode,
            has_alpha=has_alpha,
            orientation=self.orientation,
            icc_profile=self.icc_profile,
            exif=self.exif,
        )

    def close(self) -> None:
        """Release the decoder and the decoded pixels."""
        with self._lock:
            if not self._closed:
                self._closed = True
                self._image.close()

    def __enter__(self) -> 'SourceImage':
        return self

    def __exit__(self, *exc) -> None:
        self.close()
