"""
Writer - Saves an evaluated thumbnail.
"""

import logging
import os
import tempfile
from typing import Optional

from PIL import Image

from .colour import device_mode_for, to_uint8
from .errors import WriteFailure
from .image import ImageHandle
from .orientation import ORIENTATION_TAG

ALPHA_FORMATS = {'PNG', 'WEBP', 'TIFF', 'GIF'}
CMYK_FORMATS = {'JPEG', 'TIFF'}
METADATA_FORMATS = {'JPEG', 'PNG', 'WEBP', 'TIFF'}


def output_format(path: str) -> str:
    """Pillow format name for a destination, from its extension."""
    ext = os.path.splitext(path)[1].lower()
    fmt = Image.registered_extensions().get(ext)
    if fmt is None:
        raise WriteFailure(f"no writer for '{ext or path}'", stage='write')
    return fmt


def to_pillow(handle: ImageHandle) -> Image.Image:
    """Quantize an evaluated float handle to an 8-bit Pillow image."""
    data = to_uint8(handle.region(0, 0, handle.width, handle.height))
    colour_bands = handle.colour_bands

    if colour_bands == 1:
        image = Image.fromarray(data[..., 0].copy())
    elif colour_bands == 3:
        image = Image.fromarray(data[..., :3].copy())
    elif colour_bands == 4:
        image = Image.frombytes('CMYK', (handle.width, handle.height), data[..., :4].tobytes())
    else:
        raise WriteFailure(f"cannot write a {colour_bands}-band image", stage='write')

    if handle.has_alpha and image.mode in ('RGB', 'L'):
        image.putalpha(Image.fromarray(data[..., -1].copy()))
    return image


def _convert_color_mode(image: Image.Image, fmt: str) -> Image.Image:
    """Convert to a mode the output format can store."""
    if image.mode == 'CMYK' and fmt not in CMYK_FORMATS:
        return image.convert('RGB')
    if image.mode in ('RGBA', 'LA') and fmt not in ALPHA_FORMATS:
        colour_mode = image.mode[:-1]
        background = Image.new(colour_mode, image.size, 255 if colour_mode == 'L' else (255, 255, 255))
        background.paste(image.convert(colour_mode), mask=image.getchannel('A'))
        return background
    return image


def _exif_bytes(handle: ImageHandle) -> Optional[bytes]:
    """Source EXIF, minus the orientation tag once the image has been rotated."""
    if not handle.exif:
        return None
    if handle.orientation is not None:
        return handle.exif

    exif = Image.Exif()
    exif.load(handle.exif)
    exif.pop(ORIENTATION_TAG, None)
    return exif.tobytes()


def write_image(
    handle: ImageHandle,
    path: str,
    quality: int = 85,
    logger: Optional[logging.Logger] = None
) -> int:
    """
    Write an evaluated handle to path.

    The file is written next to its destination under a temporary name and
    renamed into place, so a failed write leaves nothing behind.

    Returns:
        Size of the written file in bytes

    Raises:
        WriteFailure: If the destination cannot be written
    """
    logger = logger or logging.getLogger(__name__)
    fmt = output_format(path)
    pixels = to_pillow(handle)
    image = _convert_color_mode(pixels, fmt)

    icc_profile = handle.icc_profile
    if icc_profile and device_mode_for(image.mode) != device_mode_for(pixels.mode):
        logger.warning(f"Dropping {pixels.mode} profile: {fmt} is written as {image.mode}")
        icc_profile = None

    save_kwargs = {}
    if fmt == 'JPEG':
        save_kwargs.update({'quality': quality, 'optimize': True})
    elif fmt == 'PNG':
        save_kwargs['optimize'] = True
    if fmt in METADATA_FORMATS:
        if icc_profile:
            save_kwargs['icc_profile'] = icc_profile
        try:
            exif = _exif_bytes(handle)
        except (OSError, ValueError, SyntaxError) as e:
            logger.warning(f"Dropping unreadable EXIF: {e}")
            exif = None
        if exif:
            save_kwargs['exif'] = exif

    directory = os.path.dirname(os.path.abspath(path))
    ext = os.path.splitext(path)[1]
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix='.cuticle-', suffix=ext, dir=directory)
        os.close(fd)
        image.save(tmp_path, format=fmt, **save_kwargs)
        os.replace(tmp_path, path)
        tmp_path = None
    except (OSError, ValueError) as e:
        raise WriteFailure(f"unable to write {path}: {e}", stage='write') from e
    finally:
        if tmp_path and os.path.exists(tmp_path):
            os.remove(tmp_path)

    size = os.path.getsize(path)
    logger.debug(f"Wrote {path} ({size} bytes)")
    return size
