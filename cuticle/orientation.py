"""
Orientation metadata.

Only the pure rotations are handled. The mirrored EXIF codes (2, 4, 5, 7)
rotate and flip; they are left alone and read as 0 degrees.
"""

from typing import Optional

from PIL import Image

ORIENTATION_TAG = 0x0112

_ANGLES = (
    ('6', 90),
    ('8', 270),
    ('3', 180),
)


def angle_from_orientation(orientation: Optional[str]) -> int:
    """
    Map an orientation value to a clockwise rotation in degrees.

    Args:
        orientation: Orientation value as a string, e.g. '6' or '6 (Rotate 90 CW)'

    Returns:
        0, 90, 180 or 270
    """
    if orientation is None:
        return 0
    for prefix, angle in _ANGLES:
        if str(orientation).startswith(prefix):
            return angle
    return 0


def read_orientation(image: Image.Image) -> Optional[str]:
    """Orientation tag of an opened image as a string, or None."""
    try:
        value = image.getexif().get(ORIENTATION_TAG)
    except (OSError, ValueError, SyntaxError):
        return None
    if value is None:
        return None
    return str(value)
