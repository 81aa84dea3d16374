"""
Crop and rotate.
"""

import numpy as np

from .errors import InvalidRequest
from .image import ArrayNode, ImageHandle
from .stages import CropNode

# np.rot90 turns anticlockwise; these give clockwise turns
_ROT90_TURNS = {
    0: 0,
    90: 3,
    180: 2,
    270: 1,
}


def crop(handle: ImageHandle, target_width: int, target_height: int) -> ImageHandle:
    """
    Centre-crop to exactly target_width x target_height.

    The crop is lazy: only the kept area is ever computed.

    Raises:
        InvalidRequest: If the image is smaller than the target
    """
    if handle.width < target_width or handle.height < target_height:
        raise InvalidRequest(
            f"cannot crop {handle.width}x{handle.height} to {target_width}x{target_height}",
            stage='crop',
        )

    left = (handle.width - target_width) // 2
    top = (handle.height - target_height) // 2

    return handle.derive(
        node=CropNode(handle.node, left, top),
        width=target_width,
        height=target_height,
    )


def rotate(handle: ImageHandle, angle: int) -> ImageHandle:
    """
    Rotate an evaluated handle clockwise and drop its orientation metadata.

    Args:
        handle: Handle over in-memory pixels
        angle: 0, 90, 180 or 270
    """
    if angle not in _ROT90_TURNS:
        raise InvalidRequest(f"unsupported rotation {angle}", stage='rotate')

    pixels = handle.region(0, 0, handle.width, handle.height)
    turns = _ROT90_TURNS[angle]
    if turns:
        pixels = np.ascontiguousarray(np.rot90(pixels, k=turns, axes=(0, 1)))

    width, height = handle.width, handle.height
    if angle in (90, 270):
        width, height = height, width

    return handle.derive(
        node=ArrayNode(pixels),
        width=width,
        height=height,
        orientation=None,
    )
