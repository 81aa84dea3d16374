"""
Pipeline stages.

Every stage is a lazy Node. Stages up to the working-space conversion hand
Pillow images to each other; from there on regions are float32 numpy arrays
of shape (height, width, bands).
"""

import math
from typing import Callable, Optional

import numpy as np
from PIL import Image

from .colour import IccTransform, srgb_to_xyz
from .errors import ColourTransformFailure, DecodeFailure, stage_errors
from .image import Node
from .request import Interpolator
from .sharpen import ConvolutionMask


def unpacked_mode(mode: str, has_alpha: bool) -> str:
    """Mode a packed (palette or bilevel) image unpacks to."""
    if mode == '1':
        return 'L'
    return 'RGBA' if has_alpha else 'RGB'


def to_eight_bit(image: Image.Image) -> Image.Image:
    """Scale 16- and 32-bit integer images down to 8-bit 'L'."""
    if image.mode.startswith('I;16') or image.mode == 'I':
        values = np.asarray(image, dtype=np.float32) / 257.0
        return Image.fromarray(np.clip(np.rint(values), 0, 255).astype(np.uint8))
    return image


def _split_pillow_alpha(image: Image.Image):
    if image.mode in ('RGBA', 'LA', 'PA'):
        colour_mode = 'L' if image.mode == 'LA' else 'RGB'
        return image.convert(colour_mode), image.getchannel('A')
    return image, None


def pil_to_float(image: Image.Image, device_transform: Optional[IccTransform] = None) -> np.ndarray:
    """
    Convert a Pillow image to sRGB floats in 0..1, alpha last.

    Args:
        image: Image in any Pillow mode
        device_transform: ICC transform to sRGB through the source's own
            GRAY or CMYK profile; without one CMYK is converted naively
    """
    mode = image.mode
    alpha = None

    if mode in ('RGBA', 'LA', 'PA'):
        alpha = np.asarray(image.getchannel('A'), dtype=np.float32)[..., np.newaxis] / 255.0
        image = image.convert('L' if mode == 'LA' else 'RGB')
        mode = image.mode

    if device_transform is not None:
        image = to_eight_bit(image)
        if image.mode != device_transform.input_mode:
            image = image.convert(device_transform.input_mode)
        colour = np.asarray(device_transform.apply(image), dtype=np.float32) / 255.0
    elif mode == 'RGB':
        colour = np.asarray(image, dtype=np.float32) / 255.0
    elif mode == 'L':
        colour = np.asarray(image, dtype=np.float32) / 255.0
    elif mode.startswith('I;16') or mode == 'I':
        colour = np.asarray(image, dtype=np.float32) / 65535.0
    elif mode == 'F':
        colour = np.asarray(image, dtype=np.float32)
    else:
        colour = np.asarray(image.convert('RGB'), dtype=np.float32) / 255.0

    if colour.ndim == 2:
        colour = np.repeat(colour[..., np.newaxis], 3, axis=2)

    if alpha is not None:
        colour = np.concatenate([colour, alpha], axis=2)
    return colour


class UnpackNode(Node):
    """Expand palette and bilevel coding."""

    def __init__(self, upstream: Node, mode: str):
        self.upstream = upstream
        self.mode = mode

    def region(self, x0, y0, x1, y1) -> Image.Image:
        image = self.upstream.region(x0, y0, x1, y1)
        with stage_errors('unpack'):
            return image.convert(self.mode)


class IccImportNode(Node):
    """Import device pixels to sRGB through the source profile."""

    def __init__(self, upstream: Node, transform: IccTransform):
        self.upstream = upstream
        self.transform = transform

    def region(self, x0, y0, x1, y1) -> Image.Image:
        image = to_eight_bit(self.upstream.region(x0, y0, x1, y1))
        with stage_errors('import', ColourTransformFailure):
            colour, alpha = _split_pillow_alpha(image)
            if colour.mode != self.transform.input_mode:
                colour = colour.convert(self.transform.input_mode)
            result = self.transform.apply(colour)
            if alpha is not None:
                result = result.convert('RGB')
                result.putalpha(alpha)
            return result


class ColourspaceNode(Node):
    """Convert to the processing space: sRGB floats, or linear XYZ floats."""

    def __init__(
        self,
        upstream: Node,
        linear: bool,
        has_alpha: bool,
        device_transform: Optional[IccTransform] = None
    ):
        self.upstream = upstream
        self.linear = linear
        self.has_alpha = has_alpha
        self.device_transform = device_transform

    def region(self, x0, y0, x1, y1) -> np.ndarray:
        image = self.upstream.region(x0, y0, x1, y1)
        with stage_errors('colourspace', ColourTransformFailure):
            array = pil_to_float(image, self.device_transform)
            if self.linear:
                array = srgb_to_xyz(array, self.has_alpha)
            return array


class ShrinkNode(Node):
    """Block-average shrink by an integer factor."""

    def __init__(self, upstream: Node, shrink: int, width: int, height: int):
        self.upstream = upstream
        self.xshrink = min(shrink, width)
        self.yshrink = min(shrink, height)
        self.width = width // self.xshrink
        self.height = height // self.yshrink

    def region(self, x0, y0, x1, y1) -> np.ndarray:
        kx, ky = self.xshrink, self.yshrink
        block = self.upstream.region(x0 * kx, y0 * ky, x1 * kx, y1 * ky)
        h, w, bands = y1 - y0, x1 - x0, block.shape[2]
        return block.reshape(h, ky, w, kx, bands).mean(axis=(1, 3), dtype=np.float32)


class AffineNode(Node):
    """
    Residual resize with an interpolator.

    Each output region is computed from just the input rows and columns its
    kernel touches, so tiles can be rendered independently.
    """

    def __init__(
        self,
        upstream: Node,
        in_width: int,
        in_height: int,
        out_width: int,
        out_height: int,
        interpolator: Interpolator
    ):
        self.upstream = upstream
        self.in_width = in_width
        self.in_height = in_height
        self.out_width = out_width
        self.out_height = out_height
        self.interpolator = interpolator

    @property
    def xscale(self) -> float:
        """Input pixels per output pixel across."""
        return self.in_width / self.out_width

    @property
    def yscale(self) -> float:
        return self.in_height / self.out_height

    def input_rows(self, y0: int, y1: int):
        """Input row span needed for output rows [y0, y1)."""
        top = y0 * self.in_height / self.out_height
        bottom = min(self.in_height, y1 * self.in_height / self.out_height)
        margin = self.interpolator.support * max(self.yscale, 1.0) + 1
        return (
            max(0, int(math.floor(top - margin))),
            min(self.in_height, int(math.ceil(bottom + margin))),
        )

    def input_columns(self, x0: int, x1: int):
        left = x0 * self.in_width / self.out_width
        right = min(self.in_width, x1 * self.in_width / self.out_width)
        margin = self.interpolator.support * max(self.xscale, 1.0) + 1
        return (
            max(0, int(math.floor(left - margin))),
            min(self.in_width, int(math.ceil(right + margin))),
        )

    def region(self, x0, y0, x1, y1) -> np.ndarray:
        ix0, ix1 = self.input_columns(x0, x1)
        iy0, iy1 = self.input_rows(y0, y1)
        source = self.upstream.region(ix0, iy0, ix1, iy1)

        box = (
            x0 * self.in_width / self.out_width - ix0,
            y0 * self.in_height / self.out_height - iy0,
            min(self.in_width, x1 * self.in_width / self.out_width) - ix0,
            min(self.in_height, y1 * self.in_height / self.out_height) - iy0,
        )
        size = (x1 - x0, y1 - y0)

        with stage_errors('affine'):
            bands = []
            for b in range(source.shape[2]):
                band = Image.fromarray(np.ascontiguousarray(source[..., b], dtype=np.float32))
                resized = band.resize(size, self.interpolator.resample, box=box)
                bands.append(np.asarray(resized, dtype=np.float32))
        return np.stack(bands, axis=-1)


class PointNode(Node):
    """Apply a per-pixel function to every region."""

    def __init__(
        self,
        upstream: Node,
        func: Callable[[np.ndarray], np.ndarray],
        stage: str,
        error_cls=ColourTransformFailure
    ):
        self.upstream = upstream
        self.func = func
        self.stage = stage
        self.error_cls = error_cls

    def region(self, x0, y0, x1, y1) -> np.ndarray:
        array = self.upstream.region(x0, y0, x1, y1)
        with stage_errors(self.stage, self.error_cls):
            return self.func(array)


class SharpenNode(Node):
    """Convolve colour bands with a mask; alpha passes through."""

    def __init__(
        self,
        upstream: Node,
        mask: ConvolutionMask,
        width: int,
        height: int,
        has_alpha: bool
    ):
        self.upstream = upstream
        self.mask = mask
        self.width = width
        self.height = height
        self.has_alpha = has_alpha

    def region(self, x0, y0, x1, y1) -> np.ndarray:
        m = self.mask.margin
        ex0, ey0 = max(0, x0 - m), max(0, y0 - m)
        ex1, ey1 = min(self.width, x1 + m), min(self.height, y1 + m)
        source = self.upstream.region(ex0, ey0, ex1, ey1)

        # Replicate edge pixels where the margin runs off the image
        padded = np.pad(
            source,
            (
                (m - (y0 - ey0), m - (ey1 - y1)),
                (m - (x0 - ex0), m - (ex1 - x1)),
                (0, 0),
            ),
            mode='edge',
        )

        h, w = y1 - y0, x1 - x0
        colour_bands = padded.shape[2] - 1 if self.has_alpha else padded.shape[2]
        result = self.mask.convolve(padded[..., :colour_bands], h, w)
        if self.has_alpha:
            alpha = padded[m:m + h, m:m + w, colour_bands:]
            result = np.concatenate([result, alpha], axis=2)
        return result


class CropNode(Node):
    """A window onto an upstream node."""

    def __init__(self, upstream: Node, left: int, top: int):
        self.upstream = upstream
        self.left = left
        self.top = top

    def region(self, x0, y0, x1, y1):
        return self.upstream.region(
            x0 + self.left, y0 + self.top, x1 + self.left, y1 + self.top
        )


def check_region(array: np.ndarray, width: int, height: int) -> np.ndarray:
    """Make sure a rendered region has the expected size."""
    if array.shape[0] != height or array.shape[1] != width:
        raise DecodeFailure(
            f"region is {array.shape[1]}x{array.shape[0]}, expected {width}x{height}",
            stage='evaluate',
        )
    return array
