"""
Shrink planning.

We shrink in two steps: a block-average shrink by an integer factor, which is
cheap and alias-resistant, then a residual resize with an interpolator to hit
the exact size.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from .request import Interpolator, ResizeConstraint, SharpenMask


@dataclass(frozen=True)
class ShrinkPlan:
    """
    How to get from the source size to the thumbnail size.

    Attributes:
        integer_shrink: Block shrink factor, always >= 1
        residual_scale: Scale applied after the block shrink (> 1 zooms)
        is_upscale: True when the source is smaller than the target
        output_width: Width after resampling
        output_height: Height after resampling
    """
    integer_shrink: int
    residual_scale: float
    is_upscale: bool
    output_width: int
    output_height: int

    @property
    def is_identity(self) -> bool:
        """True when the output is the source size and no resampling is needed."""
        return self.integer_shrink == 1 and self.residual_scale == 1.0 and not self.is_upscale

    def interpolator_for(self, configured: Interpolator) -> Interpolator:
        """Zooming with a smooth kernel looks fuzzy, so zooms use nearest."""
        if self.residual_scale > 1.0:
            return Interpolator.NEAREST
        return configured

    def should_sharpen(self, mask: SharpenMask) -> bool:
        """Sharpen only with an active mask and never after a zoom."""
        return mask.is_active and not self.is_upscale

    def swapped(self) -> 'ShrinkPlan':
        """The same plan with the output axes exchanged."""
        return ShrinkPlan(
            integer_shrink=self.integer_shrink,
            residual_scale=self.residual_scale,
            is_upscale=self.is_upscale,
            output_width=self.output_height,
            output_height=self.output_width,
        )


def oriented_size(width: int, height: int, angle: int, rotate: bool) -> Tuple[int, int]:
    """Size as seen after auto-rotation; 90 and 270 degrees swap the axes."""
    if rotate and angle in (90, 270):
        return height, width
    return width, height


def calculate_shrink(
    width: int,
    height: int,
    target_width: int,
    target_height: int,
    constraint: ResizeConstraint = ResizeConstraint.ONLY_SHRINK_LARGER,
    crop: bool = False
) -> ShrinkPlan:
    """
    Work out the shrink plan for a source.

    Args:
        width: Source width (already swapped for rotation)
        height: Source height (already swapped for rotation)
        target_width: Thumbnail width
        target_height: Thumbnail height
        constraint: Resize constraint mode
        crop: If True we fill the box and crop the excess, so the smaller
            axis factor wins; otherwise we fit inside and the larger wins

    Returns:
        ShrinkPlan
    """
    if (constraint == ResizeConstraint.ONLY_SHRINK_LARGER
            and width <= target_width and height <= target_height):
        target_width, target_height = width, height

    horizontal = width / target_width
    vertical = height / target_height
    factor = min(horizontal, vertical) if crop else max(horizontal, vertical)

    if factor < 1.0:
        shrink = 1
        residual = 1.0 / factor
        is_upscale = True
    else:
        shrink = max(1, int(math.floor(factor)))
        is_upscale = False

        # The two axes truncate differently, so measure both.
        shrunk_width = max(1, width // shrink)
        shrunk_height = max(1, height // shrink)
        hresidual = (width / factor) / shrunk_width
        vresidual = (height / factor) / shrunk_height
        residual = max(hresidual, vresidual)

    output_width = int(round(max(1, width // shrink) * residual))
    output_height = int(round(max(1, height // shrink) * residual))

    if crop:
        output_width = max(output_width, target_width)
        output_height = max(output_height, target_height)
    else:
        output_width = max(1, min(output_width, target_width))
        output_height = max(1, min(output_height, target_height))

    return ShrinkPlan(
        integer_shrink=shrink,
        residual_scale=residual,
        is_upscale=is_upscale,
        output_width=output_width,
        output_height=output_height,
    )
