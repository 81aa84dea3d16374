"""
ThumbnailRequest - Immutable per-call thumbnail options.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from PIL import Image

from .errors import InvalidRequest


class ResizeConstraint(Enum):
    """How the target box constrains the resize."""
    ONLY_SHRINK_LARGER = '>'
    FILL_AREA = '^'


class Interpolator(Enum):
    """
    Resampling kernels for the residual resize.

    The value is the name accepted on the command line.
    """
    NEAREST = 'nearest'
    BOX = 'box'
    BILINEAR = 'bilinear'
    HAMMING = 'hamming'
    BICUBIC = 'bicubic'
    LANCZOS = 'lanczos'

    @classmethod
    def from_name(cls, name: str) -> 'Interpolator':
        """Look up a kernel by name; unknown names are an InvalidRequest."""
        key = name.strip().lower()
        key = _INTERPOLATOR_ALIASES.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        raise InvalidRequest(f"unknown interpolator '{name}'", stage='request')

    @property
    def resample(self) -> Image.Resampling:
        """Pillow resampling filter for this kernel."""
        return _RESAMPLE[self]

    @property
    def support(self) -> float:
        """Kernel radius in source pixels at unit scale."""
        return _SUPPORT[self]


_INTERPOLATOR_ALIASES = {
    'nohalo': 'lanczos',
    'lanczos2': 'lanczos',
    'lanczos3': 'lanczos',
    'lbb': 'bicubic',
    'vsqbs': 'bilinear',
    'linear': 'bilinear',
    'cubic': 'bicubic',
}

_RESAMPLE = {
    Interpolator.NEAREST: Image.Resampling.NEAREST,
    Interpolator.BOX: Image.Resampling.BOX,
    Interpolator.BILINEAR: Image.Resampling.BILINEAR,
    Interpolator.HAMMING: Image.Resampling.HAMMING,
    Interpolator.BICUBIC: Image.Resampling.BICUBIC,
    Interpolator.LANCZOS: Image.Resampling.LANCZOS,
}

_SUPPORT = {
    Interpolator.NEAREST: 0.5,
    Interpolator.BOX: 0.5,
    Interpolator.BILINEAR: 1.0,
    Interpolator.HAMMING: 1.0,
    Interpolator.BICUBIC: 2.0,
    Interpolator.LANCZOS: 3.0,
}


@dataclass(frozen=True)
class SharpenMask:
    """
    Sharpen mask selection.

    Attributes:
        kind: 'none', 'mild' or 'custom'
        path: Matrix file for 'custom' masks
    """
    kind: str = 'mild'
    path: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> 'SharpenMask':
        """Parse none|mild|MASKFILE."""
        if value == 'none':
            return cls(kind='none')
        if value == 'mild':
            return cls(kind='mild')
        return cls(kind='custom', path=value)

    @property
    def is_active(self) -> bool:
        return self.kind != 'none'


@dataclass(frozen=True)
class ThumbnailRequest:
    """
    Options for one thumbnail generation.

    Attributes:
        width: Target width in pixels
        height: Target height in pixels (defaults to width)
        constraint: ONLY_SHRINK_LARGER leaves small images alone,
            FILL_AREA always resizes to the box
        crop: Crop exactly to width x height
        rotate: Auto-rotate from the orientation metadata
        linear: Resample in linear light
        sharpen: Sharpen mask to apply after a shrink
        interpolator: Kernel for the residual resize
        import_profile: Profile for untagged images
        export_profile: Profile to export to
        delete_profile: Remove the profile from the output
        output_template: Destination path; a '%s' is replaced by the
            source basename, a template without one is a literal path
        context: Tag used on log lines
    """
    width: Optional[int] = 128
    height: Optional[int] = None
    constraint: ResizeConstraint = ResizeConstraint.ONLY_SHRINK_LARGER
    crop: bool = False
    rotate: bool = False
    linear: bool = False
    sharpen: SharpenMask = field(default_factory=SharpenMask)
    interpolator: Interpolator = Interpolator.BILINEAR
    import_profile: Optional[str] = None
    export_profile: Optional[str] = None
    delete_profile: bool = False
    output_template: str = 'tn_%s.jpg'
    context: str = 'cuticle'

    def __post_init__(self):
        if self.height is None and self.width is not None:
            object.__setattr__(self, 'height', self.width)
        elif self.width is None and self.height is not None:
            object.__setattr__(self, 'width', self.height)

    def validate(self) -> None:
        """Raise InvalidRequest if the request cannot be processed."""
        if self.width is None and self.height is None:
            raise InvalidRequest("thumbnail width and height are both unset", stage='request')
        if self.width <= 0 or self.height <= 0:
            raise InvalidRequest(
                f"thumbnail size must be positive, got {self.width}x{self.height}",
                stage='request'
            )
        if not self.output_template or self.output_template.count('%s') > 1:
            raise InvalidRequest(
                f"output template must contain at most one '%s': {self.output_template!r}",
                stage='request'
            )

    @classmethod
    def from_size(cls, size: str, **kwargs) -> 'ThumbnailRequest':
        """Build a request from a WIDTH[xHEIGHT][^] size string."""
        width, height, constraint = parse_size(size)
        return cls(width=width, height=height, constraint=constraint, **kwargs)


SIZE_PATTERN = re.compile(r'^(\d+)(x(\d+))?(.)?$')


def parse_size(text: str) -> Tuple[int, int, ResizeConstraint]:
    """
    Parse a thumbnail size string.

    '128' -> (128, 128, ONLY_SHRINK_LARGER), '200x100^' -> (200, 100, FILL_AREA).
    Any trailing character other than '^' keeps ONLY_SHRINK_LARGER.

    Raises:
        InvalidRequest: If the string does not match WIDTH[xHEIGHT][c]
    """
    match = SIZE_PATTERN.match(text)
    if not match:
        raise InvalidRequest(f"unable to parse thumbnail size '{text}'", stage='request')

    width = int(match.group(1))
    height = int(match.group(3)) if match.group(3) else width
    constraint = ResizeConstraint.ONLY_SHRINK_LARGER
    if match.group(4) == '^':
        constraint = ResizeConstraint.FILL_AREA

    return width, height, constraint
