"""
Sharpen masks.

Some interpolators look a little soft, so thumbnails get an optional
convolution afterwards. Custom masks use the matrix file format:

    width height [scale [offset]]
    c c c ...
    ...
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import SharpenMaskLoadFailure
from .request import SharpenMask


@dataclass(frozen=True)
class ConvolutionMask:
    """
    An integer or float convolution matrix.

    Attributes:
        coefficients: (height, width) matrix
        scale: Divisor applied to the weighted sum
        offset: Added after scaling
    """
    coefficients: np.ndarray
    scale: float = 1.0
    offset: float = 0.0

    @property
    def width(self) -> int:
        return self.coefficients.shape[1]

    @property
    def height(self) -> int:
        return self.coefficients.shape[0]

    @property
    def margin(self) -> int:
        """Pixels needed around a region on each side."""
        return max(self.width, self.height) // 2

    def convolve(self, padded: np.ndarray, height: int, width: int) -> np.ndarray:
        """
        Convolve a padded (height + 2m, width + 2m, bands) float block.

        Returns:
            (height, width, bands) result
        """
        m = self.margin
        top = m - self.height // 2
        left = m - self.width // 2
        out = np.zeros((height, width, padded.shape[2]), dtype=np.float32)
        for j in range(self.height):
            for i in range(self.width):
                c = self.coefficients[j, i]
                if c:
                    out += c * padded[top + j:top + j + height, left + i:left + i + width]
        return out / self.scale + self.offset


MILD = ConvolutionMask(
    coefficients=np.array([
        [-1.0, -1.0, -1.0],
        [-1.0, 32.0, -1.0],
        [-1.0, -1.0, -1.0],
    ], dtype=np.float32),
    scale=24.0,
)


def parse_matrix(text: str, name: str = '<mask>') -> ConvolutionMask:
    """
    Parse a matrix file.

    Raises:
        SharpenMaskLoadFailure: If the text is not a valid matrix
    """
    lines = [line.split() for line in text.splitlines() if line.strip()]
    if not lines:
        raise SharpenMaskLoadFailure(f"{name}: empty mask file", stage='sharpen')

    header = lines[0]
    try:
        width, height = int(header[0]), int(header[1])
        scale = float(header[2]) if len(header) > 2 else 1.0
        offset = float(header[3]) if len(header) > 3 else 0.0
        rows = [[float(v) for v in row] for row in lines[1:]]
    except (IndexError, ValueError) as e:
        raise SharpenMaskLoadFailure(f"{name}: bad mask: {e}", stage='sharpen') from e

    if width < 1 or height < 1:
        raise SharpenMaskLoadFailure(f"{name}: bad mask size {width}x{height}", stage='sharpen')
    if len(rows) != height or any(len(row) != width for row in rows):
        raise SharpenMaskLoadFailure(
            f"{name}: expected {height} rows of {width} coefficients", stage='sharpen'
        )
    if scale == 0:
        raise SharpenMaskLoadFailure(f"{name}: mask scale is zero", stage='sharpen')

    return ConvolutionMask(
        coefficients=np.array(rows, dtype=np.float32),
        scale=scale,
        offset=offset,
    )


def load_mask(mask: SharpenMask) -> Optional[ConvolutionMask]:
    """
    Resolve a mask selection.

    Returns:
        The mask, or None for 'none'
    """
    if mask.kind == 'none':
        return None
    if mask.kind == 'mild':
        return MILD

    try:
        with open(mask.path, 'r') as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise SharpenMaskLoadFailure(f"unable to load sharpen mask: {e}", stage='sharpen') from e

    return parse_matrix(text, mask.path)
