"""
Colour helpers: sRGB transfer functions, XYZ conversion and ICC transforms.

Float rasters are (height, width, bands) float32 arrays with colour values
in 0..1 and any alpha band last.
"""

import io
import threading
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageCms

from .errors import ColourTransformFailure

# D65 sRGB primaries
SRGB_TO_XYZ = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
], dtype=np.float32)

XYZ_TO_SRGB = np.linalg.inv(SRGB_TO_XYZ).astype(np.float32)

# Pillow mode for each ICC colour space signature
PROFILE_MODES = {
    'RGB': 'RGB',
    'GRAY': 'L',
    'CMYK': 'CMYK',
    'LAB': 'LAB',
}


def srgb_to_linear(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.float32)
    return np.where(
        values <= 0.04045,
        values / 12.92,
        ((np.maximum(values, 0.04045) + 0.055) / 1.055) ** 2.4,
    ).astype(np.float32)


def linear_to_srgb(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.float32)
    return np.where(
        values <= 0.0031308,
        values * 12.92,
        1.055 * np.power(np.maximum(values, 0.0031308), 1 / 2.4) - 0.055,
    ).astype(np.float32)


def _split_alpha(array: np.ndarray, has_alpha: bool):
    if has_alpha:
        return array[..., :-1], array[..., -1:]
    return array, None


def _join_alpha(colour: np.ndarray, alpha: Optional[np.ndarray]) -> np.ndarray:
    if alpha is None:
        return colour
    return np.concatenate([colour, alpha], axis=-1)


def srgb_to_xyz(array: np.ndarray, has_alpha: bool = False) -> np.ndarray:
    """Gamma-encoded sRGB floats to linear XYZ."""
    colour, alpha = _split_alpha(array, has_alpha)
    xyz = srgb_to_linear(colour) @ SRGB_TO_XYZ.T
    return _join_alpha(xyz.astype(np.float32), alpha)


def xyz_to_srgb(array: np.ndarray, has_alpha: bool = False) -> np.ndarray:
    """Linear XYZ floats to gamma-encoded sRGB."""
    colour, alpha = _split_alpha(array, has_alpha)
    rgb = linear_to_srgb(colour @ XYZ_TO_SRGB.T)
    return _join_alpha(rgb, alpha)


def to_uint8(array: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(array * 255.0), 0, 255).astype(np.uint8)


ProfileSource = Union[str, bytes]


def load_profile(source: ProfileSource) -> ImageCms.ImageCmsProfile:
    """
    Open an ICC profile from a file path or from embedded profile bytes.

    Raises:
        ColourTransformFailure: If the profile is missing or invalid
    """
    try:
        if isinstance(source, bytes):
            return ImageCms.ImageCmsProfile(io.BytesIO(source))
        return ImageCms.ImageCmsProfile(source)
    except (OSError, ImageCms.PyCMSError, TypeError) as e:
        name = 'embedded profile' if isinstance(source, bytes) else source
        raise ColourTransformFailure(f"unable to load {name}: {e}", stage='profile') from e


def srgb_profile() -> ImageCms.ImageCmsProfile:
    return ImageCms.ImageCmsProfile(ImageCms.createProfile('sRGB'))


def profile_colour_space(profile: ImageCms.ImageCmsProfile) -> str:
    """ICC colour space signature, e.g. 'RGB', 'GRAY' or 'CMYK'."""
    return profile.profile.xcolor_space.strip()


# Pillow mode of the device pixels a profile can be applied to
DEVICE_MODES = {
    'RGB': 'RGB',
    'GRAY': 'L',
    'CMYK': 'CMYK',
}


def device_mode_for(mode: str) -> str:
    """Device mode a Pillow mode belongs to: 'L', 'CMYK' or 'RGB'."""
    if mode == 'CMYK':
        return 'CMYK'
    if mode in ('L', 'LA') or mode.startswith('I'):
        return 'L'
    return 'RGB'


def device_mode(profile: ImageCms.ImageCmsProfile) -> str:
    """Mode to feed a transform built on this profile; RGB for other spaces."""
    return DEVICE_MODES.get(profile_colour_space(profile), 'RGB')


def profile_mode(profile: ImageCms.ImageCmsProfile) -> str:
    """Pillow mode matching the profile's device space."""
    space = profile_colour_space(profile)
    try:
        return PROFILE_MODES[space]
    except KeyError:
        raise ColourTransformFailure(
            f"unsupported profile colour space '{space}'", stage='profile'
        ) from None


def profile_bytes(profile: ImageCms.ImageCmsProfile) -> bytes:
    return profile.tobytes()


class IccTransform:
    """
    A built ICC transform between two profiles.

    Transforms run on 8-bit data; float rasters are quantized on the way in.
    Sources with 16-bit samples are scaled to 8 bits before they go through
    their profile (see stages.to_eight_bit), so linear processing of a
    tagged 16-bit source carries only 8 bits of precision, which shows in
    deep shadows. Untagged 16-bit sources keep full precision.
    """

    def __init__(
        self,
        input_profile: ImageCms.ImageCmsProfile,
        output_profile: ImageCms.ImageCmsProfile,
        input_mode: str = 'RGB',
        output_mode: Optional[str] = None
    ):
        self.input_mode = input_mode
        self.output_mode = output_mode or profile_mode(output_profile)
        self.output_profile = output_profile
        self._lock = threading.Lock()
        try:
            self._transform = ImageCms.buildTransform(
                input_profile,
                output_profile,
                input_mode,
                self.output_mode,
            )
        except ImageCms.PyCMSError as e:
            raise ColourTransformFailure(f"unable to build transform: {e}", stage='profile') from e

    @property
    def output_bands(self) -> int:
        return len(Image.new(self.output_mode, (1, 1)).getbands())

    def apply(self, image: Image.Image) -> Image.Image:
        """Transform a Pillow image in the input mode."""
        try:
            with self._lock:
                return ImageCms.applyTransform(image, self._transform)
        except ImageCms.PyCMSError as e:
            raise ColourTransformFailure(f"transform failed: {e}", stage='profile') from e

    def apply_float(self, array: np.ndarray, has_alpha: bool = False) -> np.ndarray:
        """
        Transform a float raster, carrying alpha across unchanged.

        Pixels are converted to the input mode first, so RGB floats can feed
        a transform built on a GRAY or CMYK profile.
        """
        colour, alpha = _split_alpha(array, has_alpha)
        data = to_uint8(colour)
        if data.shape[-1] == 1:
            data = data[..., 0]
        image = Image.fromarray(np.ascontiguousarray(data))
        if image.mode != self.input_mode:
            image = image.convert(self.input_mode)
        result = np.asarray(self.apply(image), dtype=np.float32) / 255.0
        if result.ndim == 2:
            result = result[..., np.newaxis]
        return _join_alpha(result, alpha)
