"""
Pytest fixtures for cuticle tests.
"""

import struct

import numpy as np
import pytest
from PIL import Image


def gradient(width, height):
    """RGB test pattern: red ramps across, green ramps down, blue constant."""
    x = np.linspace(0, 255, width, dtype=np.float32)
    y = np.linspace(0, 255, height, dtype=np.float32)
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[..., 0] = x[np.newaxis, :]
    pixels[..., 1] = y[:, np.newaxis]
    pixels[..., 2] = 96
    return Image.fromarray(pixels)


D50 = (0.9642, 1.0, 0.8249)


def s15(value):
    return struct.pack('>i', int(round(value * 65536)))


def desc_tag(text):
    encoded = text.encode('ascii') + b'\0'
    return (b'desc' + bytes(4) + struct.pack('>I', len(encoded)) + encoded
            + struct.pack('>IIHB', 0, 0, 0, 0) + bytes(67))


def xyz_tag(xyz):
    return b'XYZ ' + bytes(4) + b''.join(s15(v) for v in xyz)


def lut16_tag(inputs, outputs, clut, input_table=(0, 0xFFFF)):
    """lut16Type with a 2-point grid and identity matrix and output tables."""
    matrix = b''.join(s15(v) for v in (1, 0, 0, 0, 1, 0, 0, 0, 1))
    data = b'mft2' + bytes(4) + struct.pack('>BBBB', inputs, outputs, 2, 0) + matrix
    data += struct.pack('>HH', len(input_table), 2)
    data += struct.pack(f'>{inputs * len(input_table)}H', *(input_table * inputs))
    data += struct.pack(f'>{len(clut)}H', *clut)
    data += struct.pack(f'>{outputs * 2}H', *((0, 0xFFFF) * outputs))
    return data


def build_icc(device_class, colour_space, tags):
    """Assemble a version 2 ICC profile from (signature, data) pairs."""
    table_size = 4 + 12 * len(tags)
    offset = 128 + table_size
    table, body = b'', b''
    for signature, data in tags:
        table += signature + struct.pack('>II', offset + len(body), len(data))
        body += data + bytes(-len(data) % 4)
    size = offset + len(body)

    header = struct.pack('>I', size) + bytes(4) + struct.pack('>I', 0x02100000)
    header += device_class + colour_space + b'XYZ '
    header += struct.pack('>6H', 2024, 1, 1, 0, 0, 0) + b'acsp'
    header += bytes(68 - len(header)) + b''.join(s15(v) for v in D50)
    header += bytes(128 - len(header))
    return header + struct.pack('>I', len(tags)) + table + body


def gray_profile_bytes():
    """Gray display profile with a 2.2 gamma curve."""
    curve = b'curv' + bytes(4) + struct.pack('>IH', 1, 563)
    return build_icc(b'mntr', b'GRAY', [
        (b'desc', desc_tag('Test Gray 2.2')),
        (b'wtpt', xyz_tag(D50)),
        (b'kTRC', curve),
    ])


def cmyk_profile_bytes():
    """
    CMYK printer profile where ink darkens multiplicatively toward black.

    Only the no-ink node of the A2B0 grid is white, so CMYK 0,0,0,0 is D50
    white and any full ink is black. B2A0 maps luminance to K alone.
    """
    white = [int(round(v * 32768)) for v in D50]
    a2b0 = []
    for node in range(16):
        a2b0.extend(white if node == 0 else (0, 0, 0))
    b2a0 = []
    for node in range(8):
        y_index = (node >> 1) & 1
        b2a0.extend((0, 0, 0, 0 if y_index else 0xFFFF))
    return build_icc(b'prtr', b'CMYK', [
        (b'desc', desc_tag('Test CMYK')),
        (b'wtpt', xyz_tag(D50)),
        (b'A2B0', lut16_tag(4, 3, a2b0)),
        (b'B2A0', lut16_tag(3, 4, b2a0, input_table=(0, 0xFFFF, 0xFFFF))),
    ])


@pytest.fixture
def make_image(tmp_path):
    """Factory writing a test image into tmp_path and returning its path."""
    def _make(name, size=(400, 300), mode='RGB', color=None, **save_kwargs):
        if color is None and mode == 'RGB':
            image = gradient(*size)
        else:
            image = Image.new(mode, size, color if color is not None else 0)
        path = tmp_path / name
        image.save(str(path), **save_kwargs)
        return str(path)
    return _make


@pytest.fixture
def jpeg_path(make_image):
    """Fixture providing a 400x300 JPEG."""
    return make_image('photo.jpg', quality=95)


@pytest.fixture
def png_path(make_image):
    """Fixture providing a 400x300 PNG."""
    return make_image('photo.png')


@pytest.fixture
def small_png_path(make_image):
    """Fixture providing a 50x40 PNG, smaller than the default thumbnail."""
    return make_image('small.png', size=(50, 40))


@pytest.fixture
def rgba_png_path(make_image):
    """Fixture providing a half-transparent RGBA PNG."""
    return make_image('alpha.png', size=(120, 80), mode='RGBA', color=(255, 0, 0, 128))


@pytest.fixture
def rotated_jpeg_path(make_image):
    """Fixture providing a 300x200 JPEG tagged orientation 6 (rotate 90 CW)."""
    exif = Image.Exif()
    exif[0x0112] = 6
    return make_image('rotated.jpg', size=(300, 200), exif=exif.tobytes())


@pytest.fixture
def srgb_icc():
    """Fixture providing sRGB ICC profile bytes."""
    from PIL import ImageCms
    return ImageCms.ImageCmsProfile(ImageCms.createProfile('sRGB')).tobytes()


@pytest.fixture
def config():
    """Fixture providing a small-tile config so tests exercise many tiles."""
    from cuticle.config import PipelineConfig
    return PipelineConfig(workers=4, tile_size=16, strip_height=4, quality=90)


@pytest.fixture
def logger():
    """Fixture providing a logger."""
    import logging
    return logging.getLogger('test')


@pytest.fixture
def gray_icc():
    """Fixture providing GRAY ICC profile bytes."""
    return gray_profile_bytes()


@pytest.fixture
def cmyk_icc():
    """Fixture providing CMYK ICC profile bytes."""
    return cmyk_profile_bytes()
