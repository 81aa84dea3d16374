"""Tests for writing thumbnails."""

import os

import numpy as np
import pytest
from PIL import Image

from cuticle.errors import WriteFailure
from cuticle.image import ArrayNode, Coding, ImageHandle, Interpretation
from cuticle.orientation import ORIENTATION_TAG
from cuticle.writer import output_format, to_pillow, write_image


def float_handle(width=32, height=24, value=0.5, bands=3, has_alpha=False, **kwargs):
    pixels = np.full((height, width, bands), value, dtype=np.float32)
    return ImageHandle(
        width=width,
        height=height,
        bands=bands,
        band_format='float',
        coding=Coding.NONE,
        interpretation=Interpretation.SRGB,
        node=ArrayNode(pixels),
        has_alpha=has_alpha,
        **kwargs
    )


def orientation_exif(value=6):
    exif = Image.Exif()
    exif[ORIENTATION_TAG] = value
    return exif.tobytes()


class TestOutputFormat:
    """Tests for output_format."""

    @pytest.mark.parametrize('path,expected', [
        ('tn_a.jpg', 'JPEG'),
        ('tn_a.JPEG', 'JPEG'),
        ('tn_a.png', 'PNG'),
        ('tn_a.webp', 'WEBP'),
    ])
    def test_from_extension(self, path, expected):
        """Test the format follows the extension."""
        assert output_format(path) == expected

    def test_unknown_extension(self):
        """Test an unknown extension is a WriteFailure."""
        with pytest.raises(WriteFailure) as excinfo:
            output_format('tn_a.xyz')
        assert excinfo.value.stage == 'write'


class TestToPillow:
    """Tests for to_pillow."""

    def test_rgb(self):
        """Test floats are quantized to 8 bits."""
        image = to_pillow(float_handle(value=1.0))

        assert image.mode == 'RGB'
        assert image.getpixel((0, 0)) == (255, 255, 255)

    def test_alpha(self):
        """Test an alpha band becomes RGBA."""
        image = to_pillow(float_handle(bands=4, has_alpha=True))

        assert image.mode == 'RGBA'


class TestWriteImage:
    """Tests for write_image."""

    def test_writes_jpeg(self, tmp_path):
        """Test a JPEG is written and its size returned."""
        path = str(tmp_path / 'tn_photo.jpg')

        size = write_image(float_handle(), path, quality=90)

        assert size == os.path.getsize(path)
        with Image.open(path) as image:
            assert image.format == 'JPEG'
            assert image.size == (32, 24)

    def test_no_temporary_files_left(self, tmp_path):
        """Test only the destination remains after a write."""
        write_image(float_handle(), str(tmp_path / 'tn_photo.png'))

        assert os.listdir(tmp_path) == ['tn_photo.png']

    def test_missing_directory(self, tmp_path):
        """Test an unwritable destination is a WriteFailure."""
        with pytest.raises(WriteFailure):
            write_image(float_handle(), str(tmp_path / 'missing' / 'tn.jpg'))

    def test_failed_save_leaves_nothing(self, tmp_path, mocker):
        """Test an encoder failure removes the partial file."""
        mocker.patch.object(Image.Image, 'save', side_effect=OSError('disk full'))

        with pytest.raises(WriteFailure) as excinfo:
            write_image(float_handle(), str(tmp_path / 'tn.jpg'))

        assert 'disk full' in str(excinfo.value)
        assert os.listdir(tmp_path) == []

    def test_alpha_flattened_for_jpeg(self, tmp_path):
        """Test JPEG output drops alpha onto white."""
        path = str(tmp_path / 'tn.jpg')

        write_image(float_handle(bands=4, has_alpha=True), path)

        with Image.open(path) as image:
            assert image.mode == 'RGB'

    def test_alpha_kept_for_png(self, tmp_path):
        """Test PNG output keeps alpha."""
        path = str(tmp_path / 'tn.png')

        write_image(float_handle(bands=4, has_alpha=True), path)

        with Image.open(path) as image:
            assert image.mode == 'RGBA'

    def test_profile_attached(self, tmp_path, srgb_icc):
        """Test the handle's profile is embedded in the output."""
        path = str(tmp_path / 'tn.jpg')

        write_image(float_handle(icc_profile=srgb_icc), path)

        with Image.open(path) as image:
            assert image.info.get('icc_profile') == srgb_icc

    def test_cmyk_profile_dropped_when_written_as_rgb(self, tmp_path, cmyk_icc):
        """Test a CMYK profile is not embedded once PNG output converts to RGB."""
        path = str(tmp_path / 'tn.png')

        write_image(float_handle(value=0.0, bands=4, icc_profile=cmyk_icc), path)

        with Image.open(path) as image:
            assert image.mode == 'RGB'
            assert 'icc_profile' not in image.info

    def test_cmyk_profile_kept_for_jpeg(self, tmp_path, cmyk_icc):
        """Test JPEG output stays CMYK and keeps its profile."""
        path = str(tmp_path / 'tn.jpg')

        write_image(float_handle(value=0.0, bands=4, icc_profile=cmyk_icc), path)

        with Image.open(path) as image:
            assert image.mode == 'CMYK'
            assert image.info.get('icc_profile') == cmyk_icc

    def test_grey_alpha_flattened_to_grey(self, tmp_path, gray_icc):
        """Test grey with alpha stays grey, with its profile, when flattened for JPEG."""
        path = str(tmp_path / 'tn.jpg')

        write_image(float_handle(bands=2, has_alpha=True, icc_profile=gray_icc), path)

        with Image.open(path) as image:
            assert image.mode == 'L'
            assert image.info.get('icc_profile') == gray_icc

    def test_orientation_removed_after_rotate(self, tmp_path):
        """Test a rotated image loses its orientation tag."""
        path = str(tmp_path / 'tn.jpg')

        write_image(float_handle(exif=orientation_exif(), orientation=None), path)

        with Image.open(path) as image:
            assert ORIENTATION_TAG not in image.getexif()

    def test_orientation_kept_without_rotate(self, tmp_path):
        """Test an unrotated image keeps its orientation tag."""
        path = str(tmp_path / 'tn.jpg')

        write_image(float_handle(exif=orientation_exif(), orientation='6'), path)

        with Image.open(path) as image:
            assert image.getexif().get(ORIENTATION_TAG) == 6
