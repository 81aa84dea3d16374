"""Tests for the batch Generator."""

from unittest.mock import MagicMock

import pytest

from cuticle.errors import DecodeFailure
from cuticle.generation_progress import GenerationProgress
from cuticle.generator import Generator
from cuticle.request import ThumbnailRequest
from cuticle.sizing import ShrinkPlan
from cuticle.thumbnail_generator import ThumbnailGenerator, ThumbnailPlan


@pytest.fixture
def thumb_gen(tmp_path):
    """Fixture providing a mocked ThumbnailGenerator that writes small files."""
    mock = MagicMock(spec=ThumbnailGenerator)

    def generate(path, request):
        destination = tmp_path / f"tn_{path}.jpg"
        destination.write_bytes(b'x' * 100)
        return str(destination)

    mock.generate.side_effect = generate
    mock.plan.return_value = ThumbnailPlan(
        source_width=400,
        source_height=300,
        format='JPEG',
        angle=0,
        decode_shrink=4,
        shrink=ShrinkPlan(1, 0.8, False, 80, 60),
    )
    return mock


@pytest.fixture
def request_():
    return ThumbnailRequest(width=80)


class TestGenerator:
    """Tests for Generator."""

    def test_generate_all(self, thumb_gen, request_):
        """Test every source is thumbnailed and counted."""
        generator = Generator(thumb_gen, request_)

        stats = generator.generate_all(['a', 'b', 'c'])

        assert stats.total_to_process == 3
        assert stats.processed == 3
        assert stats.errors == 0
        assert stats.bytes_generated == 300
        assert thumb_gen.generate.call_count == 3

    def test_stops_at_first_failure(self, thumb_gen, request_):
        """Test the batch stops at the first failing source."""
        generate = thumb_gen.generate.side_effect
        thumb_gen.generate.side_effect = [
            generate('a', request_),
            DecodeFailure('truncated file', stage='decode', source='b'),
            generate('c', request_),
        ]
        generator = Generator(thumb_gen, request_)

        stats = generator.generate_all(['a', 'b', 'c'])

        assert stats.processed == 1
        assert stats.errors == 1
        assert thumb_gen.generate.call_count == 2
        assert 'truncated file' in stats.error_details[0]

    def test_keep_going(self, thumb_gen, request_):
        """Test keep_going carries on past failures."""
        generate = thumb_gen.generate.side_effect
        thumb_gen.generate.side_effect = [
            DecodeFailure('truncated file', stage='decode', source='a'),
            generate('b', request_),
        ]
        generator = Generator(thumb_gen, request_, keep_going=True)

        stats = generator.generate_all(['a', 'b'])

        assert stats.processed == 1
        assert stats.errors == 1
        assert stats.remaining_count == 0

    def test_dry_run(self, thumb_gen, request_):
        """Test dry run only plans."""
        generator = Generator(thumb_gen, request_, dry_run=True)

        stats = generator.generate_all(['a', 'b'])

        assert stats.processed == 2
        assert stats.bytes_generated == 0
        thumb_gen.generate.assert_not_called()
        assert thumb_gen.plan.call_count == 2

    def test_stop_before_start(self, thumb_gen, request_):
        """Test a stop before starting processes nothing."""
        generator = Generator(thumb_gen, request_)
        generator.stop()

        stats = generator.generate_all(['a', 'b'])

        assert stats.processed == 0
        thumb_gen.generate.assert_not_called()

    def test_progress_callbacks(self, thumb_gen, request_):
        """Test the progress tracker hears about every source."""
        progress = MagicMock(spec=GenerationProgress)
        generator = Generator(thumb_gen, request_)

        generator.generate_all(['a', 'b'], progress=progress)

        assert progress.on_file_processed.call_count == 2
        assert progress.on_progress_update.call_count == 2
        _, kwargs = progress.on_file_processed.call_args
        assert kwargs['success'] is True
        assert kwargs['thumb_size'] == 100

    def test_progress_on_failure(self, thumb_gen, request_):
        """Test failures are reported to the progress tracker."""
        thumb_gen.generate.side_effect = DecodeFailure('bad', stage='decode')
        progress = MagicMock(spec=GenerationProgress)
        generator = Generator(thumb_gen, request_)

        generator.generate_all(['a'], progress=progress)

        _, kwargs = progress.on_file_processed.call_args
        assert kwargs['success'] is False
        assert 'bad' in kwargs['error']

    def test_dry_run_progress(self, thumb_gen, request_):
        """Test dry runs hand the plan to the progress tracker."""
        progress = MagicMock(spec=GenerationProgress)
        generator = Generator(thumb_gen, request_, dry_run=True)

        generator.generate_all(['a'], progress=progress)

        progress.on_dry_run.assert_called_once_with('a', thumb_gen.plan.return_value)
