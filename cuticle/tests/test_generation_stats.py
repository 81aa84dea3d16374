"""Tests for GenerationStats."""

import time

from cuticle.generation_stats import GenerationStats


class TestGenerationStats:
    """Tests for GenerationStats."""

    def test_counts(self):
        """Test completed and remaining counts."""
        stats = GenerationStats(total_to_process=10, processed=4, errors=1)

        assert stats.completed_count == 5
        assert stats.remaining_count == 5

    def test_rates(self):
        """Test rates are derived from elapsed time."""
        stats = GenerationStats(total_to_process=20, processed=10, start_time=time.time() - 10)

        assert 0.9 < stats.rate_per_second <= 1.0
        assert 54 < stats.rate_per_minute <= 60
        assert 9 < stats.estimated_remaining_seconds < 12

    def test_no_progress_rates(self):
        """Test rates are zero before anything is processed."""
        stats = GenerationStats(total_to_process=5)

        assert stats.rate_per_second == 0.0
        assert stats.estimated_remaining_seconds == 0.0
        assert stats.average_thumbnail_bytes == 0

    def test_record_success(self):
        """Test successes add to the count and the bytes written."""
        stats = GenerationStats(total_to_process=2)

        stats.record_success(300)
        stats.record_success(100)

        assert stats.processed == 2
        assert stats.bytes_generated == 400
        assert stats.average_thumbnail_bytes == 200
        assert stats.succeeded

    def test_record_error(self):
        """Test errors are counted with their messages."""
        stats = GenerationStats()

        stats.record_error('Error processing a.jpg: truncated')

        assert stats.errors == 1
        assert stats.error_details == ['Error processing a.jpg: truncated']
        assert not stats.succeeded
