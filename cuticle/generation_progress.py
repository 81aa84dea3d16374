"""
GenerationProgress - Reports batch progress on the console and in the log.
"""

import logging
from typing import Optional

from .generation_stats import GenerationStats


def format_bytes(count: Optional[int]) -> str:
    """Byte count as a human-readable string."""
    if count is None:
        return "unknown"
    value = float(count)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


class GenerationProgress:
    """
    Console reporting for a batch.

    With show_files every source gets a line on stdout. Otherwise a summary
    line is logged every log_interval sources.
    """

    def __init__(
        self,
        show_files: bool = False,
        log_interval: int = 100,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            show_files: Print one line per source
            log_interval: Sources between summary log lines
            logger: Optional logger instance
        """
        self.show_files = show_files
        self.log_interval = log_interval
        self.logger = logger or logging.getLogger(__name__)
        self._next_report = log_interval

    def on_file_processed(
        self,
        source: str,
        success: bool,
        destination: Optional[str] = None,
        thumb_size: Optional[int] = None,
        error: Optional[str] = None
    ) -> None:
        if not self.show_files:
            return
        if success:
            print(f"  [OK] {source} -> {destination} ({format_bytes(thumb_size)})")
        else:
            print(f"  [ERROR] {source} -> {error or 'failed'}")

    def on_dry_run(self, source: str, plan) -> None:
        """Print what a dry run would produce from a ThumbnailPlan."""
        if not self.show_files:
            return
        shrink = plan.shrink
        line = f"  [DRY RUN] {source} -> {shrink.output_width}x{shrink.output_height}"
        if plan.decode_shrink > 1:
            line += f" (decode 1/{plan.decode_shrink}"
        else:
            line += " (decode full size"
        line += f", shrink {shrink.integer_shrink})"
        print(line)

    def on_progress_update(self, stats: GenerationStats) -> None:
        """Log a summary once every log_interval completed sources."""
        if self.show_files or stats.completed_count < self._next_report:
            return
        while self._next_report <= stats.completed_count:
            self._next_report += self.log_interval

        eta_minutes = stats.estimated_remaining_seconds / 60
        self.logger.info(
            f"Progress: {stats.completed_count}/{stats.total_to_process} sources, "
            f"{stats.errors} failed, {format_bytes(stats.bytes_generated)} written "
            f"({stats.rate_per_minute:.1f}/min, ~{eta_minutes:.0f}m remaining)"
        )

    def on_complete(self, stats: GenerationStats) -> None:
        """Print the end-of-batch summary."""
        print()
        print(f"Generated: {stats.processed}")
        print(f"Errors: {stats.errors}")
        if stats.processed and stats.bytes_generated:
            print(
                f"Written: {format_bytes(stats.bytes_generated)} "
                f"(average {format_bytes(stats.average_thumbnail_bytes)})"
            )
        print(f"Time: {stats.elapsed_seconds:.1f}s")
        print(f"Rate: {stats.rate_per_minute:.1f}/min")
        for detail in stats.error_details:
            print(f"  {detail}")
