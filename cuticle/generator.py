"""
Generator - Thumbnails a batch of source files with one request.
"""

import logging
import os
from typing import Iterable, Optional

from .errors import PipelineError
from .generation_progress import GenerationProgress
from .generation_stats import GenerationStats
from .request import ThumbnailRequest
from .thumbnail_generator import ThumbnailGenerator


class Generator:
    """
    Runs a ThumbnailGenerator over a list of files.

    Sources are processed one at a time, in order. By default the batch stops
    at the first failure; with keep_going it logs the failure and moves on.
    """

    def __init__(
        self,
        thumbnail_generator: ThumbnailGenerator,
        request: ThumbnailRequest,
        keep_going: bool = False,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize generator.

        Args:
            thumbnail_generator: Thumbnail generator instance
            request: Options applied to every source
            keep_going: If True, continue after a failed source
            dry_run: If True, only plan each source
            logger: Optional logger instance
        """
        self.thumb_gen = thumbnail_generator
        self.request = request
        self.keep_going = keep_going
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)
        self.stats = GenerationStats()
        self._stop_requested = False

    def stop(self) -> None:
        """Request the generator to stop after the current source."""
        self._stop_requested = True

    def generate_all(
        self,
        paths: Iterable[str],
        progress: Optional[GenerationProgress] = None
    ) -> GenerationStats:
        """
        Thumbnail every path.

        Args:
            paths: Source image paths
            progress: Optional progress tracker

        Returns:
            GenerationStats with results
        """
        paths = list(paths)
        self.stats = GenerationStats(total_to_process=len(paths))

        if self._stop_requested:
            self.logger.info("Stop was requested before generation started")
            return self.stats

        mode_str = " [DRY RUN]" if self.dry_run else ""
        self.logger.info(f"Starting generation: {len(paths)} sources{mode_str}")

        for path in paths:
            if self._stop_requested:
                self.logger.info("Stop requested, halting generation")
                break

            ok = self._process_source(path, progress)

            if progress:
                progress.on_progress_update(self.stats)

            if not ok and not self.keep_going:
                self.logger.info("Stopping at first failure")
                break

        self.logger.info(
            f"Generation complete: {self.stats.processed} generated, "
            f"{self.stats.errors} errors ({self.stats.elapsed_seconds:.1f}s)"
        )
        return self.stats

    def _process_source(self, path: str, progress: Optional[GenerationProgress]) -> bool:
        """Process a single source."""
        try:
            if self.dry_run:
                plan = self.thumb_gen.plan(path, self.request)
                if progress:
                    progress.on_dry_run(path, plan)
                else:
                    self.logger.info(
                        f"[DRY RUN] Would generate: {path} "
                        f"({plan.shrink.output_width}x{plan.shrink.output_height})"
                    )
                self.stats.record_success()
                return True

            destination = self.thumb_gen.generate(path, self.request)
            size = os.path.getsize(destination)

        except (PipelineError, OSError) as e:
            error_msg = f"Error processing {path}: {e}"
            self.logger.error(error_msg)
            self.stats.record_error(error_msg)
            if progress:
                progress.on_file_processed(path, success=False, error=str(e))
            return False

        self.stats.record_success(size)

        if progress:
            progress.on_file_processed(path, success=True, destination=destination, thumb_size=size)
        else:
            self.logger.debug(
                f"Generated: {destination} ({size} bytes) "
                f"[{self.stats.processed}/{self.stats.total_to_process}]"
            )
        return True
