"""
GenerationStats - Counters for a batch run.
"""

import time
from dataclasses import dataclass, field
from typing import List


@dataclass
class GenerationStats:
    """
    Counters for a batch run.

    Attributes:
        total_to_process: Sources in the batch
        processed: Thumbnails written, or planned in a dry run
        errors: Sources that failed
        bytes_generated: Bytes of thumbnail written
        start_time: When the batch started
        error_details: One message per failed source
    """
    total_to_process: int = 0
    processed: int = 0
    errors: int = 0
    bytes_generated: int = 0
    start_time: float = field(default_factory=time.time)
    error_details: List[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        """Seconds since the batch started."""
        return time.time() - self.start_time

    @property
    def completed_count(self) -> int:
        """Sources finished, whether they succeeded or not."""
        return self.processed + self.errors

    @property
    def remaining_count(self) -> int:
        """Sources not yet finished."""
        return max(0, self.total_to_process - self.completed_count)

    @property
    def rate_per_second(self) -> float:
        """Thumbnails per second."""
        elapsed = self.elapsed_seconds
        return self.processed / elapsed if elapsed > 0 else 0.0

    @property
    def rate_per_minute(self) -> float:
        """Thumbnails per minute."""
        return self.rate_per_second * 60

    @property
    def estimated_remaining_seconds(self) -> float:
        """Seconds left at the current rate, 0 before the first thumbnail."""
        rate = self.rate_per_second
        return self.remaining_count / rate if rate > 0 else 0.0

    @property
    def average_thumbnail_bytes(self) -> int:
        """Mean size of a written thumbnail, 0 when none were written."""
        if not self.processed:
            return 0
        return self.bytes_generated // self.processed

    @property
    def succeeded(self) -> bool:
        """True when no source failed."""
        return self.errors == 0

    def record_success(self, thumb_size: int = 0) -> None:
        """Count one thumbnail of thumb_size bytes."""
        self.processed += 1
        self.bytes_generated += thumb_size

    def record_error(self, message: str) -> None:
        """Count one failed source and keep its message."""
        self.errors += 1
        self.error_details.append(message)
