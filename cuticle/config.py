"""
PipelineConfig - Runtime settings for pipeline evaluation.
"""

import os
from dataclasses import dataclass, field
from typing import List


def _default_workers() -> int:
    return min(os.cpu_count() or 1, 8)


@dataclass
class PipelineConfig:
    """
    Settings shared by every pipeline run in a process.

    Attributes:
        workers: Worker threads evaluating output tiles
        tile_size: Edge of a square output tile in pixels
        strip_height: Rows per strip in the tile cache
        quality: JPEG quality for output
    """
    workers: int = field(default_factory=_default_workers)
    tile_size: int = 128
    strip_height: int = 10
    quality: int = 85

    @classmethod
    def from_env(cls) -> 'PipelineConfig':
        """Create config from CUTICLE_* environment variables."""
        config = cls()
        config.workers = int(os.getenv('CUTICLE_WORKERS', config.workers))
        config.tile_size = int(os.getenv('CUTICLE_TILE_SIZE', config.tile_size))
        config.strip_height = int(os.getenv('CUTICLE_STRIP_HEIGHT', config.strip_height))
        config.quality = int(os.getenv('CUTICLE_QUALITY', config.quality))
        return config

    def validate(self) -> List[str]:
        """
        Check the configuration.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        if self.workers < 1:
            errors.append(f"workers must be at least 1 (got {self.workers})")
        if self.tile_size < 8:
            errors.append(f"tile_size must be at least 8 (got {self.tile_size})")
        if self.strip_height < 1:
            errors.append(f"strip_height must be at least 1 (got {self.strip_height})")
        if not 1 <= self.quality <= 100:
            errors.append(f"quality must be between 1 and 100 (got {self.quality})")
        return errors
