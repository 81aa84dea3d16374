"""
Cuticle - Thumbnail generation with bounded memory use.

A source is shrunk in two steps, a block-average shrink by an integer factor
and a residual resize, through a lazy pipeline. The decoded source raster is held
whole, cut down by the JPEG decode-time shrink where one applies, and the
float intermediates are kept to a small window of cached strips. Output
tiles are rendered by a pool of worker threads.

Usage:
    from cuticle import ThumbnailGenerator, ThumbnailRequest

    request = ThumbnailRequest.from_size('800^', crop=True)
    ThumbnailGenerator().generate('photo.jpg', request)
"""

__version__ = "1.0.0"

from .config import PipelineConfig
from .errors import (
    ColourTransformFailure,
    DecodeFailure,
    InvalidRequest,
    PipelineAborted,
    PipelineError,
    SequentialReadError,
    SharpenMaskLoadFailure,
    UnsupportedFormat,
    WriteFailure,
)
from .request import Interpolator, ResizeConstraint, SharpenMask, ThumbnailRequest, parse_size
from .sizing import ShrinkPlan, calculate_shrink
from .tile_cache import TileCache
from .pipeline import ResamplePipeline
from .thumbnail_generator import ThumbnailGenerator, ThumbnailPlan, transform
from .generation_stats import GenerationStats
from .generation_progress import GenerationProgress
from .generator import Generator

__all__ = [
    "PipelineConfig",
    "PipelineError",
    "UnsupportedFormat",
    "DecodeFailure",
    "SequentialReadError",
    "ColourTransformFailure",
    "InvalidRequest",
    "WriteFailure",
    "SharpenMaskLoadFailure",
    "PipelineAborted",
    "Interpolator",
    "ResizeConstraint",
    "SharpenMask",
    "ThumbnailRequest",
    "parse_size",
    "ShrinkPlan",
    "calculate_shrink",
    "TileCache",
    "ResamplePipeline",
    "ThumbnailGenerator",
    "ThumbnailPlan",
    "transform",
    "GenerationStats",
    "GenerationProgress",
    "Generator",
]
