"""
Errors raised by the thumbnail pipeline.

Every failure surfaces as a single PipelineError subclass carrying the stage
that failed and the source path being processed.
"""

from contextlib import contextmanager
from typing import Iterator, Optional, Type

from PIL import ImageCms, UnidentifiedImageError


class PipelineError(Exception):
    """
    Base class for pipeline failures.

    Attributes:
        stage: Name of the stage that failed (e.g. 'decode', 'export')
        source: Source image path, filled in by the orchestrator
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        source: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.source = source

    def __str__(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        if self.source:
            parts.append(f"{self.source}:")
        parts.append(self.message)
        return ' '.join(parts)


class UnsupportedFormat(PipelineError):
    """No decoder matches the source."""


class DecodeFailure(PipelineError):
    """Source is corrupt, truncated or unreadable."""


class SequentialReadError(DecodeFailure):
    """A strip was requested after it had already been evicted."""


class ColourTransformFailure(PipelineError):
    """A colour profile is missing, invalid or cannot be applied."""


class InvalidRequest(PipelineError):
    """The request cannot be satisfied as given."""


class WriteFailure(PipelineError):
    """The destination could not be written."""


class SharpenMaskLoadFailure(PipelineError):
    """A custom sharpen mask file is missing or invalid."""


class PipelineAborted(PipelineError):
    """The run was aborted before it completed."""


# Library exceptions translated at stage boundaries
LIBRARY_ERRORS = (
    OSError,
    ValueError,
    SyntaxError,
    UnidentifiedImageError,
    ImageCms.PyCMSError,
)


@contextmanager
def stage_errors(
    stage: str,
    error_cls: Type[PipelineError] = DecodeFailure
) -> Iterator[None]:
    """
    Translate library exceptions raised inside a stage into a PipelineError.

    PipelineErrors pass through untouched apart from getting their stage
    filled in when it is missing.

    Args:
        stage: Stage name recorded on the error
        error_cls: PipelineError subclass used for library exceptions
    """
    try:
        yield
    except PipelineError as e:
        if e.stage is None:
            e.stage = stage
        raise
    except LIBRARY_ERRORS as e:
        raise error_cls(str(e) or e.__class__.__name__, stage=stage) from e
