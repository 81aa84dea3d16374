"""
ThumbnailGenerator - Turns one source image into one thumbnail file.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Optional

from .config import PipelineConfig
from .errors import InvalidRequest, PipelineError
from .geometry import crop, rotate
from .loader import SourceImage, select_decode_shrink
from .naming import output_path
from .orientation import angle_from_orientation
from .pipeline import ContextAdapter, ResamplePipeline
from .request import ResizeConstraint, ThumbnailRequest
from .sharpen import load_mask
from .sizing import ShrinkPlan, calculate_shrink, oriented_size
from .writer import write_image

ASPECT_FIT = 'aspectfit'
ASPECT_FILL = 'aspectfill'


@dataclass(frozen=True)
class ThumbnailPlan:
    """
    What generate() would do with a source, without decoding any pixels.

    Attributes:
        source_width: Width from the file header
        source_height: Height from the file header
        format: Pillow format name of the source
        angle: Clockwise rotation that will be applied (0 when not rotating)
        decode_shrink: Factor the decoder will shrink by while loading
        shrink: Plan for the decoded raster, in the rotated frame
    """
    source_width: int
    source_height: int
    format: str
    angle: int
    decode_shrink: int
    shrink: ShrinkPlan

    @property
    def swaps_axes(self) -> bool:
        return self.angle in (90, 270)


class ThumbnailGenerator:
    """
    Generates thumbnails from source files on disk.

    Each call opens the source, builds a fresh pipeline and tile cache,
    evaluates it and writes the result. Nothing is shared between calls, so
    one generator can be used from several threads.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize thumbnail generator.

        Args:
            config: Evaluation settings (workers, tile size, quality)
            logger: Optional logger instance
        """
        self.config = config or PipelineConfig()
        self.logger = logger or logging.getLogger(__name__)

    def plan(self, source_path: str, request: ThumbnailRequest) -> ThumbnailPlan:
        """
        Work out the decode shrink and shrink plan for a source.

        Only the file header is read.

        Raises:
            PipelineError: If the request is invalid or the source unreadable
        """
        try:
            request.validate()
            with SourceImage(source_path, logger=self.logger) as source:
                return self._plan(source, request)
        except PipelineError as e:
            if e.source is None:
                e.source = source_path
            raise

    def generate(self, source_path: str, request: ThumbnailRequest) -> str:
        """
        Generate a thumbnail for source_path.

        Args:
            source_path: Path to the source image
            request: Thumbnail options

        Returns:
            Path of the written thumbnail

        Raises:
            PipelineError: On the first failing stage; nothing is written
        """
        log = ContextAdapter(self.logger, {'context': request.context})
        log.info(f"thumbnailing {source_path}")

        try:
            request.validate()
            mask = load_mask(request.sharpen)
            source = SourceImage(source_path, logger=self.logger)
            pipeline = None
            try:
                log.info(f"selected loader is {source.format}")
                log.info(f"input size is {source.width} x {source.height}")
                planned = self._plan(source, request)
                if source.apply_decode_shrink(planned.decode_shrink) > 1:
                    planned = self._replan(source, request, planned)
                    log.info(f"pre-shrunk to {source.width} x {source.height}")
                log.info(f"integer shrink {planned.shrink.integer_shrink}, "
                         f"residual scale {planned.shrink.residual_scale:g}")

                # The pipeline runs on the unrotated raster
                shrink_plan = planned.shrink.swapped() if planned.swaps_axes else planned.shrink
                pipeline = ResamplePipeline(
                    source,
                    request,
                    shrink_plan,
                    mask=mask,
                    config=self.config,
                    logger=self.logger,
                )
                handle = pipeline.build()

                if request.crop:
                    target_width, target_height = request.width, request.height
                    if planned.swaps_axes:
                        target_width, target_height = target_height, target_width
                    handle = crop(handle, target_width, target_height)

                handle = pipeline.evaluate(handle)
            finally:
                if pipeline is not None:
                    pipeline.close()
                else:
                    source.close()

            if request.rotate:
                handle = rotate(handle, planned.angle)
                log.info("rotated image")

            destination = output_path(source_path, request.output_template)
            log.info(f"thumbnailing {source_path} as {destination}")
            write_image(handle, destination, quality=self.config.quality, logger=self.logger)
            return destination

        except PipelineError as e:
            if e.source is None:
                e.source = source_path
            log.error(f"unable to thumbnail {source_path}: {e.message}")
            raise

    def _plan(self, source: SourceImage, request: ThumbnailRequest) -> ThumbnailPlan:
        angle = angle_from_orientation(source.orientation) if request.rotate else 0
        header_width, header_height = source.full_size

        width, height = oriented_size(header_width, header_height, angle, request.rotate)
        shrink_plan = calculate_shrink(
            width, height, request.width, request.height, request.constraint, request.crop
        )

        decode_shrink = 1
        if source.supports_decode_shrink:
            decode_shrink = select_decode_shrink(shrink_plan.integer_shrink, request.linear)

        if decode_shrink > 1:
            # The decoder rounds up, so plan on the size it will produce
            width = -(-width // decode_shrink)
            height = -(-height // decode_shrink)
            shrink_plan = calculate_shrink(
                width, height, request.width, request.height, request.constraint, request.crop
            )

        return ThumbnailPlan(
            source_width=header_width,
            source_height=header_height,
            format=source.format,
            angle=angle,
            decode_shrink=decode_shrink,
            shrink=shrink_plan,
        )

    def _replan(
        self,
        source: SourceImage,
        request: ThumbnailRequest,
        planned: ThumbnailPlan
    ) -> ThumbnailPlan:
        """Plan again on the size the decoder actually produced."""
        width, height = oriented_size(source.width, source.height, planned.angle, request.rotate)
        shrink_plan = calculate_shrink(
            width, height, request.width, request.height, request.constraint, request.crop
        )
        return replace(planned, decode_shrink=source.decode_shrink, shrink=shrink_plan)


def transform(
    source_path: str,
    width: int,
    height: int,
    aspect: str = ASPECT_FIT,
    output: str = 'tn_%s.jpg',
    config: Optional[PipelineConfig] = None,
    logger: Optional[logging.Logger] = None,
    **options
) -> str:
    """
    Thumbnail one file in a single call.

    Uses the embedding defaults: auto-rotate on, FILL_AREA, mild sharpen,
    bilinear interpolation.

    Args:
        source_path: Path to the source image
        width: Thumbnail width
        height: Thumbnail height
        aspect: 'aspectfit' to fit inside the box, 'aspectfill' to fill and crop
        output: Destination path, or a template with one '%s'
        config: Evaluation settings
        logger: Optional logger instance
        **options: Any other ThumbnailRequest field except those set by
            the arguments above

    Returns:
        Path of the written thumbnail
    """
    if aspect not in (ASPECT_FIT, ASPECT_FILL):
        raise InvalidRequest(f"unknown aspect handling '{aspect}'", stage='request', source=source_path)

    reserved = {'width', 'height', 'crop', 'output_template'}
    known = {f.name for f in fields(ThumbnailRequest)} - reserved
    for name in options:
        if name in reserved:
            raise InvalidRequest(f"{name} is set by the arguments, not as an option", stage='request', source=source_path)
        if name not in known:
            raise InvalidRequest(f"unknown option '{name}'", stage='request', source=source_path)

    options.setdefault('rotate', True)
    options.setdefault('constraint', ResizeConstraint.FILL_AREA)
    request = ThumbnailRequest(
        width=width,
        height=height,
        crop=aspect == ASPECT_FILL,
        output_template=output,
        **options
    )
    return ThumbnailGenerator(config=config, logger=logger).generate(source_path, request)
