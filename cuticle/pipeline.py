"""
ResamplePipeline - Builds and evaluates the lazy resize chain for one source.

Stages, in order:
    unpack -> import -> colourspace -> shrink -> cache -> affine
    -> export -> sharpen -> strip_profile

Nothing is computed while the chain is built. evaluate() renders the final
node tile by tile on a pool of worker threads, one row of output tiles at a
time, and all input flows through a single TileCache.
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .colour import (
    DEVICE_MODES,
    IccTransform,
    device_mode,
    device_mode_for,
    load_profile,
    profile_bytes,
    profile_colour_space,
    srgb_profile,
    xyz_to_srgb,
)
from .config import PipelineConfig
from .errors import ColourTransformFailure, PipelineAborted, stage_errors
from .image import ArrayNode, Coding, ImageHandle, Interpretation, Node
from .loader import SourceImage
from .request import ThumbnailRequest
from .sharpen import ConvolutionMask
from .sizing import ShrinkPlan
from .stages import (
    AffineNode,
    ColourspaceNode,
    IccImportNode,
    PointNode,
    SharpenNode,
    ShrinkNode,
    UnpackNode,
    check_region,
    unpacked_mode,
)
from .tile_cache import TileCache

Box = Tuple[int, int, int, int]


class ContextAdapter(logging.LoggerAdapter):
    """Prefix log lines with the request's context tag."""

    def process(self, msg, kwargs):
        return f"{self.extra['context']}: {msg}", kwargs


class TileEvaluator:
    """
    Renders a node into memory with a pool of worker threads.

    Tiles are handed out one row of tiles at a time; a row must finish
    before the next one starts, so the input rows in flight never span more
    than one row of output tiles.
    """

    def __init__(
        self,
        workers: int = 1,
        tile_size: int = 128,
        abort_event: Optional[threading.Event] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.workers = max(1, workers)
        self.tile_size = tile_size
        self.abort_event = abort_event or threading.Event()
        self.logger = logger or logging.getLogger(__name__)

    def tile_rows(self, width: int, height: int) -> Iterator[List[Box]]:
        """Yield the tiles of each tile row, top to bottom."""
        for y0 in range(0, height, self.tile_size):
            y1 = min(height, y0 + self.tile_size)
            yield [
                (x0, y0, min(width, x0 + self.tile_size), y1)
                for x0 in range(0, width, self.tile_size)
            ]

    def evaluate(self, node: Node, width: int, height: int, bands: int) -> np.ndarray:
        output = np.empty((height, width, bands), dtype=np.float32)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix='cuticle') as executor:
            for row in self.tile_rows(width, height):
                self._check_abort()
                futures = [executor.submit(self._render, node, output, box) for box in row]
                try:
                    for future in futures:
                        future.result()
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

        return output

    def _render(self, node: Node, output: np.ndarray, box: Box) -> None:
        self._check_abort()
        x0, y0, x1, y1 = box
        output[y0:y1, x0:x1] = check_region(node.region(x0, y0, x1, y1), x1 - x0, y1 - y0)

    def _check_abort(self) -> None:
        if self.abort_event.is_set():
            raise PipelineAborted("pipeline aborted", stage='evaluate')


class ResamplePipeline:
    """
    The lazy resize chain for one source and one request.

    The pipeline owns the source and its tile cache; close() (or leaving the
    context manager) releases both.
    """

    def __init__(
        self,
        source: SourceImage,
        request: ThumbnailRequest,
        plan: ShrinkPlan,
        mask: Optional[ConvolutionMask] = None,
        config: Optional[PipelineConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the pipeline.

        Args:
            source: Opened source, decode-time shrink already applied
            request: Thumbnail options
            plan: Shrink plan in the source's own (unrotated) frame
            mask: Loaded sharpen mask, or None
            config: Evaluation settings
            logger: Optional logger instance
        """
        self.source = source
        self.request = request
        self.plan = plan
        self.mask = mask
        self.config = config or PipelineConfig()
        self.logger = ContextAdapter(logger or logging.getLogger(__name__), {'context': request.context})

        self.stages: List[str] = []
        self.cache: Optional[TileCache] = None
        self._abort = threading.Event()
        self._closed = False

    def build(self) -> ImageHandle:
        """Assemble the stage chain and return its final, unevaluated handle."""
        handle = self.source.handle()
        if self.request.linear:
            self.logger.info("linear mode")

        for step in (
            self._unpack,
            self._import,
            self._colourspace,
            self._shrink,
            self._resample,
            self._export,
            self._sharpen,
            self._strip_profile,
        ):
            if self._abort.is_set():
                raise PipelineAborted("pipeline aborted", stage='build')
            handle = step(handle)

        return handle

    def evaluate(self, handle: ImageHandle) -> ImageHandle:
        """Render a handle into memory and return a handle over the pixels."""
        evaluator = TileEvaluator(
            workers=self.config.workers,
            tile_size=self.config.tile_size,
            abort_event=self._abort,
            logger=self.logger,
        )
        with stage_errors('evaluate'):
            array = evaluator.evaluate(handle.node, handle.width, handle.height, handle.bands)
        return handle.derive(node=ArrayNode(array), band_format='float')

    def abort(self) -> None:
        """Stop evaluation at the next tile boundary and release resources."""
        self._abort.set()
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.cache is not None:
            self.cache.close()
        self.source.close()

    def __enter__(self) -> 'ResamplePipeline':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- Stages ---------------------------------------------------------------

    def _source_profile(self, handle: ImageHandle):
        """Embedded profile if there is one, else the import profile."""
        if handle.has_profile:
            return load_profile(handle.icc_profile)
        if self.request.import_profile:
            return load_profile(self.request.import_profile)
        return None

    def _unpack(self, handle: ImageHandle) -> ImageHandle:
        if handle.coding != Coding.PACKED:
            return handle

        mode = unpacked_mode(handle.mode, handle.has_alpha)
        self.logger.info(f"unpacking {handle.mode} to {mode}")
        self.stages.append('unpack')
        return handle.derive(
            node=UnpackNode(handle.node, mode),
            coding=Coding.NONE,
            mode=mode,
            bands=len(mode),
        )

    def _import(self, handle: ImageHandle) -> ImageHandle:
        # Only device-space 8 and 16 bit images can be imported
        if not (self.request.linear
                and handle.coding == Coding.NONE
                and handle.band_format in ('uchar', 'ushort')
                and (handle.has_profile or self.request.import_profile)):
            return handle

        if handle.has_profile:
            self.logger.info("importing with embedded profile")
        else:
            self.logger.info(f"importing with profile {self.request.import_profile}")

        with stage_errors('import'):
            profile = self._source_profile(handle)
            transform = IccTransform(profile, srgb_profile(), device_mode(profile), 'RGB')

        mode = 'RGBA' if handle.has_alpha else 'RGB'
        self.stages.append('import')
        return handle.derive(
            node=IccImportNode(handle.node, transform),
            mode=mode,
            bands=len(mode),
            band_format='uchar',
            interpretation=Interpretation.SRGB,
        )

    def _colourspace(self, handle: ImageHandle) -> ImageHandle:
        if self.request.linear:
            interpretation = Interpretation.XYZ
        else:
            interpretation = Interpretation.DEVICE

        device_transform = None
        icc_profile = handle.icc_profile
        if not self.request.linear and handle.has_profile:
            space = self._embedded_space(handle)
            # The processing raster is always RGB, so only an RGB profile
            # still describes the pixels; others are applied here
            if space != 'RGB':
                if space is not None and device_mode_for(handle.mode) == DEVICE_MODES.get(space):
                    self.logger.info(f"converting {space} to sRGB with embedded profile")
                    with stage_errors('colourspace', ColourTransformFailure):
                        device_transform = IccTransform(
                            load_profile(handle.icc_profile),
                            srgb_profile(),
                            DEVICE_MODES[space],
                            'RGB',
                        )
                icc_profile = None
                interpretation = Interpretation.SRGB

        self.logger.info(f"converting to processing space {interpretation.value}")
        self.stages.append('colourspace')
        return handle.derive(
            node=ColourspaceNode(handle.node, self.request.linear, handle.has_alpha, device_transform),
            mode=None,
            bands=4 if handle.has_alpha else 3,
            band_format='float',
            interpretation=interpretation,
            icc_profile=icc_profile,
        )

    def _embedded_space(self, handle: ImageHandle) -> Optional[str]:
        """
        Colour space of the embedded profile, or None if it cannot be read.

        An unreadable profile only matters when exporting through it.
        """
        try:
            return profile_colour_space(load_profile(handle.icc_profile))
        except ColourTransformFailure as e:
            if self.request.export_profile:
                e.stage = 'colourspace'
                raise
            self.logger.warning(f"ignoring unreadable embedded profile: {e.message}")
            return None

    def _shrink(self, handle: ImageHandle) -> ImageHandle:
        shrink = self.plan.integer_shrink
        if self.plan.is_upscale or shrink <= 1:
            return handle

        self.logger.info(f"integer shrink by {shrink}")
        node = ShrinkNode(handle.node, shrink, handle.width, handle.height)
        self.stages.append('shrink')
        return handle.derive(node=node, width=node.width, height=node.height)

    def _resample(self, handle: ImageHandle) -> ImageHandle:
        out_width, out_height = self.plan.output_width, self.plan.output_height
        resize = (out_width, out_height) != (handle.width, handle.height)
        interpolator = self.plan.interpolator_for(self.request.interpolator)

        # Enough strips to serve one full row of output tiles twice over
        yscale = handle.height / out_height if resize else 1.0
        margin = interpolator.support * max(yscale, 1.0) + 1 if resize else 0
        sharpen_margin = self.mask.margin if self.mask is not None else 0
        nlines = int(math.ceil((self.config.tile_size + 2 * sharpen_margin) * yscale + 2 * margin)) + 1
        max_tiles = TileCache.capacity_for(nlines, self.config.strip_height)

        self.cache = TileCache(
            handle.node,
            handle.width,
            handle.height,
            strip_height=self.config.strip_height,
            max_tiles=max_tiles,
            logger=self.logger.logger,
        )
        self.stages.append('cache')
        handle = handle.derive(node=self.cache)

        if not resize:
            return handle

        node = AffineNode(
            handle.node,
            handle.width,
            handle.height,
            out_width,
            out_height,
            interpolator,
        )
        self.logger.info(f"residual scale by {self.plan.residual_scale:g}")
        self.logger.info(f"{interpolator.value} interpolation")
        self.stages.append('affine')
        return handle.derive(node=node, width=out_width, height=out_height)

    def _export(self, handle: ImageHandle) -> ImageHandle:
        request = self.request
        alpha = handle.has_alpha

        if request.linear:
            if not (request.export_profile or handle.has_profile):
                self.logger.info("converting to sRGB")
                self.stages.append('export')
                return handle.derive(
                    node=PointNode(handle.node, lambda a: xyz_to_srgb(a, alpha), 'export'),
                    interpretation=Interpretation.SRGB,
                )

            self.logger.info("exporting to device space with a profile")
            with stage_errors('export'):
                if request.export_profile:
                    profile = load_profile(request.export_profile)
                    icc_profile = profile_bytes(profile)
                else:
                    profile = load_profile(handle.icc_profile)
                    icc_profile = handle.icc_profile
                transform = IccTransform(srgb_profile(), profile, 'RGB')

            def export(array):
                return transform.apply_float(xyz_to_srgb(array, alpha), alpha)

        elif request.export_profile and handle.interpretation == Interpretation.SRGB:
            # Already converted through a GRAY or CMYK embedded profile
            self.logger.info(f"exporting sRGB with profile {request.export_profile}")

            with stage_errors('export'):
                profile = load_profile(request.export_profile)
                icc_profile = profile_bytes(profile)
                transform = IccTransform(srgb_profile(), profile, 'RGB')

            def export(array):
                return transform.apply_float(array, alpha)

        elif request.export_profile and (handle.has_profile or request.import_profile):
            if handle.has_profile:
                self.logger.info("importing with embedded profile")
            else:
                self.logger.info(f"importing with profile {request.import_profile}")
            self.logger.info(f"exporting with profile {request.export_profile}")

            with stage_errors('export'):
                source_profile = self._source_profile(handle)
                profile = load_profile(request.export_profile)
                icc_profile = profile_bytes(profile)
                transform = IccTransform(source_profile, profile, device_mode(source_profile))

            def export(array):
                return transform.apply_float(array, alpha)

        else:
            return handle

        self.stages.append('export')
        return handle.derive(
            node=PointNode(handle.node, export, 'export'),
            bands=transform.output_bands + (1 if alpha else 0),
            interpretation=Interpretation.DEVICE,
            mode=transform.output_mode,
            icc_profile=icc_profile,
        )

    def _sharpen(self, handle: ImageHandle) -> ImageHandle:
        # Nearest-neighbour zooms look dreadful sharpened
        if self.mask is None or not self.plan.should_sharpen(self.request.sharpen):
            return handle

        self.logger.info("sharpening thumbnail")
        self.stages.append('sharpen')
        return handle.derive(
            node=SharpenNode(handle.node, self.mask, handle.width, handle.height, handle.has_alpha)
        )

    def _strip_profile(self, handle: ImageHandle) -> ImageHandle:
        if not (self.request.delete_profile and handle.has_profile):
            return handle

        self.logger.info("deleting profile from output image")
        self.stages.append('strip_profile')
        return handle.derive(icc_profile=None)

