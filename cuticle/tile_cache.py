"""
TileCache - A bounded window of full-width strips over a sequential source.

Worker threads evaluating different output tiles all pull their input
through here. The source can only be read top to bottom, so strip production
is a single shared cursor: whichever thread needs a strip that has not been
made yet advances the cursor, one strip at a time, while everyone else waits
or is served from the cache. No thread ever waits on another thread that is
itself waiting for pixels, which is what used to deadlock when a thread took
a lock and then stalled inside a sequential reader.
"""

import logging
import math
import threading
from collections import OrderedDict
from typing import List, Optional

import numpy as np

from .errors import PipelineAborted, SequentialReadError
from .image import Node


class TileCache(Node):
    """
    Strip cache with a single monotonic decode cursor.

    Strips are decoded in index order, each exactly once, and at most
    max_tiles are held; the oldest is evicted first.
    """

    def __init__(
        self,
        source: Node,
        width: int,
        height: int,
        strip_height: int = 10,
        max_tiles: int = 2,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the cache.

        Args:
            source: Node producing float rows, read top to bottom
            width: Raster width (every strip spans it)
            height: Raster height
            strip_height: Rows per strip
            max_tiles: Most strips held at once
            logger: Optional logger instance
        """
        if strip_height < 1 or max_tiles < 1:
            raise ValueError("strip_height and max_tiles must be positive")

        self.source = source
        self.width = width
        self.height = height
        self.strip_height = strip_height
        self.max_tiles = max_tiles
        self.logger = logger or logging.getLogger(__name__)

        self.hits = 0
        self.decode_order: List[int] = []

        self._strips: 'OrderedDict[int, np.ndarray]' = OrderedDict()
        self._cond = threading.Condition()
        self._cursor = 0
        self._decoding = False
        self._error: Optional[Exception] = None
        self._closed = False

    @staticmethod
    def capacity_for(nlines: int, strip_height: int) -> int:
        """Strips needed to serve nlines of input twice over."""
        return max(2, 2 * math.ceil(nlines / strip_height))

    @property
    def strip_count(self) -> int:
        return math.ceil(self.height / self.strip_height)

    @property
    def cursor(self) -> int:
        """Index of the next strip to be decoded."""
        return self._cursor

    @property
    def cached_indexes(self) -> List[int]:
        with self._cond:
            return list(self._strips)

    def fetch_strip(self, index: int) -> np.ndarray:
        """
        Get a strip, decoding up to it if needed.

        Blocks until the strip is available.

        Raises:
            SequentialReadError: If the strip was decoded and already evicted
            PipelineAborted: If the cache has been closed
        """
        if not 0 <= index < self.strip_count:
            raise IndexError(f"strip {index} out of range (0-{self.strip_count - 1})")

        with self._cond:
            while True:
                if self._closed:
                    raise PipelineAborted("tile cache closed", stage='cache')
                if self._error is not None:
                    raise self._error
                strip = self._strips.get(index)
                if strip is not None:
                    self.hits += 1
                    return strip
                if index < self._cursor:
                    raise SequentialReadError(
                        f"strip {index} already evicted (cursor at {self._cursor}, "
                        f"{self.max_tiles} strips cached)",
                        stage='cache',
                    )
                if not self._decoding:
                    self._decoding = True
                    break
                self._cond.wait()

        # We own the cursor until we release _decoding
        try:
            while True:
                next_index = self._cursor
                strip = self._decode(next_index)
                with self._cond:
                    if self._closed:
                        raise PipelineAborted("tile cache closed", stage='cache')
                    self._strips[next_index] = strip
                    self._cursor = next_index + 1
                    self.decode_order.append(next_index)
                    while len(self._strips) > self.max_tiles:
                        self._strips.popitem(last=False)
                    self._cond.notify_all()
                if next_index >= index:
                    return strip
        except Exception as e:
            with self._cond:
                if self._error is None and not isinstance(e, PipelineAborted):
                    self._error = e
            raise
        finally:
            with self._cond:
                self._decoding = False
                self._cond.notify_all()

    def _decode(self, index: int) -> np.ndarray:
        top = index * self.strip_height
        bottom = min(self.height, top + self.strip_height)
        return self.source.region(0, top, self.width, bottom)

    def region(self, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
        """Pixels for a region, assembled from strips in index order."""
        first = y0 // self.strip_height
        last = (y1 - 1) // self.strip_height
        strips = [self.fetch_strip(i) for i in range(first, last + 1)]
        rows = strips[0] if len(strips) == 1 else np.concatenate(strips, axis=0)
        offset = first * self.strip_height
        return rows[y0 - offset:y1 - offset, x0:x1]

    def close(self) -> None:
        """Drop all strips and wake any waiting threads."""
        with self._cond:
            self._closed = True
            self._strips.clear()
            self._cond.notify_all()
        self.logger.debug(
            f"Tile cache closed: {len(self.decode_order)} strips decoded, {self.hits} hits"
        )
