"""Decides audio chunk boundaries and orders transcoder chunk artifacts."""

import logging
import math
from typing import Iterable, List

from .exceptions import ChunkingFailure
from .models import AudioChunk, ChunkSpan

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_LENGTH = 300.0


class ChunkPlanner:
    """Splits a media duration into fixed-length, contiguous chunk spans."""

    def __init__(self, segment_length: float = DEFAULT_SEGMENT_LENGTH):
        if segment_length <= 0:
            raise ChunkingFailure(f"Segment length must be positive, got {segment_length}")
        self.segment_length = float(segment_length)

    def plan_spans(self, total_duration: float) -> List[ChunkSpan]:
        """
        Returns ceil(total_duration / segment_length) spans indexed 0..n-1.

        The last span covers whatever remains, so it is usually shorter.

        Raises:
            ChunkingFailure: If the duration is not positive.
        """
        if total_duration is None or total_duration <= 0:
            raise ChunkingFailure(f"Cannot plan chunks for a media duration of {total_duration}")

        count = math.ceil(total_duration / self.segment_length)
        spans = []
        for index in range(count):
            start = index * self.segment_length
            length = min(self.segment_length, total_duration - start)
            spans.append(ChunkSpan(index=index, start_seconds=start, duration_seconds=length))
        logger.info(f"Planned {count} chunk(s) of up to {self.segment_length:.0f}s for {total_duration:.2f}s of media")
        return spans

    @staticmethod
    def order_chunks(chunks: Iterable[AudioChunk]) -> List[AudioChunk]:
        """
        Orders chunk artifacts by index and checks they form 0..n-1.

        Raises:
            ChunkingFailure: If there are no chunks, or indexes repeat or skip.
        """
        ordered = sorted(chunks, key=lambda c: c.index)
        if not ordered:
            raise ChunkingFailure("Transcoder produced no audio chunks")
        for position, chunk in enumerate(ordered):
            if chunk.index != position:
                raise ChunkingFailure(
                    f"Audio chunk indexes are not contiguous: expected {position}, found {chunk.index}"
                )
            if chunk.duration_seconds < 0:
                raise ChunkingFailure(f"Chunk {chunk.index} reports a negative duration")
        return ordered
