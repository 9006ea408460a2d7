"""Combines per-chunk transcriptions into one globally timed subtitle document."""

import logging
from typing import List, Sequence

from .exceptions import DegenerateSegment, EmptyTranscription
from .models import AudioChunk, SubtitleDocument, SubtitleEntry, TranscriptionResult
from .utils import to_milliseconds

logger = logging.getLogger(__name__)


def compute_offsets(chunks: Sequence[AudioChunk]) -> List[float]:
    """
    Returns, for each chunk index, the summed duration of all lower-indexed chunks.

    Chunks must already be ordered 0..n-1.
    """
    offsets = []
    running = 0.0
    for chunk in chunks:
        offsets.append(running)
        running += chunk.duration_seconds
    return offsets


def _clean_text(text: str) -> str:
    # Blank lines would split a cue in the interchange format
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


class TimelineReconciler:
    """Shifts chunk-local segments onto the source timeline and renumbers them."""

    def __init__(self, fallback_language: str = "en"):
        self.fallback_language = fallback_language

    def reconcile(self, results: Sequence[TranscriptionResult], offsets: Sequence[float]) -> SubtitleDocument:
        """
        Builds the merged document.

        Args:
            results: One TranscriptionResult per chunk, any order.
            offsets: Offset table indexed by chunk index.

        Raises:
            EmptyTranscription: If a chunk has no segments with text.
            DegenerateSegment: If a segment ends before it starts.
        """
        ordered = sorted(results, key=lambda r: r.chunk_index)
        timed = []
        detected_language = ""
        for result in ordered:
            if result.chunk_index >= len(offsets):
                raise ValueError(f"No offset known for chunk {result.chunk_index}")
            if not detected_language and result.language:
                detected_language = result.language

            offset = offsets[result.chunk_index]
            kept = 0
            for segment in result.segments:
                if segment.end < segment.start:
                    raise DegenerateSegment(
                        f"Chunk {result.chunk_index} segment ends before it starts "
                        f"({segment.start:.3f}s > {segment.end:.3f}s): {segment.text[:40]!r}"
                    )
                text = _clean_text(segment.text)
                if not text:
                    logger.warning(f"Dropping blank segment at {segment.start:.3f}s in chunk {result.chunk_index}")
                    continue
                timed.append((segment.start + offset, segment.end + offset, text))
                kept += 1
            if not kept:
                raise EmptyTranscription(result.chunk_index)

        # sorted() is stable, so equal starts keep chunk/arrival order
        timed = sorted(timed, key=lambda item: item[0])

        entries = []
        for position, (start, end, text) in enumerate(timed, start=1):
            if to_milliseconds(end) <= to_milliseconds(start):
                end = (to_milliseconds(start) + 1) / 1000.0
            entries.append(SubtitleEntry(id=position, start=start, end=end, text=text))

        language = detected_language or self.fallback_language
        if not detected_language:
            logger.warning(f"No chunk reported a language; using fallback '{language}'")
        logger.info(f"Merged {len(ordered)} chunk(s) into {len(entries)} subtitle entries (language '{language}')")
        return SubtitleDocument(entries=entries, detected_language=language)
