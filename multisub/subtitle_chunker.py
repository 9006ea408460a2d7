"""Packs a subtitle document into translation request batches."""

import logging
import math
from typing import List, Sequence

from .models import SubtitleDocument, SubtitleEntry, TranslationChunk
from .subtitle_formatter import SRTFormatter

logger = logging.getLogger(__name__)

ENTRY_SEPARATOR = "\n\n"
DEFAULT_EXPANSION_FACTOR = 2.0


class SubtitleChunker:
    """
    Splits a document into ordered, contiguous TranslationChunks.

    The greedy pass closes a batch as soon as the next entry would exceed
    either the entry cap or the token budget, where an entry is charged its
    own tokens plus an expanded estimate of its translation. If that yields
    more batches than `max_total_chunks`, the document is instead sliced
    evenly into `max_total_chunks` groups. That fallback keeps the call
    ceiling but may exceed the entry cap and the token budget.
    """

    def __init__(self, token_estimator, formatter: SRTFormatter = None,
                 expansion_factor: float = DEFAULT_EXPANSION_FACTOR):
        """
        Args:
            token_estimator: Object with a `count(text) -> int` method.
            formatter: Formatter used to price entries as they will be sent.
            expansion_factor: Translated-text size relative to source tokens.
        """
        if expansion_factor < 0:
            raise ValueError("expansion_factor cannot be negative")
        self.token_estimator = token_estimator
        self.formatter = formatter or SRTFormatter()
        self.expansion_factor = expansion_factor

    def entry_tokens(self, entry: SubtitleEntry) -> int:
        return self.token_estimator.count(self.formatter.serialize_entry(entry) + ENTRY_SEPARATOR)

    def pack(self, document: SubtitleDocument, max_entries_per_chunk: int, token_budget_per_chunk: int,
             max_total_chunks: int, overhead_tokens: int = 0) -> List[TranslationChunk]:
        """
        Args:
            document: The merged subtitle document.
            max_entries_per_chunk: Entry cap per batch.
            token_budget_per_chunk: Token budget per request (window minus safety margin).
            max_total_chunks: Hard ceiling on the number of batches.
            overhead_tokens: Fixed prompt cost charged to every batch.

        Returns:
            Chunks whose entries concatenate back to the document's entries.
        """
        if max_entries_per_chunk <= 0 or max_total_chunks <= 0:
            raise ValueError("max_entries_per_chunk and max_total_chunks must be positive")
        if token_budget_per_chunk <= 0:
            raise ValueError("token_budget_per_chunk must be positive")

        entries = document.entries
        if not entries:
            return []

        costs = [self.entry_tokens(entry) for entry in entries]
        groups = self._greedy(costs, max_entries_per_chunk, token_budget_per_chunk, overhead_tokens)
        logger.debug(f"Greedy packing produced {len(groups)} chunk(s) for {len(entries)} entries")

        if len(groups) > max_total_chunks:
            size = math.ceil(len(entries) / max_total_chunks)
            groups = [(i, min(i + size, len(entries))) for i in range(0, len(entries), size)]
            logger.info(
                f"Re-chunked into {len(groups)} even chunk(s) of up to {size} entries "
                f"to stay within {max_total_chunks} API calls"
            )

        chunks = []
        for index, (begin, end) in enumerate(groups):
            estimated = overhead_tokens + sum(costs[begin:end])
            if estimated > token_budget_per_chunk:
                logger.warning(
                    f"Chunk {index} is estimated at {estimated} tokens, over the {token_budget_per_chunk} token budget"
                )
            chunks.append(TranslationChunk(index=index, entries=list(entries[begin:end]), estimated_tokens=estimated))
        logger.info(f"Packed {len(entries)} entries into {len(chunks)} translation chunk(s)")
        return chunks

    def _greedy(self, costs: Sequence[int], max_entries: int, budget: int, overhead: int):
        """Returns [begin, end) index ranges of the greedy batches."""
        groups = []
        begin = 0
        running = overhead
        for position, raw in enumerate(costs):
            expanded = math.ceil(raw * self.expansion_factor)
            count = position - begin
            if count + 1 > max_entries or running + raw + expanded > budget:
                if count > 0:
                    groups.append((begin, position))
                begin = position
                running = overhead + raw
            else:
                running += raw
        groups.append((begin, len(costs)))
        return groups
