"""Dispatches translation chunks to the translation backend, one call per chunk and language."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .exceptions import (ChunkScopedError, ChunkTooLarge, FormattingError,
                         TranslationCallFailed, TranslationFormatError)
from .models import LanguageOutcome, SubtitleEntry, TranslationChunk, UsageStats
from .progress import UsageAccumulator
from .subtitle_formatter import SRTFormatter
from .translator import Translator

logger = logging.getLogger(__name__)


class TranslationDispatcher:
    """
    Sends each (chunk, language) pair to a Translator under a response-token budget.

    Usage is merged into the shared accumulator as soon as a call returns, so
    a reply rejected afterwards is still accounted for. Failures are scoped to
    their pair; other chunks and languages carry on.
    """

    def __init__(self, translator: Translator, token_estimator, usage: UsageAccumulator,
                 context_window: int, reserved_tokens: int = 500, max_workers: int = 3,
                 formatter: Optional[SRTFormatter] = None):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.translator = translator
        self.token_estimator = token_estimator
        self.usage = usage
        self.context_window = context_window
        self.reserved_tokens = reserved_tokens
        self.max_workers = max_workers
        self.formatter = formatter or SRTFormatter()

    def max_response_tokens(self, chunk: TranslationChunk, source_lang: str, target_lang: str) -> int:
        prompt_tokens = self.translator.request_tokens(chunk.entries, source_lang, target_lang, self.token_estimator)
        return self.context_window - prompt_tokens - self.reserved_tokens

    def translate(self, chunk: TranslationChunk, source_lang: str,
                  target_lang: str) -> Tuple[List[SubtitleEntry], UsageStats]:
        """
        Translates one chunk into one language.

        Returns:
            The chunk's entries with translated text (ids and timings kept)
            and the usage of the call.

        Raises:
            ChunkTooLarge: If the prompt leaves no room for a response.
            TranslationCallFailed: If the backend raises.
            TranslationFormatError: If the reply cannot be matched to the chunk.
        """
        budget = self.max_response_tokens(chunk, source_lang, target_lang)
        if budget <= 0:
            raise ChunkTooLarge(
                chunk.index, target_lang,
                f"max response tokens is {budget}; reduce the chunk size ({len(chunk.entries)} entries)"
            )

        try:
            response = self.translator.translate(chunk.entries, source_lang, target_lang, budget)
        except Exception as e:
            raise TranslationCallFailed(chunk.index, target_lang, str(e)) from e

        self.usage.add(response.usage)

        try:
            parsed = self.formatter.parse(response.content)
        except FormattingError as e:
            raise TranslationFormatError(chunk.index, target_lang, f"unparsable reply: {e}") from e
        if len(parsed) != len(chunk.entries):
            raise TranslationFormatError(
                chunk.index, target_lang,
                f"expected {len(chunk.entries)} entries, received {len(parsed)}"
            )

        translated = []
        for source, target in zip(chunk.entries, parsed):
            if target.id != source.id:
                logger.warning(
                    f"[chunk {chunk.index}, {target_lang}] reply renumbered entry {source.id} as {target.id}; "
                    f"keeping the original number and timing"
                )
            translated.append(SubtitleEntry(id=source.id, start=source.start, end=source.end, text=target.text))

        logger.info(
            f"Translated chunk {chunk.index} ({len(translated)} entries) to {target_lang}. "
            f"Tokens used: {response.usage.tokens_used}"
        )
        return translated, response.usage

    def translate_document(self, chunks: Sequence[TranslationChunk], source_lang: str,
                           target_languages: Sequence[str],
                           on_pair_done: Optional[Callable[[int, int, str], None]] = None) -> Dict[str, LanguageOutcome]:
        """
        Translates every chunk into every target language.

        Args:
            chunks: Chunks in document order.
            source_lang: Detected source language.
            target_languages: Languages to produce.
            on_pair_done: Called with (completed, total, language) after each pair.

        Returns:
            One LanguageOutcome per language. Entries are reassembled in chunk
            order; a language with any failed chunk carries its errors and no
            entries.
        """
        outcomes = {lang: LanguageOutcome(language=lang) for lang in target_languages}
        translated: Dict[Tuple[int, str], List[SubtitleEntry]] = {}
        total = len(chunks) * len(outcomes)
        completed = 0

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="translate") as executor:
            futures = {}
            for lang in outcomes:
                for chunk in chunks:
                    futures[executor.submit(self.translate, chunk, source_lang, lang)] = (chunk.index, lang)

            for future in as_completed(futures):
                chunk_index, lang = futures[future]
                try:
                    entries, _ = future.result()
                    translated[(chunk_index, lang)] = entries
                except ChunkScopedError as e:
                    logger.error(f"Translation failed for chunk {chunk_index} ({lang}): {e}")
                    outcomes[lang].errors.append(e)
                completed += 1
                if on_pair_done:
                    on_pair_done(completed, total, lang)

        for lang, outcome in outcomes.items():
            if outcome.errors:
                outcome.errors.sort(key=lambda err: err.chunk_index)
                continue
            for chunk in chunks:
                outcome.entries.extend(translated[(chunk.index, lang)])
        return outcomes
