"""Orchestrates the subtitle generation pipeline."""

import logging
import os
import shutil
import tempfile
import time
from typing import List, Optional, Sequence

from .audio_extractor import AudioExtractor
from .dispatcher import TranslationDispatcher
from .exceptions import (AllTranslationsFailed, ConfigurationError, MediaNotFound,
                         MultiSubError, PartialLanguageFailure)
from .models import AudioChunk, PipelineResult
from .progress import (STAGE_CLEANUP, STAGE_MERGE, STAGE_SPLIT, STAGE_TRANSCRIBE,
                       STAGE_TRANSLATE, ProgressReporter, UsageAccumulator)
from .subtitle_chunker import SubtitleChunker
from .subtitle_formatter import SRTFormatter
from .timeline import TimelineReconciler, compute_offsets
from .tokens import context_window_for
from .transcriber import ChunkTranscriber, Transcriber
from .translator import Translator
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

ORIGINAL_NAME = "subtitles_original"
OUTPUT_EXTENSION = "srt"

class SubtitleGenerator:
    """
    Manages the end-to-end process of generating subtitles for a video file.
    """

    def __init__(
        self,
        config: dict,
        audio_extractor: AudioExtractor,
        transcriber: Transcriber,
        translator: Translator,
        token_estimator,
        progress: Optional[ProgressReporter] = None
    ):
        """
        Initializes the SubtitleGenerator.

        Args:
            config: A merged configuration dictionary (see config_loader.DEFAULT_CONFIG).
            audio_extractor: Transcoder that splits media into audio chunks.
            transcriber: Speech-to-text backend.
            translator: Translation backend.
            token_estimator: Object with count() and count_messages().
            progress: Reporter that receives progress events.
        """
        self.config = config
        self.audio_extractor = audio_extractor
        self.transcriber = transcriber
        self.translator = translator
        self.token_estimator = token_estimator
        self.progress = progress or ProgressReporter()
        self.formatter = SRTFormatter()

        self.temp_dir = config.get('temp_dir')
        if not self.temp_dir:
            raise ConfigurationError("Configuration missing 'temp_dir'.")

        self.segment_length = float(config.get('segment_length_seconds', 300))
        self.max_entries_per_chunk = config.get('max_entries_per_chunk', 15)
        self.max_api_calls = config.get('max_api_calls', 25)
        self.reserved_tokens = config.get('reserved_tokens', 500)
        self.context_window = context_window_for(config.get('translation_model', 'gpt-4o'),
                                                 config.get('context_window'))
        if self.context_window - self.reserved_tokens <= 0:
            raise ConfigurationError(
                f"Context window ({self.context_window}) must exceed reserved tokens ({self.reserved_tokens})."
            )
        self.chunker = SubtitleChunker(token_estimator, self.formatter,
                                       expansion_factor=float(config.get('expansion_factor', 2.0)))
        self.reconciler = TimelineReconciler(fallback_language=config.get('fallback_language', 'en'))

    def _output_path(self, output_dir: str, name: str) -> str:
        return os.path.join(output_dir, f"{name}.{OUTPUT_EXTENSION}")

    def _overhead_tokens(self, source_lang: str, target_languages: Sequence[str]) -> int:
        """Largest fixed prompt cost across the target languages."""
        costs = [
            self.translator.prompt_overhead(source_lang, lang, self.token_estimator)
            for lang in target_languages
        ]
        return max(costs) if costs else 0

    def _cleanup_temp_files(self, chunks: List[AudioChunk], run_dir: Optional[str]) -> None:
        """Removes this run's chunk files and its temporary directory. Never raises."""
        for chunk in chunks:
            if os.path.exists(chunk.path):
                try:
                    os.remove(chunk.path)
                    logger.debug(f"Cleaned up temporary file: {chunk.path}")
                except OSError as e:
                    logger.warning(f"Could not remove temporary file {chunk.path}: {e}")
        if run_dir and os.path.isdir(run_dir):
            try:
                shutil.rmtree(run_dir)
                logger.info(f"Cleaned up temporary directory: {run_dir}")
            except OSError as e:
                logger.warning(f"Could not remove temporary directory {run_dir}: {e}")

    def generate(self, video_path: str, output_dir: str,
                 target_languages: Optional[Sequence[str]] = None) -> PipelineResult:
        """
        Executes the full subtitle generation pipeline for a single video.

        Args:
            video_path: Path to the input video file.
            output_dir: Directory to save the final subtitle files.
            target_languages: Languages to translate into; defaults to the config.

        Returns:
            A PipelineResult with output paths, failed languages and usage.

        Raises:
            MediaNotFound: If the input video is not found.
            AllTranslationsFailed: If no target language was fully translated.
            MultiSubError: For any other fatal pipeline error.
        """
        if not os.path.isfile(video_path):
            raise MediaNotFound(f"Input video file not found: {video_path}")

        if target_languages is None:
            target_languages = self.config.get('target_languages', [])
        target_languages = list(dict.fromkeys(target_languages))

        start_time = time.time()
        logger.info(f"--- Starting MultiSub process for: {video_path} ---")
        ensure_dir_exists(output_dir)
        ensure_dir_exists(self.temp_dir)

        self.progress.reset()
        usage = UsageAccumulator()
        chunks: List[AudioChunk] = []
        # Every run owns its own directory, so concurrent runs never share chunk files
        run_dir = tempfile.mkdtemp(prefix="multisub_", dir=self.temp_dir)

        try:
            # 1. Split audio
            self.progress.report(STAGE_SPLIT[0], "Splitting audio...")
            chunks = self.audio_extractor.split_audio(video_path, run_dir, self.segment_length)
            offsets = compute_offsets(chunks)
            self.progress.report(STAGE_SPLIT[1], f"Audio split into {len(chunks)} chunk(s).")

            # 2. Transcribe
            chunk_transcriber = ChunkTranscriber(self.transcriber, usage,
                                                 max_workers=self.config.get('transcription_workers', 3))
            results = chunk_transcriber.transcribe_all(
                chunks,
                on_chunk_done=lambda done, total: self.progress.stage_progress(
                    STAGE_TRANSCRIBE, done, total, f"Transcribed chunk {done}/{total}.")
            )

            # 3. Merge
            document = self.reconciler.reconcile(results, offsets)
            original_path = self._output_path(output_dir, ORIGINAL_NAME)
            self.formatter.write(document.entries, original_path)
            self.progress.report(STAGE_MERGE[1], f"Original subtitles generated ({len(document)} entries).")

            result = PipelineResult(
                detected_language=document.detected_language,
                usage=usage.snapshot(),
                original_path=original_path,
                audio_chunk_count=len(chunks)
            )

            # 4. Translate
            if target_languages:
                source_lang = document.detected_language
                translation_chunks = self.chunker.pack(
                    document,
                    max_entries_per_chunk=self.max_entries_per_chunk,
                    token_budget_per_chunk=self.context_window - self.reserved_tokens,
                    max_total_chunks=self.max_api_calls,
                    overhead_tokens=self._overhead_tokens(source_lang, target_languages)
                )
                result.translation_chunk_count = len(translation_chunks)
                self.progress.report(
                    STAGE_TRANSLATE[0],
                    f"Translating {len(translation_chunks)} chunk(s) into {', '.join(l.upper() for l in target_languages)}..."
                )

                dispatcher = TranslationDispatcher(
                    self.translator, self.token_estimator, usage,
                    context_window=self.context_window,
                    reserved_tokens=self.reserved_tokens,
                    max_workers=self.config.get('translation_workers', 3),
                    formatter=self.formatter
                )
                outcomes = dispatcher.translate_document(
                    translation_chunks, source_lang, target_languages,
                    on_pair_done=lambda done, total, lang: self.progress.stage_progress(
                        STAGE_TRANSLATE, done, total, f"Translated {done}/{total} chunk(s) ({lang.upper()}).")
                )

                for lang, outcome in outcomes.items():
                    if outcome.complete:
                        outcome.output_path = self._output_path(output_dir, f"subtitles_{lang}")
                        self.formatter.write(outcome.entries, outcome.output_path)
                        result.outputs[lang] = outcome.output_path
                        logger.info(f"SRT file generated for {lang.upper()}: {outcome.output_path}")
                    else:
                        partial = PartialLanguageFailure(lang, [e.chunk_index for e in outcome.errors])
                        logger.warning(f"{partial}. No file written for {lang.upper()}.")
                        result.failed_languages[lang] = [str(e) for e in outcome.errors]

            result.usage = usage.snapshot()
            if target_languages and not result.outputs:
                raise AllTranslationsFailed(
                    f"No target language was fully translated: {', '.join(target_languages)}", result
                )

            logger.info(
                f"--- MultiSub process completed in {time.time() - start_time:.2f} seconds "
                f"(language '{result.detected_language}', usage {result.usage.as_dict()}) ---"
            )
            return result

        except MultiSubError as e:
            logger.error(f"MultiSub process failed: {e}", exc_info=False) # No stack needed for expected errors
            raise
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred during subtitle generation: {e}", exc_info=True)
            raise MultiSubError(f"An unexpected critical error occurred: {e}") from e
        finally:
            # 5. Cleanup
            self.progress.report(STAGE_CLEANUP[0], "Cleaning up temporary files...")
            self._cleanup_temp_files(chunks, run_dir)
            self.progress.report(STAGE_CLEANUP[1], "Done.")
