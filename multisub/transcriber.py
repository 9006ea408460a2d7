"""Handles Speech-to-Text transcription of audio chunks."""

import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from openai import OpenAI, OpenAIError

from .exceptions import TranscriptionError, TranscriptionFailure
from .models import AudioChunk, Segment, TranscriptionResult, UsageStats
from .progress import UsageAccumulator
from .prompts import normalize_language_code

logger = logging.getLogger(__name__)

class Transcriber(ABC):
    """Abstract base class for transcription services."""

    @abstractmethod
    def transcribe(self, audio_path: str) -> TranscriptionResult:
        """
        Transcribes the given audio file.

        Args:
            audio_path: Path to the audio file.

        Returns:
            A TranscriptionResult with chunk-local segments, the detected
            language and the usage of the call.

        Raises:
            TranscriptionError: If transcription fails.
        """
        pass


def _field(item, name, default=None):
    """Reads a field from either an SDK object or a plain dict."""
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


class OpenAITranscriber(Transcriber):
    """Implements transcription using the OpenAI audio transcription API."""

    def __init__(self, api_key: Optional[str], model_name: str = "whisper-1",
                 language_hint: Optional[str] = None, client: Optional[OpenAI] = None):
        """
        Initializes the OpenAITranscriber.

        Args:
            api_key: OpenAI API key. Ignored when a client is given.
            model_name: Transcription model identifier.
            language_hint: Optional ISO 639-1 code passed to the API; None auto-detects.
            client: Pre-built OpenAI client, mainly for tests.
        """
        if client is None and not api_key:
            raise TranscriptionError("An OpenAI API key is required for the 'openai' transcription backend.")
        self.client = client or OpenAI(api_key=api_key)
        self.model_name = model_name
        self.language_hint = language_hint
        logger.info(f"Initializing OpenAITranscriber with model '{self.model_name}'")

    def transcribe(self, audio_path: str) -> TranscriptionResult:
        logger.info(f"Starting transcription for: {audio_path}")
        kwargs = {}
        if self.language_hint:
            kwargs['language'] = self.language_hint
        try:
            with open(audio_path, 'rb') as audio_file:
                response = self.client.audio.transcriptions.create(
                    model=self.model_name,
                    file=audio_file,
                    response_format="verbose_json",
                    **kwargs
                )
        except (OpenAIError, OSError) as e:
            logger.error(f"OpenAI transcription request failed for {audio_path}: {e}")
            raise TranscriptionError(f"OpenAI transcription failed for {audio_path}: {e}") from e

        language = normalize_language_code(_field(response, 'language') or '')
        segments = []
        for seg_data in _field(response, 'segments') or []:
            text = (_field(seg_data, 'text') or '').strip()
            if not text:
                continue
            segments.append(Segment(
                start=float(_field(seg_data, 'start', 0.0)),
                end=float(_field(seg_data, 'end', 0.0)),
                text=text,
                language=language
            ))

        # Token usage is only reported by token-billed models
        usage = _field(response, 'usage')
        input_tokens = int(_field(usage, 'input_tokens', 0) or 0) if usage is not None else 0
        output_tokens = int(_field(usage, 'output_tokens', 0) or 0) if usage is not None else 0
        total_tokens = int(_field(usage, 'total_tokens', 0) or 0) if usage is not None else 0
        stats = UsageStats(
            tokens_used=total_tokens or input_tokens + output_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            api_calls=1
        )
        logger.info(f"Transcription completed: {len(segments)} segments, language '{language or 'N/A'}'")
        return TranscriptionResult(language=language or None, segments=segments, usage=stats)


class WhisperTranscriber(Transcriber):
    """Implements transcription using a local openai-whisper model."""

    def __init__(self, model_name: str = "medium", device: str = "cuda", fp16: bool = True,
                 language_hint: Optional[str] = None):
        """
        Initializes the WhisperTranscriber.

        Args:
            model_name: The name of the Whisper model to use (e.g., "base", "medium").
            device: The device to run the model on ("cuda" or "cpu").
            fp16: Whether to use float16 precision (faster on compatible GPUs).
            language_hint: Optional language code; None lets Whisper detect it.

        Raises:
            ValueError: If the specified device is invalid.
            TranscriptionError: If the model fails to load.
        """
        import torch
        import whisper

        self.model_name = model_name
        self.device = device
        self.fp16 = fp16
        self.language_hint = language_hint
        # A single model instance is shared by all transcription workers
        self._lock = threading.Lock()

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available. Falling back to CPU.")
            self.device = "cpu"
        elif self.device not in ["cuda", "cpu"]:
             raise ValueError(f"Invalid device specified: {self.device}. Choose 'cuda' or 'cpu'.")

        logger.info(f"Initializing WhisperTranscriber with model '{self.model_name}' on device '{self.device}' (FP16: {self.fp16})")
        try:
            self.model = whisper.load_model(self.model_name, device=self.device)
            logger.info(f"Whisper model '{self.model_name}' loaded successfully.")
        except Exception as e:
            logger.error(f"Failed to load Whisper model '{self.model_name}': {e}", exc_info=True)
            raise TranscriptionError(f"Failed to load Whisper model '{self.model_name}': {e}") from e

    def transcribe(self, audio_path: str) -> TranscriptionResult:
        logger.info(f"Starting local transcription for: {audio_path}")
        try:
            with self._lock:
                result = self.model.transcribe(
                    audio_path,
                    language=self.language_hint,
                    fp16=self.fp16 if self.device == "cuda" else False, # FP16 only works on CUDA
                    verbose=None
                )
        except Exception as e:
            logger.error(f"Error during Whisper transcription process for {audio_path}: {e}", exc_info=True)
            raise TranscriptionError(f"Whisper transcription failed for {audio_path}: {e}") from e

        language = result.get('language') or ''
        segments = []
        output_tokens = 0
        for seg_data in result.get('segments', []):
            if 'start' in seg_data and 'end' in seg_data and 'text' in seg_data:
                output_tokens += len(seg_data.get('tokens', []))
                text = seg_data['text'].strip()
                if text:
                    segments.append(Segment(
                        start=float(seg_data['start']),
                        end=float(seg_data['end']),
                        text=text,
                        language=language
                    ))
            else:
                logger.warning(f"Skipping incomplete segment data: {seg_data}")

        logger.info(f"Transcription completed: {len(segments)} segments, language '{language or 'N/A'}'")
        usage = UsageStats(tokens_used=output_tokens, output_tokens=output_tokens, api_calls=1)
        return TranscriptionResult(language=language or None, segments=segments, usage=usage)


class ChunkTranscriber:
    """
    Runs a Transcriber over audio chunks with a bounded worker pool.

    Results are stored by chunk index, never by completion order. The first
    failure cancels the chunks that have not started and is raised as a
    TranscriptionFailure.
    """

    def __init__(self, transcriber: Transcriber, usage: UsageAccumulator, max_workers: int = 3):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self.transcriber = transcriber
        self.usage = usage
        self.max_workers = max_workers

    def transcribe(self, chunk: AudioChunk) -> TranscriptionResult:
        if not os.path.isfile(chunk.path) or os.path.getsize(chunk.path) == 0:
            raise TranscriptionFailure(chunk.index, f"audio chunk is missing or empty: {chunk.path}")
        try:
            result = self.transcriber.transcribe(chunk.path)
        except Exception as e:
            logger.error(f"Transcription of chunk {chunk.index} ({chunk.path}) failed: {e}")
            raise TranscriptionFailure(chunk.index, str(e)) from e

        result.chunk_index = chunk.index
        self.usage.add(result.usage)
        logger.info(f"Chunk {chunk.index}: {len(result.segments)} segments")
        return result

    def transcribe_all(self, chunks: List[AudioChunk],
                       on_chunk_done: Optional[Callable[[int, int], None]] = None) -> List[TranscriptionResult]:
        """
        Transcribes every chunk and returns the results ordered by chunk index.

        Args:
            chunks: Chunks indexed 0..n-1.
            on_chunk_done: Called with (completed, total) after each chunk.
        """
        results: List[Optional[TranscriptionResult]] = [None] * len(chunks)
        completed = 0
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="transcribe") as executor:
            futures = {executor.submit(self.transcribe, chunk): chunk.index for chunk in chunks}
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
                    completed += 1
                    if on_chunk_done:
                        on_chunk_done(completed, len(chunks))
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise
        return results
