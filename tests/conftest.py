"""
Shared fixtures: in-process stand-ins for ffmpeg, speech-to-text and translation.
"""

import os
import threading

import pytest

from multisub.chunk_planner import ChunkPlanner
from multisub.config_loader import ConfigLoader
from multisub.exceptions import TranscriptionError, TranslationError
from multisub.models import (AudioChunk, Segment, SubtitleDocument, SubtitleEntry,
                             TranscriptionResult, TranslationResponse, UsageStats)
from multisub.translator import Translator


class WordTokenEstimator:
    """Counts whitespace-separated words; deterministic and offline."""

    def count(self, text):
        return len(text.split())

    def count_messages(self, messages):
        total = 0
        for message in messages:
            total += 3
            for key in ("role", "content", "name"):
                if message.get(key):
                    total += self.count(message[key])
        return total + 3


class FakeExtractor:
    """Writes placeholder chunk files for a media file of a given duration."""

    def __init__(self, total_duration, fail=False):
        self.total_duration = total_duration
        self.fail = fail
        self.run_dirs = []
        self.chunks = []

    def split_audio(self, video_filepath, output_audio_dir, segment_length):
        from multisub.exceptions import ChunkingFailure
        self.run_dirs.append(output_audio_dir)
        if self.fail:
            with open(os.path.join(output_audio_dir, "partial.wav"), "wb") as f:
                f.write(b"RIFF")
            raise ChunkingFailure("ffmpeg failed: simulated")
        chunks = []
        for span in ChunkPlanner(segment_length).plan_spans(self.total_duration):
            path = os.path.join(output_audio_dir, f"chunk_{span.index:04d}.wav")
            with open(path, "wb") as f:
                f.write(b"RIFF0000WAVE")
            chunks.append(AudioChunk(index=span.index, path=path, duration_seconds=span.duration_seconds))
        self.chunks = chunks
        return chunks


def _chunk_index(audio_path):
    return int(os.path.splitext(os.path.basename(audio_path))[0].split("_")[-1])


class FakeTranscriber:
    """Returns `counts[i]` evenly spaced segments for chunk i."""

    def __init__(self, counts, durations, language="en", fail_on=None, tokens_per_call=0):
        self.counts = counts
        self.durations = durations
        self.language = language
        self.fail_on = fail_on
        self.tokens_per_call = tokens_per_call
        self.calls = []
        self._lock = threading.Lock()

    def transcribe(self, audio_path):
        index = _chunk_index(audio_path)
        with self._lock:
            self.calls.append(index)
        if self.fail_on == index:
            raise TranscriptionError(f"simulated outage on chunk {index}")
        count = self.counts[index]
        step = self.durations[index] / max(count, 1)
        segments = [
            Segment(start=k * step, end=k * step + step * 0.9, text=f"chunk {index} line {k} says hello", language=self.language)
            for k in range(count)
        ]
        usage = UsageStats(tokens_used=self.tokens_per_call, output_tokens=self.tokens_per_call, api_calls=1)
        return TranscriptionResult(language=self.language, segments=segments, usage=usage)


class FakeTranslator(Translator):
    """Prefixes every line with the target language; can fail or misbehave per language."""

    def __init__(self, fail_languages=(), drop_entry_languages=(), fail_chunk_first_ids=()):
        super().__init__()
        self.fail_languages = set(fail_languages)
        self.drop_entry_languages = set(drop_entry_languages)
        self.fail_chunk_first_ids = set(fail_chunk_first_ids)
        self.calls = []
        self._lock = threading.Lock()

    def translate(self, entries, source_lang, target_lang, max_response_tokens):
        with self._lock:
            self.calls.append((entries[0].id, target_lang, max_response_tokens))
        if target_lang in self.fail_languages or entries[0].id in self.fail_chunk_first_ids:
            raise TranslationError(f"simulated failure for {target_lang}")
        translated = [
            SubtitleEntry(id=e.id, start=e.start, end=e.end, text=f"<{target_lang}> {e.text}")
            for e in entries
        ]
        if target_lang in self.drop_entry_languages:
            translated = translated[:-1]
        usage = UsageStats(tokens_used=10, input_tokens=7, output_tokens=3, api_calls=1)
        return TranslationResponse(content=self.formatter.serialize(translated), usage=usage)


def make_document(count, words=3, language="en"):
    entries = [
        SubtitleEntry(id=i + 1, start=i * 2.0, end=i * 2.0 + 1.5, text=" ".join(["word"] * words))
        for i in range(count)
    ]
    return SubtitleDocument(entries=entries, detected_language=language)


@pytest.fixture
def estimator():
    return WordTokenEstimator()


@pytest.fixture
def document_factory():
    return make_document


@pytest.fixture
def base_config(tmp_path):
    return ConfigLoader().with_defaults({
        'temp_dir': str(tmp_path / "temp"),
        'output_dir': str(tmp_path / "out"),
        'target_languages': ['ja', 'es'],
    })


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "lecture.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return str(path)
