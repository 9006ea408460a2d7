"""
End-to-end tests for the pipeline with in-process collaborators.
"""

import os

import pytest

from multisub.exceptions import (AllTranslationsFailed, ChunkingFailure, ConfigurationError,
                                 EmptyTranscription, MediaNotFound, TranscriptionFailure)
from multisub.progress import ProgressReporter
from multisub.subtitle_formatter import SRTFormatter
from multisub.subtitle_generator import SubtitleGenerator

from conftest import FakeExtractor, FakeTranscriber, FakeTranslator, WordTokenEstimator

TWELVE_MINUTES = 720.0
DURATIONS = [300.0, 300.0, 120.0]


def make_generator(config, extractor=None, transcriber=None, translator=None, progress=None):
    return SubtitleGenerator(
        config=config,
        audio_extractor=extractor or FakeExtractor(TWELVE_MINUTES),
        transcriber=transcriber or FakeTranscriber(counts=[150, 150, 53], durations=DURATIONS),
        translator=translator or FakeTranslator(),
        token_estimator=WordTokenEstimator(),
        progress=progress,
    )


def read_entries(path):
    with open(path, encoding="utf-8") as f:
        return SRTFormatter().parse(f.read())


class TestEndToEnd:

    def test_twelve_minute_video_into_two_languages(self, base_config, video_file):
        extractor = FakeExtractor(TWELVE_MINUTES)
        progress = ProgressReporter(maxsize=1000)
        generator = make_generator(base_config, extractor=extractor, progress=progress)

        result = generator.generate(video_file, base_config["output_dir"])

        assert [c.duration_seconds for c in extractor.chunks] == DURATIONS
        assert result.audio_chunk_count == 3
        assert result.detected_language == "en"
        assert 0 < result.translation_chunk_count <= 25
        assert result.usage.api_calls == 3 + 2 * result.translation_chunk_count
        assert result.failed_languages == {}

        out_dir = base_config["output_dir"]
        assert result.original_path == os.path.join(out_dir, "subtitles_original.srt")
        assert result.outputs == {
            "ja": os.path.join(out_dir, "subtitles_ja.srt"),
            "es": os.path.join(out_dir, "subtitles_es.srt"),
        }

        original = read_entries(result.original_path)
        assert len(original) == 353
        assert [e.id for e in original] == list(range(1, 354))
        for prev, nxt in zip(original, original[1:]):
            assert prev.start <= nxt.start
        # first segment of the second and third chunks land on the chunk boundaries
        assert original[150].start == pytest.approx(300.0)
        assert original[300].start == pytest.approx(600.0)

        for lang in ("ja", "es"):
            translated = read_entries(result.outputs[lang])
            assert [(e.id, e.start, e.end) for e in translated] == [(e.id, e.start, e.end) for e in original]
            assert all(e.text.startswith(f"<{lang}> ") for e in translated)

        progress.close()
        percents = [e.percent for e in progress.events(timeout=1)]
        assert percents == sorted(percents)
        assert percents[-1] == 100

    def test_progress_restarts_for_each_run(self, base_config, video_file):
        progress = ProgressReporter(maxsize=1000)
        generator = make_generator(base_config, progress=progress)
        generator.generate(video_file, base_config["output_dir"], target_languages=[])
        generator.generate(video_file, base_config["output_dir"], target_languages=[])
        progress.close()
        events = list(progress.events(timeout=1))
        second_start = [i for i, e in enumerate(events) if e.message == "Splitting audio..."][1]
        assert events[second_start].percent == 0
        second = [e.percent for e in events[second_start:]]
        assert second == sorted(second)
        assert second[-1] == 100

    def test_temporary_chunks_removed(self, base_config, video_file):
        extractor = FakeExtractor(TWELVE_MINUTES)
        make_generator(base_config, extractor=extractor).generate(video_file, base_config["output_dir"])
        assert not os.path.exists(extractor.run_dirs[0])
        assert os.listdir(base_config["temp_dir"]) == []

    def test_without_target_languages(self, base_config, video_file):
        result = make_generator(base_config).generate(video_file, base_config["output_dir"], target_languages=[])
        assert result.outputs == {}
        assert result.translation_chunk_count == 0
        assert result.usage.api_calls == 3
        assert os.path.exists(result.original_path)


class TestLanguageFailures:

    def test_partial_failure_keeps_other_language(self, base_config, video_file):
        translator = FakeTranslator(drop_entry_languages={"es"})
        result = make_generator(base_config, translator=translator).generate(video_file, base_config["output_dir"])
        assert list(result.outputs) == ["ja"]
        assert "es" in result.failed_languages
        assert len(result.failed_languages["es"]) == result.translation_chunk_count
        assert not os.path.exists(os.path.join(base_config["output_dir"], "subtitles_es.srt"))
        # the rejected replies were still billed
        assert result.usage.api_calls == 3 + 2 * result.translation_chunk_count

    def test_all_languages_failing_fails_the_run(self, base_config, video_file):
        translator = FakeTranslator(fail_languages={"ja", "es"})
        with pytest.raises(AllTranslationsFailed) as exc:
            make_generator(base_config, translator=translator).generate(video_file, base_config["output_dir"])
        result = exc.value.result
        assert set(result.failed_languages) == {"ja", "es"}
        assert result.usage.api_calls == 3
        assert os.path.exists(result.original_path)


class TestFatalErrors:

    def test_missing_media(self, base_config, tmp_path):
        extractor = FakeExtractor(TWELVE_MINUTES)
        with pytest.raises(MediaNotFound):
            make_generator(base_config, extractor=extractor).generate(str(tmp_path / "nope.mp4"), base_config["output_dir"])
        assert extractor.run_dirs == []

    def test_chunking_failure_cleans_up(self, base_config, video_file):
        extractor = FakeExtractor(TWELVE_MINUTES, fail=True)
        translator = FakeTranslator()
        with pytest.raises(ChunkingFailure):
            make_generator(base_config, extractor=extractor, translator=translator).generate(
                video_file, base_config["output_dir"])
        assert not os.path.exists(extractor.run_dirs[0])
        assert translator.calls == []

    def test_transcription_failure_is_fatal(self, base_config, video_file):
        extractor = FakeExtractor(TWELVE_MINUTES)
        transcriber = FakeTranscriber(counts=[5, 5, 5], durations=DURATIONS, fail_on=2)
        with pytest.raises(TranscriptionFailure) as exc:
            make_generator(base_config, extractor=extractor, transcriber=transcriber).generate(
                video_file, base_config["output_dir"])
        assert exc.value.chunk_index == 2
        assert not os.path.exists(os.path.join(base_config["output_dir"], "subtitles_original.srt"))
        assert not os.path.exists(extractor.run_dirs[0])

    def test_empty_chunk_is_fatal(self, base_config, video_file):
        transcriber = FakeTranscriber(counts=[5, 0, 5], durations=DURATIONS)
        with pytest.raises(EmptyTranscription) as exc:
            make_generator(base_config, transcriber=transcriber).generate(video_file, base_config["output_dir"])
        assert exc.value.chunk_index == 1

    def test_reserved_tokens_must_fit_window(self, base_config):
        base_config["context_window"] = 400
        with pytest.raises(ConfigurationError):
            make_generator(base_config)
