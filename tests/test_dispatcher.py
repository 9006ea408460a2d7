"""
Tests for translation dispatch.
"""

import pytest

from multisub.dispatcher import TranslationDispatcher
from multisub.exceptions import ChunkTooLarge, TranslationCallFailed, TranslationFormatError
from multisub.models import SubtitleEntry, TranslationChunk, TranslationResponse, UsageStats
from multisub.progress import UsageAccumulator
from multisub.subtitle_chunker import SubtitleChunker
from multisub.translator import Translator

from conftest import FakeTranslator


@pytest.fixture
def usage():
    return UsageAccumulator()


@pytest.fixture
def chunks(estimator, document_factory):
    return SubtitleChunker(estimator).pack(document_factory(40), 15, 10_000, 25)


def make_dispatcher(translator, estimator, usage, context_window=4096, reserved=500, workers=3):
    return TranslationDispatcher(translator, estimator, usage, context_window=context_window,
                                 reserved_tokens=reserved, max_workers=workers)


class RenumberingTranslator(Translator):
    def translate(self, entries, source_lang, target_lang, max_response_tokens):
        shifted = [SubtitleEntry(e.id + 100, e.start + 5, e.end + 5, e.text.upper()) for e in entries]
        return TranslationResponse(self.formatter.serialize(shifted), UsageStats(api_calls=1))


class PromptlessTranslator(FakeTranslator):
    """Sends only the subtitle lines, like a local seq2seq model."""

    def request_tokens(self, entries, source_lang, target_lang, token_estimator):
        return sum(token_estimator.count(e.text) for e in entries)


class GarbageTranslator(Translator):
    def translate(self, entries, source_lang, target_lang, max_response_tokens):
        return TranslationResponse("Sorry, I cannot help with that.", UsageStats(tokens_used=12, input_tokens=10,
                                                                                  output_tokens=2, api_calls=1))


class TestTranslateChunk:

    def test_replaces_text_only(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(FakeTranslator(), estimator, usage)
        entries, stats = dispatcher.translate(chunks[0], "en", "ja")
        assert [e.id for e in entries] == [e.id for e in chunks[0].entries]
        assert [(e.start, e.end) for e in entries] == [(e.start, e.end) for e in chunks[0].entries]
        assert all(e.text.startswith("<ja> ") for e in entries)
        assert stats.api_calls == 1

    def test_keeps_source_ids_and_timing_when_reply_renumbers(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(RenumberingTranslator(), estimator, usage)
        entries, _ = dispatcher.translate(chunks[0], "en", "es")
        assert [(e.id, e.start) for e in entries] == [(e.id, e.start) for e in chunks[0].entries]
        assert entries[0].text == chunks[0].entries[0].text.upper()

    def test_response_budget_passed_to_backend(self, estimator, usage, chunks):
        translator = FakeTranslator()
        dispatcher = make_dispatcher(translator, estimator, usage, context_window=4096, reserved=500)
        expected = dispatcher.max_response_tokens(chunks[0], "en", "ja")
        dispatcher.translate(chunks[0], "en", "ja")
        assert translator.calls[0][2] == expected
        assert 0 < expected < 4096 - 500

    def test_chunk_too_large_skips_call(self, estimator, usage, chunks):
        translator = FakeTranslator()
        dispatcher = make_dispatcher(translator, estimator, usage, context_window=600, reserved=500)
        with pytest.raises(ChunkTooLarge) as exc:
            dispatcher.translate(chunks[0], "en", "ja")
        assert exc.value.chunk_index == 0
        assert exc.value.language == "ja"
        assert translator.calls == []
        assert usage.snapshot().api_calls == 0

    def test_budget_priced_by_translator_request(self, estimator, usage, chunks):
        translator = PromptlessTranslator()
        # the chat prompt alone would not fit, the bare lines do
        assert make_dispatcher(FakeTranslator(), estimator, usage, context_window=600,
                               reserved=500).max_response_tokens(chunks[0], "en", "ja") <= 0
        dispatcher = make_dispatcher(translator, estimator, usage, context_window=600, reserved=500)
        entries, _ = dispatcher.translate(chunks[0], "en", "ja")
        assert len(entries) == len(chunks[0].entries)
        assert translator.calls[0][2] == 600 - 500 - 3 * len(chunks[0].entries)

    def test_count_mismatch(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(FakeTranslator(drop_entry_languages={"es"}), estimator, usage)
        with pytest.raises(TranslationFormatError):
            dispatcher.translate(chunks[1], "en", "es")

    def test_usage_recorded_even_when_reply_rejected(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(GarbageTranslator(), estimator, usage)
        with pytest.raises(TranslationFormatError):
            dispatcher.translate(chunks[0], "en", "ja")
        assert usage.snapshot().tokens_used == 12
        assert usage.snapshot().api_calls == 1

    def test_backend_error_is_scoped(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(FakeTranslator(fail_languages={"ja"}), estimator, usage)
        with pytest.raises(TranslationCallFailed) as exc:
            dispatcher.translate(chunks[2], "en", "ja")
        assert exc.value.chunk_index == 2


class TestTranslateDocument:

    def test_all_languages_reassembled_in_chunk_order(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(FakeTranslator(), estimator, usage, workers=4)
        outcomes = dispatcher.translate_document(chunks, "en", ["ja", "es"])
        for lang in ("ja", "es"):
            assert outcomes[lang].complete
            assert [e.id for e in outcomes[lang].entries] == list(range(1, 41))
            assert all(e.text.startswith(f"<{lang}> ") for e in outcomes[lang].entries)
        assert usage.snapshot().api_calls == 2 * len(chunks)

    def test_failed_language_does_not_affect_sibling(self, estimator, usage, chunks):
        dispatcher = make_dispatcher(FakeTranslator(drop_entry_languages={"es"}), estimator, usage)
        outcomes = dispatcher.translate_document(chunks, "en", ["ja", "es"])
        assert outcomes["ja"].complete
        assert len(outcomes["ja"].entries) == 40
        assert not outcomes["es"].complete
        assert outcomes["es"].entries == []
        assert [e.chunk_index for e in outcomes["es"].errors] == [c.index for c in chunks]

    def test_single_chunk_failure_marks_language_incomplete(self, estimator, usage, chunks):
        first_id_of_second_chunk = chunks[1].entries[0].id
        translator = FakeTranslator(fail_chunk_first_ids={first_id_of_second_chunk})
        outcomes = make_dispatcher(translator, estimator, usage).translate_document(chunks, "en", ["ja", "es"])
        for lang in ("ja", "es"):
            assert not outcomes[lang].complete
            assert [e.chunk_index for e in outcomes[lang].errors] == [1]
        # the other chunks were still sent and billed
        assert usage.snapshot().api_calls == 2 * (len(chunks) - 1)

    def test_progress_callback(self, estimator, usage, chunks):
        seen = []
        dispatcher = make_dispatcher(FakeTranslator(), estimator, usage)
        dispatcher.translate_document(chunks, "en", ["ja"], on_pair_done=lambda d, t, l: seen.append((d, t)))
        assert seen[-1] == (len(chunks), len(chunks))
        assert [d for d, _ in seen] == list(range(1, len(chunks) + 1))
