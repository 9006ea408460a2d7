"""Handles translation of subtitle batches."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from openai import OpenAI, OpenAIError

from .exceptions import TranslationError
from .models import SubtitleEntry, TranslationResponse, UsageStats
from .prompts import build_messages, build_translation_prompt
from .subtitle_formatter import SRTFormatter

logger = logging.getLogger(__name__)

class Translator(ABC):
    """Abstract base class for translation services."""

    def __init__(self, formatter: Optional[SRTFormatter] = None):
        self.formatter = formatter or SRTFormatter()

    def request_messages(self, entries: Sequence[SubtitleEntry], source_lang: str,
                         target_lang: str) -> List[Dict[str, str]]:
        """Chat messages describing one batch; also used to price the request."""
        prompt = build_translation_prompt(source_lang, target_lang)
        return build_messages(prompt, self.formatter.serialize(entries))

    def request_tokens(self, entries: Sequence[SubtitleEntry], source_lang: str, target_lang: str,
                       token_estimator) -> int:
        """Tokens the request for this batch will consume, prompt included."""
        return token_estimator.count_messages(self.request_messages(entries, source_lang, target_lang))

    def prompt_overhead(self, source_lang: str, target_lang: str, token_estimator) -> int:
        """Fixed cost of a request before any subtitle text is added."""
        return self.request_tokens([], source_lang, target_lang, token_estimator)

    @abstractmethod
    def translate(self, entries: Sequence[SubtitleEntry], source_lang: str, target_lang: str,
                  max_response_tokens: int) -> TranslationResponse:
        """
        Translates a batch of subtitle entries.

        Args:
            entries: The batch, in document order.
            source_lang: Source language code (e.g., 'en').
            target_lang: Target language code (e.g., 'ja').
            max_response_tokens: Upper bound on generated tokens.

        Returns:
            The translated batch in the SRT interchange format, plus usage.

        Raises:
            TranslationError: If translation fails.
        """
        pass


class OpenAITranslator(Translator):
    """Implements translation using OpenAI chat completions."""

    def __init__(self, api_key: Optional[str], model_name: str = "gpt-4o", temperature: float = 0.3,
                 client: Optional[OpenAI] = None, formatter: Optional[SRTFormatter] = None):
        """
        Initializes the OpenAITranslator.

        Args:
            api_key: OpenAI API key. Ignored when a client is given.
            model_name: Chat model identifier.
            temperature: Sampling temperature.
            client: Pre-built OpenAI client, mainly for tests.
        """
        super().__init__(formatter)
        if client is None and not api_key:
            raise TranslationError("An OpenAI API key is required for the 'openai' translation backend.")
        self.client = client or OpenAI(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature
        logger.info(f"Initializing OpenAITranslator with model '{self.model_name}'")

    def translate(self, entries, source_lang, target_lang, max_response_tokens):
        messages = self.request_messages(entries, source_lang, target_lang)
        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                max_tokens=max_response_tokens,
                temperature=self.temperature,
                top_p=1,
                n=1,
            )
        except OpenAIError as e:
            raise TranslationError(f"OpenAI translation request failed: {e}") from e

        content = (response.choices[0].message.content or "").strip()
        usage = response.usage
        if usage is None:
            logger.warning(f"Usage data missing from {self.model_name} response ({source_lang}->{target_lang})")
            stats = UsageStats(api_calls=1)
        else:
            stats = UsageStats(
                tokens_used=usage.total_tokens or 0,
                input_tokens=usage.prompt_tokens or 0,
                output_tokens=usage.completion_tokens or 0,
                api_calls=1
            )
        return TranslationResponse(content=content, usage=stats)


class HuggingFaceTranslator(Translator):
    """Implements translation using Hugging Face Transformers seq2seq models."""

    def __init__(self, model_template: str = "Helsinki-NLP/opus-mt-{source}-{target}", device: str = "cuda",
                 max_length: int = 512, formatter: Optional[SRTFormatter] = None):
        """
        Initializes the HuggingFaceTranslator.

        Args:
            model_template: Model name pattern, formatted with the source and target codes.
            device: The device to run the models on ("cuda" or "cpu").
            max_length: Truncation length for each subtitle line.

        Raises:
            ValueError: If the specified device is invalid.
        """
        super().__init__(formatter)
        import torch

        self.model_template = model_template
        self.device = device
        self.max_length = max_length
        self._models: Dict[Tuple[str, str], tuple] = {}
        self._lock = threading.Lock()

        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA device requested but not available for translation. Falling back to CPU.")
            self.device = "cpu"
        elif self.device not in ["cuda", "cpu"]:
             raise ValueError(f"Invalid device specified: {self.device}. Choose 'cuda' or 'cpu'.")

    def request_tokens(self, entries, source_lang, target_lang, token_estimator):
        # Only the subtitle lines reach the model; there is no prompt
        return sum(token_estimator.count(entry.text) for entry in entries)

    def _load(self, source_lang: str, target_lang: str):
        """Loads (and caches) the tokenizer and model for a language pair."""
        from transformers import AutoModelForSeq2SeqLM, AutoTokenizer

        key = (source_lang, target_lang)
        if key not in self._models:
            model_name = self.model_template.format(source=source_lang, target=target_lang)
            logger.info(f"Loading Hugging Face translation model '{model_name}' on device '{self.device}'")
            try:
                tokenizer = AutoTokenizer.from_pretrained(model_name)
                model = AutoModelForSeq2SeqLM.from_pretrained(model_name)
                model.to(self.device)
                model.eval() # Set model to evaluation mode
            except Exception as e:
                logger.error(f"Failed to load translation model or tokenizer '{model_name}': {e}", exc_info=True)
                raise TranslationError(f"Failed to load translation model/tokenizer '{model_name}': {e}") from e
            self._models[key] = (tokenizer, model)
        return self._models[key]

    def translate(self, entries, source_lang, target_lang, max_response_tokens):
        import torch

        texts = [entry.text for entry in entries]
        if not texts:
            return TranslationResponse(content="", usage=UsageStats(api_calls=1))

        # One model per language pair, shared by all workers
        with self._lock:
            tokenizer, model = self._load(source_lang, target_lang)
            try:
                inputs = tokenizer(texts, return_tensors="pt", padding=True, truncation=True, max_length=self.max_length)
                inputs = {k: v.to(self.device) for k, v in inputs.items()}
                with torch.no_grad(): # Disable gradient calculation for inference
                    generated = model.generate(**inputs, max_new_tokens=min(max_response_tokens, self.max_length))
                translated = tokenizer.batch_decode(generated, skip_special_tokens=True)
            except Exception as e:
                logger.error(f"Error during translation of a {len(texts)}-line batch: {e}", exc_info=True)
                raise TranslationError(f"Hugging Face translation failed: {e}") from e

        input_tokens = int(inputs["attention_mask"].sum().item())
        pad_id = tokenizer.pad_token_id
        output_tokens = int((generated != pad_id).sum().item()) if pad_id is not None else int(generated.numel())
        translated_entries = [
            SubtitleEntry(id=entry.id, start=entry.start, end=entry.end, text=text.strip() or entry.text)
            for entry, text in zip(entries, translated)
        ]
        usage = UsageStats(
            tokens_used=input_tokens + output_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            api_calls=1
        )
        return TranslationResponse(content=self.formatter.serialize(translated_entries), usage=usage)
