"""Token estimation for request budgeting."""

import logging
import threading
from typing import Dict, List, Optional

import tiktoken

logger = logging.getLogger(__name__)

FALLBACK_ENCODING = "cl100k_base"

# Chat framing overhead per message and for the assistant reply priming.
TOKENS_PER_MESSAGE = 3
TOKENS_PER_NAME = 1
REPLY_PRIMING_TOKENS = 3

DEFAULT_CONTEXT_WINDOW = 2048


def context_window_for(model: str, override: Optional[int] = None) -> int:
    """
    Returns the token window used for budgeting requests to `model`.

    These are deliberately conservative request sizes, not the advertised
    model limits; `override` replaces them.
    """
    if override:
        return override
    if model == "gpt-4o" or model.startswith("gpt-4o-"):
        return 4096
    if model.startswith("gpt-3.5"):
        return 4096
    if model.startswith("gpt-4"):
        return 8192
    return DEFAULT_CONTEXT_WINDOW


class TokenEstimator:
    """Counts tokens with the tiktoken encoding of a model."""

    def __init__(self, model: str = "gpt-4o"):
        self.model = model
        try:
            self.encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            logger.warning(f"No tiktoken encoding registered for '{model}'; using {FALLBACK_ENCODING}")
            self.encoding = tiktoken.get_encoding(FALLBACK_ENCODING)
        self._cache: Dict[str, int] = {}
        self._lock = threading.Lock()

    def count(self, text: str) -> int:
        with self._lock:
            cached = self._cache.get(text)
        if cached is not None:
            return cached
        tokens = len(self.encoding.encode(text, disallowed_special=()))
        with self._lock:
            self._cache[text] = tokens
        return tokens

    def count_messages(self, messages: List[Dict[str, str]]) -> int:
        """Tokens a chat request will consume, including message framing."""
        total = 0
        for message in messages:
            total += TOKENS_PER_MESSAGE
            for key in ("role", "content", "name"):
                if message.get(key):
                    total += self.count(message[key])
            if message.get("name"):
                total += TOKENS_PER_NAME
        return total + REPLY_PRIMING_TOKENS
