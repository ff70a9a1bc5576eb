"""Match evaluation and response statistics for needle tests."""

import math
import re
from functools import lru_cache

import tiktoken

from needlebench.utils.logging import get_logger

logger = get_logger(__name__)

WORDS_PER_MINUTE = 200
_SENTENCE_END = re.compile(r"[.!?]+")


def matches(response: str | None, exact_match: str | None) -> bool:
    """Whether the response contains the target as a whole word, ignoring case.

    Plain substring search would count "609" inside "915609a" as found, so the
    target is matched between word boundaries instead.
    """
    cleaned_response = (response or "").strip()
    cleaned_target = (exact_match or "").strip()
    if not cleaned_response or not cleaned_target:
        return False

    pattern = re.compile(rf"\b{re.escape(cleaned_target)}\b", re.IGNORECASE)
    return pattern.search(cleaned_response) is not None


@lru_cache(maxsize=1)
def _tokenizer() -> tiktoken.Encoding | None:
    try:
        # Close approximation for every provider
        return tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")
        return None


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text."""
    tokenizer = _tokenizer()
    if tokenizer is None:
        return len(text) // 4
    return len(tokenizer.encode(text, disallowed_special=()))


def response_statistics(text: str) -> dict[str, int]:
    """Word, character, sentence and token counts plus reading time in minutes."""
    words = len(text.split())
    sentences = len([part for part in _SENTENCE_END.split(text) if part.strip()])
    return {
        "word_count": words,
        "character_count": len(text),
        "sentence_count": sentences,
        "reading_time": math.ceil(words / WORDS_PER_MINUTE),
        "estimated_tokens": estimate_tokens(text) if text else 0,
    }
