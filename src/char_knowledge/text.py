"""Text normalization and tokenization primitives."""

import re
from typing import Any

_WS_RE = re.compile(r"\s+")

# Word runs: ASCII letters/digits or CJK ideographs (Ext A + Unified).
_WORD_RE = re.compile(r"[a-z0-9\u3400-\u4dbf\u4e00-\u9fff]+")

TRAILING_PUNCTUATION = "。！？!?.…~～，,；;、"

ELLIPSIS = "…"


def norm(value: Any) -> str:
    """Stringify, trim and collapse internal whitespace runs to one space."""
    if value is None:
        return ""
    return _WS_RE.sub(" ", str(value)).strip()


def tokenize(value: Any) -> set[str]:
    """Split text into a token set usable for overlap scoring.

    The set is the union of every non-whitespace character (so logographic
    scripts still overlap on single characters) and every maximal run of
    alphanumeric or ideographic characters.
    """
    text = norm(value).lower()
    chars = {ch for ch in text if not ch.isspace()}
    words = set(_WORD_RE.findall(text))
    return chars | words


def clip(span: Any, min_len: int = 1, max_len: int = 60) -> str | None:
    """Clean a captured payload span.

    Args:
        span: The raw captured text.
        min_len: Shortest acceptable payload after cleaning.
        max_len: Longest payload; longer ones are cut and end with an ellipsis.

    Returns:
        The cleaned payload, or None if it is too short to keep.
    """
    text = norm(span).rstrip(TRAILING_PUNCTUATION).rstrip()
    if len(text) < max(min_len, 1):
        return None
    if len(text) > max_len:
        text = text[: max(max_len - 1, 0)] + ELLIPSIS
    return text
