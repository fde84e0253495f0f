"""Value filters and the sort/browse normalizations.

Sort values are canonical strings used only for ordering: text is
transliterated to ASCII (any script, not just accented Latin), leading
articles (English and French) are removed, and titles that start with a
digit get a ``1`` prefix so they sort after the letter-led ones in a single
ascending pass.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any

from unidecode import unidecode

_STOP_WORDS = [
    r"\bThe\b",
    r"\bA\b",
    r"\bAn\b",
    r"\bAu\b",
    r"\bAux\b",
    r"\bLa\b",
    r"\bLe\b",
    r"\bL'",
    r"\bLes\b",
    r"\bDes\b",
    r"\bUn\b",
    r"\bUne\b",
    r"\bD'",
    r"\bDu\b",
    r"\bDe la\b",
    r"\bDe\b",
]
_STOP_WORD_PATTERNS = [re.compile(word, re.IGNORECASE) for word in _STOP_WORDS]

_LEADING_NON_ALNUM = re.compile(r"^[\W_]+")
_LEADS_WITH_NON_LETTER = re.compile(r"^(?:\W|\d)")


def _trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


FILTERS: dict[str, Callable[[Any], Any]] = {
    "trim": _trim,
}


def register_filter(name: str, func: Callable[[Any], Any]) -> None:
    """Make a filter available to field declarations under ``name``."""
    FILTERS[name.lower()] = func


def apply_filter(value: Any, name: str) -> Any:
    """Apply one named filter. Unknown names leave the value unchanged."""
    if value is None:
        return None
    func = FILTERS.get(name.lower())
    return func(value) if func else value


def apply_filters(value: Any, names: Iterable[str]) -> Any:
    """Apply named filters in order."""
    for name in names:
        value = apply_filter(value, name)
    return value


def transliterate(text: str) -> str:
    """Transliterate text to its closest plain-ASCII form.

    Characters with no known transliteration are kept as they are.
    """
    return unidecode(text, errors="preserve")


def remove_stop_words(text: str | None) -> str | None:
    """Strip leading articles and determiners wherever they occur as words."""
    if text is None:
        return None
    for pattern in _STOP_WORD_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def to_sort_value(name: str, value: Any) -> str | None:
    """Produce the canonical sort string for a field value."""
    if value is None:
        return None
    text = transliterate(str(value)).lower()
    text = remove_stop_words(text) or ""
    text = _LEADING_NON_ALNUM.sub("", text)
    if _LEADS_WITH_NON_LETTER.match(text):
        text = f"1{text}"
    return text


def to_browse_value(name: str, value: Any) -> Any:
    """Produce the browse value for a field value (currently unchanged)."""
    return value
