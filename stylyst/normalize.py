from __future__ import annotations

"""
Text normalisation helpers shared across catalog building and retrieval.

Public helpers:

* basic_clean(text) -> str
    Light-weight clean used when ingesting catalog CSV fields.

* clean_query(text) -> str
    Lower-cased query with punctuation removed; the string used for
    whole-query substring matching.

* query_tokens(cleaned, min_length) -> List[str]
    Whitespace tokens of a cleaned query that are long enough to score.

* field_words(text) -> List[str]
    Whitespace words of an already lower-cased catalog field.
"""

from typing import List
import re
import unicodedata

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def _normalise_unicode(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("‘", "'").replace("’", "'")
    text = text.replace("“", '"').replace("”", '"')
    text = text.replace("–", "-").replace("—", "-")
    return text


def basic_clean(text: str | None) -> str:
    """Unicode-normalise, collapse whitespace and trim a catalog field."""
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    text = _normalise_unicode(text)
    return _WS_RE.sub(" ", text).strip()


def clean_query(text: str | None) -> str:
    """
    Lower-case and drop every character that is neither a word character
    nor whitespace. Punctuation is removed, not replaced, so "t-shirt"
    becomes "tshirt". Whitespace is kept as typed, including at the ends:
    "jacket ?" cleans to "jacket ", which is not a substring of "red jacket".
    """
    if not text:
        return ""
    return _PUNCT_RE.sub("", text.lower())


def query_tokens(cleaned: str, min_length: int = 2) -> List[str]:
    """Split a cleaned query on whitespace runs; keep tokens of at least ``min_length`` chars."""
    return [tok for tok in _WS_RE.split(cleaned) if len(tok) >= min_length]


def field_words(text: str) -> List[str]:
    return [w for w in _WS_RE.split(text) if w]
