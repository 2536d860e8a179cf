"""Slug normalization for generated URL values."""

from __future__ import annotations

import re
from functools import lru_cache

# Cyrillic lowercase plus CJK unified ideographs.
DEFAULT_EXTENDED_SCRIPTS = "\u0430-\u044f\u0451\u4e00-\u9fff"

_WHITESPACE_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")


@lru_cache(maxsize=16)
def _disallowed(extended_scripts: str) -> re.Pattern[str]:
    return re.compile(f"[^a-z0-9{extended_scripts}_-]", re.IGNORECASE)


def slugify(
    value: object,
    *,
    lowercase: bool = True,
    extended_scripts: str = DEFAULT_EXTENDED_SCRIPTS,
) -> str:
    """Normalize *value* into a URL-safe slug.

    Whitespace runs become a single dash, characters outside ASCII letters,
    digits, ``_``, ``-`` and *extended_scripts* are dropped, repeated dashes
    collapse and edge dashes are trimmed. Normalizing a slug returns it
    unchanged.
    """
    text = str(value)
    if lowercase:
        text = text.lower()
    text = _WHITESPACE_RE.sub("-", text)
    text = _disallowed(extended_scripts).sub("", text)
    text = _DASHES_RE.sub("-", text)
    return text.strip("-")
