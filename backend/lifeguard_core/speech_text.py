from __future__ import annotations

import re

_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK_RE = re.compile(r"\[[^\]]*?\]\([^)]*?\)")
_BLOCKQUOTE_RE = re.compile(r"(?m)^\s*>+\s?")
_MARKUP_CHARS_RE = re.compile(r"[*#_~`]")


def _normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def normalize_for_speech(text: str | None) -> str:
    """Reduce assistant markdown to plain words suitable for a synthesis engine.

    Rules, applied in order:

    1. images ``![alt](src)`` are dropped,
    2. links ``[label](url)`` are dropped whole (urls are not read aloud),
    3. blockquote markers at line start are dropped,
    4. emphasis and heading characters ``* # _ ~ ` `` are removed,
    5. runs of whitespace collapse to one space and the result is trimmed.
    """
    content = _IMAGE_RE.sub(" ", text or "")
    content = _LINK_RE.sub(" ", content)
    content = _BLOCKQUOTE_RE.sub("", content)
    content = _MARKUP_CHARS_RE.sub("", content)
    return _normalize_whitespace(content)
