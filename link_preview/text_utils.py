from __future__ import annotations

import unicodedata

# Keep joiners so emoji sequences survive filtering.
_KEEP_FORMAT_CHARS = {"\u200c", "\u200d"}


def nil_if_empty(value: str | None) -> str | None:
    return value if value else None


def filter_for_display(value: str | None) -> str | None:
    """Strip control/format characters and surrounding whitespace from remote text."""
    if value is None:
        return None
    kept = []
    for ch in value:
        category = unicodedata.category(ch)
        if category == "Cc" and ch not in "\n\t":
            continue
        if category == "Cf" and ch not in _KEEP_FORMAT_CHARS:
            continue
        kept.append(ch)
    return "".join(kept).strip()
