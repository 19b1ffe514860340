"""Placeholder token syntax shared by ingestion and rendering."""

from __future__ import annotations

import re
from typing import Callable, Iterable

PLACEHOLDER_RE = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")


def extract_placeholders(texts: Iterable[str]) -> list[str]:
    """Return distinct placeholder identifiers in first-seen order."""

    seen: set[str] = set()
    ordered: list[str] = []
    for text in texts:
        for match in PLACEHOLDER_RE.finditer(text or ""):
            name = match.group(1)
            if name not in seen:
                seen.add(name)
                ordered.append(name)
    return ordered


def has_placeholder(text: str | None) -> bool:
    return bool(text) and PLACEHOLDER_RE.search(text) is not None


def substitute(text: str, lookup: Callable[[str], str]) -> str:
    """Replace every ``{{identifier}}`` in *text* with ``lookup(identifier)``."""

    return PLACEHOLDER_RE.sub(lambda match: lookup(match.group(1)), text)
