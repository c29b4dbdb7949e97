"""Slug helpers for shareable booking page links."""

import re
from typing import Iterable

MAX_SLUG_LENGTH = 120


def slugify(name: str) -> str:
    """
    Lowercase ASCII slug: 'Intro Call (30 min)' -> 'intro-call-30-min'.

    Names with no usable characters fall back to 'page'.
    """
    value = (name or "").strip().lower()
    value = value.replace("&", " and ").replace("/", " ")
    value = re.sub(r"[^a-z0-9\s-]", " ", value)
    value = re.sub(r"[\s-]+", "-", value).strip("-")
    return value[:MAX_SLUG_LENGTH].rstrip("-") or "page"


def unique_slug(base: str, taken: Iterable[str]) -> str:
    """``base`` if free, otherwise the first free ``base-2``, ``base-3``, ..."""
    used = set(taken)
    if base not in used:
        return base
    suffix = 2
    while f"{base}-{suffix}" in used:
        suffix += 1
    return f"{base}-{suffix}"
