#!/usr/bin/env python3
"""Conversion between resource folder qualifiers (``pt-rBR``, ``b+sr+Latn``) and locale tags."""

import re
from typing import List, Optional

_LANGUAGE_PATTERN = re.compile(r"[a-z]{2,3}")
_REGION_PATTERN = re.compile(r"r[A-Za-z]{2}")
_SCRIPT_PATTERN = re.compile(r"[A-Za-z]{4}")
_BCP47_REGION_PATTERN = re.compile(r"[A-Za-z]{2}|[0-9]{3}")
BCP47_PREFIX = "b+"


def _bcp47_subtags(subtags: List[str]) -> Optional[List[str]]:
    """Canonical casing for language[-Script][-REGION]; None if the subtags do not fit that shape."""
    if not subtags:
        return None
    language = subtags[0].lower()
    if not _LANGUAGE_PATTERN.fullmatch(language):
        return None
    normalized = [language]
    rest = subtags[1:]
    if rest and _SCRIPT_PATTERN.fullmatch(rest[0]):
        normalized.append(rest[0].capitalize())
        rest = rest[1:]
    if rest and _BCP47_REGION_PATTERN.fullmatch(rest[0]):
        normalized.append(rest[0].upper())
        rest = rest[1:]
    if rest:
        return None
    return normalized


def qualifier_to_locale_tag(qualifier_raw: str) -> Optional[str]:
    """
    Convert a folder qualifier into a normalized locale tag.

    Examples:
      - ""           -> None (base folder)
      - "tr"         -> "tr"
      - "pt-rBR"     -> "pt-BR"
      - "b+sr+Latn"  -> "sr-Latn"
      - "night"      -> None (not a locale qualifier)

    Args:
        qualifier_raw: The part of the folder name after ``values-``

    Returns:
        The locale tag, or None if the qualifier does not describe a locale
    """
    if not qualifier_raw or not qualifier_raw.strip():
        return None

    chunks = qualifier_raw.split("-")
    if chunks[0].startswith(BCP47_PREFIX):
        subtags = _bcp47_subtags(chunks[0][len(BCP47_PREFIX):].split("+"))
        return "-".join(subtags) if subtags else None

    language = chunks[0].lower()
    if not _LANGUAGE_PATTERN.fullmatch(language):
        return None

    region = next((chunk for chunk in chunks if _REGION_PATTERN.fullmatch(chunk)), None)
    if region is not None:
        return f"{language}-{region[1:].upper()}"
    return language


def locale_tag_to_qualifier(locale_tag: str) -> str:
    """
    Inverse of :func:`qualifier_to_locale_tag`.

    ``language`` and ``language-REGION`` use the classic ``pt-rBR`` form; tags
    with a script or a numeric region use the ``b+`` form (``b+sr+Latn``).
    """
    normalized = locale_tag.replace("_", "-").strip()
    parts = [part for part in normalized.split("-") if part.strip()]
    language = parts[0].lower() if parts else normalized.lower()
    if len(parts) == 2 and len(parts[1]) == 2 and parts[1].isalpha():
        return f"{language}-r{parts[1].upper()}"
    if len(parts) > 1:
        subtags = _bcp47_subtags(parts) or [language] + parts[1:]
        return BCP47_PREFIX + "+".join(subtags)
    return language
