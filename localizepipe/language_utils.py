#!/usr/bin/env python3
"""
Language code helpers.

Maps project locale tags (``pt-BR``, ``zh-Hant``, ``b+sr+Latn``) to the
language codes TranslateGemma understands, and renders English display
names for reports.
"""

import logging
import re
from typing import List, Optional, Set

from babel import Locale
from babel.core import UnknownLocaleError, parse_locale

logger = logging.getLogger(__name__)

# Script or region qualified tags listed in the TranslateGemma language tables
SUPPORTED_EXACT_TAGS = frozenset(
    {
        "ar-EG",
        "ar-MA",
        "ber-Latn",
        "bjn-Arab",
        "bm-Nkoo",
        "ccp-Latn",
        "crh-Latn",
        "fa-AF",
        "fr-CA",
        "grt-Latn",
        "hoc-Wara",
        "iu-Latn",
        "ks-Deva",
        "lif-Limb",
        "mni-Mtei",
        "ms-Arab",
        "ndc-ZW",
        "pa-Arab",
        "pt-BR",
        "pt-PT",
        "rhg-Latn",
        "sat-Latn",
        "sd-Deva",
        "sr-Cyrl",
        "sr-Latn",
        "sw-KE",
        "sw-TZ",
        "unr-Deva",
        "xsr-Tibt",
        "zh-CN",
        "zh-TW",
    }
)

TAG_ALIASES = {
    "zh-SG": "zh-CN",
    "zh-Hans": "zh-CN",
    "zh-HK": "zh-TW",
    "zh-MO": "zh-TW",
    "zh-Hant": "zh-TW",
}

TRADITIONAL_CHINESE_REGIONS = frozenset({"TW", "HK", "MO"})

NLLB_CODE_RE = re.compile(r"[a-z]{3}_[A-Za-z]{4}")

_iso_languages: Optional[Set[str]] = None


def iso_language_codes() -> Set[str]:
    """Two-letter ISO 639-1 codes Babel knows an English name for."""
    global _iso_languages
    if _iso_languages is None:
        _iso_languages = {
            code for code in Locale("en").languages if len(code) == 2 and code.isalpha()
        }
    return _iso_languages


def normalize_tag(locale_tag: str) -> str:
    """Canonical casing: ``PT_br`` -> ``pt-BR``, ``zh-hant`` -> ``zh-Hant``."""
    parts = [p for p in locale_tag.replace("_", "-").strip().split("-") if p.strip()]
    normalized = []
    for index, part in enumerate(parts):
        if index == 0:
            normalized.append(part.lower())
        elif len(part) == 4 and part.isalpha():
            normalized.append(part.lower().capitalize())
        elif len(part) == 2 and part.isalpha():
            normalized.append(part.upper())
        else:
            normalized.append(part)
    return "-".join(normalized)


def _lookup(tag: str) -> Optional[str]:
    if tag in TAG_ALIASES:
        return TAG_ALIASES[tag]
    if tag in SUPPORTED_EXACT_TAGS:
        return tag
    return None


def to_gemma_code(locale_tag: str) -> Optional[str]:
    """
    Resolve the TranslateGemma language code for a locale tag.

    Resolution order: legacy NLLB codes pass through, then aliases and exact
    table entries, then progressively less specific forms of the tag, then a
    Chinese script/region default, then the bare language code.

    Args:
        locale_tag: Locale tag such as ``de``, ``pt-BR`` or ``zh-Hant-HK``

    Returns:
        The backend language code, or None when the locale is unsupported
    """
    trimmed = locale_tag.strip()
    if NLLB_CODE_RE.fullmatch(trimmed):
        return trimmed

    normalized = normalize_tag(trimmed)
    if not normalized:
        return None
    direct = _lookup(normalized)
    if direct is not None:
        return direct

    try:
        language, region, script, _variant = parse_locale(normalized, sep="-")[:4]
    except ValueError:
        logger.debug(f"Could not decompose locale tag '{locale_tag}'")
        return None

    candidates = []
    if script and region:
        candidates.append(f"{language}-{script}-{region}")
    if script:
        candidates.append(f"{language}-{script}")
    if region:
        candidates.append(f"{language}-{region}")
    for candidate in candidates:
        resolved = _lookup(candidate)
        if resolved is not None:
            return resolved

    if language == "zh":
        if (script or "").lower() == "hant" or region in TRADITIONAL_CHINESE_REGIONS:
            return "zh-TW"
        return "zh-CN"

    if len(language) == 2 and language in iso_language_codes():
        return language
    if len(language) == 3:
        return language
    return None


def supported_locale_tags_for_ui() -> List[str]:
    """Locale tags offered when adding a language: ISO languages plus the qualified table tags."""
    return sorted(iso_language_codes() | SUPPORTED_EXACT_TAGS)


def get_language_name(locale_code: Optional[str]) -> str:
    """
    Get an English display name for a locale tag or Android qualifier.

    Args:
        locale_code: A locale in one of these forms:
                    - Locale tag (e.g. 'de', 'pt-BR', 'zh-Hant')
                    - Android standard qualifier (e.g. 'pt-rBR')
                    - Android BCP 47 qualifier (e.g. 'b+sr+Latn')
                    - None or empty for the source locale

    Returns:
        The display name in English, or the original code if it cannot be parsed.
    """
    if not locale_code:
        return "Default (source)"

    normalized_code = re.sub(r"^b\+", "", locale_code)
    normalized_code = re.sub(r"-r([A-Za-z]{2})$", r"_\1", normalized_code)
    normalized_code = re.sub(r"[-+]", "_", normalized_code)

    try:
        return Locale.parse(normalized_code).get_display_name(locale="en")
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Could not determine language name for locale '{locale_code}': {e}")
        return locale_code
