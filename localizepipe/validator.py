#!/usr/bin/env python3
"""
Translation output validation.

Model output is only accepted when it keeps the structure of the source
string intact: same printf placeholders in the same order, same simple
markup tags, non-blank, and parseable as the body of a ``<string>`` element.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from lxml import etree

from .strings_xml import create_secure_parser, strip_illegal_xml_chars

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"%(?:\d+\$)?[#+ 0,(<]*\d*(?:\.\d+)?[a-zA-Z]")
SIMPLE_TAG_RE = re.compile(r"</?[A-Za-z][A-Za-z0-9]*>")
# "&" that does not start a named, decimal or hex character reference
BARE_AMPERSAND_RE = re.compile(r"&(?!(?:[A-Za-z_][A-Za-z0-9._-]*|#[0-9]+|#x[0-9A-Fa-f]+);)")


class ValidationError(Enum):
    EMPTY_OUTPUT = "EMPTY_OUTPUT"
    PLACEHOLDERS_CHANGED = "PLACEHOLDERS_CHANGED"
    TAGS_CHANGED = "TAGS_CHANGED"
    XML_UNSAFE = "XML_UNSAFE"


@dataclass(frozen=True)
class ValidationResult:
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def extract_placeholders(value: str) -> List[str]:
    return PLACEHOLDER_RE.findall(value)


def extract_tags(value: str) -> List[str]:
    return SIMPLE_TAG_RE.findall(value)


def is_xml_safe(translated_text: str) -> bool:
    """
    Check that the text can be the content of a ``<string>`` element.

    Natural-language ampersands are tolerated: when the literal text does not
    parse, it is retried with bare ``&`` characters escaped.
    """
    cleaned = strip_illegal_xml_chars(translated_text)
    for candidate in (cleaned, BARE_AMPERSAND_RE.sub("&amp;", cleaned)):
        wrapped = f'<resources><string name="x">{candidate}</string></resources>'
        try:
            root = etree.fromstring(wrapped.encode("utf-8"), parser=create_secure_parser())
        except (etree.XMLSyntaxError, ValueError):
            continue
        if root.getroottree().docinfo.doctype:
            return False
        return True
    return False


def validate_translation(base_text: str, translated_text: str) -> ValidationResult:
    """
    Run every structural check against a model output.

    All checks run even when an earlier one already failed, so the result
    names every violated rule.

    Args:
        base_text: Source-locale text
        translated_text: Candidate translation returned by the backend

    Returns:
        ValidationResult with the violated checks in a stable order
    """
    errors: List[ValidationError] = []

    if not translated_text.strip():
        errors.append(ValidationError.EMPTY_OUTPUT)

    if extract_placeholders(base_text) != extract_placeholders(translated_text):
        errors.append(ValidationError.PLACEHOLDERS_CHANGED)

    if extract_tags(base_text) != extract_tags(translated_text):
        errors.append(ValidationError.TAGS_CHANGED)

    if not is_xml_safe(translated_text):
        errors.append(ValidationError.XML_UNSAFE)

    if errors:
        logger.debug(f"Validation failed for output {translated_text!r}: {[e.value for e in errors]}")
    return ValidationResult(errors=errors)
