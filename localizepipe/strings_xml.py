#!/usr/bin/env python3
"""Read ``<string>`` values out of a strings.xml document."""

import logging
import re
from typing import Dict

from lxml import etree

logger = logging.getLogger(__name__)

# Everything outside the XML 1.0 Char production
ILLEGAL_XML_CHARS_RE = re.compile(
    r"[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)


def strip_illegal_xml_chars(text: str) -> str:
    """Remove control characters that cannot appear in an XML document."""
    return ILLEGAL_XML_CHARS_RE.sub("", text)


def create_secure_parser() -> etree.XMLParser:
    """Return an XML parser configured to avoid external entity resolution."""
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        dtd_validation=False,
        load_dtd=False,
        recover=False,
    )


def extract_string_values(xml_text: str) -> Dict[str, str]:
    """
    Parse a strings.xml document into an ordered key -> text mapping.

    Strings marked ``translatable="false"`` (any case) and strings without a
    name are skipped. When a key appears twice the last occurrence wins.
    Malformed documents and documents declaring a DOCTYPE yield an empty
    mapping instead of raising.

    Args:
        xml_text: Raw file content

    Returns:
        Dictionary of resource key to element text content
    """
    if not xml_text or not xml_text.strip():
        return {}

    try:
        root = etree.fromstring(xml_text.encode("utf-8"), parser=create_secure_parser())
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.debug(f"Ignoring unparseable strings.xml content: {e}")
        return {}

    if root.getroottree().docinfo.doctype:
        logger.debug("Ignoring strings.xml content that declares a DOCTYPE")
        return {}

    values: Dict[str, str] = {}
    for elem in root.iter("string"):
        key = (elem.get("name") or "").strip()
        if not key:
            continue
        if (elem.get("translatable") or "").lower() == "false":
            continue
        values[key] = etree.tostring(elem, method="text", encoding="unicode", with_tail=False)
    return values
