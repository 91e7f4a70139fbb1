#!/usr/bin/env python3
"""
Resource writer.

Writes translations into strings.xml files by editing the raw text in place,
so unrelated formatting and comments survive. Only single ``<string>``
elements are inserted, replaced or removed.
"""

import logging
import os
import re
from typing import Callable, Iterable, List, Optional, Tuple
from xml.sax.saxutils import unescape

from .cancellation import CancellationToken, check_cancelled
from .locale_qualifier import locale_tag_to_qualifier, qualifier_to_locale_tag
from .models import (
    ApplyResult,
    LanguageAddTarget,
    ResourceKind,
    StringEntryRow,
    TranslationDeleteTarget,
)
from .resource_paths import BASE_FOLDER_NAME, STRINGS_FILE_NAME
from .strings_xml import strip_illegal_xml_chars

logger = logging.getLogger(__name__)

EMPTY_RESOURCES_DOCUMENT = "<resources>\n</resources>\n"
CLOSING_TAG = "</resources>"

_ENTITY_MAP = {"&quot;": '"', "&apos;": "'"}
_CHAR_REFERENCE = re.compile(r"&#(?:[xX]([0-9a-fA-F]+)|([0-9]+));")
# NBSP, FIGURE SPACE and NARROW NBSP become plain spaces; zero-width and BOM characters are dropped
_WHITESPACE_TRANSLATION = {
    0x00A0: " ",
    0x2007: " ",
    0x202F: " ",
    0x200B: None,
    0x200C: None,
    0x200D: None,
    0x2060: None,
    0xFEFF: None,
}
_KEPT_ESCAPES = set("ntr'\"@?\\")
_HEX_DIGITS = set("0123456789abcdefABCDEF")

ProgressCallback = Callable[[int, int], None]


def escape_xml_text(text: str) -> str:
    """Escape only ``&``, ``<`` and ``>`` so quotes stay readable in resource files."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _sanitize_backslashes(text: str) -> str:
    """Keep recognized Android escapes; double every other backslash so it stays literal."""
    result: List[str] = []
    index = 0
    while index < len(text):
        ch = text[index]
        if ch != "\\":
            result.append(ch)
            index += 1
            continue
        if index == len(text) - 1:
            result.append("\\\\")
            index += 1
            continue
        following = text[index + 1]
        if following in _KEPT_ESCAPES:
            keep = True
        elif following == "u":
            keep = len(text) > index + 5 and all(c in _HEX_DIGITS for c in text[index + 2:index + 6])
        else:
            keep = False
        if keep:
            result.append("\\" + following)
            index += 2
        else:
            result.append("\\\\")
            index += 1
    return "".join(result)


def escape_apostrophes(text: str) -> str:
    """Escape apostrophes with a single backslash, preserving existing escapes."""
    if not text:
        return text

    result: List[str] = []
    backslash_run = 0
    for ch in text:
        if ch == "\\":
            backslash_run += 1
            result.append(ch)
            continue
        if ch == "'" and backslash_run % 2 == 0:
            result.append("\\'")
        else:
            result.append(ch)
        backslash_run = 0
    return "".join(result)


def normalize_android_string(text: str) -> str:
    """
    Apply Android string resource escaping.

    Unknown backslash escapes are made literal, bare apostrophes are escaped,
    and a leading ``@`` or ``?`` is escaped so the value is not read as a
    resource reference.
    """
    if not text:
        return text
    escaped = escape_apostrophes(_sanitize_backslashes(text))
    if escaped[0] in "@?":
        return "\\" + escaped
    return escaped


def decode_char_references(text: str) -> str:
    """Decode ``&#39;`` / ``&#x27;`` style references; out-of-range values are left as they are."""

    def decode(match: "re.Match") -> str:
        hex_digits, decimal_digits = match.groups()
        code_point = int(hex_digits, 16) if hex_digits is not None else int(decimal_digits)
        if code_point > 0x10FFFF:
            return match.group(0)
        return chr(code_point)

    return _CHAR_REFERENCE.sub(decode, text)


def normalize_for_write(translated_text: str, kind: ResourceKind) -> str:
    """
    Clean a translation before it is written.

    Args:
        translated_text: Text proposed by the backend
        kind: Resource kind of the target file; only Android applies resource escaping

    Returns:
        The text to place inside the ``<string>`` element, before XML escaping
    """
    text = unescape(decode_char_references(translated_text), _ENTITY_MAP).rstrip("\r\n")
    text = strip_illegal_xml_chars(text).translate(_WHITESPACE_TRANSLATION)
    if kind == ResourceKind.ANDROID:
        return normalize_android_string(text)
    return text


def _string_element_pattern(key: str, allow_self_closing: bool = False) -> "re.Pattern":
    name = re.escape(escape_xml_text(key))
    attributes = rf'(\s+[^>]*?\bname\s*=\s*"{name}"[^>]*?)'
    if allow_self_closing:
        return re.compile(rf"[ \t]*<string{attributes}(?:/>|(?<!/)>.*?</string>)[ \t]*(?:\r?\n)?", re.DOTALL)
    return re.compile(rf"<string{attributes}(?<!/)>.*?</string>", re.DOTALL)


def upsert_string_text(current_text: str, key: str, translated_text: str) -> str:
    """
    Insert or replace ``<string name="key">`` in raw strings.xml content.

    An existing element keeps its attributes and only its content changes.
    A new element is indented and inserted before the last ``</resources>``.
    Content without a ``</resources>`` tag is replaced by a fresh document.

    Args:
        current_text: Current file content
        key: Resource name
        translated_text: Normalized value (unescaped)

    Returns:
        The updated file content
    """
    escaped_key = escape_xml_text(key)
    escaped_value = escape_xml_text(translated_text)

    match = _string_element_pattern(key).search(current_text)
    if match is not None:
        replacement = f"<string{match.group(1)}>{escaped_value}</string>"
        return current_text[:match.start()] + replacement + current_text[match.end():]

    insert = f'    <string name="{escaped_key}">{escaped_value}</string>\n'
    closing_index = current_text.rfind(CLOSING_TAG)
    if closing_index < 0:
        return f"<resources>\n{insert}</resources>\n"

    prefix = current_text[:closing_index]
    separator = "" if prefix.endswith("\n") else "\n"
    return f"{prefix}{separator}{insert}{current_text[closing_index:]}"


def remove_string_text(current_text: str, key: str) -> Tuple[str, bool]:
    """
    Remove ``<string name="key">`` together with its indentation and line break.

    Returns:
        Tuple of (updated content, whether an element was removed)
    """
    match = _string_element_pattern(key, allow_self_closing=True).search(current_text)
    if match is None:
        return current_text, False
    return current_text[:match.start()] + current_text[match.end():], True


def read_resource_file(path: str) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def write_resource_file(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def locale_folder_name(qualifier_raw: str) -> str:
    return f"{BASE_FOLDER_NAME}-{qualifier_raw}".rstrip("-")


def ensure_locale_file(resource_root_path: str, qualifier_raw: str) -> Tuple[str, bool]:
    """
    Create ``values-<qualifier>/strings.xml`` under a resource root when missing.

    Returns:
        Tuple of (file path, whether the file was created)

    Raises:
        FileNotFoundError: If the resource root does not exist
    """
    if not os.path.isdir(resource_root_path):
        raise FileNotFoundError(f"Resource root not found: {resource_root_path}")
    folder = os.path.join(resource_root_path, locale_folder_name(qualifier_raw))
    os.makedirs(folder, exist_ok=True)
    path = os.path.join(folder, STRINGS_FILE_NAME).replace("\\", "/")
    if os.path.isfile(path) and os.path.getsize(path) > 0:
        return path, False
    write_resource_file(path, EMPTY_RESOURCES_DOCUMENT)
    logger.info(f"Created {path}")
    return path, True


class TranslationApplier:
    """Writes, deletes and scaffolds localized strings on the local filesystem."""

    def apply(
        self,
        rows: List[StringEntryRow],
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ApplyResult:
        """
        Write every row's proposed text into its locale file.

        Rows without a proposal are skipped. A failing row is recorded as
        ``"key (locale): message"`` and the remaining rows still run.
        ``on_progress`` receives (processed, applied) after every row.

        Raises:
            OperationCancelled: When cancellation is requested between rows
        """
        errors: List[str] = []
        applied = 0
        logger.info(f"Apply operation started (rows={len(rows)})")

        for processed, row in enumerate(rows, start=1):
            check_cancelled(cancellation)
            proposed = row.proposed_text
            if proposed is not None and proposed.strip():
                try:
                    self._write_row(row, proposed)
                    applied += 1
                except (OSError, ValueError) as e:
                    logger.warning(f"Failed to apply translation for key='{row.key}' locale='{row.locale_tag}': {e}")
                    errors.append(f"{row.key} ({row.locale_tag}): {e}")
            if on_progress is not None:
                on_progress(processed, applied)

        logger.info(f"Apply operation completed (processed={len(rows)}, applied={applied}, errors={len(errors)})")
        return ApplyResult(applied_count=applied, errors=errors)

    def _write_row(self, row: StringEntryRow, proposed: str) -> None:
        if row.locale_file_path is not None:
            path = row.locale_file_path
            if not os.path.isfile(path):
                raise FileNotFoundError(f"Locale file not found: {path}")
        else:
            path, _created = ensure_locale_file(row.resource_root_path, row.locale_qualifier_raw)

        current = read_resource_file(path)
        if not current.strip():
            current = EMPTY_RESOURCES_DOCUMENT
        elif "<resources" not in current:
            raise ValueError(f"Invalid XML resources file: {path}")

        normalized = normalize_for_write(proposed, row.origin_kind)
        write_resource_file(path, upsert_string_text(current, row.key, normalized))
        logger.debug(f"Wrote key='{row.key}' to {path}")

    def delete_translations(
        self,
        target: TranslationDeleteTarget,
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ApplyResult:
        """
        Remove a key from every translated locale file of a delete target.

        Each file is independent: a missing, undecodable or unwritable file is recorded and
        the others are still processed. Only files that actually changed are
        counted. ``on_progress`` receives (processed, deleted).
        """
        errors: List[str] = []
        deleted = 0
        logger.info(f"Delete operation started for key='{target.key}' (files={len(target.locale_entries)})")

        for processed, entry in enumerate(target.locale_entries, start=1):
            check_cancelled(cancellation)
            try:
                if not os.path.isfile(entry.locale_file_path):
                    raise FileNotFoundError(f"Locale file not found: {entry.locale_file_path}")
                current = read_resource_file(entry.locale_file_path)
                updated, removed = remove_string_text(current, target.key)
                if removed:
                    write_resource_file(entry.locale_file_path, updated)
                    deleted += 1
                else:
                    logger.debug(f"Key '{target.key}' already absent from {entry.locale_file_path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to delete key='{target.key}' locale='{entry.locale_tag}': {e}")
                errors.append(f"{entry.locale_tag}: {e}")
            if on_progress is not None:
                on_progress(processed, deleted)

        logger.info(f"Delete operation completed (deleted={deleted}, errors={len(errors)})")
        return ApplyResult(applied_count=deleted, errors=errors)

    def add_language(
        self,
        targets: Iterable[LanguageAddTarget],
        locale_tag: str,
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ApplyResult:
        """
        Create an empty locale file for ``locale_tag`` under each target root.

        Roots that already have the locale are skipped without error.
        ``on_progress`` receives (processed, created).
        """
        targets = list(targets)
        qualifier = locale_tag_to_qualifier(locale_tag) if locale_tag.strip() else ""
        normalized_tag = qualifier_to_locale_tag(qualifier)
        # The folder must scan back to the same locale
        if normalized_tag is None or locale_tag_to_qualifier(normalized_tag) != qualifier:
            return ApplyResult(applied_count=0, errors=[f"Invalid locale tag: '{locale_tag}'"])

        errors: List[str] = []
        created = 0
        logger.info(f"Add language started (locale={normalized_tag}, roots={len(targets)})")

        for processed, target in enumerate(targets, start=1):
            check_cancelled(cancellation)
            if normalized_tag in target.existing_locale_tags:
                logger.debug(f"Locale {normalized_tag} already exists in {target.resource_root_path}")
            else:
                try:
                    _path, was_created = ensure_locale_file(target.resource_root_path, qualifier)
                    if was_created:
                        created += 1
                except OSError as e:
                    logger.warning(f"Failed to add locale {normalized_tag} to {target.resource_root_path}: {e}")
                    errors.append(f"{target.resource_root_path}: {e}")
            if on_progress is not None:
                on_progress(processed, created)

        logger.info(f"Add language completed (created={created}, errors={len(errors)})")
        return ApplyResult(applied_count=created, errors=errors)
