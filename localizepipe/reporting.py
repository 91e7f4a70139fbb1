#!/usr/bin/env python3
"""
Markdown reports for scan and translation results.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .language_utils import get_language_name
from .models import ResourceKind, RowStatus, ScanResult, StringEntryRow

logger = logging.getLogger(__name__)

# Most severe first.
STATUS_SEVERITY = [
    RowStatus.ERROR,
    RowStatus.MISSING,
    RowStatus.IDENTICAL,
    RowStatus.READY,
    RowStatus.UP_TO_DATE,
]


@dataclass(frozen=True)
class GroupedStringRow:
    """All locale rows of one source string, aggregated for display."""

    id: str
    key: str
    base_text: str
    resource_root_path: str
    module_name: Optional[str]
    origin_kind: ResourceKind
    rows: List[StringEntryRow]
    missing_locales: List[str]
    proposed_count: int
    status: RowStatus


def aggregate_status(rows: Iterable[StringEntryRow]) -> RowStatus:
    statuses = {row.status for row in rows}
    for status in STATUS_SEVERITY:
        if status in statuses:
            return status
    return RowStatus.UP_TO_DATE


def group_rows(rows: Iterable[StringEntryRow]) -> List[GroupedStringRow]:
    """
    Group rows by (resource root, module, key, base text).

    Groups keep the order in which their first row appears; rows inside a
    group are sorted by locale tag.
    """
    groups: "OrderedDict[Tuple[str, str, str, str], List[StringEntryRow]]" = OrderedDict()
    for row in rows:
        group_key = (row.resource_root_path, row.module_name or "", row.key, row.base_text)
        groups.setdefault(group_key, []).append(row)

    grouped = []
    for (root, module, key, base_text), members in groups.items():
        members = sorted(members, key=lambda r: r.locale_tag)
        grouped.append(
            GroupedStringRow(
                id=f"{root}|{module}|{key}",
                key=key,
                base_text=base_text,
                resource_root_path=root,
                module_name=members[0].module_name,
                origin_kind=members[0].origin_kind,
                rows=members,
                missing_locales=sorted({r.locale_tag for r in members if r.status == RowStatus.MISSING}),
                proposed_count=sum(1 for r in members if r.proposed_text is not None),
                status=aggregate_status(members),
            )
        )
    return grouped


def _escape_cell(text: Optional[str]) -> str:
    if text is None:
        return ""
    return text.replace("\n", " ").replace("|", "\\|")


def _rows_by_module_and_locale(rows: Iterable[StringEntryRow]) -> Dict[str, Dict[str, List[StringEntryRow]]]:
    by_module: Dict[str, Dict[str, List[StringEntryRow]]] = {}
    for row in rows:
        module = row.module_name or row.resource_root_path
        by_module.setdefault(module, {}).setdefault(row.locale_tag, []).append(row)
    return by_module


def create_missing_report(scan_result: ScanResult) -> str:
    """
    Generate a Markdown report listing untranslated strings per module and language.
    """
    report = "# Missing Translations Report\n\n"
    if not scan_result.rows:
        report += "All translations are complete."
        return report

    by_module = _rows_by_module_and_locale(scan_result.rows)
    for module in sorted(by_module):
        report += f"## Module: {module}\n\n"
        for locale_tag in sorted(by_module[module]):
            locale_rows = by_module[module][locale_tag]
            report += f"### Language: {get_language_name(locale_tag)} ({locale_tag})\n\n"
            report += "| Key | Status | Source Text | Current Text |\n"
            report += "| --- | ------ | ----------- | ------------ |\n"
            for row in locale_rows:
                report += (
                    f"| {row.key} | {row.status.value} | {_escape_cell(row.base_text)} | "
                    f"{_escape_cell(row.localized_text)} |\n"
                )
            report += "\n"

    missing = sum(1 for row in scan_result.rows if row.status == RowStatus.MISSING)
    identical = sum(1 for row in scan_result.rows if row.status == RowStatus.IDENTICAL)
    report += f"**Total:** {missing} missing, {identical} identical to source"
    logger.debug(f"Missing report generated (rows={len(scan_result.rows)})")
    return report


def create_translation_report(rows: Iterable[StringEntryRow]) -> str:
    """
    Generate a Markdown formatted translation report as a string.

    READY rows are listed in a translation table per module and language;
    ERROR rows are listed with their error message.
    """
    rows = list(rows)
    report = "# Translation Report\n\n"
    has_translations = False
    has_errors = False

    by_module = _rows_by_module_and_locale(rows)
    for module in sorted(by_module):
        module_report = f"## Module: {module}\n\n"
        languages_report = ""

        for locale_tag in sorted(by_module[module]):
            locale_rows = by_module[module][locale_tag]
            translated = [r for r in locale_rows if r.status == RowStatus.READY and r.proposed_text]
            failed = [r for r in locale_rows if r.status == RowStatus.ERROR]
            if not (translated or failed):
                continue

            languages_report += f"### Language: {get_language_name(locale_tag)}\n\n"
            if translated:
                has_translations = True
                languages_report += "| Key | Source Text | Translated Text |\n"
                languages_report += "| --- | ----------- | --------------- |\n"
                for row in translated:
                    languages_report += (
                        f"| {row.key} | {_escape_cell(row.base_text)} | {_escape_cell(row.proposed_text)} |\n"
                    )
                languages_report += "\n"

            if failed:
                has_errors = True
                languages_report += "#### Errors\n\n"
                languages_report += "| Key | Error |\n"
                languages_report += "| --- | ----- |\n"
                for row in failed:
                    languages_report += f"| {row.key} | {_escape_cell(row.message)} |\n"
                languages_report += "\n"

        if languages_report:
            report += module_report + languages_report

    if not (has_translations or has_errors):
        report += "No translations were performed."

    return report
