#!/usr/bin/env python3
"""
Diff scanner.

Turns the localization files of a project into actionable rows: every
(locale, key) pair whose translation is missing (or, optionally, identical to
the source text). The same grouping is used to list keys that can be deleted
from translated locales and resource roots that can receive a new locale.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from .cancellation import CancellationToken, check_cancelled
from .locale_qualifier import locale_tag_to_qualifier
from .models import (
    LanguageAddTarget,
    ResourceKind,
    RowStatus,
    ScanOptions,
    ScanResult,
    ScanScope,
    StringEntryRow,
    TranslationDeleteLocaleEntry,
    TranslationDeleteTarget,
)
from .project_index import LocalizedStringsFile
from .resource_paths import BASE_FOLDER_NAME
from .strings_xml import extract_string_values

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, ResourceKind, Optional[str]]


def compute_row_status(base_text: str, localized_text: Optional[str]) -> RowStatus:
    """MISSING when absent, IDENTICAL when equal to the source, UP_TO_DATE otherwise."""
    if localized_text is None:
        return RowStatus.MISSING
    if localized_text == base_text:
        return RowStatus.IDENTICAL
    return RowStatus.UP_TO_DATE


class StringsXmlScanner:
    """
    Scans the localization files provided by a file index.

    Args:
        file_index: Object exposing ``find_localized_files()`` and ``read_text(path)``,
            normally a :class:`~localizepipe.project_index.ProjectFileIndex`
    """

    def __init__(self, file_index) -> None:
        self.file_index = file_index

    def scan(
        self, options: ScanOptions, cancellation: Optional[CancellationToken] = None
    ) -> ScanResult:
        """
        Compute the rows that still need a translation.

        Raises:
            OperationCancelled: If cancellation is requested mid-scan
        """
        check_cancelled(cancellation)
        grouped = self._grouped_files(options)

        detected_locales = set()
        rows: List[StringEntryRow] = []

        for (resource_root_path, kind, module_name), group_files in grouped.items():
            check_cancelled(cancellation)
            base_map = self._read_base_map(group_files)
            if not base_map:
                continue

            locale_files = [f for f in group_files if f.classified.normalized_locale_tag is not None]
            locale_lookup: Dict[str, LocalizedStringsFile] = {}
            for locale_file in locale_files:
                tag = locale_file.classified.normalized_locale_tag
                detected_locales.add(tag)
                locale_lookup[tag] = locale_file

            effective_targets = set(locale_lookup) | set(options.additional_locale_tags)

            for target_locale in sorted(effective_targets):
                check_cancelled(cancellation)
                locale_file = locale_lookup.get(target_locale)
                localized_map = (
                    extract_string_values(self.file_index.read_text(locale_file.path))
                    if locale_file is not None
                    else {}
                )
                qualifier_raw = (
                    locale_file.classified.qualifier_raw
                    if locale_file is not None
                    else locale_tag_to_qualifier(target_locale)
                )

                for key in sorted(base_map):
                    check_cancelled(cancellation)
                    base_text = base_map[key]
                    localized_text = localized_map.get(key)
                    status = compute_row_status(base_text, localized_text)

                    if status == RowStatus.UP_TO_DATE:
                        continue
                    if status == RowStatus.IDENTICAL and not options.include_identical_to_base:
                        continue

                    rows.append(
                        StringEntryRow(
                            id=f"{resource_root_path}|{target_locale}|{key}",
                            key=key,
                            base_text=base_text,
                            localized_text=localized_text,
                            proposed_text=None,
                            locale_tag=target_locale,
                            locale_qualifier_raw=qualifier_raw,
                            locale_file_path=locale_file.path if locale_file is not None else None,
                            resource_root_path=resource_root_path,
                            module_name=module_name,
                            origin_kind=kind,
                            status=status,
                        )
                    )

        rows.sort(key=lambda row: (row.locale_tag, row.key))
        logger.debug(f"Scan produced {len(rows)} rows across {len(grouped)} resource groups")
        return ScanResult(rows=rows, detected_locales=frozenset(detected_locales))

    def scan_deletion_targets(
        self, options: ScanOptions, cancellation: Optional[CancellationToken] = None
    ) -> List[TranslationDeleteTarget]:
        """
        List every source key that exists in at least one translated locale file.

        Raises:
            OperationCancelled: If cancellation is requested mid-scan
        """
        check_cancelled(cancellation)
        grouped = self._grouped_files(options)
        targets: List[TranslationDeleteTarget] = []

        for (resource_root_path, kind, module_name), group_files in grouped.items():
            check_cancelled(cancellation)
            base_map = self._read_base_map(group_files)
            if not base_map:
                continue

            locale_files = [f for f in group_files if f.classified.normalized_locale_tag is not None]
            if not locale_files:
                continue

            localized_maps = [
                (locale_file, extract_string_values(self.file_index.read_text(locale_file.path)))
                for locale_file in locale_files
            ]

            for key in sorted(base_map):
                check_cancelled(cancellation)
                locale_entries = sorted(
                    (
                        TranslationDeleteLocaleEntry(
                            locale_tag=locale_file.classified.normalized_locale_tag,
                            locale_qualifier_raw=locale_file.classified.qualifier_raw,
                            locale_file_path=locale_file.path,
                        )
                        for locale_file, localized_map in localized_maps
                        if key in localized_map
                    ),
                    key=lambda entry: entry.locale_tag,
                )
                if not locale_entries:
                    continue

                targets.append(
                    TranslationDeleteTarget(
                        id=f"{resource_root_path}|{module_name or ''}|{key}",
                        key=key,
                        base_text=base_map[key],
                        resource_root_path=resource_root_path,
                        module_name=module_name,
                        origin_kind=kind,
                        locale_entries=locale_entries,
                    )
                )

        targets.sort(key=lambda t: (t.key, t.module_name or "", t.resource_root_path))
        return targets

    def scan_language_add_targets(
        self, options: ScanOptions, cancellation: Optional[CancellationToken] = None
    ) -> List[LanguageAddTarget]:
        """List resource roots that have a base file and can receive a new locale."""
        check_cancelled(cancellation)
        targets: List[LanguageAddTarget] = []

        for (resource_root_path, kind, module_name), group_files in self._grouped_files(options).items():
            check_cancelled(cancellation)
            if not any(f.classified.folder_name == BASE_FOLDER_NAME for f in group_files):
                continue
            existing = sorted(
                {
                    f.classified.normalized_locale_tag
                    for f in group_files
                    if f.classified.normalized_locale_tag is not None
                }
            )
            targets.append(
                LanguageAddTarget(
                    id=f"{resource_root_path}|{module_name or ''}",
                    resource_root_path=resource_root_path,
                    module_name=module_name,
                    origin_kind=kind,
                    existing_locale_tags=existing,
                )
            )

        targets.sort(key=lambda t: (t.module_name or "", t.resource_root_path))
        return targets

    def _grouped_files(self, options: ScanOptions) -> "OrderedDict[GroupKey, List[LocalizedStringsFile]]":
        grouped: "OrderedDict[GroupKey, List[LocalizedStringsFile]]" = OrderedDict()
        for localized_file in self.file_index.find_localized_files():
            if not _include_by_resource_kind(localized_file.classified.kind, options):
                continue
            if not _include_by_scope(localized_file.module_name, options):
                continue
            key = (
                localized_file.classified.resource_root_path,
                localized_file.classified.kind,
                localized_file.module_name,
            )
            grouped.setdefault(key, []).append(localized_file)
        return grouped

    def _read_base_map(self, group_files: List[LocalizedStringsFile]) -> Dict[str, str]:
        base_file = next(
            (f for f in group_files if f.classified.folder_name == BASE_FOLDER_NAME), None
        )
        if base_file is None:
            return {}
        return extract_string_values(self.file_index.read_text(base_file.path))


def _include_by_resource_kind(kind: ResourceKind, options: ScanOptions) -> bool:
    if kind == ResourceKind.ANDROID:
        return options.include_android_resources
    return options.include_compose_resources


def _include_by_scope(module_name: Optional[str], options: ScanOptions) -> bool:
    if options.scope == ScanScope.WHOLE_PROJECT:
        return True
    if options.current_module_name is None:
        return True
    return module_name == options.current_module_name
