#!/usr/bin/env python3
"""
Data model shared by the scanner, translation service, applier and controller.

All entities are immutable values. Code that needs a modified row creates a
copy with ``dataclasses.replace`` so snapshots handed to readers never change
underneath them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


class ResourceKind(Enum):
    """Which path grammar and escaping rules apply to a resource file."""

    ANDROID = "android"
    COMPOSE = "compose"


class ScanScope(Enum):
    WHOLE_PROJECT = "whole_project"
    CURRENT_MODULE = "current_module"


class RowStatus(Enum):
    """
    Status of one (key, locale) pair.

    MISSING:    no entry in the target locale.
    IDENTICAL:  target text equals the source text.
    READY:      validated proposed translation awaiting write.
    ERROR:      translation or validation failed for this row.
    UP_TO_DATE: translated and different from source; never surfaced as a row.
    """

    MISSING = "missing"
    IDENTICAL = "identical"
    READY = "ready"
    ERROR = "error"
    UP_TO_DATE = "up_to_date"


@dataclass(frozen=True)
class ScanOptions:
    scope: ScanScope = ScanScope.WHOLE_PROJECT
    include_android_resources: bool = True
    include_compose_resources: bool = True
    include_identical_to_base: bool = False
    current_module_name: Optional[str] = None
    # Locales to diff against even when a group has no file for them yet.
    additional_locale_tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ClassifiedResourcePath:
    resource_root_path: str
    kind: ResourceKind
    folder_name: str
    qualifier_raw: str
    normalized_locale_tag: Optional[str]


@dataclass(frozen=True)
class StringEntryRow:
    """One (key, target locale) pair under consideration for translation."""

    id: str
    key: str
    base_text: str
    localized_text: Optional[str]
    proposed_text: Optional[str]
    locale_tag: str
    locale_qualifier_raw: str
    locale_file_path: Optional[str]
    resource_root_path: str
    module_name: Optional[str]
    origin_kind: ResourceKind
    status: RowStatus
    message: Optional[str] = None


@dataclass(frozen=True)
class ScanResult:
    rows: List[StringEntryRow] = field(default_factory=list)
    detected_locales: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class TranslationDeleteLocaleEntry:
    locale_tag: str
    locale_qualifier_raw: str
    locale_file_path: str


@dataclass(frozen=True)
class TranslationDeleteTarget:
    """A key that is translated in at least one locale and can be removed from all of them."""

    id: str
    key: str
    base_text: str
    resource_root_path: str
    module_name: Optional[str]
    origin_kind: ResourceKind
    locale_entries: List[TranslationDeleteLocaleEntry]


@dataclass(frozen=True)
class LanguageAddTarget:
    """A resource root where a brand-new locale folder can be created."""

    id: str
    resource_root_path: str
    module_name: Optional[str]
    origin_kind: ResourceKind
    existing_locale_tags: List[str]


@dataclass(frozen=True)
class ApplyResult:
    applied_count: int = 0
    errors: List[str] = field(default_factory=list)
