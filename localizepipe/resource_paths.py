#!/usr/bin/env python3
"""
Resource path classification.

Recognizes the two supported localization layouts:

  - Android:  <module>/src/<variant>/res/values(-<qualifier>)/strings.xml
  - Compose:  <module>/src/commonMain/composeResources/values(-<qualifier>)/strings.xml

and walks a directory tree for files that match either layout.
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Union

from .locale_qualifier import qualifier_to_locale_tag
from .models import ClassifiedResourcePath, ResourceKind

logger = logging.getLogger(__name__)

STRINGS_FILE_NAME = "strings.xml"
BASE_FOLDER_NAME = "values"

_ANDROID_PATH_PATTERN = re.compile(r"(.*/src/[^/]+/res)/(values(?:-[^/]+)?)/strings\.xml")
_COMPOSE_PATH_PATTERN = re.compile(
    r"(.*/src/commonMain/composeResources)/(values(?:-[^/]+)?)/strings\.xml"
)

_LAYOUTS = (
    (_ANDROID_PATH_PATTERN, ResourceKind.ANDROID),
    (_COMPOSE_PATH_PATTERN, ResourceKind.COMPOSE),
)


def normalize_path(path: Union[str, Path]) -> str:
    """Return the path as a string with forward slashes."""
    return str(path).replace("\\", "/")


def classify_resource_path(path: Union[str, Path]) -> Optional[ClassifiedResourcePath]:
    """
    Classify a file path as an Android or Compose localization file.

    The Android layout is checked first; the first match wins.

    Returns:
        The classified path, or None when the path is not a localization file
    """
    normalized = normalize_path(path)
    for pattern, kind in _LAYOUTS:
        match = pattern.fullmatch(normalized)
        if match is None:
            continue
        folder_name = match.group(2)
        qualifier_raw = folder_name[len(BASE_FOLDER_NAME):].lstrip("-")
        return ClassifiedResourcePath(
            resource_root_path=match.group(1),
            kind=kind,
            folder_name=folder_name,
            qualifier_raw=qualifier_raw,
            normalized_locale_tag=qualifier_to_locale_tag(qualifier_raw),
        )
    return None


def _sort_key(classified: ClassifiedResourcePath):
    return (classified.kind.name, classified.resource_root_path, classified.folder_name)


def scan_root(root: Union[str, Path]) -> List[ClassifiedResourcePath]:
    """
    Recursively find and classify every ``strings.xml`` under ``root``.

    Unclassifiable files are dropped. The result is sorted by
    (kind, resource root, folder name) so the output is deterministic.
    A missing root yields an empty list.
    """
    root_path = Path(root)
    if not root_path.exists():
        logger.debug(f"Scan root {root_path} does not exist")
        return []

    results: List[ClassifiedResourcePath] = []
    for dirpath, _dirnames, filenames in os.walk(root_path):
        if STRINGS_FILE_NAME not in filenames:
            continue
        file_path = Path(dirpath) / STRINGS_FILE_NAME
        if not file_path.is_file():
            continue
        classified = classify_resource_path(file_path)
        if classified is not None:
            results.append(classified)

    return sorted(results, key=_sort_key)


def should_trigger_rescan(path: str) -> bool:
    """Return True when a changed path may affect localization files."""
    if "/values" not in path:
        return False
    return path.endswith("/strings.xml") or "/values-" in path
