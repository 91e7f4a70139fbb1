#!/usr/bin/env python3
"""
Project file index.

Finds localization files inside a project the way an IDE index would:
build output, VCS metadata and git-ignored folders are not part of the
project, and every file is attributed to the Gradle-style module that owns
its ``src`` folder.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional, Union

from .git_utils import GitIgnoreMatcher
from .models import ClassifiedResourcePath
from .resource_paths import STRINGS_FILE_NAME, classify_resource_path, normalize_path

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DIRS: FrozenSet[str] = frozenset(
    {".git", ".gradle", ".idea", "build", "node_modules", ".kotlin"}
)


@dataclass(frozen=True)
class LocalizedStringsFile:
    path: str
    classified: ClassifiedResourcePath
    module_name: Optional[str]


class ProjectFileIndex:
    """
    Enumerates classified ``strings.xml`` files under a project root.

    Args:
        root: Project root directory
        use_gitignore: Skip paths matched by the .gitignore hierarchy
        excluded_dirs: Directory names that are never descended into
    """

    def __init__(
        self,
        root: Union[str, Path],
        use_gitignore: bool = True,
        excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
    ) -> None:
        self.root = Path(root).resolve()
        self.use_gitignore = use_gitignore
        self.excluded_dirs = frozenset(excluded_dirs)

    def find_localized_files(self) -> List[LocalizedStringsFile]:
        """Walk the project and return every classifiable localization file."""
        if not self.root.exists():
            logger.warning(f"Project root {self.root} does not exist")
            return []

        matcher = GitIgnoreMatcher.for_root(str(self.root)) if self.use_gitignore else None
        found: List[LocalizedStringsFile] = []

        for dirpath, dirnames, filenames in os.walk(self.root):
            if matcher is not None:
                matcher.load_directory(dirpath)

            kept = []
            for dirname in dirnames:
                if dirname in self.excluded_dirs:
                    continue
                if matcher is not None and matcher.is_ignored(Path(dirpath) / dirname, is_dir=True):
                    logger.debug(f"Skipping {Path(dirpath) / dirname} (matched gitignore pattern)")
                    continue
                kept.append(dirname)
            dirnames[:] = sorted(kept)

            if STRINGS_FILE_NAME not in filenames:
                continue
            file_path = Path(dirpath) / STRINGS_FILE_NAME
            if matcher is not None and matcher.is_ignored(file_path):
                continue
            classified = classify_resource_path(file_path)
            if classified is None:
                continue
            found.append(
                LocalizedStringsFile(
                    path=normalize_path(file_path),
                    classified=classified,
                    module_name=self.module_for_resource_root(classified.resource_root_path),
                )
            )

        logger.debug(f"Indexed {len(found)} localization files under {self.root}")
        return found

    def module_for_resource_root(self, resource_root_path: str) -> Optional[str]:
        """
        Resolve the module that owns a resource root.

        ``<root>/feature/settings/src/main/res`` belongs to ``feature:settings``;
        a ``src`` folder directly under the project root belongs to the
        project itself.
        """
        index = resource_root_path.rfind("/src/")
        if index < 0:
            return None
        return self._module_for_dir(resource_root_path[:index])

    def module_for_path(self, path: Union[str, Path]) -> Optional[str]:
        """Resolve the module for any file inside the project (e.g. an open editor file)."""
        normalized = normalize_path(Path(path).resolve())
        index = normalized.rfind("/src/")
        if index < 0:
            return None
        return self._module_for_dir(normalized[:index])

    def _module_for_dir(self, module_dir: str) -> Optional[str]:
        root = normalize_path(self.root)
        if module_dir == root:
            return self.root.name
        if not module_dir.startswith(root + "/"):
            return Path(module_dir).name or None
        return module_dir[len(root) + 1:].replace("/", ":")

    @staticmethod
    def read_text(path: str) -> str:
        """Read a resource file; unreadable files read as empty text."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return ""
