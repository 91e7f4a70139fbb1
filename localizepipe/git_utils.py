#!/usr/bin/env python3
"""
Git utilities

This module reads .gitignore files so that the project walk skips the same
folders git does (generated sources, build output, vendored checkouts).
"""
import os
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pathspec

# Get logger
logger = logging.getLogger(__name__)


def parse_gitignore_file(gitignore_path: str) -> List[str]:
    """
    Parse a single .gitignore file and extract its patterns.

    Empty lines and comments are skipped.

    Args:
        gitignore_path: Path to the .gitignore file

    Returns:
        List of patterns from the file

    Raises:
        OSError: If the file cannot be read
    """
    patterns = []
    with open(gitignore_path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            patterns.append(line)
    logger.debug(f"Parsed {len(patterns)} patterns from {gitignore_path}")
    return patterns


def find_parent_gitignores(start_dir: str) -> Dict[str, List[str]]:
    """
    Find .gitignore files in the given directory and all of its parents.

    Unreadable files are logged and skipped.

    Args:
        start_dir: The starting directory path

    Returns:
        Dictionary mapping directory paths to lists of gitignore patterns
    """
    gitignore_files = {}
    current_path = os.path.abspath(start_dir)

    while True:
        gitignore_path = os.path.join(current_path, ".gitignore")
        if os.path.isfile(gitignore_path):
            try:
                gitignore_files[current_path] = parse_gitignore_file(gitignore_path)
            except OSError as e:
                logger.warning(f"Error reading .gitignore at {gitignore_path}: {e}")

        parent_path = os.path.dirname(current_path)
        if parent_path == current_path:
            break
        current_path = parent_path

    return gitignore_files


class GitIgnoreMatcher:
    """
    Matches paths against a hierarchy of .gitignore files.

    Patterns from a .gitignore apply relative to the directory that holds it.
    Negation (``!pattern``) is honored within a single file only.
    """

    def __init__(self, gitignores: Optional[Dict[str, List[str]]] = None) -> None:
        self._specs: Dict[str, pathspec.PathSpec] = {}
        for directory, patterns in (gitignores or {}).items():
            self.add(directory, patterns)

    @classmethod
    def for_root(cls, root_dir: str) -> "GitIgnoreMatcher":
        return cls(find_parent_gitignores(root_dir))

    def add(self, directory: str, patterns: List[str]) -> None:
        if not patterns:
            return
        key = os.path.abspath(directory).replace("\\", "/")
        self._specs[key] = pathspec.GitIgnoreSpec.from_lines(patterns)

    def load_directory(self, directory: str) -> None:
        """Register the .gitignore inside ``directory`` if there is one."""
        gitignore_path = os.path.join(directory, ".gitignore")
        if not os.path.isfile(gitignore_path):
            return
        try:
            self.add(directory, parse_gitignore_file(gitignore_path))
        except OSError as e:
            logger.warning(f"Error reading .gitignore at {gitignore_path}: {e}")

    def is_ignored(self, path: Path, is_dir: bool = False) -> bool:
        """
        Check if a path is ignored by any registered .gitignore.

        Args:
            path: The path to check
            is_dir: Whether the path is a directory (``dir/`` patterns only match those)

        Returns:
            True if the path should be ignored, False otherwise
        """
        if not self._specs:
            return False

        path_str = os.path.abspath(str(path)).replace("\\", "/")

        parent_dirs = []
        current_dir = os.path.dirname(path_str)
        while current_dir:
            parent_dirs.append(current_dir)
            parent = os.path.dirname(current_dir)
            if parent == current_dir:
                break
            current_dir = parent

        ignored = False
        for parent_dir in reversed(parent_dirs):
            spec = self._specs.get(parent_dir)
            if spec is None:
                continue
            rel_path = os.path.relpath(path_str, parent_dir).replace("\\", "/")
            if is_dir:
                rel_path += "/"
            if spec.match_file(rel_path):
                ignored = True
        return ignored
