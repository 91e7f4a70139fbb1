#!/usr/bin/env python3
"""
Tests for the project file index: localization file discovery, exclusions
and module attribution.
"""
import os
import sys
import tempfile
import unittest
from pathlib import Path

# Add parent directory to path for module import
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from localizepipe.models import ResourceKind
from localizepipe.project_index import ProjectFileIndex

STRINGS = '<resources>\n    <string name="hello">Hello</string>\n</resources>\n'


class TestProjectFileIndex(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.root = Path(self.temp_dir.name).resolve()

        for relative in [
            "app/src/main/res/values/strings.xml",
            "app/src/main/res/values-de/strings.xml",
            "app/build/intermediates/src/main/res/values/strings.xml",
            "feature/settings/src/main/res/values/strings.xml",
            "shared/src/commonMain/composeResources/values/strings.xml",
            "generated/src/main/res/values/strings.xml",
            "app/src/main/res/values/colors.xml",
        ]:
            self._write(relative, STRINGS)
        self._write(".gitignore", "generated/\n")

    def _write(self, relative, content):
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def _relative_paths(self, files):
        root = str(self.root).replace("\\", "/") + "/"
        return sorted(f.path[len(root):] for f in files)

    def test_finds_localization_files(self):
        files = ProjectFileIndex(self.root).find_localized_files()

        self.assertEqual(
            self._relative_paths(files),
            [
                "app/src/main/res/values-de/strings.xml",
                "app/src/main/res/values/strings.xml",
                "feature/settings/src/main/res/values/strings.xml",
                "shared/src/commonMain/composeResources/values/strings.xml",
            ],
        )

    def test_gitignore_can_be_disabled(self):
        files = ProjectFileIndex(self.root, use_gitignore=False).find_localized_files()
        self.assertIn("generated/src/main/res/values/strings.xml", self._relative_paths(files))
        # Build output stays excluded by name
        self.assertNotIn(
            "app/build/intermediates/src/main/res/values/strings.xml", self._relative_paths(files)
        )

    def test_module_names(self):
        files = ProjectFileIndex(self.root).find_localized_files()
        modules = {f.classified.folder_name + ":" + str(f.module_name) for f in files}

        self.assertIn("values:app", modules)
        self.assertIn("values-de:app", modules)
        self.assertIn("values:feature:settings", modules)
        self.assertIn("values:shared", modules)

        kinds = {f.module_name: f.classified.kind for f in files}
        self.assertEqual(kinds["shared"], ResourceKind.COMPOSE)
        self.assertEqual(kinds["feature:settings"], ResourceKind.ANDROID)

    def test_module_for_root_level_src(self):
        index = ProjectFileIndex(self.root)
        root = str(self.root).replace("\\", "/")
        self.assertEqual(index.module_for_resource_root(f"{root}/src/main/res"), self.root.name)
        self.assertIsNone(index.module_for_resource_root(f"{root}/res"))

    def test_module_for_path(self):
        index = ProjectFileIndex(self.root)
        self.assertEqual(
            index.module_for_path(self.root / "feature/settings/src/main/java/Settings.kt"),
            "feature:settings",
        )
        self.assertIsNone(index.module_for_path(self.root / "README.md"))

    def test_missing_root(self):
        self.assertEqual(ProjectFileIndex(self.root / "missing").find_localized_files(), [])

    def test_read_text(self):
        path = str(self.root / "app/src/main/res/values/strings.xml")
        self.assertEqual(ProjectFileIndex.read_text(path), STRINGS)
        self.assertEqual(ProjectFileIndex.read_text(str(self.root / "nope.xml")), "")


if __name__ == "__main__":
    unittest.main()
