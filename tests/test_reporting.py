#!/usr/bin/env python3
import os
import sys
import unittest

# Add parent directory to path so we can import the package
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from localizepipe.models import ResourceKind, RowStatus, ScanResult, StringEntryRow
from localizepipe.reporting import (
    aggregate_status,
    create_missing_report,
    create_translation_report,
    group_rows,
)


def make_row(key, locale_tag, status, base_text="Hello", localized=None, proposed=None, message=None,
             module="app", root="/p/app/src/main/res"):
    return StringEntryRow(
        id=f"{root}|{locale_tag}|{key}",
        key=key,
        base_text=base_text,
        localized_text=localized,
        proposed_text=proposed,
        locale_tag=locale_tag,
        locale_qualifier_raw=locale_tag,
        locale_file_path=None,
        resource_root_path=root,
        module_name=module,
        origin_kind=ResourceKind.ANDROID,
        status=status,
        message=message,
    )


class TestGrouping(unittest.TestCase):

    def test_aggregate_status_prefers_most_severe(self):
        rows = [make_row("a", "de", RowStatus.READY), make_row("a", "fr", RowStatus.MISSING)]
        self.assertEqual(aggregate_status(rows), RowStatus.MISSING)
        rows.append(make_row("a", "it", RowStatus.ERROR))
        self.assertEqual(aggregate_status(rows), RowStatus.ERROR)
        self.assertEqual(aggregate_status([]), RowStatus.UP_TO_DATE)

    def test_group_rows(self):
        rows = [
            make_row("title", "fr", RowStatus.MISSING),
            make_row("title", "de", RowStatus.READY, proposed="Hallo"),
            make_row("body", "de", RowStatus.IDENTICAL, localized="Hello"),
            make_row("title", "es", RowStatus.MISSING, module="shared", root="/p/shared/src/commonMain/composeResources"),
        ]

        groups = group_rows(rows)

        self.assertEqual([g.key for g in groups], ["title", "body", "title"])
        title = groups[0]
        self.assertEqual(title.id, "/p/app/src/main/res|app|title")
        self.assertEqual([r.locale_tag for r in title.rows], ["de", "fr"])
        self.assertEqual(title.missing_locales, ["fr"])
        self.assertEqual(title.proposed_count, 1)
        self.assertEqual(title.status, RowStatus.MISSING)
        self.assertEqual(groups[1].status, RowStatus.IDENTICAL)
        self.assertEqual(groups[2].module_name, "shared")


class TestReporting(unittest.TestCase):

    def test_create_missing_report(self):
        result = ScanResult(
            rows=[
                make_row("hello", "es", RowStatus.MISSING, base_text="Hello World"),
                make_row("ok", "es", RowStatus.IDENTICAL, base_text="OK", localized="OK"),
                make_row("pipe", "de", RowStatus.MISSING, base_text="A | B\nC"),
            ],
            detected_locales=frozenset({"es", "de"}),
        )

        report = create_missing_report(result)

        self.assertIn("# Missing Translations Report", report)
        self.assertIn("## Module: app", report)
        self.assertIn("### Language: Spanish (es)", report)
        self.assertIn("### Language: German (de)", report)
        self.assertIn("| hello | missing | Hello World |  |", report)
        self.assertIn("| ok | identical | OK | OK |", report)
        self.assertIn("A \\| B C", report)
        self.assertTrue(report.endswith("**Total:** 2 missing, 1 identical to source"))
        # Languages are listed alphabetically by tag
        self.assertLess(report.index("(de)"), report.index("(es)"))

    def test_missing_report_when_complete(self):
        report = create_missing_report(ScanResult())
        self.assertIn("All translations are complete.", report)
        self.assertNotIn("## Module", report)

    def test_create_translation_report(self):
        rows = [
            make_row("hello", "es", RowStatus.READY, base_text="Hello World", proposed="Hola Mundo"),
            make_row("days", "es", RowStatus.ERROR, base_text="%d days", message="Validation failed: PLACEHOLDERS_CHANGED"),
            make_row("skip", "fr", RowStatus.MISSING),
        ]

        report = create_translation_report(rows)

        self.assertIn("# Translation Report", report)
        self.assertIn("## Module: app", report)
        self.assertIn("### Language: Spanish", report)
        self.assertIn("| hello | Hello World | Hola Mundo |", report)
        self.assertIn("#### Errors", report)
        self.assertIn("| days | Validation failed: PLACEHOLDERS_CHANGED |", report)
        self.assertNotIn("French", report)
        self.assertNotIn("No translations were performed.", report)

    def test_translation_report_without_results(self):
        report = create_translation_report([make_row("skip", "fr", RowStatus.MISSING)])
        self.assertIn("No translations were performed.", report)
        self.assertNotIn("## Module", report)


if __name__ == "__main__":
    unittest.main()
