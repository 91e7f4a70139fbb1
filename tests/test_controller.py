#!/usr/bin/env python3
"""
Tests for the operation controller: scanning, translate + write, delete,
add-language, busy rejection, queued rescans and cancellation.

The controller runs against a real scanner and applier over a temporary
project tree; only the translation backend is faked.
"""
import os
import sys
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for module import
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from localizepipe.applier import TranslationApplier
from localizepipe.controller import (
    ControllerState,
    OperationController,
    UiOperation,
    is_writable,
    merge_scanned_rows,
)
from localizepipe.llm_provider import ProviderFailure, ProviderSuccess
from localizepipe.models import (
    ResourceKind,
    RowStatus,
    ScanScope,
    StringEntryRow,
    TranslationDeleteTarget,
)
from localizepipe.project_index import ProjectFileIndex
from localizepipe.scanner import StringsXmlScanner
from localizepipe.settings import ProjectScanSettings, TranslationSettings
from localizepipe.translation_service import TranslationService

ANDROID_RES = "app/src/main/res"
TIMEOUT = 10


class FakeBackend:
    """Translates by looking up a fixed table; unknown texts fail."""

    def __init__(self, table=None):
        self.table = table or {}
        self.calls = []

    def request_translation(self, text, source_code, target_code):
        self.calls.append((text, target_code))
        if text in self.table:
            return ProviderSuccess(self.table[text])
        return ProviderFailure(f"no translation for {text}")


class BlockingScanner:
    """Wraps a scanner and holds the first scan until released."""

    def __init__(self, inner):
        self.inner = inner
        self.started = threading.Event()
        self.release = threading.Event()
        self.scan_count = 0

    def scan(self, options, cancellation=None):
        self.scan_count += 1
        self.started.set()
        self.release.wait(TIMEOUT)
        if cancellation is not None:
            cancellation.check()
        return self.inner.scan(options, cancellation)

    def scan_deletion_targets(self, options, cancellation=None):
        return self.inner.scan_deletion_targets(options, cancellation)

    def scan_language_add_targets(self, options, cancellation=None):
        return self.inner.scan_language_add_targets(options, cancellation)


def make_row(key, status=RowStatus.MISSING, proposed=None, message=None):
    return StringEntryRow(
        id=f"/res|de|{key}",
        key=key,
        base_text=key.upper(),
        localized_text=None,
        proposed_text=proposed,
        locale_tag="de",
        locale_qualifier_raw="de",
        locale_file_path=None,
        resource_root_path="/res",
        module_name="app",
        origin_kind=ResourceKind.ANDROID,
        status=status,
        message=message,
    )


class TestHelpers(unittest.TestCase):

    def test_is_writable(self):
        self.assertTrue(is_writable(make_row("a", RowStatus.READY, proposed="A")))
        self.assertFalse(is_writable(make_row("a", RowStatus.ERROR, proposed="A")))
        self.assertFalse(is_writable(make_row("a", RowStatus.READY, proposed="  ")))
        self.assertFalse(is_writable(make_row("a")))

    def test_merge_keeps_pending_proposals(self):
        previous = {
            "/res|de|a": make_row("a", RowStatus.READY, proposed="A-de"),
            "/res|de|b": make_row("b", RowStatus.ERROR, proposed="B?", message="Validation failed: TAGS_CHANGED"),
            "/res|de|c": make_row("c", RowStatus.ERROR, message="timeout"),
        }
        scanned = [make_row("a"), make_row("b", RowStatus.IDENTICAL), make_row("c"), make_row("d")]

        merged = merge_scanned_rows(scanned, previous)

        self.assertEqual([r.key for r in merged], ["a", "b", "c", "d"])
        self.assertEqual((merged[0].status, merged[0].proposed_text), (RowStatus.READY, "A-de"))
        self.assertEqual(merged[1].status, RowStatus.ERROR)
        self.assertEqual(merged[1].message, "Validation failed: TAGS_CHANGED")
        # Rows without a proposal take the fresh scan result
        self.assertEqual(merged[2].status, RowStatus.MISSING)
        self.assertIsNone(merged[2].message)
        self.assertIs(merged[3], scanned[3])

    def test_initial_state(self):
        state = ControllerState()
        self.assertEqual(state.status_text, "Idle")
        self.assertFalse(state.is_busy)
        self.assertEqual(state.active_operation, UiOperation.IDLE)
        self.assertFalse(state.has_completed_initial_scan)


class ControllerTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.root = Path(self.temp_dir.name).resolve()
        self.res = str(self.root / ANDROID_RES).replace("\\", "/")
        self.write("values/strings.xml", '<resources>\n    <string name="title">Settings</string>\n</resources>\n')
        self.write("values-de/strings.xml", "<resources>\n</resources>\n")
        self.backend = FakeBackend({"Settings": "Einstellungen"})
        self.scanner = StringsXmlScanner(ProjectFileIndex(self.root))

    def make_controller(self, scanner=None, scan_settings=None, **kwargs):
        service = TranslationService(TranslationSettings(ollama_model="translategemma:4b"), backend=self.backend)
        controller = OperationController(
            scanner or self.scanner,
            service,
            TranslationApplier(),
            scan_settings or ProjectScanSettings(),
            rescan_delay=0.05,
            **kwargs,
        )
        self.addCleanup(controller.close)
        return controller

    def write(self, relative, content):
        path = Path(self.res) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return str(path).replace("\\", "/")

    def read(self, relative):
        return (Path(self.res) / relative).read_text(encoding="utf-8")

    def scan(self, controller):
        rows = controller.rescan().result(TIMEOUT)
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        return rows


class TestScan(ControllerTestCase):

    def test_scan_publishes_rows_and_targets(self):
        controller = self.make_controller()

        rows = self.scan(controller)

        state = controller.snapshot()
        self.assertEqual([r.key for r in rows], ["title"])
        self.assertEqual(state.rows, tuple(rows))
        self.assertEqual(state.detected_locales, frozenset({"de"}))
        self.assertEqual(state.selected_row_id, rows[0].id)
        self.assertEqual(state.last_message, "Found 1 candidate strings (scope: Project)")
        self.assertEqual(state.status_text, "Idle")
        self.assertTrue(state.has_completed_initial_scan)
        self.assertEqual([t.module_name for t in state.language_add_targets], ["app"])
        self.assertEqual(state.delete_targets, ())

    def test_scan_without_candidates(self):
        self.write("values-de/strings.xml", '<resources>\n    <string name="title">Einstellungen</string>\n</resources>\n')
        controller = self.make_controller()

        self.assertEqual(self.scan(controller), [])
        self.assertEqual(controller.snapshot().last_message, "No untranslated strings found (scope: Project)")
        self.assertEqual(len(controller.snapshot().delete_targets), 1)

    def test_scan_settings_control_included_locales(self):
        controller = self.make_controller(scan_settings=ProjectScanSettings(additional_locale_tags=("fr",)))
        rows = self.scan(controller)
        self.assertEqual([r.locale_tag for r in rows], ["de", "fr"])

    def test_listeners_receive_snapshots_until_unsubscribed(self):
        controller = self.make_controller()
        states = []
        unsubscribe = controller.add_state_listener(states.append)

        self.scan(controller)
        unsubscribe()
        controller.select_row(None)
        controller.close()

        self.assertTrue(any(s.is_busy and s.active_operation == UiOperation.SCANNING for s in states))
        self.assertTrue(states[-1].has_completed_initial_scan)
        self.assertIsNotNone(states[-1].selected_row_id)

    def test_failing_listener_does_not_break_the_scan(self):
        controller = self.make_controller()

        def broken(_state):
            raise RuntimeError("listener bug")

        controller.add_state_listener(broken)
        self.assertEqual(len(self.scan(controller)), 1)

    def test_resource_change_triggers_debounced_rescan(self):
        controller = self.make_controller()
        self.assertFalse(controller.on_resource_paths_changed([str(self.root / "README.md")]))
        self.assertFalse(controller.snapshot().has_completed_initial_scan)

        self.assertTrue(controller.on_resource_paths_changed([f"{self.res}/values-de/strings.xml"]))
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        self.assertTrue(controller.snapshot().has_completed_initial_scan)

    def test_toggle_scope_rescans(self):
        controller = self.make_controller()

        self.assertTrue(controller.toggle_scope())
        self.assertEqual(controller.snapshot().scan_scope, ScanScope.CURRENT_MODULE)
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        # No module resolver: the scan falls back to the whole project
        self.assertEqual(controller.snapshot().last_message, "Found 1 candidate strings (scope: Module)")

        self.assertTrue(controller.toggle_scope())
        self.assertEqual(controller.snapshot().scan_scope, ScanScope.WHOLE_PROJECT)


class TestBusyHandling(ControllerTestCase):

    def test_operations_are_rejected_while_scanning(self):
        blocking = BlockingScanner(self.scanner)
        controller = self.make_controller(scanner=blocking)

        future = controller.rescan()
        self.assertTrue(blocking.started.wait(TIMEOUT))
        self.assertTrue(controller.snapshot().is_busy)

        self.assertIsNone(controller.translate())
        self.assertEqual(controller.snapshot().last_message, "Translation already in progress")

        self.assertFalse(controller.toggle_scope())
        self.assertEqual(controller.snapshot().last_message, "Wait for scanning to finish before changing scope")
        self.assertEqual(controller.snapshot().scan_scope, ScanScope.WHOLE_PROJECT)

        target = TranslationDeleteTarget(
            id="x", key="title", base_text="Settings", resource_root_path=self.res,
            module_name="app", origin_kind=ResourceKind.ANDROID, locale_entries=[],
        )
        self.assertIsNone(controller.delete_translations_for_target(target))
        self.assertEqual(controller.snapshot().last_message, "Another operation is already running")

        self.assertIsNone(controller.rescan())
        self.assertEqual(controller.snapshot().last_message, "Rescan queued while scanning is running")

        blocking.release.set()
        future.result(TIMEOUT)
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        # The queued rescan ran once after the first scan finished
        self.assertEqual(blocking.scan_count, 2)

    def test_rescan_requested_while_scan_finishes_still_runs(self):
        blocking = BlockingScanner(self.scanner)
        running = {}

        def resolve_module():
            # The second request lets the running scan complete before it is decided
            if "future" in running:
                blocking.release.set()
                running["future"].result(TIMEOUT)
            return "app"

        controller = self.make_controller(
            scanner=blocking, scope_resolver=resolve_module, scan_scope=ScanScope.CURRENT_MODULE
        )
        running["future"] = controller.rescan()
        self.assertTrue(blocking.started.wait(TIMEOUT))

        second = controller.rescan()

        self.assertIsNotNone(second)
        self.assertEqual([r.key for r in second.result(TIMEOUT)], ["title"])
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        self.assertEqual(blocking.scan_count, 2)

    def test_rescan_decides_busy_state_under_lock(self):
        controller = self.make_controller()

        # A caller that saw the controller busy a moment ago must not leave a rescan queued forever
        with patch.object(controller, "_is_busy", return_value=True):
            future = controller.rescan()

        self.assertIsNotNone(future)
        future.result(TIMEOUT)
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        self.assertTrue(controller.snapshot().has_completed_initial_scan)

    def test_cancel_running_scan(self):
        blocking = BlockingScanner(self.scanner)
        controller = self.make_controller(scanner=blocking)

        future = controller.rescan()
        self.assertTrue(blocking.started.wait(TIMEOUT))
        controller.cancel_current_operation()
        self.assertEqual(controller.snapshot().last_message, "Cancellation requested for scanning")
        blocking.release.set()

        self.assertEqual(future.result(TIMEOUT), [])
        state = controller.snapshot()
        self.assertEqual(state.last_message, "Scan cancelled")
        self.assertFalse(state.is_busy)
        self.assertEqual(state.rows, ())

    def test_cancel_when_idle_is_a_no_op(self):
        controller = self.make_controller()
        controller.cancel_current_operation()
        self.assertEqual(controller.snapshot().last_message, "")

    def test_closed_controller_ignores_requests(self):
        controller = self.make_controller()
        controller.close()
        self.assertIsNone(controller.rescan())
        controller.schedule_rescan(0)
        self.assertTrue(controller.wait_until_idle(TIMEOUT))


class TestTranslate(ControllerTestCase):

    def test_translate_writes_and_rescans(self):
        controller = self.make_controller()
        self.scan(controller)
        states = []
        controller.add_state_listener(states.append)

        translated = controller.translate().result(TIMEOUT)

        self.assertEqual([(r.status, r.proposed_text) for r in translated], [(RowStatus.READY, "Einstellungen")])
        self.assertIn('<string name="title">Einstellungen</string>', self.read("values-de/strings.xml"))

        # The follow-up rescan no longer finds the key
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        self.assertEqual(controller.snapshot().rows, ())
        controller.close()

        messages = [s.last_message for s in states]
        self.assertIn("Translating 1 / 1", messages)
        self.assertIn("Translation + write complete: 1 written, 0 translation errors, 0 write errors", messages)
        self.assertTrue(any(s.active_operation == UiOperation.APPLYING for s in states))

    def test_translation_errors_are_not_written(self):
        self.backend.table = {}
        controller = self.make_controller()
        self.scan(controller)

        translated = controller.translate().result(TIMEOUT)

        self.assertEqual(translated[0].status, RowStatus.ERROR)
        state = controller.snapshot()
        self.assertEqual(state.status_text, "Errors")
        self.assertEqual(state.last_message, "Translation complete: 0 ok, 1 errors, 0 written")
        self.assertEqual(state.rows[0].message, "no translation for Settings")
        self.assertNotIn("title", self.read("values-de/strings.xml"))

    def test_nothing_to_translate(self):
        self.write("values-de/strings.xml", '<resources>\n    <string name="title">Einstellungen</string>\n</resources>\n')
        controller = self.make_controller()
        self.scan(controller)

        self.assertIsNone(controller.translate())
        self.assertEqual(controller.snapshot().last_message, "Nothing to translate or write")
        self.assertEqual(self.backend.calls, [])


class TestDeleteAndAddLanguage(ControllerTestCase):

    def test_delete_translations_for_target(self):
        self.write("values-de/strings.xml", '<resources>\n    <string name="title">Einstellungen</string>\n</resources>\n')
        self.write("values-fr/strings.xml", '<resources>\n    <string name="title">Paramètres</string>\n</resources>\n')
        controller = self.make_controller()
        self.scan(controller)
        target = controller.snapshot().delete_targets[0]
        messages = []
        controller.add_state_listener(lambda s: messages.append(s.last_message))

        result = controller.delete_translations_for_target(target).result(TIMEOUT)

        self.assertEqual(result.applied_count, 2)
        self.assertEqual(result.errors, [])
        self.assertNotIn("title", self.read("values-de/strings.xml"))
        self.assertNotIn("title", self.read("values-fr/strings.xml"))
        self.assertIn("title", self.read("values/strings.xml"))
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        self.assertEqual(len(controller.snapshot().rows), 2)
        controller.close()
        self.assertIn("Deleted translations for 'title' in 2 locale files", messages)

    def test_delete_without_entries(self):
        controller = self.make_controller()
        target = TranslationDeleteTarget(
            id="x", key="title", base_text="Settings", resource_root_path=self.res,
            module_name="app", origin_kind=ResourceKind.ANDROID, locale_entries=[],
        )
        self.assertIsNone(controller.delete_translations_for_target(target))
        self.assertEqual(
            controller.snapshot().last_message, "No translated locale entries found for key 'title'"
        )

    def test_add_language(self):
        controller = self.make_controller()
        self.scan(controller)
        messages = []
        controller.add_state_listener(lambda s: messages.append(s.last_message))

        result = controller.add_language("pt-BR").result(TIMEOUT)

        self.assertEqual(result.applied_count, 1)
        self.assertEqual(self.read("values-pt-rBR/strings.xml"), "<resources>\n</resources>\n")
        self.assertTrue(controller.wait_until_idle(TIMEOUT))
        self.assertEqual(sorted(r.locale_tag for r in controller.snapshot().rows), ["de", "pt-BR"])
        controller.close()
        self.assertIn("Added language pt-BR in 1 resource roots", messages)

    def test_add_language_without_targets(self):
        controller = self.make_controller()
        self.scan(controller)
        self.assertIsNone(controller.add_language("fr", target_ids=["unknown"]))
        self.assertEqual(controller.snapshot().last_message, "No resource roots selected for the new language")


if __name__ == "__main__":
    unittest.main()
