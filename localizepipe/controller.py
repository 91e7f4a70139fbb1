#!/usr/bin/env python3
"""
Operation controller.

Sequences scan, translate, write, delete and add-language operations so that
only one runs at a time, publishes progress as immutable state snapshots and
supports cooperative cancellation.

Threading model:
  - operations run on a single worker thread and are submitted as futures;
  - state is replaced (never mutated) under a lock;
  - listeners are notified on a separate notifier thread, so a listener may
    call back into the controller without re-entering the mutation path;
  - rescans are debounced with a restartable timer and coalesced into a
    pending flag while another operation is running.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .cancellation import CancellationToken, OperationCancelled
from .models import (
    ApplyResult,
    LanguageAddTarget,
    RowStatus,
    ScanOptions,
    ScanScope,
    StringEntryRow,
    TranslationDeleteTarget,
)
from .resource_paths import normalize_path, should_trigger_rescan

logger = logging.getLogger(__name__)

DEFAULT_RESCAN_DELAY = 0.7
FOLLOW_UP_RESCAN_DELAY = 0.1


class UiOperation(Enum):
    IDLE = "Idle"
    SCANNING = "Scanning"
    TRANSLATING = "Translating"
    APPLYING = "Applying"

    @property
    def display_name(self) -> str:
        return self.value


@dataclass(frozen=True)
class ControllerState:
    """Immutable snapshot of everything a UI or CLI needs to render."""

    scan_scope: ScanScope = ScanScope.WHOLE_PROJECT
    include_android_resources: bool = True
    include_compose_resources: bool = True
    rows: Tuple[StringEntryRow, ...] = ()
    delete_targets: Tuple[TranslationDeleteTarget, ...] = ()
    language_add_targets: Tuple[LanguageAddTarget, ...] = ()
    detected_locales: FrozenSet[str] = frozenset()
    selected_row_id: Optional[str] = None
    status_text: str = "Idle"
    is_busy: bool = False
    active_operation: UiOperation = UiOperation.IDLE
    progress_current: int = 0
    progress_total: int = 0
    last_message: str = ""
    has_completed_initial_scan: bool = False


StateListener = Callable[[ControllerState], None]
ScopeResolver = Callable[[], Optional[str]]


def is_writable(row: StringEntryRow) -> bool:
    return bool(row.proposed_text and row.proposed_text.strip()) and row.status != RowStatus.ERROR


def merge_scanned_rows(
    scanned_rows: Iterable[StringEntryRow], previous_by_id: Dict[str, StringEntryRow]
) -> List[StringEntryRow]:
    """
    Carry pending proposals from the previous rows into freshly scanned ones.

    A previous row with a proposal keeps its proposal and message; its status
    survives when it was READY or ERROR.
    """
    merged = []
    for scanned in scanned_rows:
        previous = previous_by_id.get(scanned.id)
        if previous is None or previous.proposed_text is None:
            merged.append(scanned)
            continue
        status = previous.status if previous.status in (RowStatus.READY, RowStatus.ERROR) else scanned.status
        merged.append(
            replace(scanned, proposed_text=previous.proposed_text, status=status, message=previous.message)
        )
    return merged


def _idle(state: ControllerState, status_text: str, message: str, **changes) -> ControllerState:
    return replace(
        state,
        status_text=status_text,
        is_busy=False,
        active_operation=UiOperation.IDLE,
        progress_current=0,
        progress_total=0,
        last_message=message,
        **changes,
    )


class OperationController:
    """
    Orchestrates the scan -> translate -> validate -> apply pipeline.

    Args:
        scanner: StringsXmlScanner (or compatible) used for every scan
        translation_service: TranslationService used by :meth:`translate`
        applier: TranslationApplier used for writes, deletes and new locales
        scan_settings: ProjectScanSettings read at the start of every scan
        scope_resolver: Returns the current module name for CURRENT_MODULE scans
        rescan_delay: Debounce delay in seconds for :meth:`schedule_rescan`
        scan_scope: Initial scan scope
    """

    def __init__(
        self,
        scanner,
        translation_service,
        applier,
        scan_settings,
        scope_resolver: Optional[ScopeResolver] = None,
        rescan_delay: float = DEFAULT_RESCAN_DELAY,
        scan_scope: ScanScope = ScanScope.WHOLE_PROJECT,
    ) -> None:
        self.scanner = scanner
        self.translation_service = translation_service
        self.applier = applier
        self.scan_settings = scan_settings
        self.scope_resolver = scope_resolver
        self.rescan_delay = rescan_delay

        self._lock = threading.RLock()
        self._state = ControllerState(
            scan_scope=scan_scope,
            include_android_resources=scan_settings.include_android_resources,
            include_compose_resources=scan_settings.include_compose_resources,
        )
        self._listeners: List[StateListener] = []
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="localizepipe-worker")
        self._notifier = ThreadPoolExecutor(max_workers=1, thread_name_prefix="localizepipe-notifier")
        self._scheduled_rescan: Optional[threading.Timer] = None
        self._pending_rescan = False
        self._cancellation_requested = False
        self._active_token: Optional[CancellationToken] = None
        self._closed = False

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def snapshot(self) -> ControllerState:
        with self._lock:
            return self._state

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; the returned function unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _mutate(self, update: Callable[[ControllerState], ControllerState]) -> ControllerState:
        with self._lock:
            self._state = update(self._state)
            new_state = self._state
            listeners = list(self._listeners)
            closed = self._closed
        if listeners and not closed:
            try:
                self._notifier.submit(self._notify_listeners, listeners, new_state)
            except RuntimeError:
                logger.debug("Notifier already shut down; dropping state notification")
        return new_state

    @staticmethod
    def _notify_listeners(listeners: List[StateListener], state: ControllerState) -> None:
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")

    def _set_message(self, message: str) -> None:
        self._mutate(lambda s: replace(s, last_message=message))

    def _is_busy(self) -> bool:
        with self._lock:
            return self._state.is_busy

    # ------------------------------------------------------------------
    # Operation lifecycle
    # ------------------------------------------------------------------

    def _begin_operation(
        self, operation: UiOperation, status_text: str, total: int, message: str, **changes
    ) -> Optional[CancellationToken]:
        """Atomically move from idle to busy; None when something else is running."""
        with self._lock:
            if self._closed or self._state.is_busy:
                return None
            token = CancellationToken()
            self._active_token = token
            self._cancellation_requested = False
            self._state = replace(
                self._state,
                status_text=status_text,
                is_busy=True,
                active_operation=operation,
                progress_current=0,
                progress_total=total,
                last_message=message,
                **changes,
            )
        self._mutate(lambda s: s)
        return token

    def _finish_operation(self, token: CancellationToken) -> None:
        with self._lock:
            if self._active_token is token:
                self._active_token = None
                self._cancellation_requested = False
            run_queued = not self._state.is_busy and self._pending_rescan
            if run_queued:
                self._pending_rescan = False
        if run_queued:
            logger.debug("Running queued rescan")
            self.schedule_rescan(FOLLOW_UP_RESCAN_DELAY)

    def _checkpoint(self, token: CancellationToken) -> None:
        with self._lock:
            requested = self._cancellation_requested
        if requested:
            token.cancel()
        token.check()

    def _submit(self, fn, *args) -> Optional[Future]:
        try:
            return self._worker.submit(fn, *args)
        except RuntimeError:
            logger.debug("Worker already shut down; operation dropped")
            return None

    def cancel_current_operation(self) -> None:
        """Request cooperative cancellation of the running operation."""
        with self._lock:
            if not self._state.is_busy:
                return
            self._cancellation_requested = True
            token = self._active_token
            operation = self._state.active_operation
        self._cancel_scheduled_rescan()
        if token is not None:
            token.cancel()
        self._set_message(f"Cancellation requested for {operation.display_name.lower()}")
        logger.info(f"Cancellation requested for {operation.display_name.lower()}")

    # ------------------------------------------------------------------
    # Rescan
    # ------------------------------------------------------------------

    def schedule_rescan(self, delay: Optional[float] = None) -> None:
        """Debounced rescan: every call restarts the timer."""
        delay = self.rescan_delay if delay is None else delay
        with self._lock:
            if self._closed:
                return
            if self._scheduled_rescan is not None:
                self._scheduled_rescan.cancel()
            timer = threading.Timer(delay, self.rescan)
            timer.daemon = True
            self._scheduled_rescan = timer
        timer.start()

    def _cancel_scheduled_rescan(self) -> None:
        with self._lock:
            if self._scheduled_rescan is not None:
                self._scheduled_rescan.cancel()
                self._scheduled_rescan = None

    def on_resource_paths_changed(self, paths: Iterable[str]) -> bool:
        """Resource change callback; schedules a rescan when a localization path changed."""
        if any(should_trigger_rescan(normalize_path(path)) for path in paths):
            self.schedule_rescan()
            return True
        return False

    def _scan_options(self) -> Tuple[ScanOptions, str]:
        with self._lock:
            scope = self._state.scan_scope
        current_module = None
        if scope == ScanScope.CURRENT_MODULE and self.scope_resolver is not None:
            current_module = self.scope_resolver()
        options = ScanOptions(
            scope=scope,
            include_android_resources=self.scan_settings.include_android_resources,
            include_compose_resources=self.scan_settings.include_compose_resources,
            include_identical_to_base=self.scan_settings.include_identical_to_base,
            current_module_name=current_module,
            additional_locale_tags=tuple(getattr(self.scan_settings, "additional_locale_tags", ()) or ()),
        )
        label = "Project" if scope == ScanScope.WHOLE_PROJECT else "Module"
        return options, label

    def rescan(self) -> Optional[Future]:
        """
        Start a scan now, or queue one if another operation is running.

        The busy check and the queue flag are decided under one lock hold, so a
        request cannot be lost to an operation that finishes in between.

        Returns:
            The scan future, or None when the request was queued
        """
        options, scope_label = self._scan_options()
        with self._lock:
            if self._closed:
                return None
            token = self._begin_operation(
                UiOperation.SCANNING,
                "Scanning",
                0,
                f"Scanning resource files (scope: {scope_label})",
                include_android_resources=options.include_android_resources,
                include_compose_resources=options.include_compose_resources,
            )
            if token is None:
                self._pending_rescan = True
                operation = self._state.active_operation
        if token is None:
            logger.debug("Queued rescan for execution after current operation")
            self._set_message(f"Rescan queued while {operation.display_name.lower()} is running")
            return None
        logger.info(
            f"Starting scan (scope={scope_label}, android={options.include_android_resources}, "
            f"compose={options.include_compose_resources}, includeIdentical={options.include_identical_to_base})"
        )
        return self._submit(self._run_scan, options, scope_label, token)

    def _run_scan(self, options: ScanOptions, scope_label: str, token: CancellationToken) -> List[StringEntryRow]:
        try:
            self._checkpoint(token)
            scan_result = self.scanner.scan(options, token)
            delete_targets = self.scanner.scan_deletion_targets(options, token)
            add_targets = self.scanner.scan_language_add_targets(options, token)
            self._checkpoint(token)

            with self._lock:
                previous_by_id = {row.id: row for row in self._state.rows}
            merged = merge_scanned_rows(scan_result.rows, previous_by_id)
            merged_ids = {row.id for row in merged}

            def apply_scan(state: ControllerState) -> ControllerState:
                selected = state.selected_row_id if state.selected_row_id in merged_ids else None
                if selected is None and merged:
                    selected = merged[0].id
                message = (
                    f"Found {len(merged)} candidate strings (scope: {scope_label})"
                    if merged
                    else f"No untranslated strings found (scope: {scope_label})"
                )
                return _idle(
                    state,
                    "Idle",
                    message,
                    rows=tuple(merged),
                    delete_targets=tuple(delete_targets),
                    language_add_targets=tuple(add_targets),
                    detected_locales=scan_result.detected_locales,
                    selected_row_id=selected,
                    has_completed_initial_scan=True,
                )

            self._mutate(apply_scan)
            logger.info(
                f"Scan completed (scope={scope_label}, rows={len(merged)}, "
                f"detectedLocales={len(scan_result.detected_locales)})"
            )
            return merged
        except OperationCancelled:
            self._mutate(lambda s: _idle(s, "Idle", "Scan cancelled", has_completed_initial_scan=True))
            logger.info(f"Scan cancelled (scope={scope_label})")
            return []
        except Exception as e:
            logger.exception(f"Scan failed (scope={scope_label})")
            self._mutate(
                lambda s: _idle(
                    s, "Errors", f"Scan failed (scope: {scope_label}): {e or 'unknown error'}",
                    has_completed_initial_scan=True,
                )
            )
            return []
        finally:
            self._finish_operation(token)

    # ------------------------------------------------------------------
    # Translate + write
    # ------------------------------------------------------------------

    def translate(self) -> Optional[Future]:
        """
        Translate MISSING/IDENTICAL rows, then write every writable row.

        When nothing needs translating, rows that already carry a proposal
        are written directly.

        Returns:
            Future resolving to the translated (or written) rows, or None when rejected
        """
        if self._is_busy():
            logger.debug("Translate ignored because another operation is in progress")
            self._set_message("Translation already in progress")
            return None

        rows = self.snapshot().rows
        to_translate = [row for row in rows if row.status in (RowStatus.MISSING, RowStatus.IDENTICAL)]
        to_write = [row for row in rows if is_writable(row)]

        if not to_translate:
            if not to_write:
                self._set_message("Nothing to translate or write")
                return None
            token = self._begin_operation(
                UiOperation.APPLYING, "Writing", len(to_write), f"Writing 0 / {len(to_write)}"
            )
            if token is None:
                self._set_message("Translation already in progress")
                return None
            logger.info(f"Writing prepared translations without translation step (rows={len(to_write)})")
            return self._submit(self._run_write_only, to_write, token)

        token = self._begin_operation(
            UiOperation.TRANSLATING, "Translating", len(to_translate), f"Translating 0 / {len(to_translate)}"
        )
        if token is None:
            self._set_message("Translation already in progress")
            return None
        settings = self.translation_service.settings
        logger.info(
            f"Starting translation (rows={len(to_translate)}, provider={settings.provider_type.value}, "
            f"model={settings.active_model()})"
        )
        return self._submit(self._run_translate, to_translate, token)

    def _write_progress(self, token: CancellationToken, total: int) -> Callable[[int, int], None]:
        def on_progress(processed: int, applied: int) -> None:
            self._checkpoint(token)
            self._mutate(
                lambda s: replace(
                    s,
                    status_text="Writing",
                    is_busy=True,
                    active_operation=UiOperation.APPLYING,
                    progress_current=processed,
                    progress_total=total,
                    last_message=f"Writing {processed} / {total} (written {applied})",
                )
            )

        return on_progress

    def _run_write_only(self, rows: List[StringEntryRow], token: CancellationToken) -> List[StringEntryRow]:
        try:
            self._checkpoint(token)
            result = self.applier.apply(rows, self._write_progress(token, len(rows)), token)
            if result.errors:
                status, message = (
                    "Errors",
                    f"Write completed with errors: {result.applied_count} written, {len(result.errors)} write errors",
                )
            else:
                status, message = "Idle", f"Write complete: {result.applied_count} written"
            self._mutate(lambda s: _idle(s, status, message))
            logger.info(f"Write-only run completed (written={result.applied_count}, writeErrors={len(result.errors)})")
            self.schedule_rescan(FOLLOW_UP_RESCAN_DELAY)
            return rows
        except OperationCancelled:
            self._mutate(lambda s: _idle(s, "Idle", "Write cancelled"))
            logger.info("Write-only run cancelled")
            return []
        except Exception as e:
            logger.exception("Write failed")
            self._mutate(lambda s: _idle(s, "Errors", f"Write failed: {e}"))
            return []
        finally:
            self._finish_operation(token)

    def _run_translate(self, rows: List[StringEntryRow], token: CancellationToken) -> List[StringEntryRow]:
        total = len(rows)
        try:
            self._checkpoint(token)

            def on_progress(partial_rows: List[StringEntryRow], processed: int) -> None:
                self._checkpoint(token)
                partial_by_id = {row.id: row for row in partial_rows}
                self._mutate(
                    lambda s: replace(
                        s,
                        rows=tuple(partial_by_id.get(row.id, row) for row in s.rows),
                        status_text="Translating",
                        is_busy=True,
                        active_operation=UiOperation.TRANSLATING,
                        progress_current=processed,
                        progress_total=total,
                        last_message=f"Translating {processed} / {total}",
                    )
                )

            translated = self.translation_service.translate_rows(rows, on_progress, token)
            translated_by_id = {row.id: row for row in translated}
            self._mutate(lambda s: replace(s, rows=tuple(translated_by_id.get(row.id, row) for row in s.rows)))

            errors = sum(1 for row in translated if row.status == RowStatus.ERROR)
            with self._lock:
                to_apply = [row for row in self._state.rows if is_writable(row)]

            if not to_apply:
                self._mutate(
                    lambda s: _idle(
                        s,
                        "Errors" if errors else "Idle",
                        f"Translation complete: {len(translated) - errors} ok, {errors} errors, 0 written",
                    )
                )
                logger.info(f"Translation completed with nothing to write (rows={len(translated)}, errors={errors})")
                return translated

            self._checkpoint(token)
            self._mutate(
                lambda s: replace(
                    s,
                    status_text="Writing",
                    active_operation=UiOperation.APPLYING,
                    progress_current=0,
                    progress_total=len(to_apply),
                    last_message=f"Writing 0 / {len(to_apply)}",
                )
            )
            logger.info(f"Writing translated strings immediately (rows={len(to_apply)})")
            result = self.applier.apply(to_apply, self._write_progress(token, len(to_apply)), token)
            write_errors = len(result.errors)

            self._mutate(
                lambda s: _idle(
                    s,
                    "Errors" if errors or write_errors else "Idle",
                    f"Translation + write complete: {result.applied_count} written, "
                    f"{errors} translation errors, {write_errors} write errors",
                )
            )
            logger.info(
                f"Translation + write completed (rows={len(translated)}, written={result.applied_count}, "
                f"translationErrors={errors}, writeErrors={write_errors})"
            )
            self.schedule_rescan(FOLLOW_UP_RESCAN_DELAY)
            return translated
        except OperationCancelled:
            self._mutate(lambda s: _idle(s, "Idle", "Translation cancelled"))
            logger.info("Translation cancelled")
            return []
        except Exception as e:
            logger.exception("Translation failed")
            self._mutate(lambda s: _idle(s, "Errors", f"Translation failed: {e}"))
            return []
        finally:
            self._finish_operation(token)

    # ------------------------------------------------------------------
    # Delete / add language
    # ------------------------------------------------------------------

    def delete_translations_for_target(self, target: TranslationDeleteTarget) -> Optional[Future]:
        """Remove one key from every locale that translates it; the source locale is untouched."""
        if self._is_busy():
            logger.debug("Delete ignored because another operation is in progress")
            self._set_message("Another operation is already running")
            return None

        total = len(target.locale_entries)
        if total == 0:
            self._set_message(f"No translated locale entries found for key '{target.key}'")
            return None

        token = self._begin_operation(
            UiOperation.APPLYING, "Deleting", total, f"Deleting translations for '{target.key}' (0 / {total})"
        )
        if token is None:
            self._set_message("Another operation is already running")
            return None
        logger.info(f"Deleting translations for key='{target.key}' across {total} locale files")
        return self._submit(self._run_delete, target, token)

    def _run_delete(self, target: TranslationDeleteTarget, token: CancellationToken) -> ApplyResult:
        total = len(target.locale_entries)
        try:
            self._checkpoint(token)

            def on_progress(processed: int, deleted: int) -> None:
                self._checkpoint(token)
                self._mutate(
                    lambda s: replace(
                        s,
                        progress_current=processed,
                        progress_total=total,
                        last_message=(
                            f"Deleting translations for '{target.key}' ({processed} / {total}, deleted {deleted})"
                        ),
                    )
                )

            result = self.applier.delete_translations(target, on_progress, token)
            if result.errors:
                status, message = (
                    "Errors",
                    f"Deleted with errors for '{target.key}': {result.applied_count} deleted, "
                    f"{len(result.errors)} errors",
                )
            else:
                status, message = (
                    "Idle",
                    f"Deleted translations for '{target.key}' in {result.applied_count} locale files",
                )
            self._mutate(lambda s: _idle(s, status, message))
            logger.info(
                f"Delete completed for key='{target.key}' (deleted={result.applied_count}, errors={len(result.errors)})"
            )
            self.schedule_rescan(FOLLOW_UP_RESCAN_DELAY)
            return result
        except OperationCancelled:
            self._mutate(lambda s: _idle(s, "Idle", "Delete cancelled"))
            logger.info(f"Delete cancelled for key='{target.key}'")
            return ApplyResult()
        except Exception as e:
            logger.exception(f"Delete failed for key='{target.key}'")
            self._mutate(lambda s: _idle(s, "Errors", f"Delete failed: {e}"))
            return ApplyResult()
        finally:
            self._finish_operation(token)

    def add_language(self, locale_tag: str, target_ids: Optional[Iterable[str]] = None) -> Optional[Future]:
        """
        Create ``locale_tag`` files under the selected resource roots.

        Args:
            locale_tag: Locale to add, e.g. ``fr`` or ``pt-BR``
            target_ids: LanguageAddTarget ids to use; every known root when None
        """
        if self._is_busy():
            self._set_message("Another operation is already running")
            return None

        known = self.snapshot().language_add_targets
        if target_ids is None:
            targets = list(known)
        else:
            wanted = set(target_ids)
            targets = [target for target in known if target.id in wanted]
        if not targets:
            self._set_message("No resource roots selected for the new language")
            return None

        token = self._begin_operation(
            UiOperation.APPLYING, "Writing", len(targets), f"Adding language {locale_tag} (0 / {len(targets)})"
        )
        if token is None:
            self._set_message("Another operation is already running")
            return None
        logger.info(f"Adding language {locale_tag} to {len(targets)} resource roots")
        return self._submit(self._run_add_language, locale_tag, targets, token)

    def _run_add_language(
        self, locale_tag: str, targets: List[LanguageAddTarget], token: CancellationToken
    ) -> ApplyResult:
        total = len(targets)
        try:
            self._checkpoint(token)

            def on_progress(processed: int, created: int) -> None:
                self._checkpoint(token)
                self._mutate(
                    lambda s: replace(
                        s,
                        progress_current=processed,
                        progress_total=total,
                        last_message=f"Adding language {locale_tag} ({processed} / {total}, created {created})",
                    )
                )

            result = self.applier.add_language(targets, locale_tag, on_progress, token)
            if result.errors:
                status, message = (
                    "Errors",
                    f"Added language {locale_tag} with errors: {result.applied_count} created, "
                    f"{len(result.errors)} errors",
                )
            else:
                status, message = "Idle", f"Added language {locale_tag} in {result.applied_count} resource roots"
            self._mutate(lambda s: _idle(s, status, message))
            logger.info(f"Add language completed (locale={locale_tag}, created={result.applied_count})")
            self.schedule_rescan(FOLLOW_UP_RESCAN_DELAY)
            return result
        except OperationCancelled:
            self._mutate(lambda s: _idle(s, "Idle", "Add language cancelled"))
            logger.info(f"Add language cancelled (locale={locale_tag})")
            return ApplyResult()
        except Exception as e:
            logger.exception(f"Add language failed (locale={locale_tag})")
            self._mutate(lambda s: _idle(s, "Errors", f"Add language failed: {e}"))
            return ApplyResult()
        finally:
            self._finish_operation(token)

    # ------------------------------------------------------------------
    # Scope / selection
    # ------------------------------------------------------------------

    def toggle_scope(self) -> bool:
        """Switch between whole-project and current-module scope, then rescan."""
        with self._lock:
            busy = self._state.is_busy
            operation = self._state.active_operation
        if busy:
            self._set_message(f"Wait for {operation.display_name.lower()} to finish before changing scope")
            return False

        def flip(state: ControllerState) -> ControllerState:
            scope = (
                ScanScope.CURRENT_MODULE if state.scan_scope == ScanScope.WHOLE_PROJECT else ScanScope.WHOLE_PROJECT
            )
            return replace(state, scan_scope=scope)

        self._mutate(flip)
        self.schedule_rescan()
        return True

    def select_row(self, row_id: Optional[str]) -> None:
        self._mutate(lambda s: replace(s, selected_row_id=row_id))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def wait_until_idle(self, timeout: Optional[float] = None, poll_interval: float = 0.05) -> bool:
        """
        Block until no operation is running, queued or scheduled.

        Returns:
            True when idle, False when the timeout expired first
        """
        idle_event = threading.Event()
        waited = 0.0
        while True:
            with self._lock:
                timer = self._scheduled_rescan
                idle = (
                    not self._state.is_busy
                    and not self._pending_rescan
                    and (timer is None or not timer.is_alive())
                )
            if idle:
                return True
            if timeout is not None and waited >= timeout:
                return False
            idle_event.wait(poll_interval)
            waited += poll_interval

    def close(self) -> None:
        """Cancel pending work and stop the worker and notifier threads."""
        self._cancel_scheduled_rescan()
        self.cancel_current_operation()
        with self._lock:
            self._closed = True
        self._worker.shutdown(wait=True)
        self._notifier.shutdown(wait=True)
