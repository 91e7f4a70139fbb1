#!/usr/bin/env python3
"""
Translation orchestration.

Drives rows through the configured backend one at a time: resolve the target
language, request a translation with transport retries, validate the output
and retry once when validation fails.
"""

import logging
from dataclasses import replace
from typing import Callable, List, Optional

from .cancellation import CancellationToken, check_cancelled
from .language_utils import to_gemma_code
from .llm_provider import ProviderFailure, ProviderSuccess, create_backend
from .models import RowStatus, StringEntryRow
from .validator import ValidationError, validate_translation

logger = logging.getLogger(__name__)

FALLBACK_SOURCE_CODE = "eng_Latn"
VALIDATION_ATTEMPTS = 2
ABORT_BATCH_MARKER = "run `ollama pull"

ProgressCallback = Callable[[List[StringEntryRow], int], None]


def should_abort_remaining_rows(message: Optional[str]) -> bool:
    """True when the backend reported that the model itself is not installed."""
    if not message or not message.strip():
        return False
    return ABORT_BATCH_MARKER in message.lower()


def remove_added_trailing_period(base_text: str, translated_text: str) -> str:
    """Drop a single period the model appended to a source text that had none."""
    if base_text.rstrip().endswith("."):
        return translated_text
    stripped = translated_text.rstrip()
    if stripped.endswith(".") and not stripped.endswith("..."):
        return stripped[:-1]
    return translated_text


class TranslationService:
    """
    Translate scan rows with the configured backend.

    Args:
        settings: TranslationSettings for the run
        backend: Object with ``request_translation(text, source_code, target_code)``;
            built from ``settings`` when omitted
        source_locale_tag: Overrides ``settings.source_locale_tag``
    """

    def __init__(self, settings, backend=None, source_locale_tag: Optional[str] = None) -> None:
        self.settings = settings
        self.backend = backend if backend is not None else create_backend(settings)
        self.source_locale_tag = source_locale_tag or settings.source_locale_tag

    def translate_rows(
        self,
        rows: List[StringEntryRow],
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[StringEntryRow]:
        """
        Translate every row in order and return the updated rows.

        Rows keep their position. A row ends READY with a validated
        ``proposed_text`` or ERROR with a ``message``. ``on_progress`` receives
        a copy of the running list and the number of processed rows after every
        row.

        Raises:
            OperationCancelled: When cancellation is requested between rows
        """
        check_cancelled(cancellation)
        source_code = to_gemma_code(self.source_locale_tag) or FALLBACK_SOURCE_CODE
        results = list(rows)
        logger.info(
            f"Translate request started (rows={len(rows)}, provider={self.settings.provider_type.value}, "
            f"model={self.settings.active_model()}, source={source_code})"
        )

        for index, row in enumerate(rows):
            check_cancelled(cancellation)
            target_code = to_gemma_code(row.locale_tag)
            if target_code is None:
                logger.warning(f"Unsupported locale mapping for target locale '{row.locale_tag}'")
                results[index] = replace(
                    row, status=RowStatus.ERROR, message=f"Unsupported locale mapping for {row.locale_tag}"
                )
                self._notify(on_progress, results, index + 1)
                continue

            translated = self._translate_and_validate(row, source_code, target_code)
            results[index] = translated

            if translated.status == RowStatus.ERROR and should_abort_remaining_rows(translated.message):
                logger.warning(f"Aborting remaining rows due to fatal provider error: {translated.message}")
                for remaining in range(index + 1, len(rows)):
                    results[remaining] = replace(
                        rows[remaining], status=RowStatus.ERROR, message=translated.message
                    )
                self._notify(on_progress, results, len(rows))
                break

            self._notify(on_progress, results, index + 1)

        errors = sum(1 for row in results if row.status == RowStatus.ERROR)
        logger.info(f"Translate request finished (rows={len(results)}, errors={errors})")
        return results

    @staticmethod
    def _notify(on_progress: Optional[ProgressCallback], rows: List[StringEntryRow], processed: int) -> None:
        if on_progress is not None:
            on_progress(list(rows), processed)

    def _translate_and_validate(self, row: StringEntryRow, source_code: str, target_code: str) -> StringEntryRow:
        latest_text = None
        latest_errors: List[ValidationError] = []

        for attempt in range(VALIDATION_ATTEMPTS):
            result = self._translate_with_retry(row.base_text, source_code, target_code)
            if isinstance(result, ProviderFailure):
                return replace(row, status=RowStatus.ERROR, message=result.message)

            text = result.text
            if self.settings.remove_added_trailing_period:
                text = remove_added_trailing_period(row.base_text, text)
            latest_text = text

            validation = validate_translation(row.base_text, text)
            if validation.is_valid:
                return replace(row, proposed_text=text, status=RowStatus.READY, message=None)

            latest_errors = validation.errors
            logger.debug(
                f"Validation attempt {attempt + 1} failed for key='{row.key}' locale='{row.locale_tag}': "
                f"{[e.value for e in latest_errors]}"
            )

        return replace(
            row,
            proposed_text=latest_text,
            status=RowStatus.ERROR,
            message="Validation failed: " + ", ".join(e.value for e in latest_errors),
        )

    def _translate_with_retry(self, base_text: str, source_code: str, target_code: str):
        attempts = max(1, self.settings.retry_count + 1)
        last_error = None
        for attempt in range(attempts):
            result = self.backend.request_translation(base_text, source_code, target_code)
            if isinstance(result, ProviderSuccess):
                return result
            last_error = result.message
            logger.debug(f"Translation attempt {attempt + 1}/{attempts} failed: {last_error}")
        return ProviderFailure(last_error or "Translation failed")
