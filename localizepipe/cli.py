#!/usr/bin/env python3
"""
Command line entry point.

    localizepipe scan [PROJECT] [--module NAME] [--locale TAG ...]
    localizepipe translate [PROJECT] [--provider ollama|hugging_face] [--model M]
    localizepipe delete [PROJECT] --key KEY
    localizepipe add-language [PROJECT] LOCALE [--root RES_DIR ...]
    localizepipe languages
    localizepipe check-model [--model M]
    localizepipe pull-model [--model M]

Flags are overlaid on ``LOCALIZEPIPE_*`` environment variables.
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from . import __version__
from .applier import TranslationApplier
from .controller import OperationController
from .language_utils import get_language_name, supported_locale_tags_for_ui
from .llm_provider import OllamaRuntimeMode, TranslationProviderType
from .models import ScanResult, ScanScope
from .ollama_models import (
    ModelCheckStatus,
    ModelPullStatus,
    check_model_availability,
    detect_available_storage_gb,
    detect_total_system_ram_gb,
    pull_model,
    sizing_guidance,
)
from .project_index import ProjectFileIndex
from .reporting import create_missing_report, create_translation_report, group_rows
from .resource_paths import normalize_path
from .scanner import StringsXmlScanner
from .settings import ProjectScanSettings, TranslationSettings
from .translation_service import TranslationService

logger = logging.getLogger(__name__)


def configure_logging(trace: bool) -> None:
    """Configure console logging on the root logger."""
    log_level = logging.DEBUG if trace else logging.INFO
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    # Configure the root logger so every module shares the same handlers/level.
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            existing_handler.setFormatter(formatter)

    # Suppress noisy debug logs from the HTTP client unless they escalate.
    for name in ("urllib3", "urllib3.connectionpool", "requests"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ------------------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------------------


def _log_arguments() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "-l",
        "--log-trace",
        action="store_true",
        help="Log detailed trace information",
    )
    return parser


def _project_arguments() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "project",
        nargs="?",
        default=".",
        help="Project root directory (default: current directory)",
    )
    parser.add_argument(
        "--module",
        default=None,
        help="Limit the scan to one module, e.g. 'app' or 'feature:settings' (a leading ':' is ignored)",
    )
    parser.add_argument(
        "--no-android",
        dest="include_android",
        action="store_false",
        default=None,
        help="Skip Android res/values* resources",
    )
    parser.add_argument(
        "--no-compose",
        dest="include_compose",
        action="store_false",
        default=None,
        help="Skip Compose Multiplatform composeResources",
    )
    parser.add_argument(
        "--include-identical",
        action="store_true",
        default=None,
        help="Report translations that are identical to the source text",
    )
    parser.add_argument(
        "--locale",
        dest="locales",
        action="append",
        default=[],
        help="Additional target locale to report as missing (repeatable)",
    )
    parser.add_argument(
        "--no-gitignore",
        action="store_true",
        help="Do not skip folders matched by .gitignore files",
    )
    parser.add_argument(
        "--source-locale",
        default=None,
        help="Locale of the base values folder (default: en)",
    )
    return parser


def _provider_arguments() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--provider",
        choices=[p.value for p in TranslationProviderType],
        default=None,
        help="Translation backend (default: ollama)",
    )
    parser.add_argument("--model", default=None, help="Model id for the selected provider")
    parser.add_argument("--base-url", default=None, help="Base URL for the selected provider")
    parser.add_argument("--hf-token", default=None, help="Hugging Face API token")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")
    parser.add_argument("--retries", type=int, default=None, help="Extra attempts after a transport failure")
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    parser.add_argument(
        "--runtime-mode",
        choices=[m.value for m in OllamaRuntimeMode],
        default=None,
        help="Ollama GPU usage (default: auto)",
    )
    parser.add_argument(
        "--keep-trailing-period",
        action="store_true",
        help="Keep a trailing period the model added to text that had none",
    )
    return parser


def build_parser() -> argparse.ArgumentParser:
    log_args = _log_arguments()
    project_args = _project_arguments()
    provider_args = _provider_arguments()

    parser = argparse.ArgumentParser(
        prog="localizepipe",
        description="Find, translate and write missing strings.xml translations",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    scan = subparsers.add_parser(
        "scan", parents=[log_args, project_args], help="Report untranslated strings"
    )
    scan.add_argument("--report-file", default=None, help="Also write the Markdown report to this file")

    translate = subparsers.add_parser(
        "translate",
        parents=[log_args, project_args, provider_args],
        help="Translate missing strings and write them to the locale files",
    )
    translate.add_argument("--report-file", default=None, help="Also write the Markdown report to this file")

    delete = subparsers.add_parser(
        "delete", parents=[log_args, project_args], help="Delete a key from every translated locale"
    )
    delete.add_argument("--key", required=True, help="String resource name to delete")

    add_language = subparsers.add_parser(
        "add-language", parents=[log_args, project_args], help="Create empty locale files for a new language"
    )
    add_language.add_argument("language", help="Locale tag to add, e.g. 'fr' or 'pt-BR'")
    add_language.add_argument(
        "--root",
        dest="roots",
        action="append",
        default=[],
        help="Resource root (res or composeResources directory) to add the language to (repeatable)",
    )

    subparsers.add_parser(
        "languages", parents=[log_args], help="List locale tags that can be translated"
    )
    subparsers.add_parser(
        "check-model", parents=[log_args, provider_args], help="Check whether the Ollama model is installed"
    )
    subparsers.add_parser(
        "pull-model", parents=[log_args, provider_args], help="Download the Ollama model"
    )
    return parser


# ------------------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------------------


def scan_settings_from_args(args: argparse.Namespace) -> ProjectScanSettings:
    """
    Raises:
        ValueError: On invalid environment values
    """
    settings = ProjectScanSettings.from_env()
    if args.include_android is not None:
        settings.include_android_resources = args.include_android
    if args.include_compose is not None:
        settings.include_compose_resources = args.include_compose
    if args.include_identical is not None:
        settings.include_identical_to_base = args.include_identical
    if args.source_locale:
        settings.source_locale_tag = args.source_locale
    if args.locales:
        settings.additional_locale_tags = tuple(
            dict.fromkeys(tuple(settings.additional_locale_tags) + tuple(args.locales))
        )
    return settings


def translation_settings_from_args(args: argparse.Namespace) -> TranslationSettings:
    """
    Raises:
        ValueError: On invalid environment values or flag combinations
    """
    settings = TranslationSettings.from_env()
    overrides = {}
    if args.provider:
        overrides["provider_type"] = TranslationProviderType(args.provider)
    provider = overrides.get("provider_type", settings.provider_type)
    is_hugging_face = provider == TranslationProviderType.HUGGING_FACE

    if args.model:
        overrides["hugging_face_model" if is_hugging_face else "ollama_model"] = args.model
    if args.base_url:
        overrides["hugging_face_base_url" if is_hugging_face else "ollama_base_url"] = args.base_url
    if args.hf_token:
        overrides["hugging_face_token"] = args.hf_token
    if args.timeout is not None:
        overrides["timeout_seconds"] = args.timeout
    if args.retries is not None:
        overrides["retry_count"] = args.retries
    if args.temperature is not None:
        overrides["temperature"] = args.temperature
    if args.runtime_mode:
        overrides["ollama_runtime_mode"] = OllamaRuntimeMode(args.runtime_mode)
    if args.keep_trailing_period:
        overrides["remove_added_trailing_period"] = False
    if getattr(args, "source_locale", None):
        overrides["source_locale_tag"] = args.source_locale
    return replace(settings, **overrides) if overrides else settings


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------


def _write_report(report: str, report_file: Optional[str]) -> None:
    print(report)
    if report_file:
        with open(report_file, "w", encoding="utf-8") as f:
            f.write(report)
        logger.info(f"Report written to {report_file}")


def _build_controller(args: argparse.Namespace, scan_settings: ProjectScanSettings, translation_service=None):
    file_index = ProjectFileIndex(args.project, use_gitignore=not args.no_gitignore)
    module = args.module.lstrip(":") if args.module else None
    return OperationController(
        scanner=StringsXmlScanner(file_index),
        translation_service=translation_service,
        applier=TranslationApplier(),
        scan_settings=scan_settings,
        scope_resolver=lambda: module,
        scan_scope=ScanScope.CURRENT_MODULE if module else ScanScope.WHOLE_PROJECT,
    )


def _initial_scan(controller: OperationController) -> bool:
    future = controller.rescan()
    if future is not None:
        future.result()
    state = controller.snapshot()
    logger.info(state.last_message)
    return state.status_text != "Errors"


def run_scan(args: argparse.Namespace, scan_settings: ProjectScanSettings) -> int:
    controller = _build_controller(args, scan_settings)
    try:
        if not _initial_scan(controller):
            return 1
        state = controller.snapshot()
        for group in group_rows(state.rows):
            logger.debug(
                f"{group.module_name or group.resource_root_path}: {group.key} [{group.status.value}] "
                f"missing in {', '.join(group.missing_locales) or 'none'}"
            )
        report = create_missing_report(ScanResult(rows=list(state.rows), detected_locales=state.detected_locales))
        _write_report(report, args.report_file)
        return 0
    finally:
        controller.close()


def run_translate(
    args: argparse.Namespace, scan_settings: ProjectScanSettings, settings: TranslationSettings
) -> int:
    logger.info(
        f"Starting translation using {settings.provider_type.value} with model {settings.active_model()} "
        f"({settings.active_endpoint()})"
    )
    controller = _build_controller(args, scan_settings, TranslationService(settings))
    try:
        if not _initial_scan(controller):
            return 1
        future = controller.translate()
        if future is None:
            logger.info(controller.snapshot().last_message)
            _write_report(create_translation_report([]), args.report_file)
            return 0
        translated_rows = future.result()
        state = controller.snapshot()
        logger.info(state.last_message)
        controller.wait_until_idle()
        _write_report(create_translation_report(translated_rows), args.report_file)
        return 1 if state.status_text == "Errors" else 0
    finally:
        controller.close()


def run_delete(args: argparse.Namespace, scan_settings: ProjectScanSettings) -> int:
    controller = _build_controller(args, scan_settings)
    try:
        if not _initial_scan(controller):
            return 1
        targets = [t for t in controller.snapshot().delete_targets if t.key == args.key]
        if not targets:
            logger.error(f"No translated locale entries found for key '{args.key}'")
            return 1

        failed = False
        for target in targets:
            controller.wait_until_idle()
            future = controller.delete_translations_for_target(target)
            if future is None:
                logger.error(controller.snapshot().last_message)
                failed = True
                continue
            result = future.result()
            logger.info(controller.snapshot().last_message)
            for error in result.errors:
                logger.error(error)
            failed = failed or bool(result.errors)
        controller.wait_until_idle()
        return 1 if failed else 0
    finally:
        controller.close()


def run_add_language(args: argparse.Namespace, scan_settings: ProjectScanSettings) -> int:
    controller = _build_controller(args, scan_settings)
    try:
        if not _initial_scan(controller):
            return 1
        targets = controller.snapshot().language_add_targets
        if args.roots:
            wanted = {normalize_path(Path(root).resolve()) for root in args.roots}
            targets = tuple(t for t in targets if normalize_path(t.resource_root_path) in wanted)
        if not targets:
            logger.error("No resource roots found for the new language")
            return 1

        future = controller.add_language(args.language, [t.id for t in targets])
        if future is None:
            logger.error(controller.snapshot().last_message)
            return 1
        result = future.result()
        logger.info(controller.snapshot().last_message)
        for error in result.errors:
            logger.error(error)
        controller.wait_until_idle()
        return 1 if result.errors else 0
    finally:
        controller.close()


def run_languages() -> int:
    for tag in supported_locale_tags_for_ui():
        print(f"{tag}\t{get_language_name(tag)}")
    return 0


def run_check_model(settings: TranslationSettings) -> int:
    if settings.provider_type != TranslationProviderType.OLLAMA:
        logger.error("Model checks are only available for the Ollama provider")
        return 1
    result = check_model_availability(settings.ollama_base_url, settings.ollama_model, settings.timeout_seconds)
    print(result.message)
    if result.status == ModelCheckStatus.MISSING:
        for line in sizing_guidance(
            settings.provider_type,
            settings.ollama_model,
            detect_total_system_ram_gb(),
            detect_available_storage_gb(),
        ):
            print(line)
    return 0 if result.status == ModelCheckStatus.AVAILABLE else 1


def run_pull_model(settings: TranslationSettings) -> int:
    if settings.provider_type != TranslationProviderType.OLLAMA:
        logger.error("Model pulls are only available for the Ollama provider")
        return 1

    last_reported = {"percent": None}

    def on_progress(status: str, fraction: Optional[float]) -> bool:
        percent = int(fraction * 100) if fraction is not None else None
        if percent != last_reported["percent"]:
            last_reported["percent"] = percent
            suffix = f" {percent}%" if percent is not None else ""
            logger.info(f"{status}{suffix}")
        return True

    result = pull_model(settings.ollama_base_url, settings.ollama_model, on_progress=on_progress)
    print(result.message)
    return 0 if result.status == ModelPullStatus.PULLED else 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point. Returns the process exit status.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_trace)

    if args.command == "languages":
        return run_languages()

    try:
        if args.command in ("check-model", "pull-model"):
            translation_settings = translation_settings_from_args(args)
            if args.command == "check-model":
                return run_check_model(translation_settings)
            return run_pull_model(translation_settings)

        scan_settings = scan_settings_from_args(args)
        translation_settings = (
            translation_settings_from_args(args) if args.command == "translate" else None
        )
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if not os.path.isdir(args.project):
        logger.error(f"Error: The specified path {args.project} does not exist!")
        return 1

    if args.command == "scan":
        return run_scan(args, scan_settings)
    if args.command == "translate":
        return run_translate(args, scan_settings, translation_settings)
    if args.command == "delete":
        return run_delete(args, scan_settings)
    return run_add_language(args, scan_settings)


if __name__ == "__main__":
    sys.exit(main())
