#!/usr/bin/env python3
"""
Ollama model management.

Checks whether a model is installed in the local Ollama daemon, pulls it
with streamed progress, and recommends a TranslateGemma size for the
machine's memory.
"""

import json
import logging
import math
import os
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

import requests

from .llm_provider import TranslationProviderType, extract_json_error_message

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"


class ModelCheckStatus(Enum):
    AVAILABLE = "available"
    MISSING = "missing"
    UNREACHABLE = "unreachable"
    PARSE_ERROR = "parse_error"
    INVALID_INPUT = "invalid_input"


class ModelPullStatus(Enum):
    PULLED = "pulled"
    FAILED = "failed"
    UNREACHABLE = "unreachable"
    INVALID_INPUT = "invalid_input"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ModelCheckResult:
    status: ModelCheckStatus
    message: str


@dataclass(frozen=True)
class ModelPullResult:
    status: ModelPullStatus
    message: str


@dataclass(frozen=True)
class PullProgressLine:
    status: str
    fraction: Optional[float]
    error_message: Optional[str]


def _normalize_base_url(base_url: str) -> str:
    return (base_url.strip() or DEFAULT_OLLAMA_URL).rstrip("/")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_model_names(raw_json: str) -> Optional[Set[str]]:
    """
    Read model names from an ``/api/tags`` payload.

    Returns:
        The set of non-blank model names, or None when the payload does not
        have the expected ``{"models": [...]}`` shape
    """
    try:
        root = json.loads(raw_json)
    except ValueError:
        return None
    if not isinstance(root, dict) or not isinstance(root.get("models"), list):
        return None
    names = set()
    for entry in root["models"]:
        if not isinstance(entry, dict) or entry.get("name") is None:
            continue
        name = str(entry["name"]).strip()
        if name:
            names.add(name)
    return names


def is_model_available(requested_model: str, available_models: Iterable[str]) -> bool:
    """
    Match a requested model against installed ones, ignoring case.

    A request without a tag (``translategemma``) matches any installed tag of
    that model (``translategemma:4b``).
    """
    requested = requested_model.strip().lower()
    if not requested:
        return False
    normalized = {name.strip().lower() for name in available_models}
    if requested in normalized:
        return True
    if ":" not in requested:
        return any(name.startswith(f"{requested}:") for name in normalized)
    return False


def check_model_availability(base_url: str, model: str, timeout_seconds: float = 10) -> ModelCheckResult:
    """Ask the daemon's ``/api/tags`` endpoint whether ``model`` is installed."""
    trimmed_model = model.strip()
    if not trimmed_model:
        return ModelCheckResult(ModelCheckStatus.INVALID_INPUT, "Enter an Ollama model to check availability.")

    url = _normalize_base_url(base_url)
    timeout = _clamp(timeout_seconds, 3, 30)
    try:
        response = requests.get(f"{url}/api/tags", timeout=timeout)
    except requests.RequestException as e:
        return ModelCheckResult(
            ModelCheckStatus.UNREACHABLE, f"Could not reach Ollama at {url} ({e or 'network error'})."
        )

    if not 200 <= response.status_code <= 299:
        return ModelCheckResult(
            ModelCheckStatus.UNREACHABLE, f"Ollama check failed (HTTP {response.status_code}) at {url}."
        )

    names = parse_model_names(response.text)
    if names is None:
        return ModelCheckResult(
            ModelCheckStatus.PARSE_ERROR, "Ollama returned an unexpected /api/tags response payload."
        )
    if not names:
        return ModelCheckResult(
            ModelCheckStatus.MISSING,
            f"No local Ollama models were found. Run `ollama pull {trimmed_model}`.",
        )
    if is_model_available(trimmed_model, names):
        return ModelCheckResult(ModelCheckStatus.AVAILABLE, f"Model '{trimmed_model}' is available locally in Ollama.")
    return ModelCheckResult(
        ModelCheckStatus.MISSING, f"Model '{trimmed_model}' is not local. Run `ollama pull {trimmed_model}`."
    )


def parse_pull_progress_line(raw_line: str) -> Optional[PullProgressLine]:
    """Parse one NDJSON line of a streamed ``/api/pull`` response; None if it is not JSON."""
    try:
        obj = json.loads(raw_line)
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None

    error = obj.get("error")
    error_message = str(error).strip() if error is not None else None
    status = str(obj.get("status") or "").strip()

    fraction = None
    try:
        completed = int(obj["completed"]) if obj.get("completed") is not None else None
        total = int(obj["total"]) if obj.get("total") is not None else None
    except (TypeError, ValueError):
        completed = total = None
    if completed is not None and total is not None and total > 0:
        fraction = _clamp(completed / total, 0.0, 1.0)

    return PullProgressLine(status=status, fraction=fraction, error_message=error_message or None)


def pull_model(
    base_url: str,
    model: str,
    timeout_seconds: float = 600,
    on_progress: Optional[Callable[[str, Optional[float]], bool]] = None,
) -> ModelPullResult:
    """
    Pull a model through the daemon, streaming progress.

    Args:
        base_url: Ollama URL
        model: Model tag to pull
        timeout_seconds: Read timeout between streamed lines
        on_progress: Called with (status, fraction) per progress line; returning
            False stops the pull

    Returns:
        ModelPullResult describing the outcome
    """
    trimmed_model = model.strip()
    if not trimmed_model:
        return ModelPullResult(ModelPullStatus.INVALID_INPUT, "Enter an Ollama model before pulling.")

    url = _normalize_base_url(base_url)
    read_timeout = _clamp(timeout_seconds, 5, 600)
    connect_timeout = _clamp(timeout_seconds, 3, 30)
    logger.info(f"Pulling Ollama model {trimmed_model} from {url}")

    try:
        response = requests.post(
            f"{url}/api/pull",
            json={"name": trimmed_model, "stream": True},
            stream=True,
            timeout=(connect_timeout, read_timeout),
        )
    except requests.RequestException as e:
        return ModelPullResult(ModelPullStatus.UNREACHABLE, f"Could not reach Ollama at {url} ({e or 'network error'}).")

    with response:
        if not 200 <= response.status_code <= 299:
            remote_error = extract_json_error_message(response.text)
            suffix = f": {remote_error}" if remote_error else ""
            return ModelPullResult(
                ModelPullStatus.FAILED, f"Ollama pull failed (HTTP {response.status_code}){suffix}"
            )

        last_status = ""
        try:
            for line in response.iter_lines(decode_unicode=True):
                if not line or not line.strip():
                    continue
                parsed = parse_pull_progress_line(line)
                if parsed is None:
                    continue
                if parsed.error_message:
                    return ModelPullResult(ModelPullStatus.FAILED, parsed.error_message)
                last_status = parsed.status
                if on_progress is not None and not on_progress(parsed.status or "Downloading...", parsed.fraction):
                    return ModelPullResult(ModelPullStatus.CANCELLED, "Pull cancelled.")
        except requests.RequestException as e:
            return ModelPullResult(ModelPullStatus.FAILED, f"Ollama pull interrupted: {e}")

    return ModelPullResult(
        ModelPullStatus.PULLED,
        f"Model '{trimmed_model}' pull request completed successfully ({last_status or 'completed'}).",
    )


# ------------------------------------------------------------------------------
# TranslateGemma sizing guide
# ------------------------------------------------------------------------------


class GemmaSize(Enum):
    """
    TranslateGemma variants.

    Values are (label, Ollama download size in GB, Q4 runtime memory in GB,
    recommended system RAM in GB).
    """

    SIZE_4B = ("4B", 3.3, 3.4, 8)
    SIZE_12B = ("12B", 8.1, 8.7, 16)
    SIZE_27B = ("27B", 17.0, 21.0, 32)

    def __init__(self, short_label: str, model_size_gb: float, q4_memory_gb: float, recommended_ram_gb: int):
        self.short_label = short_label
        self.model_size_gb = model_size_gb
        self.q4_memory_gb = q4_memory_gb
        self.recommended_ram_gb = recommended_ram_gb


_SIZE_PATTERNS = [
    (re.compile(r"(^|[-:])27b($|[-:_])"), GemmaSize.SIZE_27B),
    (re.compile(r"(^|[-:])12b($|[-:_])"), GemmaSize.SIZE_12B),
    (re.compile(r"(^|[-:])4b($|[-:_])"), GemmaSize.SIZE_4B),
]


def _bytes_to_gb(value: int) -> Optional[int]:
    if value <= 0:
        return None
    return max(1, math.ceil(value / (1024 ** 3)))


def detect_total_system_ram_gb() -> Optional[int]:
    """Total physical memory rounded up to whole GB, or None where the OS does not expose it."""
    try:
        total = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, OSError, ValueError):
        return None
    return _bytes_to_gb(total)


def detect_available_storage_gb(path: Optional[str] = None) -> Optional[int]:
    candidates = [path] if path else [str(Path.home()), os.getcwd()]
    for candidate in candidates:
        try:
            return _bytes_to_gb(shutil.disk_usage(candidate).free)
        except OSError:
            continue
    return None


def recommended_size(total_system_ram_gb: Optional[int]) -> GemmaSize:
    if total_system_ram_gb is None:
        return GemmaSize.SIZE_4B
    if total_system_ram_gb >= GemmaSize.SIZE_27B.recommended_ram_gb:
        return GemmaSize.SIZE_27B
    if total_system_ram_gb >= GemmaSize.SIZE_12B.recommended_ram_gb:
        return GemmaSize.SIZE_12B
    return GemmaSize.SIZE_4B


def size_for_model_id(model_id: Optional[str]) -> Optional[GemmaSize]:
    normalized = (model_id or "").strip().lower()
    if not normalized:
        return None
    for pattern, size in _SIZE_PATTERNS:
        if pattern.search(normalized):
            return size
    return None


def recommended_model_id(provider_type: TranslationProviderType, size: GemmaSize) -> str:
    label = size.short_label.lower()
    if provider_type == TranslationProviderType.HUGGING_FACE:
        return f"google/translategemma-{label}-it"
    return f"translategemma:{label}"


def _format_gb(value: float) -> str:
    return str(int(value)) if value == int(value) else str(value)


def storage_warning(
    provider_type: TranslationProviderType, selected_model_id: Optional[str], available_storage_gb: Optional[int]
) -> Optional[str]:
    size = size_for_model_id(selected_model_id)
    if available_storage_gb is None or size is None:
        return None
    if available_storage_gb >= math.ceil(size.model_size_gb):
        return None
    label = selected_model_id or recommended_model_id(provider_type, size)
    return (
        f"Model '{label}' needs about {_format_gb(size.model_size_gb)} GB, "
        f"but only {available_storage_gb} GB is available."
    )


def sizing_guidance(
    provider_type: TranslationProviderType,
    selected_model_id: Optional[str] = None,
    total_system_ram_gb: Optional[int] = None,
    available_storage_gb: Optional[int] = None,
) -> List[str]:
    """Plain-text guidance lines for choosing a model size."""
    ram_text = f"{total_system_ram_gb} GB" if total_system_ram_gb is not None else "unknown"
    storage_text = f"{available_storage_gb} GB free" if available_storage_gb is not None else "unknown"
    lines = [
        "TranslateGemma RAM guidance",
        f"Detected system RAM: {ram_text}, Detected free storage: {storage_text}",
        "Recommended now: "
        f"{recommended_model_id(provider_type, recommended_size(total_system_ram_gb))} (based on system RAM)",
    ]
    warning = storage_warning(provider_type, selected_model_id, available_storage_gb)
    if warning:
        lines.append(f"Warning: {warning}")
    for size in GemmaSize:
        lines.append(
            f"{size.short_label}: model storage ~{_format_gb(size.model_size_gb)} GB, "
            f"runtime memory ~{_format_gb(size.q4_memory_gb)} GB (Q4), "
            f"recommended system RAM >= {size.recommended_ram_gb} GB"
        )
    return lines
