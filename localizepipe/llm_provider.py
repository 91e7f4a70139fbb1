#!/usr/bin/env python3
"""
LLM Provider Module

This module provides an abstraction layer for communicating with the
supported translation backends (a local Ollama daemon and the Hugging Face
inference API) through a single interface. Each backend owns its endpoint,
payload shape, authentication and response parsing; callers only ever see a
``ProviderSuccess`` or a ``ProviderFailure``.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import requests

logger = logging.getLogger(__name__)


class TranslationProviderType(Enum):
    """Supported translation providers."""

    OLLAMA = "ollama"
    HUGGING_FACE = "hugging_face"


class OllamaRuntimeMode(Enum):
    """GPU usage hint passed to Ollama as ``num_gpu``."""

    AUTO = "auto"
    CPU_ONLY = "cpu_only"
    GPU_PREFERRED = "gpu_preferred"


@dataclass(frozen=True)
class ProviderSuccess:
    text: str


@dataclass(frozen=True)
class ProviderFailure:
    message: str


ProviderResult = Union[ProviderSuccess, ProviderFailure]


@dataclass(frozen=True)
class HttpCallResult:
    """Outcome of one POST; ``status_code`` is None when the server was never reached."""

    status_code: Optional[int]
    body: Optional[str]
    error_message: Optional[str]

    @property
    def is_success(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code <= 299


def build_prompt(base_text: str, source_code: str, target_code: str) -> str:
    """
    Build the fixed instruction prompt sent to both backends.

    Args:
        base_text: Source-locale text to translate
        source_code: Backend language code of the source locale
        target_code: Backend language code of the target locale

    Returns:
        The prompt string
    """
    return (
        f"Translate from {source_code} to {target_code}.\n"
        "Return only translated text.\n"
        "Preserve placeholders exactly (e.g. %1$s, %d, {name}).\n"
        "Preserve XML tags exactly.\n"
        f"Text: {base_text}"
    )


def build_ollama_options(temperature: float, runtime_mode: OllamaRuntimeMode) -> Dict[str, Any]:
    options: Dict[str, Any] = {"temperature": float(temperature)}
    if runtime_mode == OllamaRuntimeMode.CPU_ONLY:
        options["num_gpu"] = 0
    elif runtime_mode == OllamaRuntimeMode.GPU_PREFERRED:
        options["num_gpu"] = 999
    return options


def extract_json_error_message(body: Optional[str]) -> Optional[str]:
    """Return the trimmed ``error`` field of a JSON object body, if any."""
    if not body or not body.strip():
        return None
    try:
        parsed = json.loads(body)
    except ValueError:
        return None
    if not isinstance(parsed, dict) or parsed.get("error") is None:
        return None
    return str(parsed["error"]).strip()


def format_ollama_failure_message(model: str, status_code: int, body: Optional[str]) -> str:
    """
    Turn a non-2xx Ollama response into an operator-facing message.

    A missing model is reported with the ``ollama pull`` command to run, which
    is also what makes the translation batch stop early.
    """
    remote_error = extract_json_error_message(body)
    normalized = (remote_error or "").lower()
    looks_like_missing_model = (
        status_code == 404
        or ("model" in normalized and "not found" in normalized)
        or "try pulling it first" in normalized
    )

    if looks_like_missing_model:
        suffix = f" ({remote_error})" if remote_error else ""
        return f"Ollama model '{model}' is not available locally. Run `ollama pull {model}` and retry{suffix}"
    if remote_error:
        return f"Ollama request failed (HTTP {status_code}): {remote_error}"
    return f"Ollama request failed (HTTP {status_code})"


def extract_ollama_response_text(raw_response: str) -> str:
    """
    Read the generated text from a non-streaming ``/api/generate`` response.

    Raises:
        ValueError: If the body is not a JSON object
    """
    parsed = json.loads(raw_response)
    if not isinstance(parsed, dict):
        raise ValueError("expected a JSON object")
    response = parsed.get("response")
    if response is None:
        return ""
    return str(response).rstrip("\r\n")


def parse_hugging_face_response(raw_response: str) -> ProviderResult:
    """
    Parse either response shape of the Hugging Face inference API.

    Accepts an array of ``{"generated_text": ...}`` objects or a single object
    carrying ``generated_text``, ``translation_text`` or ``error``. The
    provider's own ``error`` text is surfaced verbatim.
    """
    try:
        parsed = json.loads(raw_response)
    except ValueError as e:
        logger.warning(f"Failed to parse Hugging Face response: {e}")
        return ProviderFailure(f"Failed to parse Hugging Face response: {e}")

    if isinstance(parsed, list) and parsed:
        first = parsed[0]
        text = first.get("generated_text") if isinstance(first, dict) else None
        if not text or not str(text).strip():
            return ProviderFailure("Unexpected Hugging Face array response")
        return ProviderSuccess(str(text))

    if isinstance(parsed, dict):
        error = parsed.get("error")
        if error is not None and str(error).strip():
            return ProviderFailure(str(error))
        generated = parsed.get("generated_text")
        if generated is None:
            generated = parsed.get("translation_text")
        if generated is None or not str(generated).strip():
            return ProviderFailure("Unexpected Hugging Face response format")
        return ProviderSuccess(str(generated))

    return ProviderFailure("Unexpected Hugging Face response type")


def post_json(
    url: str, payload: Dict[str, Any], timeout_seconds: float, bearer_token: Optional[str] = None
) -> HttpCallResult:
    """POST a JSON body; transport errors are captured, never raised."""
    headers = {"Content-Type": "application/json"}
    if bearer_token:
        headers["Authorization"] = f"Bearer {bearer_token}"
    try:
        response = requests.post(url, json=payload, headers=headers, timeout=timeout_seconds)
    except requests.RequestException as e:
        return HttpCallResult(status_code=None, body=None, error_message=str(e))
    return HttpCallResult(status_code=response.status_code, body=response.text, error_message=None)


class OllamaBackend:
    """
    Client for a local Ollama daemon.

    Args:
        base_url: Daemon URL, e.g. ``http://127.0.0.1:11434``
        model: Model tag, e.g. ``translategemma:4b``
        temperature: Sampling temperature
        runtime_mode: GPU usage hint
        timeout_seconds: Per-request timeout
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.1,
        runtime_mode: OllamaRuntimeMode = OllamaRuntimeMode.AUTO,
        timeout_seconds: float = 45,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.runtime_mode = runtime_mode
        self.timeout_seconds = timeout_seconds

    def request_translation(self, text: str, source_code: str, target_code: str) -> ProviderResult:
        payload = {
            "model": self.model,
            "stream": False,
            "prompt": build_prompt(text, source_code, target_code),
            "options": build_ollama_options(self.temperature, self.runtime_mode),
        }
        logger.debug(f"Sending generate request to Ollama (model: {self.model}, target: {target_code})")
        response = post_json(f"{self.base_url}/api/generate", payload, self.timeout_seconds)

        if response.status_code is None:
            detail = f": {response.error_message}" if response.error_message else ""
            logger.warning(f"Ollama is unreachable at {self.base_url}{detail}")
            return ProviderFailure(f"Could not reach Ollama at {self.base_url}{detail}")
        if not response.is_success:
            message = format_ollama_failure_message(self.model, response.status_code, response.body)
            logger.warning(f"Ollama request failed: {message}")
            return ProviderFailure(message)
        if not response.body:
            return ProviderFailure("Ollama returned an empty response body")

        try:
            return ProviderSuccess(extract_ollama_response_text(response.body))
        except ValueError as e:
            logger.warning(f"Failed to parse Ollama response: {e}")
            return ProviderFailure(f"Failed to parse Ollama response: {e}")


class HuggingFaceBackend:
    """
    Client for the Hugging Face inference API.

    Args:
        base_url: API base, e.g. ``https://api-inference.huggingface.co``
        model: Repository id, e.g. ``google/translategemma-4b-it``
        token: Bearer token; requests are sent unauthenticated when blank
        timeout_seconds: Per-request timeout
    """

    def __init__(self, base_url: str, model: str, token: str = "", timeout_seconds: float = 45) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.token = token
        self.timeout_seconds = timeout_seconds

    def request_translation(self, text: str, source_code: str, target_code: str) -> ProviderResult:
        payload = {
            "inputs": build_prompt(text, source_code, target_code),
            "parameters": {"return_full_text": False},
        }
        response = post_json(
            f"{self.base_url}/models/{self.model}",
            payload,
            self.timeout_seconds,
            bearer_token=self.token.strip() or None,
        )

        if response.status_code is None:
            logger.warning(f"Hugging Face is unreachable: {response.error_message}")
            if response.error_message:
                return ProviderFailure(f"Could not reach Hugging Face: {response.error_message}")
            return ProviderFailure("Could not reach Hugging Face")
        if not response.body:
            return ProviderFailure("Hugging Face returned an empty response body")
        if not response.is_success:
            logger.warning(f"Hugging Face request failed with status {response.status_code}")
        return parse_hugging_face_response(response.body)


def create_backend(settings) -> Union[OllamaBackend, HuggingFaceBackend]:
    """
    Build the backend selected by a :class:`~localizepipe.settings.TranslationSettings`.
    """
    if settings.provider_type == TranslationProviderType.HUGGING_FACE:
        backend = HuggingFaceBackend(
            base_url=settings.hugging_face_base_url,
            model=settings.hugging_face_model,
            token=settings.hugging_face_token,
            timeout_seconds=settings.timeout_seconds,
        )
    else:
        backend = OllamaBackend(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            temperature=settings.temperature,
            runtime_mode=settings.ollama_runtime_mode,
            timeout_seconds=settings.timeout_seconds,
        )
    logger.info(
        f"Initialized translation backend with provider={settings.provider_type.value}, "
        f"model={settings.active_model()}"
    )
    return backend
