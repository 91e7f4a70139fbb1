#!/usr/bin/env python3
"""
Configuration.

Settings are plain dataclasses. ``from_env`` reads ``LOCALIZEPIPE_*``
environment variables; the CLI overlays its flags on top.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .llm_provider import OllamaRuntimeMode, TranslationProviderType
from .ollama_models import (
    GemmaSize,
    detect_total_system_ram_gb,
    recommended_model_id,
    recommended_size,
)

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_LOCALE = "en"
DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_HUGGING_FACE_BASE_URL = "https://api-inference.huggingface.co"
DEFAULT_HUGGING_FACE_MODEL = recommended_model_id(TranslationProviderType.HUGGING_FACE, GemmaSize.SIZE_4B)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def default_ollama_model_for_machine() -> str:
    """Pick the TranslateGemma tag that fits this machine's RAM."""
    return recommended_model_id(TranslationProviderType.OLLAMA, recommended_size(detect_total_system_ram_gb()))


def parse_bool(name: str, raw: str) -> bool:
    """
    Raises:
        ValueError: If the value is not a recognized boolean spelling
    """
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: '{raw}'")


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    return parse_bool(name, raw)


def _env_number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid numeric value for {name}: '{raw}'")


def _env_str(environ: Mapping[str, str], name: str, default: str) -> str:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass
class TranslationSettings:
    """
    Backend configuration for a translation run.

    Attributes:
        provider_type: Which backend to call
        source_locale_tag: Locale of the base ``values`` folder
        ollama_base_url: Ollama daemon URL
        ollama_model: Ollama model tag; defaults to the size recommended for this machine
        ollama_runtime_mode: GPU usage hint
        hugging_face_base_url: Hugging Face inference API base URL
        hugging_face_model: Hugging Face model repository id
        hugging_face_token: Bearer token for Hugging Face (may be empty)
        temperature: Sampling temperature
        timeout_seconds: Per-request timeout
        retry_count: Extra attempts after a transport failure
        remove_added_trailing_period: Strip a period the model appended to text that had none
    """

    provider_type: TranslationProviderType = TranslationProviderType.OLLAMA
    source_locale_tag: str = DEFAULT_SOURCE_LOCALE
    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    ollama_model: str = ""
    ollama_runtime_mode: OllamaRuntimeMode = OllamaRuntimeMode.AUTO
    hugging_face_base_url: str = DEFAULT_HUGGING_FACE_BASE_URL
    hugging_face_model: str = DEFAULT_HUGGING_FACE_MODEL
    hugging_face_token: str = ""
    temperature: float = 0.1
    timeout_seconds: float = 45
    retry_count: int = 1
    remove_added_trailing_period: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.provider_type, str):
            self.provider_type = TranslationProviderType(self.provider_type.strip().lower())
        if isinstance(self.ollama_runtime_mode, str):
            self.ollama_runtime_mode = OllamaRuntimeMode(self.ollama_runtime_mode.strip().lower())

        if not self.ollama_model or not self.ollama_model.strip():
            self.ollama_model = default_ollama_model_for_machine()
        if not self.source_locale_tag or not self.source_locale_tag.strip():
            self.source_locale_tag = DEFAULT_SOURCE_LOCALE

        if self.timeout_seconds <= 0:
            raise ValueError("Timeout must be positive")
        if self.retry_count < 0:
            raise ValueError("Retry count cannot be negative")

    def active_model(self) -> str:
        if self.provider_type == TranslationProviderType.HUGGING_FACE:
            return self.hugging_face_model
        return self.ollama_model

    def active_endpoint(self) -> str:
        if self.provider_type == TranslationProviderType.HUGGING_FACE:
            return f"{self.hugging_face_base_url.rstrip('/')}/models/{self.hugging_face_model}"
        return f"{self.ollama_base_url.rstrip('/')}/api/generate"

    def has_hugging_face_token(self) -> bool:
        return bool(self.hugging_face_token.strip())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TranslationSettings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: On unknown enum values or non-numeric numbers
        """
        env = os.environ if environ is None else environ
        token = (
            env.get("LOCALIZEPIPE_HF_TOKEN")
            or env.get("HF_TOKEN")
            or env.get("HUGGINGFACE_API_TOKEN")
            or ""
        )
        return cls(
            provider_type=_env_str(env, "LOCALIZEPIPE_PROVIDER", TranslationProviderType.OLLAMA.value),
            source_locale_tag=_env_str(env, "LOCALIZEPIPE_SOURCE_LOCALE", DEFAULT_SOURCE_LOCALE),
            ollama_base_url=_env_str(env, "LOCALIZEPIPE_OLLAMA_URL", DEFAULT_OLLAMA_BASE_URL),
            ollama_model=_env_str(env, "LOCALIZEPIPE_OLLAMA_MODEL", ""),
            ollama_runtime_mode=_env_str(env, "LOCALIZEPIPE_OLLAMA_RUNTIME_MODE", OllamaRuntimeMode.AUTO.value),
            hugging_face_base_url=_env_str(env, "LOCALIZEPIPE_HF_URL", DEFAULT_HUGGING_FACE_BASE_URL),
            hugging_face_model=_env_str(env, "LOCALIZEPIPE_HF_MODEL", DEFAULT_HUGGING_FACE_MODEL),
            hugging_face_token=token.strip(),
            temperature=_env_number(env, "LOCALIZEPIPE_TEMPERATURE", 0.1, float),
            timeout_seconds=_env_number(env, "LOCALIZEPIPE_TIMEOUT", 45, float),
            retry_count=_env_number(env, "LOCALIZEPIPE_RETRIES", 1, int),
            remove_added_trailing_period=_env_bool(env, "LOCALIZEPIPE_REMOVE_TRAILING_PERIOD", True),
        )


@dataclass
class ProjectScanSettings:
    """Per-project scan flags.

    ``additional_locale_tags`` lists locales to report as MISSING even where no
    translation file exists yet.
    """

    include_android_resources: bool = True
    include_compose_resources: bool = True
    include_identical_to_base: bool = False
    source_locale_tag: str = DEFAULT_SOURCE_LOCALE
    additional_locale_tags: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProjectScanSettings":
        env = os.environ if environ is None else environ
        locales = _env_str(env, "LOCALIZEPIPE_TARGET_LOCALES", "")
        return cls(
            include_android_resources=_env_bool(env, "LOCALIZEPIPE_INCLUDE_ANDROID", True),
            include_compose_resources=_env_bool(env, "LOCALIZEPIPE_INCLUDE_COMPOSE", True),
            include_identical_to_base=_env_bool(env, "LOCALIZEPIPE_INCLUDE_IDENTICAL", False),
            source_locale_tag=_env_str(env, "LOCALIZEPIPE_SOURCE_LOCALE", DEFAULT_SOURCE_LOCALE),
            additional_locale_tags=tuple(tag.strip() for tag in locales.split(",") if tag.strip()),
        )
