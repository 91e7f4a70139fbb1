#!/usr/bin/env python3
"""
Tests for configuration dataclasses and environment loading.
"""
import os
import sys
import unittest
from unittest.mock import patch

# Add parent directory to path for module import
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from localizepipe.llm_provider import OllamaRuntimeMode, TranslationProviderType
from localizepipe.settings import (
    ProjectScanSettings,
    TranslationSettings,
    default_ollama_model_for_machine,
    parse_bool,
)


class TestTranslationSettings(unittest.TestCase):

    def test_defaults(self):
        settings = TranslationSettings(ollama_model="translategemma:4b")
        self.assertEqual(settings.provider_type, TranslationProviderType.OLLAMA)
        self.assertEqual(settings.source_locale_tag, "en")
        self.assertEqual(settings.ollama_base_url, "http://127.0.0.1:11434")
        self.assertEqual(settings.hugging_face_model, "google/translategemma-4b-it")
        self.assertEqual(settings.temperature, 0.1)
        self.assertEqual(settings.timeout_seconds, 45)
        self.assertEqual(settings.retry_count, 1)
        self.assertTrue(settings.remove_added_trailing_period)

    @patch("localizepipe.settings.detect_total_system_ram_gb", return_value=16)
    def test_default_model_follows_system_ram(self, _mock_ram):
        self.assertEqual(default_ollama_model_for_machine(), "translategemma:12b")
        self.assertEqual(TranslationSettings().ollama_model, "translategemma:12b")

    def test_string_enums_are_converted(self):
        settings = TranslationSettings(
            provider_type="hugging_face", ollama_runtime_mode="cpu_only", ollama_model="translategemma:4b"
        )
        self.assertEqual(settings.provider_type, TranslationProviderType.HUGGING_FACE)
        self.assertEqual(settings.ollama_runtime_mode, OllamaRuntimeMode.CPU_ONLY)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            TranslationSettings(provider_type="openai", ollama_model="m")
        with self.assertRaises(ValueError):
            TranslationSettings(timeout_seconds=0, ollama_model="m")
        with self.assertRaises(ValueError):
            TranslationSettings(retry_count=-1, ollama_model="m")

    def test_active_model_and_endpoint(self):
        ollama = TranslationSettings(ollama_model="translategemma:4b", ollama_base_url="http://box:11434/")
        self.assertEqual(ollama.active_model(), "translategemma:4b")
        self.assertEqual(ollama.active_endpoint(), "http://box:11434/api/generate")

        hf = TranslationSettings(provider_type=TranslationProviderType.HUGGING_FACE, ollama_model="m")
        self.assertEqual(hf.active_model(), "google/translategemma-4b-it")
        self.assertEqual(
            hf.active_endpoint(),
            "https://api-inference.huggingface.co/models/google/translategemma-4b-it",
        )
        self.assertFalse(hf.has_hugging_face_token())

    def test_from_env(self):
        env = {
            "LOCALIZEPIPE_PROVIDER": "HUGGING_FACE",
            "LOCALIZEPIPE_OLLAMA_MODEL": "translategemma:27b",
            "LOCALIZEPIPE_TEMPERATURE": "0.3",
            "LOCALIZEPIPE_TIMEOUT": "90",
            "LOCALIZEPIPE_RETRIES": "3",
            "LOCALIZEPIPE_REMOVE_TRAILING_PERIOD": "no",
            "HF_TOKEN": "hf_secret",
        }
        settings = TranslationSettings.from_env(env)

        self.assertEqual(settings.provider_type, TranslationProviderType.HUGGING_FACE)
        self.assertEqual(settings.ollama_model, "translategemma:27b")
        self.assertEqual(settings.temperature, 0.3)
        self.assertEqual(settings.timeout_seconds, 90)
        self.assertEqual(settings.retry_count, 3)
        self.assertFalse(settings.remove_added_trailing_period)
        self.assertEqual(settings.hugging_face_token, "hf_secret")
        self.assertTrue(settings.has_hugging_face_token())

    def test_token_precedence(self):
        env = {"LOCALIZEPIPE_HF_TOKEN": "primary", "HF_TOKEN": "secondary", "LOCALIZEPIPE_OLLAMA_MODEL": "m"}
        self.assertEqual(TranslationSettings.from_env(env).hugging_face_token, "primary")

    def test_from_env_invalid_number(self):
        with self.assertRaises(ValueError) as context:
            TranslationSettings.from_env({"LOCALIZEPIPE_TIMEOUT": "soon", "LOCALIZEPIPE_OLLAMA_MODEL": "m"})
        self.assertIn("LOCALIZEPIPE_TIMEOUT", str(context.exception))


class TestProjectScanSettings(unittest.TestCase):

    def test_defaults(self):
        settings = ProjectScanSettings()
        self.assertTrue(settings.include_android_resources)
        self.assertTrue(settings.include_compose_resources)
        self.assertFalse(settings.include_identical_to_base)
        self.assertEqual(settings.additional_locale_tags, ())

    def test_from_env(self):
        settings = ProjectScanSettings.from_env(
            {
                "LOCALIZEPIPE_INCLUDE_COMPOSE": "false",
                "LOCALIZEPIPE_INCLUDE_IDENTICAL": "1",
                "LOCALIZEPIPE_TARGET_LOCALES": "fr, pt-BR,,",
            }
        )
        self.assertTrue(settings.include_android_resources)
        self.assertFalse(settings.include_compose_resources)
        self.assertTrue(settings.include_identical_to_base)
        self.assertEqual(settings.additional_locale_tags, ("fr", "pt-BR"))

    def test_parse_bool(self):
        self.assertTrue(parse_bool("X", " Yes "))
        self.assertFalse(parse_bool("X", "off"))
        with self.assertRaises(ValueError):
            parse_bool("X", "maybe")


if __name__ == "__main__":
    unittest.main()
