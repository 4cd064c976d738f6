from __future__ import annotations

import os
import unittest
from unittest.mock import patch

from config_utils import (
    PipelineSettings,
    read_bool_env,
    read_float_env,
    read_int_env,
    read_non_negative_float_env,
    read_str_env,
)


class EnvReaderTests(unittest.TestCase):
    def test_invalid_and_non_positive_numbers_fall_back(self) -> None:
        with patch.dict(os.environ, {"A": "abc", "B": "-3", "C": "2.5", "Z": "0"}, clear=True):
            self.assertEqual(read_float_env("A", 1.0), 1.0)
            self.assertEqual(read_int_env("B", 7), 7)
            self.assertEqual(read_float_env("C", 1.0), 2.5)
            self.assertEqual(read_int_env("MISSING", 4), 4)
            self.assertEqual(read_non_negative_float_env("B", 0.5), 0.5)
            self.assertEqual(read_non_negative_float_env("Z", 0.5), 0.0)
            self.assertEqual(read_float_env("Z", 0.5), 0.5)

    def test_bool_and_str_readers(self) -> None:
        with patch.dict(os.environ, {"ON": "yes", "OFF": "0", "ODD": "maybe", "S": "  x  "}, clear=True):
            self.assertTrue(read_bool_env("ON", False))
            self.assertFalse(read_bool_env("OFF", True))
            self.assertTrue(read_bool_env("ODD", True))
            self.assertEqual(read_str_env("S", "d"), "x")
            self.assertEqual(read_str_env("MISSING", "d"), "d")


class PipelineSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = PipelineSettings.from_env()
        self.assertEqual(settings.backend, "ollama")
        self.assertEqual(settings.model, "llama3.2")
        self.assertEqual(settings.fallback_model, "")
        self.assertEqual(settings.quiet_period_s, 0.5)
        self.assertEqual(settings.translation_timeout_s, 20.0)
        self.assertEqual(settings.context_window, 5)
        self.assertIsNone(settings.api_key)

    def test_openai_backend_overrides(self) -> None:
        env = {
            "TRANSLATION_BACKEND": "OpenAI",
            "OPENAI_API_KEY": "sk-test",
            "DEBOUNCE_MS": "250",
            "TARGET_LANGUAGE": "pt-br",
            "SUMMARIZE_ON_EXIT": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = PipelineSettings.from_env()
        self.assertEqual(settings.backend, "openai")
        self.assertEqual(settings.model, "gpt-4o-mini")
        self.assertEqual(settings.fallback_model, "gpt-4.1-mini")
        self.assertEqual(settings.api_key, "sk-test")
        self.assertEqual(settings.quiet_period_s, 0.25)
        self.assertEqual(settings.target_language, "pt-br")
        self.assertTrue(settings.summarize_on_exit)

    def test_zero_temperature_is_kept(self) -> None:
        with patch.dict(os.environ, {"TRANSLATION_TEMPERATURE": "0"}, clear=True):
            self.assertEqual(PipelineSettings.from_env().temperature, 0.0)
        with patch.dict(os.environ, {"TRANSLATION_TEMPERATURE": "-1"}, clear=True):
            self.assertEqual(PipelineSettings.from_env().temperature, 0.3)

    def test_assistant_replies_flag(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            self.assertFalse(PipelineSettings.from_env().assistant_replies_enabled)
        with patch.dict(os.environ, {"ASSISTANT_REPLIES_ENABLED": "on"}, clear=True):
            self.assertTrue(PipelineSettings.from_env().assistant_replies_enabled)

    def test_unknown_backend_is_rejected(self) -> None:
        with patch.dict(os.environ, {"TRANSLATION_BACKEND": "deepl"}, clear=True):
            with self.assertRaises(ValueError):
                PipelineSettings.from_env()


if __name__ == "__main__":
    unittest.main()
