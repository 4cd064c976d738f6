from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


SUPPORTED_BACKENDS = ("ollama", "openai")


def read_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_non_negative_float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def read_bool_env(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def read_str_env(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


@dataclass(frozen=True)
class PipelineSettings:
    backend: str = "ollama"
    model: str = "llama3.2"
    fallback_model: str = ""
    ollama_host: str = "http://localhost:11434"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    target_language: str = "Spanish"
    debounce_ms: int = 500
    translation_timeout_s: float = 20.0
    temperature: float = 0.3
    max_tokens: int = 200
    context_window: int = 5
    empty_placeholder: str = "(no translation)"
    newline_threshold: int = 160
    session_log_enabled: bool = True
    session_log_path: str = "./reports/session_records.jsonl"
    session_summary_path: str = "./reports/session_summary.json"
    session_append_mode: bool = False
    summarize_on_exit: bool = False
    assistant_replies_enabled: bool = False

    @property
    def quiet_period_s(self) -> float:
        return self.debounce_ms / 1000.0

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        backend = read_str_env("TRANSLATION_BACKEND", "ollama").lower()
        if backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"TRANSLATION_BACKEND must be one of {', '.join(SUPPORTED_BACKENDS)}, got {backend!r}"
            )
        default_model = "llama3.2" if backend == "ollama" else "gpt-4o-mini"
        default_fallback = "" if backend == "ollama" else "gpt-4.1-mini"
        return cls(
            backend=backend,
            model=read_str_env("TRANSLATION_MODEL", default_model),
            fallback_model=(os.getenv("TRANSLATION_FALLBACK_MODEL", default_fallback) or "").strip(),
            ollama_host=read_str_env("OLLAMA_HOST", "http://localhost:11434"),
            base_url=(os.getenv("TRANSLATION_BASE_URL") or "").strip() or None,
            api_key=(os.getenv("OPENAI_API_KEY") or "").strip() or None,
            target_language=read_str_env("TARGET_LANGUAGE", "Spanish"),
            debounce_ms=read_int_env("DEBOUNCE_MS", 500),
            translation_timeout_s=read_float_env("TRANSLATION_TIMEOUT_SECONDS", 20.0),
            temperature=read_non_negative_float_env("TRANSLATION_TEMPERATURE", 0.3),
            max_tokens=read_int_env("TRANSLATION_MAX_TOKENS", 200),
            context_window=read_int_env("CONTEXT_WINDOW_SIZE", 5),
            empty_placeholder=read_str_env("EMPTY_TRANSLATION_PLACEHOLDER", "(no translation)"),
            newline_threshold=read_int_env("NEWLINE_COLLAPSE_THRESHOLD", 160),
            session_log_enabled=read_bool_env("SESSION_LOG_ENABLED", True),
            session_log_path=read_str_env("SESSION_LOG_PATH", "./reports/session_records.jsonl"),
            session_summary_path=read_str_env("SESSION_SUMMARY_PATH", "./reports/session_summary.json"),
            session_append_mode=read_bool_env("SESSION_APPEND_MODE", False),
            summarize_on_exit=read_bool_env("SUMMARIZE_ON_EXIT", False),
            assistant_replies_enabled=read_bool_env("ASSISTANT_REPLIES_ENABLED", False),
        )
