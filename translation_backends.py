from __future__ import annotations

import json
from typing import Any, AsyncIterator, Final, Optional

import httpx
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, AsyncOpenAI

from config_utils import PipelineSettings
from translation_service import TranslationError, TranslationTimeout, TranslationUnavailable

_LANGUAGE_ALIASES: Final[dict[str, str]] = {
    "es": "Spanish",
    "en": "English",
    "pt": "Portuguese (Brazil)",
    "pt-br": "Portuguese (Brazil)",
    "zh": "Mandarin Chinese (Simplified)",
    "zh-cn": "Mandarin Chinese (Simplified)",
    "hi": "Hindi",
    "fr": "French",
    "de": "German",
}

SUMMARY_PROMPT: Final[str] = (
    "Summarize the following class transcript in Markdown.\n"
    "Use these sections: Main Topics, Key Vocabulary & Phrases, Action Items / Homework "
    "(write 'None detected' when there are none), Improvement Tips.\n\n"
    "TRANSCRIPT:\n{transcript}"
)

REPLY_PROMPT: Final[str] = (
    "The user is in an English class or practice session and the teacher asked a question.\n"
    "Give 3 distinct reply options of increasing complexity.\n\n"
    'QUESTION ASKED: "{question}"\n\n'
    "CONTEXT:\n{context}\n\n"
    "FORMAT:\n"
    "Option 1 (Simple): [Text]\n(Translation): [{target} translation]\n\n"
    "Option 2 (Standard): [Text]\n(Translation): [{target} translation]\n\n"
    "Option 3 (Detailed): [Text]\n(Translation): [{target} translation]\n\n"
    "Only provide the options and translations. No intro or outro."
)
REPLY_TEMPERATURE: Final[float] = 0.7


def normalize_target_language(target_language: str) -> str:
    raw = (target_language or "").strip()
    if not raw:
        return "Spanish"
    return _LANGUAGE_ALIASES.get(raw.lower(), raw)


def translation_messages(text: str, target_language: str) -> list[dict[str, str]]:
    target = normalize_target_language(target_language)
    return [
        {
            "role": "system",
            "content": f"Translate the input text to {target}. Return only the translated text. No explanation.",
        },
        {
            "role": "user",
            "content": f"Translate this text to {target}. Output ONLY the translation. Text: {text}",
        },
    ]


def reply_messages(question: str, context: str, target_language: str) -> list[dict[str, str]]:
    target = normalize_target_language(target_language)
    return [
        {
            "role": "system",
            "content": "You are a helpful English tutor assistant. Provide reply options for the student.",
        },
        {
            "role": "user",
            "content": REPLY_PROMPT.format(question=question, context=context or "(none)", target=target),
        },
    ]


class OllamaBackend:
    """Native Ollama chat API, streamed as newline-delimited JSON."""

    def __init__(
        self,
        model: str = "llama3.2",
        host: str = "http://localhost:11434",
        temperature: float = 0.3,
        timeout_s: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = client or httpx.AsyncClient(base_url=host, timeout=httpx.Timeout(timeout_s))

    @property
    def model(self) -> str:
        return self._model

    async def stream_translate(self, text: str, target_language: str) -> AsyncIterator[str]:
        payload = {
            "model": self._model,
            "messages": translation_messages(text, target_language),
            "stream": True,
            "options": {"temperature": self._temperature},
        }
        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise TranslationUnavailable(
                        f"backend returned status {response.status_code}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except ValueError:
                        # Split chunk; the next line carries on.
                        continue
                    if data.get("done"):
                        break
                    content = (data.get("message") or {}).get("content")
                    if content:
                        yield content
        except httpx.TimeoutException as exc:
            raise TranslationTimeout(f"backend timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TranslationUnavailable(f"backend unreachable: {exc}") from exc

    async def summarize(self, text: str) -> str:
        payload = {
            "model": self._model,
            "prompt": SUMMARY_PROMPT.format(transcript=text),
            "stream": False,
        }
        try:
            response = await self._client.post("/api/generate", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TranslationTimeout(f"summary timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise TranslationUnavailable(
                f"backend returned status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TranslationUnavailable(f"backend unreachable: {exc}") from exc
        return str(response.json().get("response") or "")

    async def suggest_replies(self, question: str, context: str, target_language: str) -> str:
        payload = {
            "model": self._model,
            "messages": reply_messages(question, context, target_language),
            "stream": False,
            "options": {"temperature": REPLY_TEMPERATURE},
        }
        try:
            response = await self._client.post("/api/chat", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TranslationTimeout(f"reply suggestion timed out: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise TranslationUnavailable(
                f"backend returned status {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TranslationUnavailable(f"backend unreachable: {exc}") from exc
        return str((response.json().get("message") or {}).get("content") or "")

    async def is_available(self) -> bool:
        try:
            response = await self._client.get("/")
        except httpx.HTTPError:
            return False
        return response.is_success

    async def aclose(self) -> None:
        await self._client.aclose()


def _map_openai_error(exc: APIError) -> TranslationError:
    if isinstance(exc, APITimeoutError):
        return TranslationTimeout(f"backend timed out: {exc}")
    if isinstance(exc, APIConnectionError):
        return TranslationUnavailable(f"backend unreachable: {exc}")
    if isinstance(exc, APIStatusError):
        return TranslationUnavailable(f"backend returned status {exc.status_code}", status_code=exc.status_code)
    return TranslationUnavailable(f"backend error: {exc}")


class OpenAICompatibleBackend:
    """Chat completions streaming against OpenAI or any compatible server."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        fallback_model: str = "",
        base_url: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 200,
        timeout_s: float = 20.0,
    ) -> None:
        if not api_key and not base_url:
            raise RuntimeError("OPENAI_API_KEY is required for the openai translation backend.")
        # Local OpenAI-compatible servers accept any key.
        self._client = AsyncOpenAI(api_key=api_key or "local", base_url=base_url, timeout=timeout_s)
        self._models = [model]
        if fallback_model and fallback_model not in self._models:
            self._models.append(fallback_model)
        self._active_model_index = 0
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        return self._models[min(self._active_model_index, len(self._models) - 1)]

    async def stream_translate(self, text: str, target_language: str) -> AsyncIterator[str]:
        stream = await self._open_stream(translation_messages(text, target_language))
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except APIError as exc:
            raise _map_openai_error(exc) from exc
        finally:
            await stream.close()

    async def _open_stream(self, messages: list[dict[str, str]]) -> Any:
        last_exc: Optional[APIStatusError] = None
        while self._active_model_index < len(self._models):
            model_name = self._models[self._active_model_index]
            try:
                return await self._client.chat.completions.create(
                    model=model_name,
                    messages=messages,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    stream=True,
                )
            except APIStatusError as exc:
                last_exc = exc
                # Promote to fallback model once and keep it for subsequent requests.
                if exc.status_code in (400, 404):
                    self._active_model_index += 1
                    continue
                raise _map_openai_error(exc) from exc
            except APIError as exc:
                raise _map_openai_error(exc) from exc
        self._active_model_index = 0
        status_code = last_exc.status_code if last_exc is not None else None
        raise TranslationUnavailable(
            f"no configured model accepted the request (last status {status_code})",
            status_code=status_code,
        )

    async def summarize(self, text: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": SUMMARY_PROMPT.format(transcript=text)}],
                temperature=self._temperature,
            )
        except APIError as exc:
            raise _map_openai_error(exc) from exc
        return response.choices[0].message.content or ""

    async def suggest_replies(self, question: str, context: str, target_language: str) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=reply_messages(question, context, target_language),
                temperature=REPLY_TEMPERATURE,
            )
        except APIError as exc:
            raise _map_openai_error(exc) from exc
        return response.choices[0].message.content or ""

    async def is_available(self) -> bool:
        try:
            await self._client.models.list()
        except APIError:
            return False
        return True

    async def aclose(self) -> None:
        await self._client.close()


def build_backend(settings: PipelineSettings) -> OllamaBackend | OpenAICompatibleBackend:
    if settings.backend == "openai":
        return OpenAICompatibleBackend(
            api_key=settings.api_key,
            model=settings.model,
            fallback_model=settings.fallback_model,
            base_url=settings.base_url,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout_s=settings.translation_timeout_s,
        )
    return OllamaBackend(
        model=settings.model,
        host=settings.ollama_host,
        temperature=settings.temperature,
        timeout_s=settings.translation_timeout_s,
    )
