from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Callable, Final, Optional, Protocol

from models import FailureKind, TranslationResult, Utterance

THINK_OPEN: Final[str] = "<think>"
THINK_CLOSE: Final[str] = "</think>"
_QUOTE_CHARS: Final[str] = "\"“”"

PartialCallback = Callable[[TranslationResult], None]


class TranslationError(RuntimeError):
    kind: FailureKind = FailureKind.UNAVAILABLE


class TranslationUnavailable(TranslationError):
    kind = FailureKind.UNAVAILABLE

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TranslationTimeout(TranslationError):
    kind = FailureKind.TIMEOUT


class TranslationEmpty(TranslationError):
    kind = FailureKind.EMPTY


class TranslationBackend(Protocol):
    def stream_translate(self, text: str, target_language: str) -> AsyncIterator[str]:
        ...

    async def summarize(self, text: str) -> str:
        ...

    async def suggest_replies(self, question: str, context: str, target_language: str) -> str:
        ...

    async def is_available(self) -> bool:
        ...

    async def aclose(self) -> None:
        ...


class CancellationHandle:
    """Cancellation slot for one translate call.

    cancel() flips the flag first, so a partial that is about to be
    published is dropped even when the task has not observed the
    cancellation yet, then cancels the attached task.
    """

    def __init__(self, generation: int) -> None:
        self.generation = generation
        self._cancelled = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def task(self) -> Optional[asyncio.Task[None]]:
        return self._task

    def attach(self, task: asyncio.Task[None]) -> None:
        self._task = task
        if self._cancelled:
            task.cancel()

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


def strip_reasoning_block(text: str) -> str:
    start = text.find(THINK_OPEN)
    if start < 0:
        return text
    end = text.find(THINK_CLOSE, start + len(THINK_OPEN))
    if end < 0:
        return text
    return text[:start] + text[end + len(THINK_CLOSE) :]


def clean_output(text: Optional[str]) -> str:
    if not text:
        return ""
    cleaned = strip_reasoning_block(text).strip()
    return cleaned.strip(_QUOTE_CHARS).strip()


class StreamingTranslator:
    def __init__(
        self,
        backend: TranslationBackend,
        target_language: str = "Spanish",
        timeout_s: float = 20.0,
    ) -> None:
        self._backend = backend
        self.target_language = target_language
        self._timeout_s = timeout_s

    @property
    def backend(self) -> TranslationBackend:
        return self._backend

    async def translate(
        self,
        utterance: Utterance,
        on_partial: Optional[PartialCallback],
        handle: CancellationHandle,
        timeout_s: Optional[float] = None,
    ) -> TranslationResult:
        result = TranslationResult(utterance=utterance)
        if handle.cancelled:
            result.mark_cancelled()
            return result
        limit = timeout_s if timeout_s is not None else self._timeout_s
        try:
            buffered = await asyncio.wait_for(self._consume(result, on_partial, handle), timeout=limit)
        except asyncio.CancelledError:
            if not result.is_terminal:
                result.mark_cancelled()
            raise
        except asyncio.TimeoutError:
            if handle.cancelled:
                result.mark_cancelled()
            else:
                result.mark_failed(FailureKind.TIMEOUT, f"translation timed out after {limit:.1f}s")
            return result
        except TranslationError as exc:
            if handle.cancelled:
                result.mark_cancelled()
            else:
                result.mark_failed(exc.kind, str(exc))
            return result

        if result.is_terminal:
            return result
        if handle.cancelled:
            result.mark_cancelled()
            return result
        final_text = clean_output(buffered)
        if not final_text:
            empty = TranslationEmpty("translation stream ended with no content")
            result.mark_failed(empty.kind, str(empty))
            return result
        result.finish(final_text)
        return result

    async def _consume(
        self,
        result: TranslationResult,
        on_partial: Optional[PartialCallback],
        handle: CancellationHandle,
    ) -> str:
        buffered = ""
        stream = self._backend.stream_translate(result.utterance.text, self.target_language)
        async with aclosing(stream):
            async for delta in stream:
                if handle.cancelled:
                    result.mark_cancelled()
                    return buffered
                if not delta:
                    continue
                buffered += delta
                if handle.cancelled:
                    result.mark_cancelled()
                    return buffered
                result.publish_partial(buffered)
                if on_partial is not None:
                    on_partial(result)
        return buffered

    async def summarize(self, text: str) -> str:
        if not text.strip():
            return ""
        return clean_output(await self._backend.summarize(text))

    async def suggest_replies(self, question: str, context: str = "") -> str:
        """Reply options for a detected question; not streamed and not cancellable by generation."""
        if not question.strip():
            return ""
        return clean_output(await self._backend.suggest_replies(question, context, self.target_language))

    async def aclose(self) -> None:
        await self._backend.aclose()
