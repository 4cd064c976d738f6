from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from datetime import datetime
from time import perf_counter
from typing import Callable, Optional

from debouncer import Debouncer
from models import (
    AssistantTrigger,
    CaptionTick,
    FailureKind,
    PipelineState,
    SessionRecord,
    Source,
    TranslationResult,
    TranslationStatus,
    Utterance,
)
from question_classifier import classify
from segmenter import MEDIUM_THRESHOLD, CaptionSegmenter
from translation_service import CancellationHandle, StreamingTranslator

PartialSink = Callable[[TranslationResult], None]
RecordSink = Callable[[SessionRecord], None]
QuestionSink = Callable[[AssistantTrigger], None]


class PipelineCoordinator:
    """Caption ticks in, translated and classified session records out.

    Settled utterances are consumed by a single task. The coordinator owns
    the current generation and the one active translate handle; both change
    together under one lock, and the superseded call is cancelled before the
    new one starts.
    """

    def __init__(
        self,
        translator: StreamingTranslator,
        *,
        quiet_period_s: float = 0.5,
        translation_timeout_s: float = 20.0,
        context_window: int = 5,
        empty_placeholder: str = "(no translation)",
        newline_threshold: int = MEDIUM_THRESHOLD,
        authoritative_source: Source = Source.SYSTEM_CAPTION,
        on_partial: Optional[PartialSink] = None,
        on_record: Optional[RecordSink] = None,
        on_question: Optional[QuestionSink] = None,
    ) -> None:
        self.translator = translator
        self.quiet_period_s = quiet_period_s
        self.translation_timeout_s = translation_timeout_s
        self.empty_placeholder = empty_placeholder
        self.authoritative_source = authoritative_source
        self._segmenters = {source: CaptionSegmenter(newline_threshold) for source in Source}
        self._partial_sinks: list[PartialSink] = [on_partial] if on_partial else []
        self._record_sinks: list[RecordSink] = [on_record] if on_record else []
        self._question_sinks: list[QuestionSink] = [on_question] if on_question else []
        self._history: deque[SessionRecord] = deque(maxlen=max(1, context_window))
        self._transcript: list[SessionRecord] = []
        self._lock = threading.Lock()
        self._current_generation = 0
        self._active: Optional[CancellationHandle] = None
        self._settled_at: dict[int, float] = {}
        self._calls: set[asyncio.Task[None]] = set()
        self._debouncer: Optional[Debouncer] = None
        self._settled: Optional[asyncio.Queue[Utterance]] = None
        self._consumer: Optional[asyncio.Task[None]] = None
        self._phase = PipelineState.IDLE
        self.paused = False
        self.running = False

    @property
    def state(self) -> PipelineState:
        """SETTLING while any text waits to settle, otherwise the phase of the latest call."""
        if self._debouncer is not None and self._debouncer.has_pending:
            return PipelineState.SETTLING
        if self._settled is not None and not self._settled.empty():
            return PipelineState.SETTLING
        return self._phase

    @property
    def current_generation(self) -> int:
        with self._lock:
            return self._current_generation

    @property
    def transcript(self) -> tuple[SessionRecord, ...]:
        return tuple(self._transcript)

    def add_partial_sink(self, sink: PartialSink) -> None:
        self._partial_sinks.append(sink)

    def add_record_sink(self, sink: RecordSink) -> None:
        self._record_sinks.append(sink)

    def add_question_sink(self, sink: QuestionSink) -> None:
        self._question_sinks.append(sink)

    async def start(self) -> None:
        if self.running:
            return
        self._settled = asyncio.Queue()
        self._debouncer = Debouncer(self.quiet_period_s, loop=asyncio.get_running_loop())
        self._debouncer.subscribe(self._settled.put_nowait)
        self.running = True
        self._consumer = asyncio.create_task(self._consume_settled(), name="settle-consumer")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._debouncer is not None:
            self._debouncer.cancel()
        with self._lock:
            active, self._active = self._active, None
        if active is not None:
            active.cancel()
        tasks = [task for task in (self._consumer, *self._calls) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._consumer = None
        self._calls.clear()
        self._phase = PipelineState.IDLE

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until nothing is settling and no translate call is running."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (timeout if timeout is not None else self.translation_timeout_s)
        while loop.time() < deadline:
            settling = (self._debouncer is not None and self._debouncer.has_pending) or (
                self._settled is not None and not self._settled.empty()
            )
            pending = [task for task in self._calls if not task.done()]
            if not settling and not pending:
                return
            if pending and not settling:
                await asyncio.wait(pending, timeout=max(0.0, deadline - loop.time()))
                continue
            await asyncio.sleep(0.01)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def submit_tick(self, tick: CaptionTick) -> bool:
        return self.submit(tick.text, tick.source)

    def submit(self, text: str, source: Source = Source.SYSTEM_CAPTION) -> bool:
        """Feed one caption buffer snapshot. Returns False when nothing changed."""
        if not self.running or self.paused or self._debouncer is None:
            return False
        fragment, changed = self._segmenters[source].extract(text)
        if not changed:
            return False
        return self._debouncer.notify(fragment, source)

    def recent_context(self) -> tuple[SessionRecord, ...]:
        return tuple(self._history)

    def context_text(self) -> str:
        return "\n".join(f"{record.speaker}: {record.original_text}" for record in self._history)

    async def summarize_session(self) -> str:
        lines = [f"{record.speaker}: {record.original_text}" for record in self._transcript]
        if not lines:
            return ""
        return await self.translator.summarize("\n".join(lines))

    async def _consume_settled(self) -> None:
        assert self._settled is not None
        while True:
            utterance = await self._settled.get()
            self._begin(utterance)

    def _begin(self, utterance: Utterance) -> None:
        handle = CancellationHandle(utterance.generation)
        with self._lock:
            previous, self._active = self._active, handle
            self._current_generation = utterance.generation
            self._settled_at[utterance.generation] = perf_counter()
            if previous is not None:
                previous.cancel()
        if previous is not None:
            logging.debug(
                "translation_superseded generation=%d by=%d", previous.generation, utterance.generation
            )
        logging.info(
            "settled generation=%d source=%s text=%r",
            utterance.generation,
            utterance.source.value,
            utterance.text[:120],
        )
        self._phase = PipelineState.TRANSLATING
        task = asyncio.create_task(self._run_call(utterance, handle), name=f"translate-{utterance.generation}")
        handle.attach(task)
        self._calls.add(task)
        task.add_done_callback(self._calls.discard)

    def _is_current(self, handle: CancellationHandle) -> bool:
        with self._lock:
            return not handle.cancelled and handle.generation == self._current_generation

    def _publish_partial(self, handle: CancellationHandle, result: TranslationResult) -> None:
        if not self._is_current(handle):
            return
        for sink in list(self._partial_sinks):
            try:
                sink(result)
            except Exception:  # noqa: BLE001 - collaborator boundary
                logging.exception("partial_sink_failed generation=%d", handle.generation)

    async def _run_call(self, utterance: Utterance, handle: CancellationHandle) -> None:
        try:
            result = await self.translator.translate(
                utterance,
                lambda partial: self._publish_partial(handle, partial),
                handle,
                timeout_s=self.translation_timeout_s,
            )
        except asyncio.CancelledError:
            if handle.cancelled:
                logging.debug("translation_cancelled generation=%d", utterance.generation)
                return
            raise
        except Exception as exc:  # noqa: BLE001 - pipeline boundary
            logging.exception("translation_crashed generation=%d", utterance.generation)
            result = TranslationResult(utterance=utterance)
            result.mark_failed(FailureKind.UNAVAILABLE, str(exc) or exc.__class__.__name__)
        finally:
            with self._lock:
                if self._active is handle:
                    self._active = None
                settled_at = self._settled_at.pop(utterance.generation, None)

        if result.status is TranslationStatus.CANCELLED or not self._is_current(handle):
            logging.debug("translation_discarded generation=%d", utterance.generation)
            if self.current_generation == utterance.generation:
                self._phase = PipelineState.IDLE
            return

        if result.status is TranslationStatus.FAILED:
            logging.warning(
                "translation_failed generation=%d failure=%s reason=%s",
                utterance.generation,
                result.failure.value if result.failure else "",
                result.reason,
            )
        latency = perf_counter() - settled_at if settled_at is not None else 0.0
        self._phase = PipelineState.CLASSIFYING
        self._emit(utterance, result, latency)

    def _display_text(self, result: TranslationResult) -> str:
        if result.status is TranslationStatus.DONE:
            return result.final_text
        if result.failure is FailureKind.EMPTY:
            return self.empty_placeholder
        if result.failure is FailureKind.TIMEOUT:
            return "[Error: timed out]"
        return f"[Error: {result.reason}]"

    def _emit(self, utterance: Utterance, result: TranslationResult, latency: float) -> None:
        tag = classify(utterance.text)
        record = SessionRecord(
            timestamp=datetime.now(),
            source=utterance.source,
            original_text=utterance.text,
            translated_text=self._display_text(result),
            generation=utterance.generation,
            status=result.status,
            question_tag=tag,
            failure=result.failure,
            latency_s=latency,
        )
        self._history.append(record)
        self._transcript.append(record)
        self._phase = PipelineState.EMITTED
        for sink in list(self._record_sinks):
            try:
                sink(record)
            except Exception:  # noqa: BLE001 - collaborator boundary
                logging.exception("record_sink_failed generation=%d", record.generation)

        if tag is not None and utterance.source is self.authoritative_source:
            logging.info(
                "question_detected generation=%d type=%s reason=%s",
                utterance.generation,
                tag.type.value,
                tag.reason,
            )
            trigger = AssistantTrigger(
                question=utterance.text,
                tag=tag,
                record=record,
                context=self.recent_context(),
            )
            for sink in list(self._question_sinks):
                try:
                    sink(trigger)
                except Exception:  # noqa: BLE001 - collaborator boundary
                    logging.exception("question_sink_failed generation=%d", record.generation)
        with self._lock:
            idle = self._active is None
        if idle:
            self._phase = PipelineState.IDLE
