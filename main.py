from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Optional, TextIO

from dotenv import load_dotenv

from config_utils import PipelineSettings
from models import AssistantTrigger, SessionRecord, Source, TranslationResult
from pipeline import PipelineCoordinator
from session_store import SessionRecorder
from translation_backends import build_backend
from translation_service import StreamingTranslator, TranslationError

MIC_PREFIX = "mic:"


def parse_caption_line(line: str) -> tuple[str, Source]:
    """One stdin line is one full caption buffer; a mic: prefix marks the microphone."""
    text = line.rstrip("\r\n")
    source = Source.SYSTEM_CAPTION
    if text.lower().startswith(MIC_PREFIX):
        text = text[len(MIC_PREFIX) :]
        source = Source.MICROPHONE
    return text.replace("\\n", "\n"), source


class CaptionTranslatorController:
    def __init__(self, settings: PipelineSettings, output: TextIO = sys.stdout) -> None:
        self.settings = settings
        self.output = output
        self.translator = StreamingTranslator(
            build_backend(settings),
            target_language=settings.target_language,
            timeout_s=settings.translation_timeout_s,
        )
        self.recorder = SessionRecorder(
            enabled=settings.session_log_enabled,
            output_path=settings.session_log_path,
            summary_path=settings.session_summary_path,
            append_mode=settings.session_append_mode,
        )
        self.coordinator = PipelineCoordinator(
            self.translator,
            quiet_period_s=settings.quiet_period_s,
            translation_timeout_s=settings.translation_timeout_s,
            context_window=settings.context_window,
            empty_placeholder=settings.empty_placeholder,
            newline_threshold=settings.newline_threshold,
            on_partial=self._on_partial,
        )
        self.coordinator.add_record_sink(self.recorder.record)
        self.coordinator.add_record_sink(self._on_record)
        self.coordinator.add_question_sink(self.recorder.record_question)
        self.coordinator.add_question_sink(self._on_question)
        self._reply_tasks: set[asyncio.Task[None]] = set()

    async def run(self, stream: Optional[TextIO] = None) -> None:
        stream = stream or sys.stdin
        if not await self.translator.backend.is_available():
            logging.warning("translation_backend_unreachable backend=%s", self.settings.backend)
        self.recorder.start_session()
        await self.coordinator.start()
        try:
            while True:
                line = await asyncio.to_thread(stream.readline)
                if not line:
                    break
                text, source = parse_caption_line(line)
                self.coordinator.submit(text, source)
            await self.coordinator.drain()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        await self.coordinator.stop()
        if self._reply_tasks:
            await asyncio.gather(*list(self._reply_tasks), return_exceptions=True)
        if self.settings.summarize_on_exit and self.coordinator.transcript:
            try:
                summary = await self.coordinator.summarize_session()
            except Exception as exc:  # noqa: BLE001 - shutdown boundary
                logging.warning("session_summary_failed error=%s", exc)
            else:
                self._write_line(summary)
        stats = self.recorder.finalize_session()
        if stats:
            logging.info("session_summary %s", stats)
        await self.translator.aclose()

    def _on_partial(self, result: TranslationResult) -> None:
        logging.debug("partial generation=%d text=%r", result.utterance.generation, result.partial_text[:120])

    def _on_record(self, record: SessionRecord) -> None:
        marker = f" [{record.question_tag.type.value}]" if record.question_tag else ""
        self._write_line(
            f"[{record.timestamp:%H:%M:%S}] {record.speaker}: {record.original_text}{marker}\n"
            f"    -> {record.translated_text}"
        )

    def _on_question(self, trigger: AssistantTrigger) -> None:
        self._write_line(f"?? {trigger.question}\n{trigger.context_text()}")
        if self.settings.assistant_replies_enabled:
            task = asyncio.create_task(self._suggest_replies(trigger), name=f"replies-{trigger.record.generation}")
            self._reply_tasks.add(task)
            task.add_done_callback(self._reply_tasks.discard)

    async def _suggest_replies(self, trigger: AssistantTrigger) -> None:
        try:
            replies = await self.translator.suggest_replies(trigger.question, trigger.context_text())
        except TranslationError as exc:
            logging.warning("reply_suggestion_failed generation=%d error=%s", trigger.record.generation, exc)
            return
        except Exception:  # noqa: BLE001 - assistant boundary
            logging.exception("reply_suggestion_crashed generation=%d", trigger.record.generation)
            return
        if replies:
            self._write_line(f"Reply options for: {trigger.question}\n{replies}")

    def _write_line(self, text: str) -> None:
        self.output.write(text + "\n")
        self.output.flush()


def main() -> None:
    load_dotenv()
    log_level_name = (os.getenv("LOG_LEVEL", "INFO") or "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(message)s")

    settings = PipelineSettings.from_env()
    controller = CaptionTranslatorController(settings)
    try:
        asyncio.run(controller.run())
    except KeyboardInterrupt:
        logging.info("interrupted")


if __name__ == "__main__":
    main()
