from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Source(str, Enum):
    SYSTEM_CAPTION = "system_caption"
    MICROPHONE = "microphone"


class PipelineState(str, Enum):
    IDLE = "idle"
    SETTLING = "settling"
    TRANSLATING = "translating"
    CLASSIFYING = "classifying"
    EMITTED = "emitted"


class TranslationStatus(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class FailureKind(str, Enum):
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    EMPTY = "empty"


class QuestionType(str, Enum):
    DIRECT = "direct"
    WH_QUESTION = "wh_question"
    YES_NO = "yes_no"
    TAG_QUESTION = "tag_question"
    INDIRECT = "indirect"
    CHOICE = "choice"
    RHETORICAL = "rhetorical"


_TERMINAL_STATUSES = frozenset(
    {TranslationStatus.DONE, TranslationStatus.CANCELLED, TranslationStatus.FAILED}
)


@dataclass(frozen=True)
class CaptionTick:
    text: str
    source: Source = Source.SYSTEM_CAPTION


@dataclass(frozen=True)
class Utterance:
    text: str
    source: Source
    generation: int


@dataclass(frozen=True)
class QuestionTag:
    type: QuestionType
    reason: str
    text: str = ""


@dataclass
class TranslationResult:
    """Progress of one translate call.

    Only the translator that owns the call mutates it. Once the status is
    terminal (done, cancelled or failed) every mutator raises RuntimeError.
    """

    utterance: Utterance
    partial_text: str = ""
    final_text: str = ""
    status: TranslationStatus = TranslationStatus.PENDING
    failure: Optional[FailureKind] = None
    reason: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL_STATUSES

    def publish_partial(self, text: str) -> None:
        self._ensure_open()
        self.partial_text = text
        self.status = TranslationStatus.STREAMING

    def finish(self, final_text: str) -> None:
        self._ensure_open()
        self.final_text = final_text
        self.status = TranslationStatus.DONE

    def mark_cancelled(self) -> None:
        self._ensure_open()
        self.status = TranslationStatus.CANCELLED

    def mark_failed(self, kind: FailureKind, reason: str) -> None:
        self._ensure_open()
        self.failure = kind
        self.reason = reason
        self.status = TranslationStatus.FAILED

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise RuntimeError(
                f"translation for generation {self.utterance.generation} is already {self.status.value}"
            )


@dataclass(frozen=True)
class SessionRecord:
    timestamp: datetime
    source: Source
    original_text: str
    translated_text: str
    generation: int
    status: TranslationStatus
    question_tag: Optional[QuestionTag] = None
    failure: Optional[FailureKind] = None
    latency_s: float = 0.0

    @property
    def speaker(self) -> str:
        return "Teacher" if self.source is Source.SYSTEM_CAPTION else "Me"

    def to_payload(self) -> dict[str, Any]:
        return {
            "event_type": "record",
            "timestamp": self.timestamp.isoformat(timespec="milliseconds"),
            "source": self.source.value,
            "generation": self.generation,
            "original_text": self.original_text,
            "translated_text": self.translated_text,
            "status": self.status.value,
            "failure": self.failure.value if self.failure else "",
            "question_type": self.question_tag.type.value if self.question_tag else "",
            "question_reason": self.question_tag.reason if self.question_tag else "",
            "latency_s": self.latency_s,
        }


@dataclass(frozen=True)
class AssistantTrigger:
    question: str
    tag: QuestionTag
    record: SessionRecord
    context: tuple[SessionRecord, ...] = field(default_factory=tuple)

    def context_text(self) -> str:
        return "\n".join(f"{item.speaker}: {item.original_text}" for item in self.context)
