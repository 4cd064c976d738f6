from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from models import AssistantTrigger, FailureKind, SessionRecord, TranslationStatus


def _percentile(values: list[float], ratio: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]
    index = (len(ordered) - 1) * ratio
    lower = int(index)
    upper = min(lower + 1, len(ordered) - 1)
    if lower == upper:
        return ordered[lower]
    weight = index - lower
    return ordered[lower] * (1.0 - weight) + ordered[upper] * weight


class SessionRecorder:
    """Appends emitted records to a JSONL file and writes a session summary."""

    def __init__(self, enabled: bool, output_path: str, summary_path: str, append_mode: bool = False) -> None:
        self._enabled = enabled
        self._output_path = Path(output_path)
        self._summary_path = Path(summary_path)
        self._append_mode = append_mode
        self._session_started_at: Optional[datetime] = None
        self._latencies: list[float] = []
        self._records_logged = 0
        self._failed_records = 0
        self._timeouts = 0
        self._empty_records = 0
        self._questions = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_session(self) -> None:
        if not self._enabled:
            return
        self._session_started_at = datetime.now()
        self._latencies.clear()
        self._records_logged = 0
        self._failed_records = 0
        self._timeouts = 0
        self._empty_records = 0
        self._questions = 0
        self._ensure_parent_dirs()
        if not self._append_mode:
            self._output_path.write_text("", encoding="utf-8")

    def record(self, record: SessionRecord) -> None:
        if not self._enabled:
            return
        self._latencies.append(record.latency_s)
        self._records_logged += 1
        if record.status is TranslationStatus.FAILED:
            self._failed_records += 1
        if record.failure is FailureKind.TIMEOUT:
            self._timeouts += 1
        if record.failure is FailureKind.EMPTY:
            self._empty_records += 1
        self._append_jsonl(record.to_payload())

    def record_question(self, trigger: AssistantTrigger) -> None:
        if not self._enabled:
            return
        self._questions += 1
        self._append_jsonl(
            {
                "event_type": "question",
                "recorded_at": datetime.now().isoformat(timespec="milliseconds"),
                "generation": trigger.record.generation,
                "question": trigger.question,
                "question_type": trigger.tag.type.value,
                "reason": trigger.tag.reason,
                "context": trigger.context_text(),
            }
        )

    def snapshot(self) -> dict[str, float]:
        if not self._latencies:
            return {"avg_latency_s": 0.0, "p95_latency_s": 0.0, "failure_rate_pct": 0.0}
        return {
            "avg_latency_s": sum(self._latencies) / len(self._latencies),
            "p95_latency_s": _percentile(self._latencies, 0.95),
            "failure_rate_pct": (self._failed_records / max(1, self._records_logged)) * 100.0,
        }

    def finalize_session(self) -> dict[str, Any]:
        if not self._enabled:
            return {}
        now = datetime.now()
        started = self._session_started_at or now
        summary = {
            "session_started_at": started.isoformat(timespec="milliseconds"),
            "session_ended_at": now.isoformat(timespec="milliseconds"),
            "session_duration_s": max(0.0, (now - started).total_seconds()),
            "records_logged": self._records_logged,
            "failed_records": self._failed_records,
            "timeouts": self._timeouts,
            "empty_records": self._empty_records,
            "questions_detected": self._questions,
            "latency_avg_s": sum(self._latencies) / len(self._latencies) if self._latencies else 0.0,
            "latency_p50_s": _percentile(self._latencies, 0.50),
            "latency_p95_s": _percentile(self._latencies, 0.95),
            "latency_max_s": max(self._latencies) if self._latencies else 0.0,
        }
        self._write_summary(summary)
        return summary

    def _ensure_parent_dirs(self) -> None:
        self._output_path.parent.mkdir(parents=True, exist_ok=True)
        self._summary_path.parent.mkdir(parents=True, exist_ok=True)

    def _append_jsonl(self, payload: dict[str, Any]) -> None:
        self._ensure_parent_dirs()
        line = json.dumps(payload, ensure_ascii=False)
        with self._output_path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def _write_summary(self, summary: dict[str, Any]) -> None:
        self._ensure_parent_dirs()
        with self._summary_path.open("w", encoding="utf-8") as handle:
            json.dump(summary, handle, ensure_ascii=False, indent=2)
