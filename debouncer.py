from __future__ import annotations

import asyncio
import threading
from typing import Callable, Optional

from models import Source, Utterance

SettledCallback = Callable[[Utterance], None]


class Debouncer:
    """Coalesce caption updates into one settled utterance per quiet period.

    Every accepted notify restarts the timer. Only a timer that expires
    without another notify settles, and each settle takes the next
    generation number. All mutable state sits behind one lock so producers
    on other threads can call notify_threadsafe.
    """

    def __init__(
        self,
        quiet_period_s: float = 0.5,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._quiet_period_s = quiet_period_s
        self._loop = loop or asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._subscribers: list[SettledCallback] = []
        self._pending: Optional[tuple[str, Source]] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._revision = 0
        self._generation = 0
        self._last_settled: dict[Source, str] = {}

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def subscribe(self, callback: SettledCallback) -> None:
        self._subscribers.append(callback)

    def notify(self, text: str, source: Source = Source.SYSTEM_CAPTION) -> bool:
        cleaned = (text or "").strip()
        if not cleaned:
            return False
        timer: Optional[asyncio.TimerHandle] = None
        with self._lock:
            rewound = cleaned == self._last_settled.get(source)
            if rewound:
                # The source went back to what already settled; its newer text is gone.
                if self._pending is not None and self._pending[1] is source:
                    self._pending = None
                    self._revision += 1
                    timer, self._timer = self._timer, None
            else:
                self._pending = (cleaned, source)
                self._revision += 1
                revision = self._revision
        if rewound:
            if timer is not None:
                self._run_on_loop(timer.cancel)
            return False
        self._run_on_loop(self._arm, revision)
        return True

    def notify_threadsafe(self, text: str, source: Source = Source.SYSTEM_CAPTION) -> None:
        self._loop.call_soon_threadsafe(self.notify, text, source)

    def cancel(self) -> None:
        with self._lock:
            self._pending = None
            self._revision += 1
            timer, self._timer = self._timer, None
        if timer is not None:
            self._run_on_loop(timer.cancel)

    def _run_on_loop(self, callback: Callable[..., None], *args: object) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            callback(*args)
        else:
            self._loop.call_soon_threadsafe(callback, *args)

    def _arm(self, revision: int) -> None:
        with self._lock:
            # A newer notify owns the timer.
            if revision != self._revision:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._loop.call_later(self._quiet_period_s, self._fire, revision)

    def _fire(self, revision: int) -> None:
        with self._lock:
            if revision != self._revision or self._pending is None:
                return
            text, source = self._pending
            self._pending = None
            self._timer = None
            if text == self._last_settled.get(source):
                return
            self._generation += 1
            self._last_settled[source] = text
            utterance = Utterance(text=text, source=source, generation=self._generation)
        for callback in list(self._subscribers):
            callback(utterance)
