"""Lifecycle notifications for a render run.

Four event kinds, as typed values:
  Started              the run has begun (no payload)
  Progress(fraction)   0..1, non-decreasing, zero or more times
  Completed(output, usage)   terminal
  Failed(error)              terminal

Exactly one terminal event is delivered per run. After it, or after the
bus is closed by destroy(), every further emit is dropped.

Callers either register callbacks with EventBus.on("start" | "progress" |
"complete" | "error", handler), or consume RenderRun.events(), an
iterator that ends right after the terminal event.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Union

from .errors import ConfigError, RenderCancelled

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Started:
    kind = "start"


@dataclass(frozen=True)
class Progress:
    fraction: float
    kind = "progress"


@dataclass(frozen=True)
class Completed:
    output: Path
    usage: dict = field(default_factory=dict)
    kind = "complete"


@dataclass(frozen=True)
class Failed:
    error: BaseException
    kind = "error"


RenderEvent = Union[Started, Progress, Completed, Failed]

TERMINAL_EVENTS = (Completed, Failed)

EVENT_KINDS = {"start", "progress", "complete", "error"}

# Pushed to subscribers when the bus closes without a terminal event.
_CLOSED = object()


class EventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: dict[str, list[Callable]] = {kind: [] for kind in EVENT_KINDS}
        self._subscribers: list[queue.Queue] = []
        self._terminal: RenderEvent | None = None
        self._closed = False
        self._last_fraction = 0.0
        self._finished = threading.Event()

    @property
    def terminal(self) -> RenderEvent | None:
        return self._terminal

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, kind: str, handler: Callable) -> None:
        if kind not in EVENT_KINDS:
            raise ConfigError(f"Unknown event '{kind}'. Valid: {sorted(EVENT_KINDS)}")
        with self._lock:
            self._handlers[kind].append(handler)

    def off(self, kind: str, handler: Callable) -> None:
        with self._lock:
            if handler in self._handlers.get(kind, []):
                self._handlers[kind].remove(handler)

    def subscribe(self) -> queue.Queue:
        """A queue that receives every event emitted from now on."""
        q = queue.Queue()
        with self._lock:
            if self._terminal is not None:
                q.put(self._terminal)
            elif self._closed:
                q.put(_CLOSED)
            else:
                self._subscribers.append(q)
        return q

    def emit(self, event: RenderEvent) -> bool:
        """Deliver an event. Returns False when it was dropped."""
        with self._lock:
            if self._closed or self._terminal is not None:
                return False
            if isinstance(event, Progress):
                fraction = min(1.0, max(self._last_fraction, event.fraction))
                self._last_fraction = fraction
                event = Progress(fraction)
            if isinstance(event, TERMINAL_EVENTS):
                self._terminal = event
            handlers = list(self._handlers[event.kind])
            for q in self._subscribers:
                q.put(event)

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler for '%s' raised", event.kind)
        if self._terminal is event:
            self._finished.set()
        return True

    def close(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []
        for q in subscribers:
            q.put(_CLOSED)
        self._finished.set()

    def wait(self, timeout: float | None = None) -> RenderEvent | None:
        """Block until the run ends; the terminal event, or None if closed."""
        if not self._finished.wait(timeout):
            raise TimeoutError(f"Render did not finish within {timeout}s")
        return self._terminal


class RenderRun:
    """Handle returned by Composition.start()."""

    def __init__(self, bus: EventBus):
        self._bus = bus
        self._queue = bus.subscribe()

    @property
    def done(self) -> bool:
        return self._bus.terminal is not None or self._bus.closed

    def events(self, timeout: float | None = None) -> Iterator[RenderEvent]:
        """Yield events until the terminal one (inclusive).

        Single consumer: events are taken off one queue.
        Raises TimeoutError if no event arrives within `timeout` seconds.
        """
        while True:
            try:
                event = self._queue.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(f"No render event within {timeout}s") from None
            if event is _CLOSED:
                return
            yield event
            if isinstance(event, TERMINAL_EVENTS):
                return

    def wait(self, timeout: float | None = None) -> RenderEvent:
        """Block for the terminal event.

        Raises:
            TimeoutError: the caller's deadline passed first.
            RenderCancelled: the composition was destroyed mid-run.
        """
        terminal = self._bus.wait(timeout)
        if terminal is None:
            raise RenderCancelled("Composition was destroyed before the render finished")
        return terminal

    def result(self, timeout: float | None = None) -> Path:
        """Output path on success; re-raises the render error on failure."""
        terminal = self.wait(timeout)
        if isinstance(terminal, Failed):
            raise terminal.error
        return terminal.output
