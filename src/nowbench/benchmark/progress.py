"""
Progress events and sinks
=========================

The benchmark pushes events into a :class:`ProgressReporter` and never waits
on a consumer. Every unit produces a ``running`` event at 0 percent, further
``running`` events with strictly increasing percentages, and exactly one
terminal ``completed`` or ``failed`` event. One :class:`AggregateEvent`
closes the run.
"""

from __future__ import annotations

import enum
import logging
import queue
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from nowbench.benchmark.verdict import RunningTotals
from nowbench.util.logging import log_structured_event

_PROGRESS_LOG = logging.getLogger("nowbench.benchmark.progress")


class UnitStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class UnitStatusEvent:
    unit_id: str
    display_name: str
    status: UnitStatus
    percent: int
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (UnitStatus.COMPLETED, UnitStatus.FAILED)


@dataclass(frozen=True)
class AggregateEvent:
    totals: RunningTotals
    failed_units: int = 0
    cancelled: bool = False

    @property
    def success_rate(self) -> float:
        return self.totals.success_rate

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.totals.as_dict())
        payload["failed_units"] = self.failed_units
        payload["cancelled"] = self.cancelled
        return payload


class ProgressReporter(Protocol):
    def unit_status(self, event: UnitStatusEvent) -> None: ...

    def run_summary(self, event: AggregateEvent) -> None: ...


class NullReporter:
    def unit_status(self, event: UnitStatusEvent) -> None:
        return None

    def run_summary(self, event: AggregateEvent) -> None:
        return None


class LoggingReporter:
    def __init__(self, logger: logging.Logger | None = None, *, level: int = logging.INFO):
        self.logger = logger or _PROGRESS_LOG
        self.level = level

    def unit_status(self, event: UnitStatusEvent) -> None:
        level = logging.WARNING if event.status is UnitStatus.FAILED else self.level
        if event.status is UnitStatus.RUNNING and event.percent > 0:
            level = logging.DEBUG
        log_structured_event(
            self.logger,
            level,
            "unit_status",
            unit_id=event.unit_id,
            status=event.status.value,
            percent=event.percent,
            error=event.error,
        )

    def run_summary(self, event: AggregateEvent) -> None:
        log_structured_event(self.logger, self.level, "run_summary", **event.as_dict())


class RecordingReporter:
    """Keeps every event in memory, in arrival order."""

    def __init__(self):
        self.events: list[UnitStatusEvent] = []
        self.summaries: list[AggregateEvent] = []

    def unit_status(self, event: UnitStatusEvent) -> None:
        self.events.append(event)

    def run_summary(self, event: AggregateEvent) -> None:
        self.summaries.append(event)

    def events_for(self, unit_id: str) -> list[UnitStatusEvent]:
        return [event for event in self.events if event.unit_id == unit_id]


class QueueReporter:
    """Hands events to another thread through an unbounded queue."""

    def __init__(self, events: queue.SimpleQueue | None = None):
        self.queue = events if events is not None else queue.SimpleQueue()

    def unit_status(self, event: UnitStatusEvent) -> None:
        self.queue.put(event)

    def run_summary(self, event: AggregateEvent) -> None:
        self.queue.put(event)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def notify(reporter, method: str, event) -> None:
    try:
        getattr(reporter, method)(event)
    except Exception:
        _PROGRESS_LOG.warning("progress reporter %s.%s raised", type(reporter).__name__, method, exc_info=True)


class UnitProgress:
    """Per-unit emitter that enforces the event ordering for one unit."""

    def __init__(self, reporter, unit_id: str, display_name: str, *, clock=_utcnow):
        self.reporter = reporter if reporter is not None else NullReporter()
        self.unit_id = unit_id
        self.display_name = display_name
        self._clock = clock
        self.started_at: datetime | None = None
        self._last_percent = -1
        self._finished = False

    def _emit(self, status: UnitStatus, percent: int, *, ended_at=None, error=None) -> None:
        notify(
            self.reporter,
            "unit_status",
            UnitStatusEvent(
                unit_id=self.unit_id,
                display_name=self.display_name,
                status=status,
                percent=percent,
                started_at=self.started_at,
                ended_at=ended_at,
                error=error,
            ),
        )

    def queued(self) -> None:
        self._emit(UnitStatus.QUEUED, 0)

    def start(self) -> None:
        self.started_at = self._clock()
        self.running(0)

    def running(self, percent) -> None:
        if self._finished:
            return
        value = max(0, min(99, int(percent)))
        if value <= self._last_percent:
            return
        self._last_percent = value
        self._emit(UnitStatus.RUNNING, value)

    def completed(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._emit(UnitStatus.COMPLETED, 100, ended_at=self._clock())

    def failed(self, message: str) -> None:
        if self._finished:
            return
        self._finished = True
        self._emit(UnitStatus.FAILED, max(self._last_percent, 0), ended_at=self._clock(), error=message)

    def style_callback(self, start_percent: float, span_percent: float):
        """Map ``(attempt, total)`` callbacks onto a slice of the unit's progress bar."""

        def _on_progress(attempt: int, total: int) -> None:
            if total <= 0:
                return
            self.running(start_percent + span_percent * attempt / total)

        return _on_progress
