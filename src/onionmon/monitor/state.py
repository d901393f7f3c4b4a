"""Stream registry and traffic aggregator.

Implements:
 - StreamRecord: one open stream (target, byte counters, timestamps)
 - CounterSet / AggregateCounters: lifetime totals plus a windowed copy that
   the periodic reporter drains
 - StreamRegistry: id -> StreamRecord map and the counters, all behind one
   lock. Records exist only while the stream is open; a CLOSED/FAILED status
   finalizes the record and removes it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import threading
import time
from typing import Callable, Dict, List, Optional

from ..events.parser import StreamBandwidthEvent, StreamStatusEvent

__all__ = [
    "TERMINAL_STATUSES",
    "StreamRecord",
    "CounterSet",
    "AggregateCounters",
    "Finalization",
    "StatusOutcome",
    "WindowReport",
    "RegistrySnapshot",
    "StreamRegistry",
    "display_reason",
    "format_elapsed",
]

TERMINAL_STATUSES = frozenset({"CLOSED", "FAILED"})
_REASON_LABELS = {"DONE": "END"}


def display_reason(reason: str) -> str:
    return _REASON_LABELS.get(reason, reason)


def format_elapsed(seconds: float) -> str:
    """Render a duration rounded to milliseconds, e.g. ``150ms``, ``1.234s``, ``2m3.5s``."""
    ms = int(round(max(seconds, 0.0) * 1000))
    if ms == 0:
        return "0s"
    if ms < 1000:
        return f"{ms}ms"
    hours, rem = divmod(ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs = f"{rem / 1000:.3f}".rstrip("0").rstrip(".")
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


@dataclass
class StreamRecord:
    stream_id: str
    target: str = ""
    bytes_sent: int = 0
    bytes_received: int = 0
    started_at: float = field(default_factory=time.time)
    started_monotonic: float = 0.0
    finished_at: Optional[float] = None
    closed: bool = False


@dataclass
class CounterSet:
    total_sent: int = 0
    total_received: int = 0
    streams_opened: int = 0

    def add_traffic(self, sent: int, received: int):
        self.total_sent += sent
        self.total_received += received

    def reset(self):
        self.total_sent = 0
        self.total_received = 0
        self.streams_opened = 0


@dataclass
class AggregateCounters:
    lifetime: CounterSet = field(default_factory=CounterSet)
    window: CounterSet = field(default_factory=CounterSet)
    active_streams: int = 0


@dataclass(frozen=True)
class Finalization:
    stream_id: str
    bytes_sent: int
    bytes_received: int
    elapsed_sec: float
    target: str
    reason: str
    # lifetime totals right after this stream was removed
    total_sent: int
    total_received: int
    total_streams: int
    active_streams: int

    @property
    def display_reason(self) -> str:
        return display_reason(self.reason)

    def summary_line(self) -> str:
        return (
            f"Stream {self.stream_id} FINISHED: S:{self.bytes_sent} R:{self.bytes_received} bytes"
            f" | {format_elapsed(self.elapsed_sec)} | To: {self.target} ({self.display_reason})"
        )

    def totals_line(self) -> str:
        return (
            f"Total now: S:{self.total_sent} R:{self.total_received} bytes"
            f" | All Streams: {self.total_streams} | Active: {self.active_streams}"
        )


@dataclass(frozen=True)
class StatusOutcome:
    stream_id: str
    status: str
    target: str
    opened: bool
    finalization: Optional[Finalization] = None

    def status_line(self) -> str:
        return f"Stream {self.stream_id} {self.status} | Target: {self.target}"


@dataclass(frozen=True)
class WindowReport:
    total_sent: int
    total_received: int
    streams_opened: int
    active_streams: int


@dataclass(frozen=True)
class RegistrySnapshot:
    lifetime: CounterSet
    window: CounterSet
    active_streams: int
    streams: Dict[str, StreamRecord]


class StreamRegistry:
    """Open streams plus aggregate counters, guarded by a single lock.

    ``hold()`` exposes the lock so a caller can emit output for an outcome
    atomically with the mutation that produced it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._lock = threading.Lock()
        self._clock = clock
        self._streams: Dict[str, StreamRecord] = {}
        self.counters = AggregateCounters()

    def hold(self) -> threading.Lock:
        return self._lock

    # callers below must hold the lock (see *_locked) or use the public wrappers

    def apply_status_locked(self, event: StreamStatusEvent) -> Optional[StatusOutcome]:
        """Run one transition; None when a terminal status names an unknown id."""
        opened = False
        rec = self._streams.get(event.stream_id)
        if rec is None:
            if event.status in TERMINAL_STATUSES:
                # already finalized (duplicate CLOSED) or never seen
                return None
            rec = StreamRecord(stream_id=event.stream_id, started_monotonic=self._clock())
            self._streams[event.stream_id] = rec
            self.counters.lifetime.streams_opened += 1
            self.counters.window.streams_opened += 1
            self.counters.active_streams += 1
            opened = True
        if event.target is not None:
            rec.target = event.target
        fin = None
        if event.status in TERMINAL_STATUSES and not rec.closed:
            fin = self._finalize_locked(rec, event.reason)
        return StatusOutcome(
            stream_id=rec.stream_id,
            status=event.status,
            target=rec.target,
            opened=opened,
            finalization=fin,
        )

    def _finalize_locked(self, rec: StreamRecord, reason: str) -> Finalization:
        rec.closed = True
        rec.finished_at = time.time()
        self.counters.active_streams -= 1
        elapsed = self._clock() - rec.started_monotonic
        del self._streams[rec.stream_id]
        life = self.counters.lifetime
        return Finalization(
            stream_id=rec.stream_id,
            bytes_sent=rec.bytes_sent,
            bytes_received=rec.bytes_received,
            elapsed_sec=elapsed,
            target=rec.target,
            reason=reason,
            total_sent=life.total_sent,
            total_received=life.total_received,
            total_streams=life.streams_opened,
            active_streams=self.counters.active_streams,
        )

    def apply_bandwidth_locked(self, event: StreamBandwidthEvent) -> bool:
        rec = self._streams.get(event.stream_id)
        if rec is None:
            return False
        rec.bytes_sent += event.sent
        rec.bytes_received += event.received
        self.counters.lifetime.add_traffic(event.sent, event.received)
        self.counters.window.add_traffic(event.sent, event.received)
        return True

    def drain_window_locked(self) -> WindowReport:
        w = self.counters.window
        report = WindowReport(
            total_sent=w.total_sent,
            total_received=w.total_received,
            streams_opened=w.streams_opened,
            active_streams=self.counters.active_streams,
        )
        w.reset()
        return report

    def apply_status(self, event: StreamStatusEvent) -> Optional[StatusOutcome]:
        with self._lock:
            return self.apply_status_locked(event)

    def apply_bandwidth(self, event: StreamBandwidthEvent) -> bool:
        with self._lock:
            return self.apply_bandwidth_locked(event)

    def drain_window(self) -> WindowReport:
        with self._lock:
            return self.drain_window_locked()

    def get(self, stream_id: str) -> Optional[StreamRecord]:
        with self._lock:
            rec = self._streams.get(stream_id)
            return StreamRecord(**rec.__dict__) if rec else None

    def stream_ids(self) -> List[str]:
        with self._lock:
            return list(self._streams)

    def __len__(self) -> int:
        with self._lock:
            return len(self._streams)

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            c = self.counters
            return RegistrySnapshot(
                lifetime=CounterSet(**c.lifetime.__dict__),
                window=CounterSet(**c.window.__dict__),
                active_streams=c.active_streams,
                streams={k: StreamRecord(**v.__dict__) for k, v in self._streams.items()},
            )
