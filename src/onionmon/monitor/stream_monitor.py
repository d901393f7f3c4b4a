"""Event loop and periodic reporter over a control-port connection.

StreamMonitor owns one StreamRegistry. After the setup exchange it runs two
daemon threads:
  - onionmon-events: read line -> parse -> registry transition -> output
  - onionmon-report: every REPORT_INTERVAL_SEC drain the windowed counters

Console and audit writes happen while the registry lock is held so the lines
for one event are never interleaved with another event's; both sinks are
queue-backed, so this never blocks on the terminal or the disk.
"""
from __future__ import annotations
import threading
from typing import Optional, Protocol

from ..control import protocol
from ..errors import ConnectError, TransportClosed
from ..events.parser import StreamBandwidthEvent, StreamStatusEvent, parse_line
from ..obs.prom import MonitorMetrics
from ..utils import console as colors
from ..utils.console import Console
from ..utils.logging import get_logger
from .state import StatusOutcome, StreamRegistry, WindowReport

REPORT_INTERVAL_SEC = 600.0
BYTES_PER_MB = 1048576.0

log = get_logger()


class LineSink(Protocol):
    def write(self, line: str) -> None: ...


class ControlTransport(Protocol):
    def write_line(self, line: str) -> None: ...
    def read_line(self) -> str: ...
    def close(self) -> None: ...


def format_report(report: WindowReport, interval_sec: float = REPORT_INTERVAL_SEC) -> str:
    sent_mb = report.total_sent / BYTES_PER_MB
    recv_mb = report.total_received / BYTES_PER_MB
    return (
        f"--- {interval_sec / 60:g} min Report | Sent: {sent_mb:.2f} MB ({report.total_sent} bytes)"
        f" | Received: {recv_mb:.2f} MB ({report.total_received} bytes)"
        f" | Total Streams: {report.streams_opened} | Active Streams: {report.active_streams} ---"
    )


class StreamMonitor:
    def __init__(
        self,
        transport: ControlTransport,
        audit: LineSink,
        console: Optional[Console] = None,
        metrics: Optional[MonitorMetrics] = None,
        registry: Optional[StreamRegistry] = None,
        report_interval: float = REPORT_INTERVAL_SEC,
    ):
        self.transport = transport
        self.audit = audit
        self.console = console
        self.metrics = metrics or MonitorMetrics()
        self.registry = registry or StreamRegistry()
        self.report_interval = report_interval
        self.error: Optional[TransportClosed] = None
        self._stop = threading.Event()
        self._loop_done = threading.Event()
        self._event_thread: Optional[threading.Thread] = None
        self._report_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------ setup
    def start(self, cookie: bytes, events=protocol.DEFAULT_EVENTS):
        """Authenticate, subscribe, then launch both threads.

        Setup errors propagate; no thread is started unless both replies are OK.
        """
        try:
            protocol.authenticate(self.transport, cookie)
            log.info("Authenticated with control port")
            protocol.set_events(self.transport, events)
        except TransportClosed as e:
            raise ConnectError(f"control connection lost during setup: {e}") from e
        log.info("Subscribed to %s", " ".join(events))
        self.start_threads()

    def start_threads(self):
        self._event_thread = threading.Thread(target=self._event_loop, name="onionmon-events", daemon=True)
        self._report_thread = threading.Thread(target=self._report_loop, name="onionmon-report", daemon=True)
        self._event_thread.start()
        self._report_thread.start()

    # ------------------------------------------------------------------ shutdown
    def stop(self):
        self._stop.set()
        # unblocks the reader's pending read_line()
        self.transport.close()

    def join(self, timeout: Optional[float] = None):
        for t in (self._event_thread, self._report_thread):
            if t is not None:
                t.join(timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the event loop has ended; True if it did."""
        return self._loop_done.wait(timeout)

    @property
    def running(self) -> bool:
        return self._event_thread is not None and not self._loop_done.is_set()

    # ------------------------------------------------------------------ event loop
    def _event_loop(self):
        try:
            while not self._stop.is_set():
                try:
                    line = self.transport.read_line()
                except TransportClosed as e:
                    self._on_transport_closed(e)
                    return
                try:
                    self.handle_line(line)
                except Exception:
                    log.exception("failed to dispatch line: %r", line)
        finally:
            self._loop_done.set()

    def _on_transport_closed(self, err: TransportClosed):
        if self._stop.is_set():
            log.info("Event loop stopped")
            return
        self.error = err
        msg = f"Error reading from Tor control port: {err}"
        log.error(msg)
        if self.console:
            self.console.line(msg, colors.RED)
        self.audit.write(msg)

    def handle_line(self, line: str):
        ev = parse_line(line)
        if isinstance(ev, StreamStatusEvent):
            self.handle_status(ev)
        elif isinstance(ev, StreamBandwidthEvent):
            self.handle_bandwidth(ev)

    def handle_status(self, ev: StreamStatusEvent) -> Optional[StatusOutcome]:
        with self.registry.hold():
            out = self.registry.apply_status_locked(ev)
            if out is not None:
                self._emit_status(out)
        return out

    def handle_bandwidth(self, ev: StreamBandwidthEvent) -> bool:
        with self.registry.hold():
            accepted = self.registry.apply_bandwidth_locked(ev)
            if accepted:
                self.metrics.observe_traffic(ev.sent, ev.received)
        return accepted

    def _emit_status(self, out: StatusOutcome):
        if out.opened:
            self.metrics.observe_opened(self.registry.counters.active_streams)
        if self.console:
            self.console.stream_status(out.stream_id, out.status, out.target)
        self.audit.write(out.status_line())
        fin = out.finalization
        if fin is None:
            return
        self.metrics.observe_finalized(fin.reason, fin.active_streams)
        summary = fin.summary_line()
        totals = fin.totals_line()
        if self.console:
            self.console.line(summary, colors.YELLOW)
            self.console.line(totals, colors.CYAN)
        self.audit.write(summary)
        self.audit.write(totals)

    # ------------------------------------------------------------------ reporter
    def _report_loop(self):
        while not self._stop.wait(self.report_interval):
            try:
                self.report_once()
            except Exception:
                log.exception("periodic report failed")

    def report_once(self) -> WindowReport:
        with self.registry.hold():
            report = self.registry.drain_window_locked()
            line = format_report(report, self.report_interval)
            if self.console:
                self.console.banner("")
                self.console.banner(line, colors.GREEN)
                self.console.banner("")
            self.audit.write(line)
            self.metrics.observe_report()
        return report
