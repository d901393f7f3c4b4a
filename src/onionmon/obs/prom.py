"""Prometheus instrumentation for the stream monitor.

Each MonitorMetrics owns its own registry so several monitors (tests) can
coexist. Nothing here is served over HTTP; latest() renders the text
exposition for a shutdown dump.
"""
from __future__ import annotations
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)


class MonitorMetrics:
    def __init__(self):
        # Registry must be created before metric objects reference it.
        self.registry = CollectorRegistry()
        self.streams_opened = Counter(
            "onionmon_streams_opened_total",
            "Streams first seen on the control port.",
            registry=self.registry,
        )
        self.streams_closed = Counter(
            "onionmon_streams_closed_total",
            "Streams finalized, by terminal reason.",
            ["reason"],
            registry=self.registry,
        )
        self.bytes_sent = Counter(
            "onionmon_bytes_sent_total",
            "Bytes sent on tracked streams.",
            registry=self.registry,
        )
        self.bytes_received = Counter(
            "onionmon_bytes_received_total",
            "Bytes received on tracked streams.",
            registry=self.registry,
        )
        self.active_streams = Gauge(
            "onionmon_active_streams",
            "Streams currently open.",
            registry=self.registry,
        )
        self.reports = Counter(
            "onionmon_reports_total",
            "Periodic window reports emitted.",
            registry=self.registry,
        )

    def observe_opened(self, active: int):
        self.streams_opened.inc()
        self.active_streams.set(active)

    def observe_finalized(self, reason: str, active: int):
        # reasons come from a small fixed vocabulary on the wire
        self.streams_closed.labels(reason=reason).inc()
        self.active_streams.set(active)

    def observe_traffic(self, sent: int, received: int):
        if sent:
            self.bytes_sent.inc(sent)
        if received:
            self.bytes_received.inc(received)

    def observe_report(self):
        self.reports.inc()

    def value(self, name: str, labels: dict | None = None) -> float:
        v = self.registry.get_sample_value(name, labels or {})
        return v if v is not None else 0.0

    def latest(self) -> str:
        return generate_latest(self.registry).decode("utf-8")
