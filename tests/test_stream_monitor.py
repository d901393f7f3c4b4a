import io
import threading

from conftest import FakeTransport, RecordingSink
from onionmon.errors import TransportClosed
from onionmon.monitor.state import StreamRegistry
from onionmon.monitor.stream_monitor import StreamMonitor, format_report
from onionmon.utils.console import Console


def make_monitor(transport=None, audit=None, **kw):
    return StreamMonitor(transport or FakeTransport(), audit or RecordingSink(), **kw)


def test_scenarios_open_traffic_close(audit):
    mon = make_monitor(audit=audit)
    reg = mon.registry
    before = reg.snapshot().active_streams

    mon.handle_line("650 STREAM 7 NEW 0 www.example.com:443")
    assert reg.get("7").target == "www.example.com:443"
    assert reg.snapshot().active_streams == before + 1

    mon.handle_line("650 STREAM_BW 7 100 250")
    rec = reg.get("7")
    assert (rec.bytes_sent, rec.bytes_received) == (100, 250)
    assert (reg.snapshot().lifetime.total_sent, reg.snapshot().lifetime.total_received) == (100, 250)

    mon.handle_line("650 STREAM 7 CLOSED REASON=DONE")
    assert reg.get("7") is None
    assert reg.snapshot().active_streams == before

    finished = [l for l in audit.lines if "FINISHED" in l]
    assert len(finished) == 1
    assert finished[0].startswith("Stream 7 FINISHED: S:100 R:250 bytes | ")
    assert finished[0].endswith("| To: www.example.com:443 (END)")
    assert audit.lines[0] == "Stream 7 NEW | Target: www.example.com:443"
    assert audit.lines[1] == "Stream 7 CLOSED | Target: www.example.com:443"
    assert audit.lines[-1] == "Total now: S:100 R:250 bytes | All Streams: 1 | Active: 0"


def test_bandwidth_produces_no_output(audit):
    mon = make_monitor(audit=audit)
    mon.handle_line("650 STREAM 1 NEW 0 a:1")
    n = len(audit.lines)
    mon.handle_line("650 STREAM_BW 1 10 20")
    mon.handle_line("650 STREAM_BW 99 10 20")
    assert len(audit.lines) == n


def test_unknown_bandwidth_id_ignored(audit):
    mon = make_monitor(audit=audit)
    mon.handle_line("650 STREAM_BW 99 500 500")
    snap = mon.registry.snapshot()
    assert snap.lifetime.total_sent == 0
    assert snap.streams == {}


def test_malformed_bandwidth_counts_zero():
    mon = make_monitor()
    mon.handle_line("650 STREAM 7 NEW 0 a:1")
    mon.handle_line("650 STREAM_BW 7 100 250")
    mon.handle_line("650 STREAM_BW 7 abc 250")
    rec = mon.registry.get("7")
    assert (rec.bytes_sent, rec.bytes_received) == (100, 500)


def test_duplicate_close_single_finalization(audit):
    mon = make_monitor(audit=audit)
    mon.handle_line("650 STREAM 7 NEW 0 a:1")
    mon.handle_line("650 STREAM 7 CLOSED REASON=DONE")
    mon.handle_line("650 STREAM 7 CLOSED REASON=DONE")
    assert sum("FINISHED" in l for l in audit.lines) == 1
    assert mon.metrics.value("onionmon_streams_closed_total", {"reason": "DONE"}) == 1


def test_garbage_lines_ignored(audit):
    mon = make_monitor(audit=audit)
    for line in ("250 OK", "650 STREAM 7", "650 STREAM_BW 7 1", "random noise", ""):
        mon.handle_line(line)
    assert audit.lines == []
    assert len(mon.registry) == 0


def test_report_drains_window(audit):
    mon = make_monitor(audit=audit)
    mon.handle_line("650 STREAM 1 NEW 0 a:1")
    mon.handle_line("650 STREAM_BW 1 1048576 524288")
    first = mon.report_once()
    assert (first.total_sent, first.total_received, first.streams_opened, first.active_streams) == (1048576, 524288, 1, 1)
    assert audit.lines[-1] == (
        "--- 10 min Report | Sent: 1.00 MB (1048576 bytes) | Received: 0.50 MB (524288 bytes)"
        " | Total Streams: 1 | Active Streams: 1 ---"
    )
    second = mon.report_once()
    assert (second.total_sent, second.total_received, second.streams_opened) == (0, 0, 0)
    assert second.active_streams == 1
    life = mon.registry.snapshot().lifetime
    assert (life.total_sent, life.total_received, life.streams_opened) == (1048576, 524288, 1)
    assert mon.metrics.value("onionmon_reports_total") == 2


def test_format_report_interval_label():
    from onionmon.monitor.state import WindowReport
    line = format_report(WindowReport(0, 0, 0, 0), interval_sec=30)
    assert line.startswith("--- 0.5 min Report | Sent: 0.00 MB (0 bytes)")


def test_console_output_uncolored(audit):
    buf = io.StringIO()
    con = Console(stream=buf, color=False)
    mon = make_monitor(audit=audit, console=con)
    mon.handle_line("650 STREAM 7 NEW 0 a:1")
    mon.handle_line("650 STREAM 7 FAILED 0 a:1 REASON=TIMEOUT")
    con.close()
    out = buf.getvalue().splitlines()
    assert out[0].endswith("Stream 7 NEW | Target: a:1")
    assert out[0].startswith("[")
    assert "FINISHED" in out[2] and out[2].endswith("(TIMEOUT)")
    assert "\033[" not in buf.getvalue()


def test_metrics_follow_events():
    mon = make_monitor()
    mon.handle_line("650 STREAM 1 NEW 0 a:1")
    mon.handle_line("650 STREAM 2 NEW 0 b:1")
    mon.handle_line("650 STREAM_BW 1 10 20")
    mon.handle_line("650 STREAM 1 CLOSED REASON=DONE")
    m = mon.metrics
    assert m.value("onionmon_streams_opened_total") == 2
    assert m.value("onionmon_bytes_sent_total") == 10
    assert m.value("onionmon_bytes_received_total") == 20
    assert m.value("onionmon_active_streams") == 1


def test_threads_process_lines_then_fail_stop(audit):
    t = FakeTransport(replies=["250 OK", "250 OK"])
    mon = make_monitor(transport=t, audit=audit)
    mon.start(b"\x01\xab")
    assert t.sent == ["AUTHENTICATE 01ab", "SETEVENTS STREAM STREAM_BW"]
    t.feed("650 STREAM 5 NEW 0 x:1", "650 STREAM_BW 5 3 4")
    t.eof()
    assert mon.wait(5)
    assert isinstance(mon.error, TransportClosed)
    assert mon.registry.get("5").bytes_received == 4
    assert audit.lines[-1].startswith("Error reading from Tor control port")
    mon.stop()
    mon.join(5)


def test_stop_unblocks_reader(audit):
    t = FakeTransport(replies=["250 OK", "250 OK"])
    mon = make_monitor(transport=t, audit=audit)
    mon.start(b"cookie")
    assert mon.running
    mon.stop()
    assert mon.wait(5)
    mon.join(5)
    assert t.closed
    assert mon.error is None
    assert not any("Error reading" in l for l in audit.lines)


def test_reporter_thread_ticks(audit):
    t = FakeTransport(replies=["250 OK", "250 OK"])
    mon = make_monitor(transport=t, audit=audit, report_interval=0.05)
    mon.start(b"c")
    t.feed("650 STREAM 1 NEW 0 a:1")
    deadline = threading.Event()
    for _ in range(100):
        if any(l.startswith("--- ") for l in audit.lines):
            break
        deadline.wait(0.02)
    mon.stop()
    mon.join(5)
    assert any(l.startswith("--- ") for l in audit.lines)


def test_concurrent_dispatch_and_reports_keep_totals():
    mon = make_monitor(registry=StreamRegistry())
    mon.handle_line("650 STREAM 1 NEW 0 a:1")
    drained = []

    def reporter():
        for _ in range(200):
            drained.append(mon.report_once())

    th = threading.Thread(target=reporter)
    th.start()
    for _ in range(2000):
        mon.handle_line("650 STREAM_BW 1 1 2")
    th.join()
    drained.append(mon.report_once())
    assert sum(r.total_sent for r in drained) == 2000
    assert sum(r.total_received for r in drained) == 4000
    assert mon.registry.snapshot().lifetime.total_sent == 2000
