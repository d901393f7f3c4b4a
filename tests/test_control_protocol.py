import pytest

from conftest import FakeTransport, RecordingSink
from onionmon.control.protocol import authenticate, set_events
from onionmon.errors import AuthenticationError, SetupError, SubscriptionError
from onionmon.monitor.stream_monitor import StreamMonitor


def test_authenticate_sends_hex_cookie():
    t = FakeTransport(replies=["250 OK\r\n"])
    assert authenticate(t, bytes(range(4))) == "250 OK"
    assert t.sent == ["AUTHENTICATE 00010203"]


def test_authenticate_rejected():
    t = FakeTransport(replies=["515 Authentication failed: Wrong length on authentication cookie."])
    with pytest.raises(AuthenticationError) as ei:
        authenticate(t, b"x")
    assert "515" in str(ei.value)
    assert isinstance(ei.value, SetupError)


def test_set_events_checks_reply():
    t = FakeTransport(replies=["250 OK"])
    set_events(t)
    assert t.sent == ["SETEVENTS STREAM STREAM_BW"]
    bad = FakeTransport(replies=['552 Unrecognized event "STREAM_BW"'])
    with pytest.raises(SubscriptionError):
        set_events(bad)


def test_start_does_not_spawn_threads_on_setup_failure():
    t = FakeTransport(replies=["250 OK", "551 nope"])
    mon = StreamMonitor(t, RecordingSink())
    with pytest.raises(SubscriptionError):
        mon.start(b"c")
    assert not mon.running


def test_connection_lost_during_setup_is_setup_error():
    t = FakeTransport()
    t.eof()
    mon = StreamMonitor(t, RecordingSink())
    with pytest.raises(SetupError) as ei:
        mon.start(b"c")
    assert "lost during setup" in str(ei.value)
