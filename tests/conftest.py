import queue

import pytest

from onionmon.errors import TransportClosed


class FakeTransport:
    """In-memory control connection: scripted replies, then fed event lines."""

    def __init__(self, replies=()):
        self.sent = []
        self.closed = False
        self._lines = queue.Queue()
        for r in replies:
            self._lines.put(r)

    def write_line(self, line):
        self.sent.append(line)

    def feed(self, *lines):
        for line in lines:
            self._lines.put(line)

    def eof(self):
        self._lines.put(None)

    def read_line(self):
        item = self._lines.get(timeout=5)
        if item is None:
            raise TransportClosed("connection closed by peer")
        return item

    def close(self):
        self.closed = True
        self._lines.put(None)


class RecordingSink:
    def __init__(self):
        self.lines = []

    def write(self, line):
        self.lines.append(line)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def audit():
    return RecordingSink()
