"""Line-oriented transport over the control-port socket."""
from __future__ import annotations
import socket
import threading
from typing import List, Optional, Sequence, Tuple

from ..errors import ConnectError, TransportClosed
from ..utils.logging import get_logger

log = get_logger()

# control replies and events are short; anything longer is a broken peer
MAX_LINE_BYTES = 64 * 1024


class LineTransport:
    """Buffered blocking reader/writer over an established connection.

    read_line() has no timeout; close() shuts the socket down so a thread
    blocked in read_line() returns with TransportClosed.
    """

    def __init__(self, sock: socket.socket, encoding: str = "utf-8", max_line: int = MAX_LINE_BYTES):
        self._sock = sock
        self._max_line = max_line
        self._reader = sock.makefile("rb")
        self._encoding = encoding
        self._write_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write_line(self, line: str):
        data = (line.rstrip("\r\n") + "\r\n").encode(self._encoding)
        try:
            with self._write_lock:
                self._sock.sendall(data)
        except OSError as e:
            raise TransportClosed(f"write failed: {e}") from e

    def read_line(self) -> str:
        try:
            raw = self._reader.readline(self._max_line + 1)
        except (OSError, ValueError) as e:
            # ValueError: reader was closed underneath us
            raise TransportClosed(f"read failed: {e}") from e
        if not raw:
            raise TransportClosed("connection closed by peer")
        if len(raw) > self._max_line:
            raise TransportClosed(f"line exceeds {self._max_line} bytes")
        return raw.decode(self._encoding, errors="replace")

    def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        self._reader.close()
        self._sock.close()


def _dial(host: str, port: str, timeout: float) -> Optional[socket.socket]:
    try:
        sock = socket.create_connection((host, int(port)), timeout=timeout)
    except (OSError, ValueError) as e:
        log.debug("connect %s:%s failed: %s", host, port, e)
        return None
    # dial timeout only; steady-state reads block indefinitely
    sock.settimeout(None)
    return sock


def connect(hosts: Sequence[str], ports: Sequence[str], timeout: float = 3.0) -> Tuple[LineTransport, str]:
    """Try every host for each port in order; return the first live transport."""
    tried: List[str] = []
    for port in ports:
        for host in hosts:
            address = f"{host}:{port}"
            tried.append(address)
            log.info("Trying control port %s", address)
            sock = _dial(host, port, timeout)
            if sock is not None:
                log.info("Connected to %s", address)
                return LineTransport(sock), address
    raise ConnectError(f"could not connect to Tor on any configured port: {list(ports)} (tried {', '.join(tried)})")
