"""Setup-time command/response exchange with the control endpoint.

Each command is a single line; the reply is a single line whose success is
signalled by the literal ``250 OK``.
"""
from __future__ import annotations
from typing import Protocol, Sequence

from ..errors import AuthenticationError, SubscriptionError

OK_REPLY = "250 OK"
DEFAULT_EVENTS = ("STREAM", "STREAM_BW")


class Transport(Protocol):
    def write_line(self, line: str) -> None: ...
    def read_line(self) -> str: ...


def exchange(transport: Transport, command: str) -> str:
    transport.write_line(command)
    return transport.read_line().strip()


def reply_ok(reply: str) -> bool:
    return OK_REPLY in reply


def authenticate(transport: Transport, secret: bytes) -> str:
    reply = exchange(transport, f"AUTHENTICATE {secret.hex()}")
    if not reply_ok(reply):
        raise AuthenticationError(reply)
    return reply


def set_events(transport: Transport, events: Sequence[str] = DEFAULT_EVENTS) -> str:
    reply = exchange(transport, "SETEVENTS " + " ".join(events))
    if not reply_ok(reply):
        raise SubscriptionError(reply)
    return reply
