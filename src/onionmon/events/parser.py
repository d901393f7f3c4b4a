"""Decoder for asynchronous STREAM / STREAM_BW notifications.

Line shapes:
  650 STREAM <id> <STATUS> [<field> ...]          fields: KEY=VALUE or free tokens
  650 STREAM_BW <id> <sent> <received>

Parsing never raises: short or unrecognized lines decode to None and bad
integers decode to 0.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union

from ..utils.logging import get_logger

STATUS_PREFIX = "650 STREAM "
BANDWIDTH_PREFIX = "650 STREAM_BW"
BANDWIDTH_KEYWORD = "STREAM_BW"
NO_REASON = "NONE"
PLACEHOLDER = "-"

log = get_logger()


@dataclass(frozen=True)
class StreamStatusEvent:
    stream_id: str
    status: str
    reason: str = NO_REASON
    target: Optional[str] = None


@dataclass(frozen=True)
class StreamBandwidthEvent:
    stream_id: str
    sent: int
    received: int


StreamEvent = Union[StreamStatusEvent, StreamBandwidthEvent]


def _count(token: str) -> int:
    if token.isascii() and token.isdigit():
        return int(token)
    return 0


def parse_status(parts: list[str]) -> Optional[StreamStatusEvent]:
    if len(parts) < 4:
        return None
    reason = NO_REASON
    for p in parts:
        if p.startswith("REASON="):
            reason = p[len("REASON="):]
    target = None
    for p in parts[4:]:
        if "=" not in p and p != PLACEHOLDER:
            target = p
    return StreamStatusEvent(stream_id=parts[2], status=parts[3], reason=reason, target=target)


def parse_bandwidth(parts: list[str]) -> Optional[StreamBandwidthEvent]:
    if len(parts) < 5:
        return None
    return StreamBandwidthEvent(stream_id=parts[2], sent=_count(parts[3]), received=_count(parts[4]))


def parse_line(line: str) -> Optional[StreamEvent]:
    line = line.strip()
    if line.startswith(STATUS_PREFIX) and BANDWIDTH_KEYWORD not in line:
        ev = parse_status(line.split())
    elif line.startswith(BANDWIDTH_PREFIX):
        ev = parse_bandwidth(line.split())
    else:
        if line:
            log.debug("ignored line: %s", line)
        return None
    if ev is None:
        log.debug("dropping short notification: %s", line)
    return ev
