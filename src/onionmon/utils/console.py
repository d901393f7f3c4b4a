"""Colored console sink.

Lines are stamped ``[HH:MM:SS]`` and handed to a queue-backed handler, so a
blocked terminal never stalls the event loop.
"""
from __future__ import annotations
import logging
import os
import queue
import sys
import time
from logging.handlers import QueueHandler, QueueListener
from typing import Optional, TextIO

RESET = "\033[0m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[93m"
CYAN = "\033[36m"
GRAY = "\033[90m"
BLUE = "\033[34m"

STATUS_COLORS = {
    "SUCCEEDED": GREEN,
    "FAILED": RED,
    "NEW": CYAN,
    "SENTCONNECT": BLUE,
}


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, GRAY)


class Console:
    def __init__(self, stream: Optional[TextIO] = None, color: Optional[bool] = None, name: Optional[str] = None):
        if color is None:
            color = "NO_COLOR" not in os.environ
        self.color = color
        self._queue: "queue.Queue[logging.LogRecord]" = queue.Queue()
        self._handler = logging.StreamHandler(stream or sys.stdout)
        self._handler.setFormatter(logging.Formatter("%(message)s"))
        self._listener = QueueListener(self._queue, self._handler)
        self._queue_handler = QueueHandler(self._queue)
        # one logger per instance so handlers never leak between consoles
        self.logger = logging.getLogger(name or f"onionmon.console.{id(self):x}")
        self.logger.propagate = False
        self.logger.setLevel(logging.INFO)
        self.logger.addHandler(self._queue_handler)
        self._listener.start()

    def paint(self, text: str, color: str) -> str:
        if not self.color:
            return text
        return f"{color}{text}{RESET}"

    def line(self, text: str, color: Optional[str] = None):
        stamp = time.strftime("%H:%M:%S")
        body = self.paint(text, color) if color else text
        self.logger.info("[%s] %s", stamp, body)

    def banner(self, text: str, color: Optional[str] = None):
        self.logger.info("%s", self.paint(text, color) if color else text)

    def stream_status(self, stream_id: str, status: str, target: str):
        stamp = time.strftime("%H:%M:%S")
        self.logger.info("[%s] Stream %s %s | Target: %s", stamp, stream_id, self.paint(status, status_color(status)), target)

    def close(self):
        self.logger.removeHandler(self._queue_handler)
        self._listener.stop()
        self._handler.flush()
