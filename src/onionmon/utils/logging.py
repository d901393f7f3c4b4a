import datetime
import logging
import os
import queue
import sys
from logging.handlers import QueueHandler, QueueListener
from typing import Optional

AUDIT_LOGGER = "onionmon.traffic"


def get_logger(level: Optional[str] = None):
    logger = logging.getLogger("onionmon")
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(message)s")
        h.setFormatter(fmt)
        logger.addHandler(h)
        logger.setLevel(logging.INFO)
    if level:
        logger.setLevel(level.upper())
    return logger


def traffic_log_path(log_dir: str, day: Optional[datetime.date] = None) -> str:
    day = day or datetime.date.today()
    return os.path.join(log_dir, f"traffic_{day.isoformat()}.log")


class AuditLog:
    """Append-only traffic log.

    Records go through a QueueHandler so callers holding the monitor lock never
    wait on disk; a QueueListener thread does the actual file writes.
    """

    def __init__(self, handler: logging.Handler, name: Optional[str] = None):
        self._queue: "queue.Queue[logging.LogRecord]" = queue.Queue()
        self._handler = handler
        self._listener = QueueListener(self._queue, handler)
        # one logger per instance so two audit logs never share records
        self.logger = logging.getLogger(name or f"{AUDIT_LOGGER}.{id(self):x}")
        self.logger.propagate = False
        self.logger.setLevel(logging.INFO)
        self._queue_handler = QueueHandler(self._queue)
        self.logger.addHandler(self._queue_handler)
        self._listener.start()

    def write(self, line: str):
        self.logger.info(line)

    def close(self):
        self.logger.removeHandler(self._queue_handler)
        self._listener.stop()
        self._handler.close()


def open_audit_log(log_dir: str, day: Optional[datetime.date] = None) -> tuple[AuditLog, str]:
    os.makedirs(log_dir, exist_ok=True)
    path = traffic_log_path(log_dir, day)
    h = logging.FileHandler(path, mode="a", encoding="utf-8")
    h.setFormatter(logging.Formatter("%(asctime)s %(message)s", datefmt="%Y/%m/%d %H:%M:%S"))
    return AuditLog(h), path
