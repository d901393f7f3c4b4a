from __future__ import annotations
import os
from typing import Sequence

from ..errors import CookieError
from ..utils.logging import get_logger

log = get_logger()


def find_cookie_file(paths: Sequence[str]) -> str:
    """Return the first configured cookie path that exists."""
    for i, path in enumerate(paths, start=1):
        expanded = os.path.expanduser(os.path.expandvars(path))
        if os.path.exists(expanded):
            log.info("Found cookie file at path #%d: %s", i, expanded)
            return expanded
        if not os.path.isabs(expanded):
            abs_path = os.path.abspath(expanded)
            if os.path.exists(abs_path):
                log.info("Found cookie file at relative path #%d: %s", i, abs_path)
                return abs_path
        log.info("Path #%d not found: %s", i, expanded)
    raise CookieError("cookie file not found in any configured path; check your config file")


def read_cookie(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise CookieError(f"failed to read cookie file: {e}") from e
