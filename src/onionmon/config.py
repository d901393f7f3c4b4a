"""Monitor configuration loader.

Environment (and an optional .env) first, then the JSON/YAML config file that
lists cookie locations and control ports to try.
"""
from __future__ import annotations
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .utils.logging import get_logger

load_dotenv()

VERSION = "0.1.0"

CONFIG_FILE = os.getenv("ONIONMON_CONFIG", "omon.json")
LOG_DIR = os.getenv("ONIONMON_LOG_DIR", "logs")
LOG_LEVEL = os.getenv("ONIONMON_LOG_LEVEL", "INFO").upper()
CONNECT_TIMEOUT_SEC = float(os.getenv("ONIONMON_CONNECT_TIMEOUT_SEC", "3.0"))

DEFAULT_PORT = "9051"
# Tor Browser's control port; never monitored
EXCLUDED_PORTS = {"9151"}

_DEFAULT = {
    "cookie_paths": [
        r"C:\Program Files (x86)\OmniMix\tor\data\control_auth_cookie",
        "/home/your_name/.tor/control_auth_cookie",
        "/var/lib/tor/control_auth_cookie",
    ],
    "ports": [DEFAULT_PORT],
}

_ENV_LISTS = {
    "cookie_paths": "ONIONMON_COOKIE_PATHS",
    "ports": "ONIONMON_PORTS",
}

log = get_logger(LOG_LEVEL)


@dataclass
class MonitorConfig:
    cookie_paths: List[str] = field(default_factory=lambda: list(_DEFAULT["cookie_paths"]))
    ports: List[str] = field(default_factory=lambda: list(_DEFAULT["ports"]))
    hosts: List[str] = field(default_factory=lambda: ["127.0.0.1", "localhost"])


def create_default_config(path: str = CONFIG_FILE) -> bool:
    """Write the default config file unless one exists. Returns True if written."""
    if os.path.exists(path):
        return False
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(json.dumps(_DEFAULT, indent=2))
    except OSError as e:
        raise ConfigError(f"failed to write config file: {e}") from e
    return True


def _env_list(name: str) -> Optional[List[str]]:
    raw = os.getenv(name)
    if raw is None:
        return None
    return [p.strip() for p in raw.split(",") if p.strip()]


def filter_ports(ports: List[Any]) -> List[str]:
    kept = [str(p).strip() for p in ports if str(p).strip() and str(p).strip() not in EXCLUDED_PORTS]
    if not kept:
        log.warning("No valid ports found; using default port %s", DEFAULT_PORT)
        kept = [DEFAULT_PORT]
    return kept


def load_config(path: str = CONFIG_FILE) -> MonitorConfig:
    if not os.path.exists(path):
        raise ConfigError(f"config file '{path}' not found")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to parse config: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config file must contain a JSON object")
    values: Dict[str, Any] = dict(data)
    # Env overrides
    for key, env in _ENV_LISTS.items():
        override = _env_list(env)
        if override is not None:
            values[key] = override
    cookie_paths = values.get("cookie_paths")
    if not cookie_paths or not isinstance(cookie_paths, list):
        raise ConfigError("'cookie_paths' array is empty or missing in config")
    ports = values.get("ports") or []
    if not isinstance(ports, list):
        ports = [ports]
    cfg = MonitorConfig(
        cookie_paths=[str(p) for p in cookie_paths],
        ports=filter_ports(ports),
    )
    hosts = values.get("hosts")
    if isinstance(hosts, list) and hosts:
        cfg.hosts = [str(h) for h in hosts]
    return cfg
