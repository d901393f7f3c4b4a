from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from . import config
from .control.auth import find_cookie_file, read_cookie
from .control.transport import connect
from .errors import SetupError
from .monitor.stream_monitor import StreamMonitor
from .obs.prom import MonitorMetrics
from .utils import console as colors
from .utils.console import Console
from .utils.logging import open_audit_log

DEFAULT_CONFIG_HELP = """Edit '{path}' so it looks like:

{{
  "cookie_paths": [
    "C:\\\\Program Files (x86)\\\\OmniMix\\\\tor\\\\data\\\\control_auth_cookie",
    "/home/your_name/.tor/control_auth_cookie",
    "/var/lib/tor/control_auth_cookie"
  ],
  "ports": [
    "9051"
  ]
}}
"""

# 128 + SIGINT
EXIT_INTERRUPTED = 130

TROUBLESHOOTING = [
    "Make sure Tor is running with ControlPort enabled",
    "Check cookie file paths in {path}",
    "Verify file permissions on cookie file",
    "Ensure port 9051 is accessible (Tor Browser's 9151 is intentionally excluded)",
    "Check if Tor is configured to listen on localhost",
]


def _print_troubleshooting(out: Console, path: str):
    out.banner("")
    out.banner("Troubleshooting tips:", colors.YELLOW)
    for i, tip in enumerate(TROUBLESHOOTING, start=1):
        out.banner(f"{i}. {tip.format(path=path)}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    p = argparse.ArgumentParser("onionmon", description="Watch Tor stream events and traffic on the control port")
    p.add_argument("--config", default=config.CONFIG_FILE, help="Path to config file (default: %(default)s)")
    p.add_argument("--log-dir", default=config.LOG_DIR, help="Traffic log directory (default: %(default)s)")
    p.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    p.add_argument("--metrics-dump", action="store_true", help="Print Prometheus metrics text at exit")
    args = p.parse_args(argv if argv is not None else sys.argv[1:])

    out = Console(color=False if args.no_color else None)
    try:
        return _run(args, out)
    finally:
        out.close()


def _run(args: argparse.Namespace, out: Console) -> int:
    out.banner(f"Onion Monitor v{config.VERSION}")
    out.banner("")

    try:
        if config.create_default_config(args.config):
            out.banner(f"Created default configuration file: {args.config}", colors.GREEN)
            out.banner(DEFAULT_CONFIG_HELP.format(path=args.config))
        cfg = config.load_config(args.config)
    except SetupError as e:
        out.banner(f"ERROR: {e}", colors.RED)
        return 1

    try:
        audit, log_path = open_audit_log(args.log_dir)
    except OSError as e:
        out.banner(f"Failed to open log file: {e}", colors.RED)
        return 1

    metrics = MonitorMetrics()
    try:
        transport = None
        try:
            transport, address = connect(cfg.hosts, cfg.ports, config.CONNECT_TIMEOUT_SEC)
            monitor = StreamMonitor(transport, audit, console=out, metrics=metrics)
            cookie = read_cookie(find_cookie_file(cfg.cookie_paths))
            monitor.start(cookie)
        except KeyboardInterrupt:
            if transport is not None:
                transport.close()
            out.banner("Interrupted during startup.", colors.YELLOW)
            return EXIT_INTERRUPTED
        except SetupError as e:
            if transport is not None:
                transport.close()
            out.banner("")
            out.banner(f"Startup Error: {e}", colors.RED)
            _print_troubleshooting(out, args.config)
            return 1

        out.banner(f"Authenticated with Tor on {address}", colors.GREEN)
        out.banner("")
        out.banner("Monitoring active. Press Ctrl+C to exit.", colors.GREEN)
        out.banner(f"Connected to: {address}", colors.GRAY)
        out.banner(f"Log file: {log_path}", colors.GRAY)

        try:
            # short waits keep Ctrl+C responsive
            while not monitor.wait(1.0):
                pass
        except KeyboardInterrupt:
            out.banner("Shutting down...", colors.CYAN)
        monitor.stop()
        monitor.join(5.0)
        return 1 if monitor.error is not None else 0
    finally:
        if args.metrics_dump:
            out.banner(metrics.latest())
        audit.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
