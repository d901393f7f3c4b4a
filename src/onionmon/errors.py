"""Exception types raised by onionmon.

Setup failures (config, connect, cookie, authenticate, subscribe) derive from
SetupError and are fatal to the start sequence. TransportClosed ends the event
loop only.
"""
from __future__ import annotations


class OnionMonError(Exception):
    pass


class SetupError(OnionMonError):
    pass


class ConfigError(SetupError):
    pass


class ConnectError(SetupError):
    pass


class CookieError(SetupError):
    pass


class AuthenticationError(SetupError):
    def __init__(self, reply: str):
        super().__init__(f"authentication failed: {reply}")
        self.reply = reply


class SubscriptionError(SetupError):
    def __init__(self, reply: str):
        super().__init__(f"event subscription failed: {reply}")
        self.reply = reply


class TransportClosed(OnionMonError):
    """The control connection hit EOF or a socket error."""
