from __future__ import annotations


class CallsheetKeeperError(RuntimeError):
    pass


class ConfigError(CallsheetKeeperError):
    pass


class StoreError(CallsheetKeeperError):
    """A mail, file or state store call failed."""
