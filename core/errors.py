# core/errors.py


class RemoteError(Exception):
    """A remote store operation failed (transport, HTTP status or rejected query)."""


class RemoteDataError(RemoteError):
    """A remote store returned rows that do not match the expected shape."""


class ConfigError(Exception):
    """Invalid or missing configuration."""
