"""Exceptions raised by the notification agent."""

from typing import Optional


class NotificationAgentError(Exception):
    """Base exception for the notification agent."""


class ConfigError(NotificationAgentError, ValueError):
    """Required configuration is missing or invalid."""


class FetchError(NotificationAgentError):
    """A backend resource could not be fetched (network error or non-2xx)."""

    def __init__(self, resource: str, detail: str, status_code: Optional[int] = None):
        self.resource = resource
        self.status_code = status_code
        message = f"Failed to fetch {resource}: {detail}"
        if status_code is not None:
            message = f"Failed to fetch {resource} (HTTP {status_code}): {detail}"
        super().__init__(message)


class ParseError(NotificationAgentError):
    """A persisted state blob could not be decoded."""

    def __init__(self, key: str, detail: str):
        self.key = key
        super().__init__(f"Corrupt state at '{key}': {detail}")


class PreferenceLoadError(ParseError):
    """Persisted preferences could not be decoded."""
