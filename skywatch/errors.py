"""Exception hierarchy for Skywatch.

Only a few of these ever leave a sync cycle: the Sync Task catches every
error at its state boundaries, logs it and moves on to the interval sleep.
The classes mainly exist so callers can tell *why* a cycle failed.
"""

from __future__ import annotations


class SkywatchError(Exception):
    """Base class for all Skywatch errors."""


class FetchError(SkywatchError):
    """An upstream API call failed in a way worth retrying."""


class MalformedPayloadError(SkywatchError):
    """Upstream returned a payload missing a required field.

    Never retried: asking again would return the same document.
    """


class PersistenceError(SkywatchError):
    """The durable store rejected a write."""


class LockError(SkywatchError):
    """The lock backend could not be reached."""


class UnknownSourceError(SkywatchError, KeyError):
    """No source with the given name is configured."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown source '{self.name}'"


class ConfigValidationError(SkywatchError, ValueError):
    """Raised when the source configuration fails validation."""
