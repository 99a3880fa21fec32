"""Custom exception hierarchy for the KidPicks package."""

from __future__ import annotations


class KidPicksError(Exception):
    """Base class for all KidPicks specific errors."""


class StoreUnavailableError(KidPicksError):
    """Raised when the preference store cannot be reached.

    The whole request is aborted; callers may retry.
    """

    retryable = True


class InvalidWeightError(KidPicksError, ValueError):
    """Raised for an unknown factor name or a weight outside ``[0, 1]``."""


class UnknownPresetError(KidPicksError, KeyError):
    """Raised when a weight preset name is not recognised."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown preset."


class KidNotFoundError(KidPicksError, LookupError):
    """Raised when a kid lookup fails or the kid has been deactivated."""


class ActivityNotFoundError(KidPicksError, LookupError):
    """Raised when an activity lookup fails."""


class ContextNotFoundError(KidPicksError, LookupError):
    """Raised when a recommendation context lookup fails."""


class DuplicateContextError(KidPicksError, ValueError):
    """Raised when a context with the same name already exists."""
