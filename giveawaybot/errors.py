"""Exceptions raised by the giveaway lifecycle engine."""

from __future__ import annotations


class GiveawayError(RuntimeError):
    """Base class for giveaway failures surfaced to callers."""


class InvalidDuration(GiveawayError):
    """Raised when a giveaway duration is malformed or outside the allowed window."""


class InvalidWinnerCount(GiveawayError):
    """Raised when the requested number of winners is outside 1..10."""


class NotFound(GiveawayError):
    """Raised when a giveaway does not exist for the tenant."""


class NotEnded(GiveawayError):
    """Raised when a reroll is requested for a giveaway that is still active."""


class InsufficientEntries(GiveawayError):
    """Raised when a reroll has fewer participants than winners."""


class StoreUnavailable(GiveawayError):
    """Raised when the persistence backend fails transiently.

    Callers retry on the next sweep or user action. It never means the
    giveaway is gone.
    """


class NotificationFailed(GiveawayError):
    """Raised when publishing, editing or announcing through the gateway fails."""
