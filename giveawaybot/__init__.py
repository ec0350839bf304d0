"""Discord giveaway bot with a periodic expiry sweep."""

__version__ = "1.0.0"
