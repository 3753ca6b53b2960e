"""Error taxonomy for the reminder pipeline.

Only ``AuthenticationError`` and ``ExportError`` abort a run. The remaining
errors are raised and handled locally so a run degrades to partial data.
"""

from __future__ import annotations


class ReminderOpsError(RuntimeError):
    """Base class for every pipeline failure."""


class SessionError(ReminderOpsError):
    """Persisted session state could not be read or written."""


class ConsentDismissError(ReminderOpsError):
    """A consent banner button was found but could not be clicked."""


class AuthenticationError(ReminderOpsError):
    """Login form missing, credentials missing, or sign-in never completed."""


class ExportError(ReminderOpsError):
    """The report export trigger, format option or download never appeared."""


class EnrichmentError(ReminderOpsError):
    """Detail view or contact control not found for one appointment."""

    def __init__(self, reference: str, message: str) -> None:
        super().__init__(f"{reference}: {message}")
        self.reference = reference


class ParsingError(ReminderOpsError):
    """A CSV row carries more fields than the header it sits under."""
