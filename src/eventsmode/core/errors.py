"""Error taxonomy for the event activity lifecycle.

Precondition errors are rejected before any side effect. Resource errors come
from the channel backend. Data errors mean a record was not where it should be.
Every error carries a short user-facing message in ``str(exc)``.
"""

from __future__ import annotations


class EventsmodeError(Exception):
    """Base class for every lifecycle error."""


# --- Precondition errors ---


class PreconditionError(EventsmodeError):
    """The actor cannot start this operation; nothing was changed."""


class OperatorNotHired(PreconditionError):
    def __init__(self) -> None:
        super().__init__("You are not a hired eventsmode in this server.")


class AlreadyActive(PreconditionError):
    def __init__(self) -> None:
        super().__init__("You already have an active event going on.")


class EmptyCatalog(PreconditionError):
    def __init__(self) -> None:
        super().__init__("No events are configured for this server yet.")


class EventNotFound(PreconditionError):
    def __init__(self) -> None:
        super().__init__("That event does not exist (anymore).")


class ChannelNotConfigured(PreconditionError):
    def __init__(self, detail: str = "The eventsmode channel category is not configured.") -> None:
        super().__init__(detail)


class OperatorBanned(PreconditionError):
    def __init__(self) -> None:
        super().__init__("You are on an event ban list and cannot host events.")


# --- Resource errors ---


class ResourceError(EventsmodeError):
    """An external channel operation failed."""


class ProvisioningError(ResourceError):
    """Channel creation or permission setup failed; created channels were rolled back."""


# --- Data errors ---


class DataError(EventsmodeError):
    """A stored record was missing or could not be written."""


class ActivityNotFound(DataError):
    def __init__(self) -> None:
        super().__init__("This event activity is not running (it may already be closed).")


class OperatorNotFound(DataError):
    def __init__(self) -> None:
        super().__init__("The operator profile for this activity is missing.")


class HistoryRecordError(DataError):
    """One or both history appends failed. ``failed`` names the stores."""

    def __init__(self, failed: list[str]) -> None:
        self.failed = failed
        super().__init__(f"History append failed for: {', '.join(failed)}")
