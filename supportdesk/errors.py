"""Exception hierarchy shared by the stores, state machines and workflow."""


class SupportDeskError(Exception):
    """Base class for all support desk errors."""


class BackendUnavailableError(SupportDeskError):
    """A primary backend is unreachable or not configured."""


class DimensionMismatchError(SupportDeskError):
    """An embedding does not match the dimensionality of its index."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class TicketValidationError(SupportDeskError):
    """Ticket data is missing required fields or touches immutable ones."""


class InvalidTransitionError(SupportDeskError):
    """A state change that the state machine does not allow."""


class SessionBackendError(SupportDeskError):
    """The session key-value store could not be read."""


class ExternalServiceError(SupportDeskError):
    """A classification, generation, embedding or speech call failed."""


class SupportRequestError(SupportDeskError):
    """Generic internal error reported to callers of the orchestrator."""
