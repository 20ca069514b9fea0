"""
Error taxonomy for the suggestion lifecycle engine.

Every error raised out of the FeedbackRecorder names the step it failed in,
so callers can tell a failed status update (nothing committed) from a failed
audit insert (status already committed remotely).
"""

from typing import Optional


class SuggestionEngineError(Exception):
    """Base class for all engine errors."""

    step: Optional[str] = None

    def __init__(self, message: str, *, step: Optional[str] = None, **context):
        super().__init__(message)
        if step is not None:
            self.step = step
        self.context = context

    def to_dict(self) -> dict:
        data = {
            "error": type(self).__name__,
            "message": str(self),
            "step": self.step,
        }
        if hasattr(self, "status_committed"):
            data["status_committed"] = self.status_committed
        data.update({k: v for k, v in self.context.items() if v is not None})
        return data


class FetchFailure(SuggestionEngineError):
    """Remote read failed. Local state is left unchanged."""
    step = "fetch"


class ValidationError(SuggestionEngineError):
    """Submission rejected before any remote call."""
    step = "validate"


class IdentityUnavailable(SuggestionEngineError):
    """Caller identity still missing after the single retry."""
    step = "identity"


class NotFoundError(SuggestionEngineError):
    step = "load"


class SuggestionNotFound(NotFoundError):
    pass


class TicketNotFound(NotFoundError):
    pass


class InvalidStatusTransition(SuggestionEngineError):
    """Raised by a repository asked to move a suggestion out of a terminal status."""
    step = "update_status"


class StatusUpdateFailed(SuggestionEngineError):
    """Step A failed. No feedback event was written."""
    step = "update_status"
    status_committed = False


class FeedbackInsertFailed(SuggestionEngineError):
    """
    Step B failed after Step A committed. The suggestion's new status
    stands remotely; it is not reverted.
    """
    step = "insert_feedback"
    status_committed = True


class ChannelError(SuggestionEngineError):
    """Change-feed subscription failure. Logged, never raised into the consumer."""
    step = "subscribe"


class GenerationFailed(SuggestionEngineError):
    """The external suggestion-producing service failed."""
    step = "generate"
