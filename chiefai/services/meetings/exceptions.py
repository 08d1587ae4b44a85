"""
Meeting pipeline exceptions

Each carries a fixed, user-safe ``reason``; the underlying error stays in
``__cause__`` and the logs.
"""


class MeetingPipelineError(Exception):
    """Base class for pipeline failures"""

    reason = "Meeting processing failed"

    def __init__(self, message: str = "", reason: str = None):
        super().__init__(message or self.reason)
        if reason:
            self.reason = reason


class AvailabilityUnavailableError(MeetingPipelineError):
    """Calendar could not be queried; availability is unknown, not free"""

    reason = "Calendar availability could not be determined"


class ResponseGenerationError(MeetingPipelineError):
    """Generated reply was unusable; callers fall back to a template"""

    reason = "Response generation failed"


class PersistenceError(MeetingPipelineError):
    """Transactional write failed and was rolled back"""

    reason = "Failed to save meeting processing results"
