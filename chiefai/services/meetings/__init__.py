"""
Meeting request pipeline

Import the pipeline and its stages from their modules; this package only
exposes the shared value types and errors.
"""
from .exceptions import (
    AvailabilityUnavailableError,
    MeetingPipelineError,
    PersistenceError,
    ResponseGenerationError,
)
from .models import (
    AvailabilityResult,
    CalendarEvent,
    CandidateTime,
    EventRef,
    InboundMessage,
    MeetingCategory,
    MeetingRequest,
    MeetingResponse,
    MeetingStatus,
    ProcessingResult,
    ProcessingStatus,
    ResolutionMethod,
    ResolvedTime,
    ResponseStrategy,
    SenderRelationship,
    TimeWindow,
    UrgencyLevel,
)

__all__ = [
    'AvailabilityResult',
    'AvailabilityUnavailableError',
    'CalendarEvent',
    'CandidateTime',
    'EventRef',
    'InboundMessage',
    'MeetingCategory',
    'MeetingPipelineError',
    'MeetingRequest',
    'MeetingResponse',
    'MeetingStatus',
    'PersistenceError',
    'ProcessingResult',
    'ProcessingStatus',
    'ResolutionMethod',
    'ResolvedTime',
    'ResponseGenerationError',
    'ResponseStrategy',
    'SenderRelationship',
    'TimeWindow',
    'UrgencyLevel',
]
