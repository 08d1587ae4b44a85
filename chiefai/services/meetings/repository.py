"""
Persistence for the meeting pipeline

Write methods take the caller's Session so several writes share one
transaction; read methods open their own short-lived session.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.orm import Session, sessionmaker

from ...database.models import MeetingRequestRecord, MeetingResponseDraft, ProcessingResultRecord
from ...database.utils import get_db_context, read_only_session, upsert
from ...utils.logger import setup_logger
from .models import (
    MeetingRequest,
    MeetingResponse,
    MeetingStatus,
    ProcessingResult,
    ProcessingStatus,
)

logger = setup_logger(__name__)

KEY_COLUMNS = ('message_id', 'user_id')

# Refreshed when the same message is processed again; status is not
MEETING_REQUEST_MUTABLE = (
    'thread_id', 'sender_email', 'sender_name', 'subject', 'candidate_times',
    'resolved_start', 'requested_duration', 'requester_timezone', 'category',
    'urgency', 'location_preference', 'special_requirements', 'attendees',
    'detection_confidence', 'updated_at',
)

DRAFT_MUTABLE = (
    'meeting_request_id', 'thread_id', 'recipient_email', 'subject', 'body',
    'strategy', 'ai_generated', 'confidence', 'calendar_event_id',
    'meeting_context', 'updated_at',
)

DRAFT_STATUS_PENDING = 'pending_user_action'


def reply_subject(subject: Optional[str]) -> str:
    subject = (subject or '').strip()
    if subject.lower().startswith('re:'):
        return subject
    return f"Re: {subject}" if subject else "Re: Meeting request"


class MeetingRepository:
    """Meeting requests, response drafts and processing results."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def unit_of_work(self) -> Generator[Session, None, None]:
        """One session, one transaction: commit on success, roll back on error."""
        with get_db_context(self.session_factory) as db:
            yield db

    # ------------------------------------------------------------------
    # Writes (caller's transaction)
    # ------------------------------------------------------------------

    def upsert_meeting_request(
        self,
        db: Session,
        request: MeetingRequest,
        user_id: str,
        requester_timezone: Optional[str] = None
    ) -> int:
        primary = request.primary_time
        now = datetime.utcnow()
        values = {
            'message_id': request.message_id,
            'user_id': user_id,
            'thread_id': request.thread_id,
            'sender_email': request.sender,
            'sender_name': request.sender_name,
            'subject': request.subject,
            'candidate_times': [c.to_dict() for c in request.candidate_times],
            'resolved_start': primary.utc.replace(tzinfo=None) if primary else None,
            'requested_duration': request.duration_minutes,
            'requester_timezone': requester_timezone,
            'category': request.category.value,
            'urgency': request.urgency.value,
            'location_preference': request.location,
            'special_requirements': request.special_requirements,
            'attendees': list(request.attendees),
            'detection_confidence': request.confidence,
            'status': request.status.value,
            'created_at': now,
            'updated_at': now,
        }
        upsert(db, MeetingRequestRecord, values, KEY_COLUMNS, MEETING_REQUEST_MUTABLE)
        return db.execute(
            select(MeetingRequestRecord.id).where(
                MeetingRequestRecord.message_id == request.message_id,
                MeetingRequestRecord.user_id == user_id,
            )
        ).scalar_one()

    def save_draft(
        self,
        db: Session,
        meeting_request_id: int,
        request: MeetingRequest,
        user_id: str,
        response: MeetingResponse
    ) -> None:
        now = datetime.utcnow()
        values = {
            'meeting_request_id': meeting_request_id,
            'message_id': request.message_id,
            'user_id': user_id,
            'thread_id': request.thread_id,
            'recipient_email': request.sender,
            'subject': reply_subject(request.subject),
            'body': response.text,
            'strategy': response.strategy.value,
            'ai_generated': response.ai_generated,
            'confidence': response.confidence,
            'calendar_event_id': response.event_ref.event_id if response.event_ref else None,
            'meeting_context': self._meeting_context(request, response),
            'status': DRAFT_STATUS_PENDING,
            'created_at': now,
            'updated_at': now,
        }
        upsert(db, MeetingResponseDraft, values, KEY_COLUMNS, DRAFT_MUTABLE)

    def upsert_processing_result(self, db: Session, result: ProcessingResult) -> None:
        values = {
            'message_id': result.message_id,
            'user_id': result.user_id,
            'is_meeting_request': result.is_meeting_request,
            'confidence': result.confidence,
            'processing_time_ms': result.processing_time_ms,
            'status': result.status.value,
            'reason': result.reason,
            'processed_at': datetime.utcnow(),
        }
        upsert(db, ProcessingResultRecord, values, KEY_COLUMNS)

    @staticmethod
    def _meeting_context(request: MeetingRequest, response: MeetingResponse) -> Dict[str, Any]:
        primary = request.primary_time
        return {
            'requested_time': primary.to_dict() if primary else None,
            'suggested_times': [w.to_dict() for w in response.suggested_windows],
            'scheduling_link': response.scheduling_link,
            'calendar_event': {
                'event_id': response.event_ref.event_id,
                'status': response.event_ref.status,
                'html_link': response.event_ref.html_link,
            } if response.event_ref else None,
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_processed(self, message_id: str, user_id: str) -> bool:
        """A processed or skipped result exists; errors stay eligible for retry."""
        with read_only_session(self.session_factory) as db:
            status = db.execute(
                select(ProcessingResultRecord.status).where(
                    ProcessingResultRecord.message_id == message_id,
                    ProcessingResultRecord.user_id == user_id,
                )
            ).scalar_one_or_none()
        return status is not None and status != ProcessingStatus.ERROR.value

    def get_processing_result(self, message_id: str, user_id: str) -> Optional[ProcessingResultRecord]:
        with read_only_session(self.session_factory) as db:
            return db.execute(
                select(ProcessingResultRecord).where(
                    ProcessingResultRecord.message_id == message_id,
                    ProcessingResultRecord.user_id == user_id,
                )
            ).scalar_one_or_none()

    def get_draft(self, message_id: str, user_id: str) -> Optional[MeetingResponseDraft]:
        with read_only_session(self.session_factory) as db:
            return db.execute(
                select(MeetingResponseDraft).where(
                    MeetingResponseDraft.message_id == message_id,
                    MeetingResponseDraft.user_id == user_id,
                )
            ).scalar_one_or_none()

    def get_meeting_requests(
        self,
        user_id: str,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[MeetingRequestRecord]:
        query = select(MeetingRequestRecord).where(MeetingRequestRecord.user_id == user_id)
        if status:
            query = query.where(MeetingRequestRecord.status == status)
        if urgency:
            query = query.where(MeetingRequestRecord.urgency == urgency)
        if category:
            query = query.where(MeetingRequestRecord.category == category)
        query = query.order_by(
            MeetingRequestRecord.created_at.desc(), MeetingRequestRecord.id.desc()
        ).limit(limit).offset(offset)

        with read_only_session(self.session_factory) as db:
            return list(db.execute(query).scalars())

    def get_meeting_stats(self, user_id: str) -> Dict[str, Any]:
        """Counts of requests by status, urgency and category, plus run outcomes."""
        stats: Dict[str, Any] = {'total': 0}
        with read_only_session(self.session_factory) as db:
            for label, column in (
                ('by_status', MeetingRequestRecord.status),
                ('by_urgency', MeetingRequestRecord.urgency),
                ('by_category', MeetingRequestRecord.category),
            ):
                rows = db.execute(
                    select(column, func.count())
                    .where(MeetingRequestRecord.user_id == user_id)
                    .group_by(column)
                ).all()
                stats[label] = {value: count for value, count in rows}
            stats['total'] = sum(stats['by_status'].values())

            outcome_rows = db.execute(
                select(ProcessingResultRecord.status, func.count())
                .where(ProcessingResultRecord.user_id == user_id)
                .group_by(ProcessingResultRecord.status)
            ).all()
            stats['processing'] = {value: count for value, count in outcome_rows}
        return stats

    def update_status(self, user_id: str, meeting_request_id: int, status: MeetingStatus) -> bool:
        """Approval/booking actions move a request out of pending."""
        with get_db_context(self.session_factory) as db:
            result = db.execute(
                update(MeetingRequestRecord)
                .where(
                    MeetingRequestRecord.id == meeting_request_id,
                    MeetingRequestRecord.user_id == user_id,
                )
                .values(status=status.value, updated_at=datetime.utcnow())
            )
            changed = result.rowcount > 0
        if changed:
            logger.info(f"[MeetingRepository] Request {meeting_request_id} -> {status.value}")
        return changed

    def ping(self) -> bool:
        with read_only_session(self.session_factory) as db:
            db.execute(text("SELECT 1"))
        return True
