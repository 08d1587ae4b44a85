"""
SQLAlchemy models for meeting requests, response drafts and processing results
"""
from datetime import datetime

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class MeetingRequestRecord(Base):
    """
    A detected meeting request, one row per (message, user).

    Reprocessing the same message refreshes the mutable fields in place;
    rows are never deleted.
    """
    __tablename__ = 'meeting_requests'

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(String(255), nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    thread_id = Column(String(255))

    sender_email = Column(String(320), nullable=False)
    sender_name = Column(String(255))
    subject = Column(Text)
    candidate_times = Column(JSON, default=list)  # serialized CandidateTime list
    resolved_start = Column(DateTime(timezone=True))
    requested_duration = Column(Integer, default=60)  # minutes
    requester_timezone = Column(String(64))
    category = Column(String(20), default='regular', index=True)
    urgency = Column(String(10), default='medium', index=True)
    location_preference = Column(String(255))
    special_requirements = Column(Text)
    attendees = Column(JSON, default=list)
    detection_confidence = Column(Integer, default=0)
    status = Column(String(20), default='pending', nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    drafts = relationship("MeetingResponseDraft", back_populates="meeting_request")

    __table_args__ = (
        UniqueConstraint('message_id', 'user_id', name='uq_meeting_requests_message_user'),
        Index('idx_meeting_requests_user_status', 'user_id', 'status', 'created_at'),
    )

    def __repr__(self):
        return f"<MeetingRequestRecord(id={self.id}, message_id='{self.message_id}', status='{self.status}')>"


class MeetingResponseDraft(Base):
    """Proposed reply awaiting the user's approval. Never sent automatically."""
    __tablename__ = 'meeting_response_drafts'

    id = Column(Integer, primary_key=True, index=True)
    meeting_request_id = Column(Integer, ForeignKey('meeting_requests.id'), nullable=False, index=True)
    message_id = Column(String(255), nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    thread_id = Column(String(255))

    recipient_email = Column(String(320), nullable=False)
    subject = Column(Text)
    body = Column(Text, nullable=False)
    strategy = Column(String(40), nullable=False)
    ai_generated = Column(Boolean, default=False)
    confidence = Column(Integer, default=0)
    calendar_event_id = Column(String(255))
    meeting_context = Column(JSON, default=dict)  # suggested times, link, booking info
    status = Column(String(30), default='pending_user_action', nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    meeting_request = relationship("MeetingRequestRecord", back_populates="drafts")

    __table_args__ = (
        UniqueConstraint('message_id', 'user_id', name='uq_meeting_drafts_message_user'),
    )

    def __repr__(self):
        return f"<MeetingResponseDraft(id={self.id}, strategy='{self.strategy}', status='{self.status}')>"


class ProcessingResultRecord(Base):
    """
    Audit row per (message, user) pipeline run.

    A processed or skipped row means the message must not be handled again.
    """
    __tablename__ = 'meeting_processing_results'

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(String(255), nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    is_meeting_request = Column(Boolean, default=False, nullable=False)
    confidence = Column(Integer, default=0)
    processing_time_ms = Column(Integer, default=0)
    status = Column(String(20), nullable=False, index=True)  # processed | skipped | error
    reason = Column(Text)
    processed_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        UniqueConstraint('message_id', 'user_id', name='uq_processing_results_message_user'),
    )

    def __repr__(self):
        return f"<ProcessingResultRecord(message_id='{self.message_id}', status='{self.status}')>"


class UserTimezone(Base):
    """Durable record of a user's canonical timezone"""
    __tablename__ = 'user_timezones'

    user_id = Column(String(255), primary_key=True)
    timezone = Column(String(64), nullable=False)
    source = Column(String(30), nullable=False)  # provider | user | default
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserTimezone(user_id='{self.user_id}', timezone='{self.timezone}')>"


class TimezoneChangeLog(Base):
    """Audit trail of timezone changes per user"""
    __tablename__ = 'timezone_change_log'

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    old_timezone = Column(String(64))
    new_timezone = Column(String(64), nullable=False)
    source = Column(String(30), nullable=False)
    changed_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<TimezoneChangeLog(user_id='{self.user_id}', {self.old_timezone} -> {self.new_timezone})>"
