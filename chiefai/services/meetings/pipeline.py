"""
MeetingPipeline - admission, detection, availability, drafting, persistence

States per message:
    received -> admitted -> detected | skipped -> responded | response-skipped
    -> persisted -> done

Network work happens before the database transaction. Every write for a
message (meeting request, draft, processing result) shares one session and
commits or rolls back together. Callers always get a ProcessingResult back.
"""
import asyncio
import time
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytz

from ...utils.config import Config
from ...utils.logger import bind_message_context, clear_message_context, setup_logger
from ..interfaces import EmailProvider
from ..timezone import TimeZoneResolver
from .availability import AvailabilityEvaluator
from .exceptions import AvailabilityUnavailableError, MeetingPipelineError, PersistenceError
from .filters import is_self_generated
from .idempotency import Admission, IdempotencyGuard
from .intent_extractor import MeetingIntentExtractor
from .models import (
    AvailabilityResult,
    CandidateTime,
    InboundMessage,
    MeetingRequest,
    MeetingResponse,
    MeetingStatus,
    ProcessingResult,
    ProcessingStatus,
    ResolutionMethod,
    TimeWindow,
)
from .repository import MeetingRepository
from .response_strategy import ResponseStrategySelector

logger = setup_logger(__name__)

REASON_IN_PROGRESS = "Message is already being processed"
REASON_ALREADY_PROCESSED = "Already processed"
REASON_SELF_GENERATED = "Message was drafted by the assistant"
REASON_RESPONSE_SKIPPED = "Meeting detected; no response could be drafted"
REASON_FETCH_FAILED = "Message could not be fetched"

WORKWEEK_DAYS = 5


def _utc_now() -> datetime:
    return datetime.now(pytz.utc)


def vague_period(candidate: CandidateTime, today: date) -> Tuple[date, int]:
    """First day and length in days of the period a vague candidate covers."""
    first_day = candidate.day or today
    if candidate.date_expression == 'next week':
        return first_day, WORKWEEK_DAYS
    if candidate.date_expression == 'this week':
        return first_day, max(1, WORKWEEK_DAYS - first_day.weekday())
    return first_day, 1


class MeetingPipeline:
    """Processes inbound messages into stored meeting requests and drafts."""

    def __init__(
        self,
        extractor: MeetingIntentExtractor,
        resolver: TimeZoneResolver,
        availability: AvailabilityEvaluator,
        responder: ResponseStrategySelector,
        guard: IdempotencyGuard,
        repository: MeetingRepository,
        config: Optional[Config] = None,
        email: Optional[EmailProvider] = None,
        now: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Any] = asyncio.sleep
    ):
        self.extractor = extractor
        self.resolver = resolver
        self.availability = availability
        self.responder = responder
        self.guard = guard
        self.repository = repository
        self.config = config or Config()
        self.email = email
        self.now = now
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_message(self, message: InboundMessage, user_id: str) -> ProcessingResult:
        started = time.perf_counter()
        key = self.guard.key_for(message.message_id, user_id)
        bind_message_context(message.message_id, user_id)
        try:
            if await self.guard.admit(key) is Admission.DENIED:
                return self._result(message, user_id, started, ProcessingStatus.SKIPPED, reason=REASON_IN_PROGRESS)
            try:
                return await self._process_admitted(message, user_id, started)
            except Exception as e:
                logger.error(f"[MeetingPipeline] Unexpected failure: {e}", exc_info=True)
                return self._result(
                    message, user_id, started, ProcessingStatus.ERROR, reason=MeetingPipelineError.reason
                )
            finally:
                await self.guard.release(key)
        finally:
            clear_message_context()

    async def process_message_id(self, message_id: str, user_id: str) -> ProcessingResult:
        """Fetch through the email provider, then process."""
        if self.email is None:
            raise RuntimeError("No email provider configured")
        started = time.perf_counter()
        try:
            message = await asyncio.wait_for(
                self.email.fetch_message(message_id),
                timeout=self.config.ai.timeout_seconds
            )
        except Exception as e:
            logger.error(f"[MeetingPipeline] Fetch failed for {message_id}: {e}")
            return ProcessingResult(
                message_id=message_id,
                user_id=user_id,
                status=ProcessingStatus.ERROR,
                processing_time_ms=self._elapsed_ms(started),
                reason=REASON_FETCH_FAILED,
            )
        return await self.process_message(message, user_id)

    async def process_messages(self, messages: Sequence[InboundMessage], user_id: str) -> List[ProcessingResult]:
        """Sequential, pausing after each processed message to spare rate limits."""
        results: List[ProcessingResult] = []
        for message in messages:
            result = await self.process_message(message, user_id)
            results.append(result)
            if result.status is ProcessingStatus.PROCESSED and self.config.pipeline.inter_message_delay > 0:
                await self.sleep(self.config.pipeline.inter_message_delay)

        processed = sum(1 for r in results if r.status is ProcessingStatus.PROCESSED)
        meetings = sum(1 for r in results if r.is_meeting_request)
        logger.info(
            f"[MeetingPipeline] Batch for {user_id}: {len(results)} messages, "
            f"{processed} processed, {meetings} meeting requests"
        )
        return results

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _process_admitted(self, message: InboundMessage, user_id: str, started: float) -> ProcessingResult:
        try:
            already = self.repository.is_processed(message.message_id, user_id)
        except Exception as e:
            logger.error(f"[MeetingPipeline] Processed-check failed: {e}")
            return self._result(message, user_id, started, ProcessingStatus.ERROR, reason=PersistenceError.reason)
        if already:
            return self._result(message, user_id, started, ProcessingStatus.SKIPPED, reason=REASON_ALREADY_PROCESSED)

        if self._is_self_generated(message):
            return self._persist_skip(message, user_id, started, REASON_SELF_GENERATED)

        user_zone = await self.resolver.resolve(user_id)
        reference = (message.received_at or self.now()).astimezone(pytz.timezone(user_zone))

        outcome = await self.extractor.analyze(message, reference)
        if not outcome.is_meeting:
            return self._persist_skip(message, user_id, started, outcome.reason, outcome.confidence)

        request = await self._resolve_times(outcome.meeting_request, user_id)

        try:
            window, availability = await self._check_availability(request, user_id, user_zone, reference)
        except AvailabilityUnavailableError as e:
            return self._result(
                message, user_id, started, ProcessingStatus.ERROR,
                is_meeting=True, confidence=request.confidence, reason=e.reason, request=request
            )

        response = await self._respond(request, user_id, availability, window)

        result = self._result(
            message, user_id, started, ProcessingStatus.PROCESSED,
            is_meeting=True,
            confidence=request.confidence,
            reason=None if response else REASON_RESPONSE_SKIPPED,
            request=request,
            response=response,
        )
        return self._persist_meeting(result, user_id, started)

    def _is_self_generated(self, message: InboundMessage) -> bool:
        agent = self.config.agent
        return is_self_generated(
            message,
            [agent.email, *agent.additional_addresses],
            reply_marker=agent.reply_marker,
            generated_header=agent.generated_header,
        )

    async def _resolve_times(self, request: MeetingRequest, user_id: str) -> MeetingRequest:
        resolved = []
        for candidate in request.candidate_times:
            if candidate.is_concrete:
                resolution = await self.resolver.resolve_time(candidate, user_id)
                if resolution is not None:
                    candidate = candidate.with_resolution(resolution)
            resolved.append(candidate)
        return request.with_candidates(tuple(resolved))

    async def _check_availability(
        self,
        request: MeetingRequest,
        user_id: str,
        user_zone: str,
        reference: datetime
    ) -> Tuple[Optional[TimeWindow], Optional[AvailabilityResult]]:
        primary = request.primary_time
        if primary is not None:
            # Same instant, evaluated against the user's own working hours
            start = primary.instant.astimezone(pytz.timezone(user_zone))
            window = TimeWindow(
                start=start,
                end=start + timedelta(minutes=request.duration_minutes),
                zone=user_zone,
            )
            # Nothing before the message arrived can be offered
            return window, await self.availability.evaluate(window, user_id, not_before=reference)

        vague = next((c for c in request.candidate_times if c.day is not None), None)
        if vague is None:
            return None, None

        first_day, days = vague_period(vague, reference.date())
        try:
            availability = await self.availability.evaluate_period(
                first_day, days, user_zone, user_id, request.duration_minutes
            )
        except AvailabilityUnavailableError as e:
            # Nothing is promised for a vague request, so an unknown calendar only loses context
            logger.warning(f"[MeetingPipeline] Period availability unknown: {e}")
            return None, None
        return None, availability

    async def _respond(
        self,
        request: MeetingRequest,
        user_id: str,
        availability: Optional[AvailabilityResult],
        window: Optional[TimeWindow]
    ) -> Optional[MeetingResponse]:
        display_zone = None
        primary = request.primary_time
        if primary is not None and primary.method is ResolutionMethod.EXPLICIT_IN_TEXT:
            display_zone = primary.zone
        try:
            return await self.responder.respond(
                request, user_id, availability=availability, requested_window=window, display_zone=display_zone
            )
        except Exception as e:
            logger.error(f"[MeetingPipeline] Response drafting failed: {e}", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist_meeting(self, result: ProcessingResult, user_id: str, started: float) -> ProcessingResult:
        request = result.meeting_request
        primary = request.primary_time
        requester_zone = primary.zone if primary and primary.method is ResolutionMethod.EXPLICIT_IN_TEXT else None
        try:
            with self.repository.unit_of_work() as db:
                request_id = self.repository.upsert_meeting_request(db, request, user_id, requester_zone)
                if result.response is not None:
                    self.repository.save_draft(db, request_id, request, user_id, result.response)
                self.repository.upsert_processing_result(db, result)
        except Exception as e:
            logger.error(f"[MeetingPipeline] Transaction rolled back: {e}", exc_info=True)
            return ProcessingResult(
                message_id=result.message_id,
                user_id=user_id,
                status=ProcessingStatus.ERROR,
                is_meeting_request=True,
                confidence=result.confidence,
                processing_time_ms=self._elapsed_ms(started),
                reason=PersistenceError.reason,
                meeting_request=request,
                response=result.response,
            )
        logger.info(
            f"[MeetingPipeline] Stored meeting request "
            f"({result.response.strategy.value if result.response else 'no response'}) "
            f"in {result.processing_time_ms}ms"
        )
        return result

    def _persist_skip(
        self,
        message: InboundMessage,
        user_id: str,
        started: float,
        reason: Optional[str],
        confidence: int = 0
    ) -> ProcessingResult:
        result = self._result(message, user_id, started, ProcessingStatus.SKIPPED, confidence=confidence, reason=reason)
        try:
            with self.repository.unit_of_work() as db:
                self.repository.upsert_processing_result(db, result)
        except Exception as e:
            logger.error(f"[MeetingPipeline] Could not record skip: {e}", exc_info=True)
            return self._result(message, user_id, started, ProcessingStatus.ERROR, reason=PersistenceError.reason)
        return result

    # ------------------------------------------------------------------
    # Queries and maintenance
    # ------------------------------------------------------------------

    def get_meeting_requests(self, user_id: str, **filters) -> List[Any]:
        return self.repository.get_meeting_requests(user_id, **filters)

    def get_meeting_stats(self, user_id: str) -> Dict[str, Any]:
        return self.repository.get_meeting_stats(user_id)

    def update_request_status(self, user_id: str, meeting_request_id: int, status: MeetingStatus) -> bool:
        return self.repository.update_status(user_id, meeting_request_id, status)

    async def health_check(self) -> Dict[str, Any]:
        checks: Dict[str, Any] = {}
        try:
            checks['database'] = self.repository.ping()
        except Exception as e:
            logger.error(f"[MeetingPipeline] Database health check failed: {e}")
            checks['database'] = False
        checks['text_generation'] = self.extractor.text_generator is not None
        checks['locks'] = type(self.guard.locks).__name__
        checks['status'] = 'healthy' if checks['database'] else 'unhealthy'
        return checks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    def _result(
        self,
        message: InboundMessage,
        user_id: str,
        started: float,
        status: ProcessingStatus,
        is_meeting: bool = False,
        confidence: int = 0,
        reason: Optional[str] = None,
        request: Optional[MeetingRequest] = None,
        response: Optional[MeetingResponse] = None
    ) -> ProcessingResult:
        return ProcessingResult(
            message_id=message.message_id,
            user_id=user_id,
            status=status,
            is_meeting_request=is_meeting,
            confidence=confidence,
            processing_time_ms=self._elapsed_ms(started),
            reason=reason,
            meeting_request=request,
            response=response,
        )
