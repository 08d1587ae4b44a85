"""
ResponseStrategySelector - which reply to draft, and drafting it

Selection is a pure function of (concrete time?, availability, link?).
Sender relationship and urgency only shape the wording.
"""
import asyncio
from typing import Optional

from ...utils.config import AgentConfig, ResponseConfig
from ...utils.logger import setup_logger
from ...utils.scheduling_links import SchedulingLink, validate_scheduling_link
from ..interfaces import CalendarProvider, EmailProvider, SchedulingLinkProvider
from .models import (
    AvailabilityResult,
    EventRef,
    MeetingRequest,
    MeetingResponse,
    ResponseStrategy,
    SenderRelationship,
    TimeWindow,
)
from .response_content import ResponseContentGenerator, ResponseContext

logger = setup_logger(__name__)

NEW_CONTACT_MAX_MESSAGES = 3

STRATEGY_CONFIDENCE = {
    ResponseStrategy.ACCEPT: 95,
    ResponseStrategy.SCHEDULING_LINK_VAGUE: 90,
    ResponseStrategy.SCHEDULING_LINK_CONFLICT: 90,
    ResponseStrategy.PROPOSE_ALTERNATIVES: 85,
    ResponseStrategy.REQUEST_MORE_INFO: 75,
}


def classify_relationship(prior_messages: Optional[int]) -> SenderRelationship:
    """0 prior messages: stranger; up to 3: new contact; more: known contact."""
    if not prior_messages or prior_messages <= 0:
        return SenderRelationship.STRANGER
    if prior_messages <= NEW_CONTACT_MAX_MESSAGES:
        return SenderRelationship.NEW_CONTACT
    return SenderRelationship.KNOWN_CONTACT


def select_strategy(
    has_concrete_time: bool,
    availability: Optional[AvailabilityResult],
    has_scheduling_link: bool
) -> ResponseStrategy:
    """
    Priority order:

    1. concrete time, free -> accept
    2. concrete time, busy -> alternatives if any were found, else the
       scheduling link, else ask for other times
    3. vague time, no link -> ask for specific times
    4. vague time, link -> link; the conflict variant when the vague
       period already has busy blocks
    """
    if has_concrete_time and availability is not None:
        if availability.is_available:
            return ResponseStrategy.ACCEPT
        if availability.alternatives:
            return ResponseStrategy.PROPOSE_ALTERNATIVES
        if has_scheduling_link:
            return ResponseStrategy.SCHEDULING_LINK_CONFLICT
        return ResponseStrategy.REQUEST_MORE_INFO

    if not has_scheduling_link:
        return ResponseStrategy.REQUEST_MORE_INFO
    if availability is not None and availability.conflicts:
        return ResponseStrategy.SCHEDULING_LINK_CONFLICT
    return ResponseStrategy.SCHEDULING_LINK_VAGUE


class ResponseStrategySelector:
    """Chooses a strategy and drafts the reply for a detected request."""

    def __init__(
        self,
        content: ResponseContentGenerator,
        email: Optional[EmailProvider] = None,
        calendar: Optional[CalendarProvider] = None,
        links: Optional[SchedulingLinkProvider] = None,
        config: Optional[ResponseConfig] = None,
        agent: Optional[AgentConfig] = None,
        lookup_timeout: float = 5.0
    ):
        self.content = content
        self.email = email
        self.calendar = calendar
        self.links = links
        self.config = config or ResponseConfig()
        self.agent = agent or AgentConfig()
        self.lookup_timeout = lookup_timeout

    async def relationship_for(self, user_id: str, sender: str) -> SenderRelationship:
        if self.email is None:
            return SenderRelationship.STRANGER
        try:
            count = await asyncio.wait_for(
                self.email.count_messages_with(user_id, sender),
                timeout=self.lookup_timeout
            )
        except Exception as e:
            logger.warning(f"[ResponseStrategySelector] Relationship lookup failed for {sender}: {e}")
            return SenderRelationship.STRANGER
        return classify_relationship(count)

    async def scheduling_link_for(self, user_id: str) -> Optional[SchedulingLink]:
        url = None
        if self.links is not None:
            try:
                url = await asyncio.wait_for(self.links.get_scheduling_link(user_id), timeout=self.lookup_timeout)
            except Exception as e:
                logger.warning(f"[ResponseStrategySelector] Scheduling link lookup failed for {user_id}: {e}")
        link = validate_scheduling_link(url or self.config.default_scheduling_link)
        if (url or self.config.default_scheduling_link) and link is None:
            logger.warning(f"[ResponseStrategySelector] Ignoring invalid scheduling link for {user_id}")
        return link

    async def respond(
        self,
        request: MeetingRequest,
        user_id: str,
        availability: Optional[AvailabilityResult] = None,
        requested_window: Optional[TimeWindow] = None,
        display_zone: Optional[str] = None
    ) -> MeetingResponse:
        link = await self.scheduling_link_for(user_id)
        relationship = await self.relationship_for(user_id, request.sender)
        strategy = select_strategy(requested_window is not None, availability, link is not None)

        context = ResponseContext(
            request=request,
            strategy=strategy,
            relationship=relationship,
            tone=self.agent.tone,
            requested_window=requested_window,
            availability=availability,
            scheduling_link=link,
            display_zone=display_zone,
        )
        text, ai_generated = await self.content.render(context)

        event_ref = None
        if strategy is ResponseStrategy.ACCEPT and self.config.auto_book and requested_window is not None:
            event_ref = await self._book(request, user_id, requested_window)

        logger.info(
            f"[ResponseStrategySelector] {request.message_id}: {strategy.value} "
            f"(relationship={relationship.value}, ai={ai_generated})"
        )
        return MeetingResponse(
            strategy=strategy,
            text=text,
            calendar_event_created=event_ref is not None,
            event_ref=event_ref,
            ai_generated=ai_generated,
            confidence=STRATEGY_CONFIDENCE[strategy],
            suggested_windows=context.suggestions if strategy is not ResponseStrategy.ACCEPT else (),
            scheduling_link=link.url if link and strategy.uses_scheduling_link else None,
        )

    async def _book(self, request: MeetingRequest, user_id: str, window: TimeWindow) -> Optional[EventRef]:
        if self.calendar is None:
            return None
        attendees = [request.sender, *[a for a in request.attendees if '@' in a]]
        try:
            return await asyncio.wait_for(
                self.calendar.create_event(
                    user_id, window, window.zone, attendees, summary=request.subject or 'Meeting'
                ),
                timeout=self.lookup_timeout
            )
        except Exception as e:
            logger.warning(f"[ResponseStrategySelector] Tentative booking failed for {request.message_id}: {e}")
            return None
