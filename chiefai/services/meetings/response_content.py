"""
Response text: generated by the language model, checked, or templated

The template path needs no collaborator and cannot fail, so every detected
request gets some reply text.
"""
import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import pytz

from ...utils.config import ResponseConfig
from ...utils.logger import setup_logger
from ...utils.scheduling_links import SchedulingLink
from ..interfaces import TextGenerator
from .exceptions import ResponseGenerationError
from .models import (
    AvailabilityResult,
    MeetingRequest,
    ResponseStrategy,
    SenderRelationship,
    TimeWindow,
    UrgencyLevel,
)

logger = setup_logger(__name__)

RESPONSE_TEMPERATURE = 0.7
RESPONSE_MAX_TOKENS = 400

GREETINGS = {
    'professional': 'Hello{name},',
    'friendly': 'Hi{name}!',
    'casual': 'Hey{name}!',
}
ANONYMOUS_GREETINGS = {
    'professional': 'Hello,',
    'friendly': 'Hi there!',
    'casual': 'Hi!',
}
CLOSINGS = {
    'professional': 'Best regards',
    'friendly': 'Looking forward to speaking with you!',
    'casual': 'Looking forward to it!',
}

TONE_GUIDANCE = {
    'professional': 'Use a polished, courteous business tone.',
    'friendly': 'Use a warm, approachable tone while staying professional.',
    'casual': 'Use a relaxed, conversational tone.',
}
RELATIONSHIP_GUIDANCE = {
    SenderRelationship.STRANGER: 'The sender is new to the user; be courteous and slightly formal.',
    SenderRelationship.NEW_CONTACT: 'The user has exchanged a few emails with the sender.',
    SenderRelationship.KNOWN_CONTACT: 'The sender is a known contact; a familiar tone is fine.',
}
ACTION_GUIDANCE = {
    ResponseStrategy.ACCEPT: 'Confirm the requested time works. Do not mention conflicts.',
    ResponseStrategy.PROPOSE_ALTERNATIVES: (
        'Explain the requested time is taken and offer exactly the alternative times listed.'
    ),
    ResponseStrategy.SCHEDULING_LINK_VAGUE: 'Invite the sender to book a time through the scheduling link.',
    ResponseStrategy.SCHEDULING_LINK_CONFLICT: (
        'Say the suggested time or period is busy and point to the scheduling link.'
    ),
    ResponseStrategy.REQUEST_MORE_INFO: 'Ask the sender for specific dates and times that work for them.',
}

RESPONSE_SYSTEM_PROMPT = """
You draft short email replies to meeting requests on behalf of the user.
{tone}
{relationship}
Action: {action}
Keep the reply concise (2-4 sentences, at most {max_words} words).
Only mention times and links given to you. No subject line, no signature,
no placeholders.
"""

UNPROFESSIONAL_PATTERN = re.compile(r'\b(?:damn|hell|crap|wtf|lol|omg|shit)\b', re.IGNORECASE)
DECLINING_PATTERN = re.compile(r"\b(?:unfortunately|conflict|cannot|can't|unable)\b", re.IGNORECASE)
PLACEHOLDER_PATTERN = re.compile(r'\[[A-Z][A-Za-z ]+\]|\{\w+\}')


def format_when(moment: datetime) -> str:
    """'Tuesday, March 4 at 2:30 PM EST'"""
    hour = moment.hour % 12 or 12
    meridiem = 'AM' if moment.hour < 12 else 'PM'
    return f"{moment:%A, %B} {moment.day} at {hour}:{moment:%M} {meridiem} {moment.tzname()}"


@dataclass(frozen=True)
class ResponseContext:
    """Everything a reply is rendered from"""
    request: MeetingRequest
    strategy: ResponseStrategy
    relationship: SenderRelationship
    tone: str = 'professional'
    requested_window: Optional[TimeWindow] = None
    availability: Optional[AvailabilityResult] = None
    scheduling_link: Optional[SchedulingLink] = None
    display_zone: Optional[str] = None

    def format_window(self, window: TimeWindow) -> str:
        """Start of ``window`` in the zone the sender wrote in, else the window's zone."""
        if self.display_zone:
            return format_when(window.start.astimezone(pytz.timezone(self.display_zone)))
        return format_when(window.local_start())

    @property
    def suggestions(self) -> Tuple[TimeWindow, ...]:
        if self.availability is None:
            return ()
        return self.availability.alternatives

    @property
    def requested_passed(self) -> bool:
        return self.availability is not None and self.availability.is_past

    @property
    def requested_when(self) -> Optional[str]:
        if self.requested_window is None:
            return None
        return self.format_window(self.requested_window)

    @property
    def first_name(self) -> Optional[str]:
        if not self.request.sender_name:
            return None
        return self.request.sender_name.split()[0]


class ResponseContentGenerator:
    """Renders reply text for a chosen strategy."""

    def __init__(
        self,
        text_generator: Optional[TextGenerator] = None,
        config: Optional[ResponseConfig] = None,
        timeout_seconds: float = 15.0
    ):
        self.text_generator = text_generator
        self.config = config or ResponseConfig()
        self.timeout_seconds = timeout_seconds

    async def render(self, context: ResponseContext) -> Tuple[str, bool]:
        """
        Returns:
            (text, ai_generated)
        """
        if self.text_generator is not None and self.config.use_ai:
            try:
                text = await self._generate(context)
                return text, True
            except Exception as e:
                logger.warning(
                    f"[ResponseContent] Falling back to template for {context.request.message_id} "
                    f"({context.strategy.value}): {e}"
                )
        return self.render_template(context), False

    async def _generate(self, context: ResponseContext) -> str:
        raw = await asyncio.wait_for(
            self.text_generator.generate(self.build_prompt(context)),
            timeout=self.timeout_seconds
        )
        return self.validate(raw or '', context)

    # ------------------------------------------------------------------
    # Prompt and validation
    # ------------------------------------------------------------------

    def build_prompt(self, context: ResponseContext) -> Dict[str, Any]:
        tone = context.tone if context.tone in TONE_GUIDANCE else 'professional'
        system = RESPONSE_SYSTEM_PROMPT.format(
            tone=TONE_GUIDANCE[tone],
            relationship=RELATIONSHIP_GUIDANCE[context.relationship],
            action=ACTION_GUIDANCE[context.strategy],
            max_words=self.config.max_words,
        )

        lines = [
            f"Sender: {context.request.sender_name or context.request.sender}",
            f"Subject: {context.request.subject}",
            f"Urgency: {context.request.urgency.value}",
        ]
        if context.request.purpose:
            lines.append(f"Purpose: {context.request.purpose}")
        if context.requested_when:
            lines.append(f"Requested time: {context.requested_when}")
            if context.requested_passed:
                lines.append("The requested time has already passed.")
        if context.strategy is ResponseStrategy.PROPOSE_ALTERNATIVES and context.suggestions:
            lines.append("Alternative times:")
            lines.extend(f"- {context.format_window(w)}" for w in context.suggestions)
        if context.strategy.uses_scheduling_link and context.scheduling_link:
            lines.append(f"Scheduling link: {context.scheduling_link.url}")

        return {
            'task': 'meeting_response',
            'system': system,
            'prompt': '\n'.join(lines),
            'temperature': RESPONSE_TEMPERATURE,
            'max_tokens': RESPONSE_MAX_TOKENS,
        }

    def validate(self, text: str, context: ResponseContext) -> str:
        """
        Reject replies that are empty, too long, off-tone or contradict the
        chosen strategy.

        Raises:
            ResponseGenerationError
        """
        cleaned = text.strip().strip('"').strip()
        if len(cleaned) < self.config.min_chars:
            raise ResponseGenerationError("reply too short")
        if len(cleaned) > self.config.max_chars:
            raise ResponseGenerationError("reply too long")
        if len(cleaned.split()) > self.config.max_words:
            raise ResponseGenerationError("reply exceeds word budget")
        if UNPROFESSIONAL_PATTERN.search(cleaned):
            raise ResponseGenerationError("unprofessional language")
        if PLACEHOLDER_PATTERN.search(cleaned):
            raise ResponseGenerationError("unfilled placeholder")
        if context.strategy.uses_scheduling_link and context.scheduling_link:
            if context.scheduling_link.url not in cleaned:
                raise ResponseGenerationError("scheduling link missing")
        if context.strategy is ResponseStrategy.ACCEPT and DECLINING_PATTERN.search(cleaned):
            raise ResponseGenerationError("acceptance mentions a conflict")
        return cleaned

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def render_template(self, context: ResponseContext) -> str:
        tone = context.tone if context.tone in GREETINGS else 'professional'
        if context.relationship is SenderRelationship.STRANGER:
            tone = 'professional'

        name = context.first_name
        greeting = GREETINGS[tone].format(name=f" {name}") if name else ANONYMOUS_GREETINGS[tone]
        body = self._template_body(context)
        return f"{greeting}\n\n{body}\n\n{CLOSINGS[tone]}"

    def _template_body(self, context: ResponseContext) -> str:
        strategy = context.strategy
        when = context.requested_when
        link = context.scheduling_link.url if context.scheduling_link else None
        opener = (
            "Thanks for flagging this as time-sensitive."
            if context.request.urgency is UrgencyLevel.HIGH
            else "Thanks for reaching out."
        )

        if strategy is ResponseStrategy.ACCEPT:
            return f"{opener} {when or 'The proposed time'} works for me. I'll send over a calendar invite shortly."

        if strategy is ResponseStrategy.PROPOSE_ALTERNATIVES:
            options = '\n'.join(f"- {context.format_window(w)}" for w in context.suggestions)
            return (
                f"{self._unavailable(context)} "
                f"Would any of these work instead?\n{options}"
            )

        if strategy is ResponseStrategy.SCHEDULING_LINK_CONFLICT:
            return (
                f"{self._unavailable(context)} "
                f"Please pick a time that suits you here: {link}"
            )

        if strategy is ResponseStrategy.SCHEDULING_LINK_VAGUE:
            return f"{opener} Please grab a time that works for you here: {link}"

        if when and context.availability is not None and not context.availability.is_available:
            opener = f"Unfortunately, {when} doesn't work for me."
        text = f"{opener} Could you share a few specific dates and times that work for you?"
        if context.suggestions:
            slots = ' or '.join(context.format_window(w) for w in context.suggestions[:2])
            text += f" For reference, I'm currently free {slots}."
        return text

    @staticmethod
    def _unavailable(context: ResponseContext) -> str:
        when = context.requested_when
        if context.requested_passed:
            return f"Unfortunately, {when or 'that time'} has already passed."
        if when:
            return f"Unfortunately, I have a conflict at {when}."
        return "Unfortunately, I have a conflict during that period."
