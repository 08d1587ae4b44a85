"""
Service Interfaces - contracts for the collaborators the pipeline consumes

Concrete Gmail/Google Calendar/LLM adapters live outside this package;
tests provide in-memory implementations.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .meetings.models import CalendarEvent, EventRef, InboundMessage, TimeWindow


# ===================================================================
# EMAIL PROVIDER
# ===================================================================

class EmailProvider(ABC):
    """Read access to the user's mailbox"""

    @abstractmethod
    async def fetch_message(self, message_id: str) -> InboundMessage:
        """Fetch one message by provider id"""
        pass

    @abstractmethod
    async def count_messages_with(self, user_id: str, address: str) -> int:
        """Number of earlier messages exchanged between the user and ``address``"""
        pass


# ===================================================================
# CALENDAR PROVIDER
# ===================================================================

class CalendarProvider(ABC):
    """Calendar access; every window is evaluated in the zone given"""

    @abstractmethod
    async def list_events(self, user_id: str, window: TimeWindow, zone: str) -> List[CalendarEvent]:
        """Events overlapping ``window``"""
        pass

    @abstractmethod
    async def create_event(
        self,
        user_id: str,
        window: TimeWindow,
        zone: str,
        attendees: Sequence[str],
        summary: str = ""
    ) -> EventRef:
        """Create a tentative event"""
        pass

    async def get_timezone(self, user_id: str) -> Optional[str]:
        """The user's calendar timezone setting, if the provider exposes one"""
        return None


# ===================================================================
# TEXT GENERATION / LINKS
# ===================================================================

class TextGenerator(Protocol):
    """Generative-text collaborator; may fail or time out"""

    async def generate(self, prompt_context: Dict[str, Any]) -> str:
        ...


class SchedulingLinkProvider(Protocol):
    """Looks up the user's self-service booking URL"""

    async def get_scheduling_link(self, user_id: str) -> Optional[str]:
        ...
