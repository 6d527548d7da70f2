"""
Channel Base — Common activity model and the outbound transport contract.

Every platform adapter (MS Teams, Slack, Mattermost, …) implements
:class:`BaseTransport` so the delivery core can route messages without
knowing the platform wire format.

Design Principles
-----------------
* Platform-specific logic lives **only** inside the transport subclass.
* The core hands the transport fully composed :class:`DeliveryUnit` objects.
* Inbound platform events are normalised into :class:`Turn` by
  ``transport.parse_turn()`` before anything else sees them.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# ------------------------------------------------------------------
# Data objects
# ------------------------------------------------------------------

class ChatToolType(str, Enum):
    MSTEAMS = "msteams"
    SLACK = "slack"
    MATTERMOST = "mattermost"


class MessageType(str, Enum):
    PLAIN_TEXT = "plainText"
    MSTEAMS_ADAPTIVE_CARD = "msteams.adaptiveCard"
    SLACK_BLOCK = "slack.block"
    SLACK_VIEW = "slack.view"
    MATTERMOST_ATTACHMENT = "mattermost.attachment"
    MATTERMOST_DIALOG_OPEN = "mattermost.dialog.open"


@dataclass
class ChannelRef:
    """A channel known by id, by name, or both. Identity is the id."""

    id: str = ""
    name: str = ""

    @property
    def is_complete(self) -> bool:
        return self.id.strip() != "" and self.name.strip() != ""

    @property
    def is_blank(self) -> bool:
        return self.id.strip() == "" and self.name.strip() == ""

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass
class ChannelEntry:
    """Directory record: a channel plus when it was last observed."""

    ref: ChannelRef
    last_seen: float = field(default_factory=time.time)


@dataclass
class Mention:
    """A channel to highlight in delivered text."""

    mentioned: ChannelRef
    text: str = ""

    def to_entity(self) -> Dict[str, Any]:
        return {
            "type": "mention",
            "mentioned": self.mentioned.to_dict(),
            "text": self.text or f"<at>{self.mentioned.name}</at>",
        }


@dataclass
class Message:
    """
    One outbound message part.

    ``message`` holds plain text for ``PLAIN_TEXT`` and the opaque platform
    payload (e.g. an Adaptive Card dict) for every other type.
    """

    type: Union[MessageType, str]
    message: Any
    mentions: List[Mention] = field(default_factory=list)


@dataclass
class DeliveryUnit:
    """One platform-level send payload."""

    text: str = ""
    attachments: List[Any] = field(default_factory=list)
    mentions: List[Mention] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.text:
            d["text"] = self.text
        if self.attachments:
            d["attachments"] = list(self.attachments)
        if self.mentions:
            d["mentions"] = [m.to_entity() for m in self.mentions]
        return d


@dataclass
class Composition:
    """Result of composing a send request: a first unit and an optional rest unit."""

    first: Optional[DeliveryUnit] = None
    rest: Optional[DeliveryUnit] = None

    @property
    def units(self) -> List[DeliveryUnit]:
        return [u for u in (self.first, self.rest) if u is not None]

    @property
    def is_empty(self) -> bool:
        return self.first is None


@dataclass
class Turn:
    """One inbound platform event, normalised."""

    activity: Dict[str, Any]
    channel: ChannelRef
    endpoint: str = ""
    reference: Dict[str, Any] = field(default_factory=dict)
    text: str = ""
    user: Dict[str, Any] = field(default_factory=dict)
    is_message: bool = True

    @property
    def activity_id(self) -> str:
        return str(self.activity.get("id", ""))


@dataclass
class ChatContextData:
    """Caller-facing send context. A live ``turn`` selects conversational delivery."""

    channel: ChannelRef = field(default_factory=ChannelRef)
    user: Dict[str, Any] = field(default_factory=dict)
    turn: Optional[Turn] = None


@dataclass
class Conversational:
    """Reply within the conversation of a live turn."""

    turn: Turn


@dataclass
class Proactive:
    """Open a new thread in a channel, with no live turn."""

    channel: ChannelRef


DeliveryTarget = Union[Conversational, Proactive]


def target_for(context_data: ChatContextData) -> DeliveryTarget:
    """Pick the delivery path from the caller context."""
    if context_data.turn is not None:
        return Conversational(context_data.turn)
    return Proactive(context_data.channel)


# ------------------------------------------------------------------
# Abstract base
# ------------------------------------------------------------------

class BaseTransport(ABC):
    """
    Abstract base for a platform transport.

    Subclasses must implement:
    * ``parse_turn()``          — Normalise an inbound payload into a Turn.
    * ``resume_conversation()`` — Push a unit into a live turn's conversation.
    * ``create_conversation()`` — Open a new channel thread, return its id.
    * ``continue_thread()``     — Push a unit into a thread opened earlier.

    Implementations raise :class:`commonbot.bot.errors.TransportError` when
    the platform call fails.
    """

    chat_tool_type: ChatToolType

    def __init__(self, chat_tool_type: ChatToolType):
        self.chat_tool_type = chat_tool_type

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open network resources. Default: nothing to open."""

    async def stop(self) -> None:
        """Release network resources. Default: nothing to release."""

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    @abstractmethod
    def parse_turn(self, activity: Dict[str, Any]) -> Optional[Turn]:
        """Return the normalised turn, or None if the payload carries none."""

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    @abstractmethod
    async def resume_conversation(self, reference: Dict[str, Any], unit: DeliveryUnit) -> None:
        """Send a unit into the conversation a turn came from."""

    @abstractmethod
    async def create_conversation(self, channel: ChannelRef, endpoint: str, unit: DeliveryUnit) -> str:
        """Create a new thread in ``channel`` opened by ``unit``. Returns the thread id."""

    @abstractmethod
    async def continue_thread(self, thread_id: str, endpoint: str, unit: DeliveryUnit) -> None:
        """Send a follow-up unit into a thread created by ``create_conversation``."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} type={self.chat_tool_type.value}>"
