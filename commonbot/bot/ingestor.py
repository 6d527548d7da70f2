"""
Turn Ingestor — Entry point for inbound platform events.

For every inbound activity the ingestor:
1. Normalises it into a Turn through the transport.
2. Records the originating channel and its endpoint, *before* any handler
   runs, so a handler may immediately send proactively elsewhere.
3. Runs each registered handler whose matcher accepts the message.

A failing handler never escapes: the error is logged with its traceback
and a short apology is sent back on the same turn.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from commonbot.bot.channels.base import (
    BaseTransport,
    ChannelRef,
    ChatContextData,
    DeliveryUnit,
    Mention,
    Message,
    MessageType,
    Turn,
)
from commonbot.bot.directory import ChannelDirectory
from commonbot.bot.endpoint_cache import DeliveryEndpointCache
from commonbot.bot.errors import TransportError
from commonbot.bot.structured_logging import ingestor_log as log, set_turn_context

DEFAULT_ERROR_REPLY = (
    "The bot encountered an error or bug. To continue to run this bot, "
    "please fix the bot source code."
)

# async def send(context_data, messages, mentions=None) -> DeliveryResult
SendFunction = Callable[..., Awaitable[Any]]
# def matcher(ctx) -> bool   (may also be async)
MessageMatcher = Callable[["ChatContext"], Any]
# async def handler(ctx) -> None
MessageHandler = Callable[["ChatContext"], Awaitable[None]]


class ChatContext:
    """What a handler sees: the inbound turn plus a send bound to it."""

    def __init__(self, turn: Turn, send: SendFunction):
        self.turn = turn
        self.data = ChatContextData(channel=turn.channel, user=turn.user, turn=turn)
        self._send = send

    @property
    def text(self) -> str:
        return self.turn.text

    async def send(self, messages: Sequence[Message], mentions: Optional[Sequence[Mention]] = None):
        """Reply in the conversation of this turn."""
        return await self._send(self.data, list(messages), mentions)

    async def send_text(self, text: str):
        return await self.send([Message(MessageType.PLAIN_TEXT, text)])


@dataclass
class _Registration:
    matcher: MessageMatcher
    handler: MessageHandler
    name: str = field(default="")


class TurnIngestor:

    def __init__(
        self,
        transport: BaseTransport,
        directory: ChannelDirectory,
        endpoints: DeliveryEndpointCache,
        send: SendFunction,
        error_reply_text: str = DEFAULT_ERROR_REPLY,
    ):
        self.transport = transport
        self.directory = directory
        self.endpoints = endpoints
        self._send = send
        self.error_reply_text = error_reply_text
        self._handlers: List[_Registration] = []

    def add_handler(self, matcher: MessageMatcher, handler: MessageHandler) -> None:
        name = getattr(handler, "__name__", repr(handler))
        self._handlers.append(_Registration(matcher, handler, name))
        log.info(f"Handler registered: {name}")

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def observe(self, turn: Turn) -> None:
        """Record what this turn reveals about its channel. Idempotent."""
        turn.channel = ChannelRef(turn.channel.id.strip(), turn.channel.name.strip())
        self.directory.record_channel(turn.channel)
        if turn.channel.id:
            self.endpoints.record(turn.channel.id, turn.endpoint)

    async def process(self, activity: Dict[str, Any]) -> Optional[Turn]:
        turn = self.transport.parse_turn(activity)
        if turn is None:
            log.warning("Inbound payload carries no activity, ignoring")
            return None

        set_turn_context(activity_id=turn.activity_id, channel_id=turn.channel.id)
        self.observe(turn)

        if not turn.is_message:
            log.debug(f"Non-message activity observed: {activity.get('type')}")
            return turn

        ctx = ChatContext(turn, self._send)
        for reg in self._handlers:
            try:
                if not await _call(reg.matcher, ctx):
                    continue
                await reg.handler(ctx)
            except Exception as e:
                log.exception(f"Unhandled error in handler {reg.name}: {e}")
                await self._reply_error(turn)
        return turn

    async def _reply_error(self, turn: Turn) -> None:
        """Best-effort apology on the failing turn."""
        try:
            await self.transport.resume_conversation(turn.reference, DeliveryUnit(text=self.error_reply_text))
        except TransportError as e:
            log.error(f"Could not send error reply: {e}")
        except Exception:
            log.exception("Unexpected error sending error reply")


async def _call(fn: Callable, *args) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
