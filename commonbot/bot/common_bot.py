"""
CommonBot — Facade wiring the delivery core to one chat platform.

Usage:
    from commonbot.bot.common_bot import CommonBot
    from commonbot.bot.channels.base import Message, MessageType, ChatContextData, ChannelRef

    bot = CommonBot(settings)

    async def echo(ctx):
        await ctx.send_text(f"You said: {ctx.text}")

    bot.listen(lambda ctx: ctx.text.startswith("echo"), echo)

    # Proactive, from anywhere once the channel has been seen
    await bot.send(ChatContextData(channel=ChannelRef(name="ops")),
                   [Message(MessageType.PLAIN_TEXT, "deploy finished")])
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from commonbot.bot.channels.base import (
    BaseTransport,
    ChatContextData,
    Mention,
    Message,
    Proactive,
    target_for,
)
from commonbot.bot.channels.registry import PlatformRegistry, default_registry
from commonbot.bot.composer import MessageComposer
from commonbot.bot.directory import ChannelDirectory
from commonbot.bot.endpoint_cache import DeliveryEndpointCache
from commonbot.bot.errors import ConfigurationError
from commonbot.bot.ingestor import MessageHandler, MessageMatcher, TurnIngestor
from commonbot.bot.router import DeliveryResult, DeliveryRouter
from commonbot.bot.structured_logging import router_log as log


class CommonBot:
    """One bot bound to one platform, with its own caches."""

    def __init__(
        self,
        settings,
        transport: Optional[BaseTransport] = None,
        registry: Optional[PlatformRegistry] = None,
    ):
        self.settings = settings
        if transport is None:
            transport = (registry or default_registry()).create(settings.chat_tool_type, settings)
        elif transport.chat_tool_type != settings.chat_tool_type:
            log.error(f"Wrong chat tool type set in bot option: {settings.chat_tool_type}")
            raise ConfigurationError("Wrong chat tool type")
        self.transport = transport

        self.directory = ChannelDirectory(capacity=settings.directory_capacity)
        self.endpoints = DeliveryEndpointCache(capacity=settings.endpoint_cache_capacity)
        self.composer = MessageComposer(self.directory)
        self.router = DeliveryRouter(self.transport, self.directory, self.endpoints)
        self.ingestor = TurnIngestor(
            self.transport,
            self.directory,
            self.endpoints,
            send=self.send,
            error_reply_text=settings.error_reply_text,
        )

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self) -> None:
        await self.transport.start()

    async def stop(self) -> None:
        await self.router.drain()
        await self.transport.stop()

    # ── Inbound ──────────────────────────────────────────────

    def listen(self, matcher: MessageMatcher, handler: MessageHandler) -> None:
        """Run ``handler`` for every inbound message ``matcher`` accepts."""
        self.ingestor.add_handler(matcher, handler)

    async def process_activity(self, activity: Dict[str, Any]):
        return await self.ingestor.process(activity)

    # ── Outbound ──────────────────────────────────────────────

    async def send(
        self,
        context_data: ChatContextData,
        messages: Sequence[Message],
        mentions: Optional[Sequence[Mention]] = None,
    ) -> DeliveryResult:
        """Compose ``messages`` and deliver them to the turn or channel in ``context_data``."""
        target = target_for(context_data)
        composition = self.composer.compose(
            messages,
            mentions,
            proactive=isinstance(target, Proactive),
        )
        return await self.router.deliver(target, composition.units)

    def status(self) -> Dict[str, Any]:
        return {
            "chat_tool": self.transport.chat_tool_type.value,
            "channels": len(self.directory),
            "endpoints": len(self.endpoints),
            "handlers": self.ingestor.handler_count,
            "pending_followups": self.router.pending_count,
        }
