"""
Delivery Router — Chooses between conversational and proactive delivery.

Conversational
    The caller holds a live turn: resume that conversation and push the
    single combined unit. The endpoint cache is never consulted.

Proactive
    No live turn: resolve the channel through the directory, resolve its
    endpoint through the endpoint cache, open a new thread with the first
    unit and push the rest unit into that thread in the background.

Every refusal is terminal for that send. Nothing is retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from commonbot.bot.channels.base import (
    BaseTransport,
    ChannelRef,
    Conversational,
    DeliveryTarget,
    DeliveryUnit,
    Proactive,
)
from commonbot.bot.directory import ChannelDirectory
from commonbot.bot.endpoint_cache import DeliveryEndpointCache
from commonbot.bot.errors import DeliveryErrorCode, TransportError
from commonbot.bot.structured_logging import router_log as log


@dataclass
class DeliveryResult:
    """Outcome of one ``deliver`` call."""

    ok: bool
    error: Optional[DeliveryErrorCode] = None
    detail: str = ""
    conversation_id: Optional[str] = None
    channel: Optional[ChannelRef] = None

    @classmethod
    def refused(cls, error: DeliveryErrorCode, detail: str, channel: Optional[ChannelRef] = None) -> "DeliveryResult":
        return cls(ok=False, error=error, detail=detail, channel=channel)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok}
        if self.error:
            d["error"] = self.error.value
            d["detail"] = self.detail
        if self.conversation_id:
            d["conversation_id"] = self.conversation_id
        if self.channel:
            d["channel"] = self.channel.to_dict()
        return d


class DeliveryRouter:

    def __init__(
        self,
        transport: BaseTransport,
        directory: ChannelDirectory,
        endpoints: DeliveryEndpointCache,
    ):
        self.transport = transport
        self.directory = directory
        self.endpoints = endpoints
        self._pending: Set[asyncio.Task] = set()

    async def deliver(self, target: DeliveryTarget, units: List[DeliveryUnit]) -> DeliveryResult:
        if not units:
            log.warning("Nothing to deliver, skipping")
            return DeliveryResult(ok=True)

        if isinstance(target, Conversational):
            return await self._deliver_conversational(target, units[0])
        if isinstance(target, Proactive):
            rest = units[1] if len(units) > 1 else None
            return await self._deliver_proactive(target.channel, units[0], rest)
        raise TypeError(f"Unknown delivery target: {target!r}")

    async def _deliver_conversational(self, target: Conversational, unit: DeliveryUnit) -> DeliveryResult:
        log.info("Send conversation message ...")
        turn = target.turn
        try:
            await self.transport.resume_conversation(turn.reference, unit)
        except TransportError as e:
            log.error(f"Conversation reply failed: {e}", data={"channel": turn.channel.to_dict()})
            return DeliveryResult.refused(DeliveryErrorCode.TRANSPORT_ERROR, str(e), turn.channel)
        return DeliveryResult(
            ok=True,
            conversation_id=turn.reference.get("conversation", {}).get("id"),
            channel=turn.channel,
        )

    async def _deliver_proactive(
        self,
        requested: ChannelRef,
        first: DeliveryUnit,
        rest: Optional[DeliveryUnit],
    ) -> DeliveryResult:
        log.info("Send proactive message ...")

        if self.endpoints.is_empty():
            detail = (
                "The cached service URL is empty! You must talk with your bot "
                "in your chat client first to cache the service URL."
            )
            log.error(detail)
            return DeliveryResult.refused(DeliveryErrorCode.ENDPOINT_CACHE_EMPTY, detail)

        channel = self.directory.resolve(requested)
        if channel is None or not channel.id.strip():
            detail = "The specified channel does not exist!"
            log.error(detail, data={"channel": requested.to_dict()})
            return DeliveryResult.refused(DeliveryErrorCode.CHANNEL_NOT_FOUND, detail, requested)
        log.info(f"Target channel: {channel.id} ({channel.name or '?'})")

        endpoint = self.endpoints.get(channel.id)
        if not endpoint:
            detail = f"Service URL does not exist for the channel {channel.id}"
            log.error(detail, data={"channel": channel.to_dict()})
            return DeliveryResult.refused(DeliveryErrorCode.ENDPOINT_NOT_FOUND, detail, channel)
        log.info(f"Service URL: {endpoint}")

        try:
            thread_id = await self.transport.create_conversation(channel, endpoint, first)
        except TransportError as e:
            log.error(f"Create conversation failed: {e}", data={"channel": channel.to_dict()})
            return DeliveryResult.refused(DeliveryErrorCode.TRANSPORT_ERROR, str(e), channel)

        if rest is not None:
            task = asyncio.create_task(self._push_rest(thread_id, endpoint, rest, channel))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return DeliveryResult(ok=True, conversation_id=thread_id, channel=channel)

    async def _push_rest(self, thread_id: str, endpoint: str, unit: DeliveryUnit, channel: ChannelRef) -> None:
        """Follow-up push. The first unit already went out and is not rolled back."""
        try:
            await self.transport.continue_thread(thread_id, endpoint, unit)
        except TransportError as e:
            log.error(
                f"Follow-up message failed for thread {thread_id}: {e}",
                data={"channel": channel.to_dict(), "attachments": len(unit.attachments)},
            )
        except Exception:
            log.exception(f"Unexpected error sending follow-up to thread {thread_id}")

    async def drain(self) -> None:
        """Wait for outstanding follow-up pushes."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)
