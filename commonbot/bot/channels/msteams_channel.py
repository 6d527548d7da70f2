"""
MS Teams Transport — Bot Connector REST calls over httpx.

Inbound activities arrive on the messaging endpoint as Bot Framework JSON.
Outbound delivery uses three Bot Connector operations:

* ``POST {serviceUrl}/v3/conversations/{id}/activities`` — reply in a turn's
  conversation, or follow up in a thread the bot created.
* ``POST {serviceUrl}/v3/conversations`` — open a new channel thread.

Token acquisition is not handled here; configure ``msteams_access_token``
or pass a ready bearer token.
"""

import re
from typing import Any, Dict, Optional

import httpx

from commonbot.bot.channels.base import (
    BaseTransport,
    ChannelRef,
    ChatToolType,
    DeliveryUnit,
    Turn,
)
from commonbot.bot.errors import ConfigurationError, TransportError
from commonbot.bot.structured_logging import transport_log as log

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"

_AT_MARKUP = re.compile(r"<at>.*?</at>", re.IGNORECASE)


def adaptive_card_attachment(card: Any) -> Dict[str, Any]:
    """Wrap an Adaptive Card payload as a Bot Framework attachment."""
    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": card}


def unit_to_activity(unit: DeliveryUnit) -> Dict[str, Any]:
    """Serialise a delivery unit into a message activity."""
    activity: Dict[str, Any] = {"type": "message"}
    if unit.text:
        activity["text"] = unit.text
    if unit.attachments:
        activity["attachments"] = [adaptive_card_attachment(a) for a in unit.attachments]
    if unit.mentions:
        activity["entities"] = [m.to_entity() for m in unit.mentions]
    return activity


def get_conversation_reference(activity: Dict[str, Any]) -> Dict[str, Any]:
    """Everything needed later to resume the activity's conversation."""
    return {
        "activityId": activity.get("id"),
        "user": activity.get("from"),
        "bot": activity.get("recipient"),
        "conversation": activity.get("conversation") or {},
        "channelId": activity.get("channelId"),
        "serviceUrl": activity.get("serviceUrl") or "",
    }


def parse_activity(activity: Dict[str, Any]) -> Optional[Turn]:
    """Normalise a Bot Framework activity. Returns None for a payload without a type."""
    if not isinstance(activity, dict) or not activity.get("type"):
        return None

    channel_data = activity.get("channelData") or {}
    channel_info = channel_data.get("channel") or {}
    team_info = channel_data.get("team") or {}
    channel = ChannelRef(
        id=str(channel_info.get("id", "")),
        name=str(channel_info.get("name", "")),
    )
    # The General channel shares its id with the team and carries no name
    if channel.id and not channel.name and channel.id == team_info.get("id"):
        channel.name = "General"

    text = _AT_MARKUP.sub("", activity.get("text") or "").strip()

    return Turn(
        activity=activity,
        channel=channel,
        endpoint=activity.get("serviceUrl") or "",
        reference=get_conversation_reference(activity),
        text=text,
        user=activity.get("from") or {},
        is_message=activity.get("type") == "message",
    )


class MsteamsTransport(BaseTransport):
    """
    Microsoft Teams transport.

    Requires: MSTEAMS_BOT_ID.
    Optional: MSTEAMS_ACCESS_TOKEN (bearer token for the Bot Connector).
    """

    def __init__(
        self,
        bot_id: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(ChatToolType.MSTEAMS)
        self.bot_id = bot_id
        self.access_token = access_token
        self.timeout = timeout
        self._http = http
        self._owns_http = http is None

    @classmethod
    def from_settings(cls, settings) -> "MsteamsTransport":
        if settings.chat_tool_type != ChatToolType.MSTEAMS:
            log.error(f"Wrong chat tool type set in bot option: {settings.chat_tool_type}")
            raise ConfigurationError("Wrong chat tool type")
        return cls(
            bot_id=settings.msteams_bot_id,
            access_token=settings.msteams_access_token,
            timeout=settings.transport_timeout_seconds,
        )

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self) -> None:
        if self._http is None:
            headers = {}
            if self.access_token:
                headers["Authorization"] = f"Bearer {self.access_token}"
            self._http = httpx.AsyncClient(headers=headers, timeout=self.timeout)
        log.info(f"[MSTEAMS] Transport started (bot_id={self.bot_id})")

    async def stop(self) -> None:
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None
        log.info("[MSTEAMS] Transport stopped")

    # ── Inbound ──────────────────────────────────────────────

    def parse_turn(self, activity: Dict[str, Any]) -> Optional[Turn]:
        return parse_activity(activity)

    # ── Outbound ──────────────────────────────────────────────

    async def resume_conversation(self, reference: Dict[str, Any], unit: DeliveryUnit) -> None:
        conversation_id = (reference.get("conversation") or {}).get("id", "")
        activity = unit_to_activity(unit)
        activity.update({
            "from": reference.get("bot"),
            "recipient": reference.get("user"),
            "conversation": reference.get("conversation"),
            "channelId": reference.get("channelId"),
            "serviceUrl": reference.get("serviceUrl"),
        })
        if reference.get("activityId"):
            activity["replyToId"] = reference["activityId"]
        await self._post(
            reference.get("serviceUrl", ""),
            f"/v3/conversations/{conversation_id}/activities",
            activity,
        )

    async def create_conversation(self, channel: ChannelRef, endpoint: str, unit: DeliveryUnit) -> str:
        params = {
            "isGroup": True,
            "bot": {"id": self.bot_id},
            "channelData": {"channel": channel.to_dict()},
            "activity": unit_to_activity(unit),
        }
        data = await self._post(endpoint, "/v3/conversations", params)
        thread_id = data.get("id") if isinstance(data, dict) else None
        if not thread_id:
            raise TransportError("Create conversation returned no conversation id")
        log.info(f"[MSTEAMS] Conversation created: {thread_id}")
        return thread_id

    async def continue_thread(self, thread_id: str, endpoint: str, unit: DeliveryUnit) -> None:
        activity = unit_to_activity(unit)
        activity.update({
            "from": {"id": self.bot_id},
            "conversation": {"isGroup": True, "id": thread_id, "conversationType": "channel"},
            "serviceUrl": endpoint,
        })
        await self._post(endpoint, f"/v3/conversations/{thread_id}/activities", activity)

    async def _post(self, service_url: str, path: str, payload: Dict[str, Any]) -> Any:
        if not self._http:
            raise TransportError("Transport not started")
        url = (service_url or "").rstrip("/") + path
        log.debug(f"[MSTEAMS] POST {url}", data=payload)
        try:
            if not url.startswith(("http://", "https://")):
                raise TransportError(f"No service URL for request {path}")
            resp = await self._http.post(url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{e.response.status_code} from {url}: {e.response.text[:200]}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}
