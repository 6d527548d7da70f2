"""
MS Teams transport tests — activity parsing and Bot Connector request shapes.
"""

import json

import httpx
import pytest

from commonbot.bot.channels.base import ChannelRef, DeliveryUnit, Mention
from commonbot.bot.channels.msteams_channel import (
    ADAPTIVE_CARD_CONTENT_TYPE,
    MsteamsTransport,
    parse_activity,
    unit_to_activity,
)
from commonbot.bot.common_bot import CommonBot
from commonbot.bot.errors import ConfigurationError, TransportError


def recording_client(status_code=200, body=None):
    requests = []

    def handler(request: httpx.Request):
        requests.append(request)
        return httpx.Response(status_code, json=body if body is not None else {})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


# ── Parsing ──────────────────────────────────────

class TestParseActivity:
    def test_message_activity(self, make_activity):
        turn = parse_activity(make_activity(text="<at>CommonBot</at> deploy prod"))
        assert turn.channel == ChannelRef("C1", "ops")
        assert turn.endpoint == "https://svc/a"
        assert turn.text == "deploy prod"
        assert turn.is_message
        assert turn.reference["conversation"]["id"].startswith("C1")
        assert turn.reference["serviceUrl"] == "https://svc/a"
        assert turn.reference["activityId"] == "act-1"

    def test_general_channel_named(self, make_activity):
        activity = make_activity(channel_id="T1", channel_name="")
        assert parse_activity(activity).channel == ChannelRef("T1", "General")

    def test_personal_chat_has_blank_channel(self):
        turn = parse_activity({"type": "message", "text": "hi", "serviceUrl": "https://svc/a"})
        assert turn.channel.is_blank

    def test_not_an_activity(self):
        assert parse_activity({}) is None
        assert parse_activity(["type"]) is None


class TestUnitToActivity:
    def test_cards_wrapped_and_mentions_as_entities(self):
        unit = DeliveryUnit(
            text="hi <at>ops</at>",
            attachments=[{"type": "AdaptiveCard"}],
            mentions=[Mention(ChannelRef("C1", "ops"))],
        )
        activity = unit_to_activity(unit)
        assert activity["type"] == "message"
        assert activity["text"] == "hi <at>ops</at>"
        assert activity["attachments"] == [
            {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": {"type": "AdaptiveCard"}},
        ]
        assert activity["entities"][0]["mentioned"] == {"id": "C1", "name": "ops"}

    def test_text_only(self):
        assert unit_to_activity(DeliveryUnit(text="hi")) == {"type": "message", "text": "hi"}


# ── Outbound ──────────────────────────────────────

@pytest.mark.asyncio
async def test_create_conversation_request():
    client, requests = recording_client(body={"id": "19:thread"})
    transport = MsteamsTransport(bot_id="bot-1", http=client)
    await transport.start()

    thread_id = await transport.create_conversation(
        ChannelRef("C1", "ops"), "https://svc/a/", DeliveryUnit(attachments=[{"type": "AdaptiveCard"}]),
    )

    assert thread_id == "19:thread"
    req = requests[0]
    assert req.method == "POST"
    assert str(req.url) == "https://svc/a/v3/conversations"
    body = json.loads(req.content)
    assert body["isGroup"] is True
    assert body["channelData"] == {"channel": {"id": "C1", "name": "ops"}}
    assert len(body["activity"]["attachments"]) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_continue_thread_request():
    client, requests = recording_client()
    transport = MsteamsTransport(bot_id="bot-1", http=client)
    await transport.start()

    await transport.continue_thread("19:thread", "https://svc/a", DeliveryUnit(attachments=["B"]))

    req = requests[0]
    assert req.url.path == "/a/v3/conversations/19:thread/activities"
    body = json.loads(req.content)
    assert body["conversation"] == {"isGroup": True, "id": "19:thread", "conversationType": "channel"}
    assert body["serviceUrl"] == "https://svc/a"
    await client.aclose()


@pytest.mark.asyncio
async def test_resume_conversation_replies_to_activity(make_activity):
    client, requests = recording_client()
    transport = MsteamsTransport(bot_id="bot-1", http=client)
    await transport.start()
    turn = parse_activity(make_activity())

    await transport.resume_conversation(turn.reference, DeliveryUnit(text="pong"))

    body = json.loads(requests[0].content)
    assert body["text"] == "pong"
    assert body["replyToId"] == "act-1"
    assert body["from"] == {"id": "bot-1", "name": "CommonBot"}
    assert body["recipient"] == {"id": "user-1", "name": "Ada"}
    await client.aclose()


@pytest.mark.asyncio
async def test_http_error_raises_transport_error():
    client, _ = recording_client(status_code=400, body={"error": "multiple skype activities"})
    transport = MsteamsTransport(bot_id="bot-1", http=client)
    await transport.start()

    with pytest.raises(TransportError) as exc:
        await transport.create_conversation(ChannelRef("C1", "ops"), "https://svc/a", DeliveryUnit(text="x"))
    assert exc.value.status_code == 400
    await client.aclose()


@pytest.mark.asyncio
async def test_missing_conversation_id_raises():
    client, _ = recording_client(body={})
    transport = MsteamsTransport(bot_id="bot-1", http=client)
    await transport.start()

    with pytest.raises(TransportError):
        await transport.create_conversation(ChannelRef("C1", "ops"), "https://svc/a", DeliveryUnit(text="x"))
    await client.aclose()


@pytest.mark.asyncio
async def test_not_started_raises():
    transport = MsteamsTransport(bot_id="bot-1")
    with pytest.raises(TransportError):
        await transport.continue_thread("t", "https://svc/a", DeliveryUnit(text="x"))


@pytest.mark.asyncio
async def test_start_sets_bearer_token():
    transport = MsteamsTransport(bot_id="bot-1", access_token="tok")
    await transport.start()
    assert transport._http.headers["Authorization"] == "Bearer tok"
    await transport.stop()
    assert transport._http is None


def test_from_settings_rejects_other_platform():
    from commonbot.config import Settings

    with pytest.raises(ConfigurationError):
        MsteamsTransport.from_settings(Settings(chat_tool_type="slack", structured_logging=False))


@pytest.mark.asyncio
async def test_missing_service_url_raises_transport_error():
    client, requests = recording_client()
    transport = MsteamsTransport(bot_id="bot-1", http=client)
    await transport.start()

    with pytest.raises(TransportError):
        await transport.resume_conversation({"conversation": {"id": "C1"}}, DeliveryUnit(text="x"))
    with pytest.raises(TransportError):
        await transport.continue_thread("19:thread", "", DeliveryUnit(text="x"))
    assert requests == []
    await client.aclose()


@pytest.mark.asyncio
async def test_failed_handler_on_activity_without_service_url(settings, make_activity):
    client, requests = recording_client()
    bot = CommonBot(settings, transport=MsteamsTransport(bot_id="bot-1", http=client))
    await bot.start()

    async def broken(ctx):
        raise RuntimeError("boom")

    bot.listen(lambda ctx: True, broken)
    activity = make_activity()
    activity["serviceUrl"] = None

    turn = await bot.process_activity(activity)

    assert turn is not None
    assert turn.endpoint == ""
    assert turn.reference["serviceUrl"] == ""
    assert requests == []
    await bot.stop()
    await client.aclose()
