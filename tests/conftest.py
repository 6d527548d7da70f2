"""
Shared fixtures: a recording transport and an isolated bot per test.
"""

import pytest

from commonbot.bot.channels.base import BaseTransport, ChannelRef, ChatToolType, DeliveryUnit
from commonbot.bot.channels.msteams_channel import parse_activity
from commonbot.bot.errors import TransportError
from commonbot.config import Settings


class RecordingTransport(BaseTransport):
    """Records every outbound call instead of talking to a platform."""

    def __init__(self, fail_on=()):
        super().__init__(ChatToolType.MSTEAMS)
        self.calls = []
        self.fail_on = set(fail_on)
        self._thread_counter = 0

    def parse_turn(self, activity):
        return parse_activity(activity)

    async def resume_conversation(self, reference, unit: DeliveryUnit):
        self.calls.append(("resume", reference, unit))
        if "resume" in self.fail_on:
            raise TransportError("resume failed", status_code=502)

    async def create_conversation(self, channel: ChannelRef, endpoint: str, unit: DeliveryUnit) -> str:
        self.calls.append(("create", channel, endpoint, unit))
        if "create" in self.fail_on:
            raise TransportError("create failed", status_code=502)
        self._thread_counter += 1
        return f"thread-{self._thread_counter}"

    async def continue_thread(self, thread_id: str, endpoint: str, unit: DeliveryUnit):
        self.calls.append(("continue", thread_id, endpoint, unit))
        if "continue" in self.fail_on:
            raise TransportError("continue failed", status_code=502)


def build_activity(
    channel_id="C1",
    channel_name="ops",
    service_url="https://svc/a",
    text="hello",
    activity_type="message",
    activity_id="act-1",
):
    return {
        "type": activity_type,
        "id": activity_id,
        "text": text,
        "serviceUrl": service_url,
        "channelId": "msteams",
        "from": {"id": "user-1", "name": "Ada"},
        "recipient": {"id": "bot-1", "name": "CommonBot"},
        "conversation": {"id": f"{channel_id};messageid={activity_id}", "isGroup": True},
        "channelData": {
            "channel": {"id": channel_id, "name": channel_name},
            "team": {"id": "T1"},
        },
    }


@pytest.fixture
def make_activity():
    return build_activity


@pytest.fixture
def settings():
    return Settings(
        chat_tool_type="msteams",
        msteams_bot_id="bot-1",
        structured_logging=False,
        directory_capacity=0,
        endpoint_cache_capacity=0,
    )


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def bot(settings, transport):
    from commonbot.bot.common_bot import CommonBot
    return CommonBot(settings, transport=transport)
