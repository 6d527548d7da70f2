"""
Message Composer tests — text merging, cards, mentions, proactive splitting.
"""

import pytest

from commonbot.bot.channels.base import ChannelRef, DeliveryUnit, Mention, Message, MessageType
from commonbot.bot.composer import MessageComposer
from commonbot.bot.directory import ChannelDirectory

CARD_X = {"type": "AdaptiveCard", "body": [{"type": "TextBlock", "text": "X"}]}
CARD_Y = {"type": "AdaptiveCard", "body": [{"type": "TextBlock", "text": "Y"}]}
CARD_Z = {"type": "AdaptiveCard", "body": [{"type": "TextBlock", "text": "Z"}]}


def text(t, mentions=None):
    return Message(MessageType.PLAIN_TEXT, t, mentions or [])


def card(c):
    return Message(MessageType.MSTEAMS_ADAPTIVE_CARD, c)


@pytest.fixture
def directory():
    d = ChannelDirectory()
    d.record_channel(ChannelRef("C1", "general"))
    return d


@pytest.fixture
def composer(directory):
    return MessageComposer(directory)


class TestConversationalComposition:
    def test_text_parts_joined_with_newline(self, composer):
        result = composer.compose([text("a"), text("b")])
        assert result.first == DeliveryUnit(text="a\nb")
        assert result.rest is None

    def test_composition_is_repeatable(self, composer):
        messages = [text("a"), text("b")]
        first = composer.compose(messages)
        second = composer.compose(messages)
        assert first == second
        assert first.first.text == "a\nb"

    def test_cards_only(self, composer):
        result = composer.compose([card(CARD_X), card(CARD_Y)])
        assert result.first == DeliveryUnit(attachments=[CARD_X, CARD_Y])
        assert result.rest is None

    def test_text_and_cards_combined(self, composer):
        result = composer.compose([text("hi"), card(CARD_X), text("bye")])
        assert result.first.text == "hi\nbye"
        assert result.first.attachments == [CARD_X]
        assert len(result.units) == 1

    def test_empty_is_no_op(self, composer):
        result = composer.compose([])
        assert result.is_empty
        assert result.units == []

    def test_unsupported_part_is_serialized_into_text(self, composer):
        result = composer.compose([text("a"), Message("slack.block", {"blocks": [1]})])
        assert result.first.text == 'a\n{"blocks": [1]}'

    def test_unsupported_known_type_is_serialized(self, composer):
        result = composer.compose([Message(MessageType.SLACK_BLOCK, {"k": "v"})])
        assert result.first.text == '{"k": "v"}'
        assert result.first.attachments == []


class TestProactiveSplit:
    def test_two_cards_split(self, composer):
        result = composer.compose([card(CARD_X), card(CARD_Y)], proactive=True)
        assert result.first == DeliveryUnit(attachments=[CARD_X])
        assert result.rest == DeliveryUnit(attachments=[CARD_Y])

    def test_single_card_no_split(self, composer):
        result = composer.compose([card(CARD_X)], proactive=True)
        assert result.first == DeliveryUnit(attachments=[CARD_X])
        assert result.rest is None

    def test_text_only_no_split(self, composer):
        result = composer.compose([text("hi")], proactive=True)
        assert result.first == DeliveryUnit(text="hi")
        assert result.rest is None

    def test_text_goes_first_then_all_cards(self, composer):
        result = composer.compose([text("hi"), card(CARD_X), card(CARD_Y)], proactive=True)
        assert result.first == DeliveryUnit(text="hi")
        assert result.rest == DeliveryUnit(attachments=[CARD_X, CARD_Y])

    def test_three_cards(self, composer):
        result = composer.compose([card(CARD_X), card(CARD_Y), card(CARD_Z)], proactive=True)
        assert result.first.attachments == [CARD_X]
        assert result.rest.attachments == [CARD_Y, CARD_Z]

    def test_mentions_ride_on_both_units(self, composer):
        mention = Mention(ChannelRef("", "general"))
        result = composer.compose([card(CARD_X), card(CARD_Y)], [mention], proactive=True)
        assert result.first.mentions == [Mention(ChannelRef("C1", "general"))]
        assert result.rest.mentions == result.first.mentions


class TestMentionResolution:
    def test_resolve_by_name(self, composer):
        resolved = composer.resolve_mentions([Mention(ChannelRef("", "general"))])
        assert resolved == [Mention(ChannelRef("C1", "general"))]

    def test_resolve_by_id(self, composer):
        resolved = composer.resolve_mentions([Mention(ChannelRef("C1", ""))])
        assert resolved == [Mention(ChannelRef("C1", "general"))]

    def test_unknown_id_dropped(self, composer):
        assert composer.resolve_mentions([Mention(ChannelRef("C9", ""))]) == []

    def test_unknown_name_dropped(self, composer):
        assert composer.resolve_mentions([Mention(ChannelRef("", "nowhere"))]) == []

    def test_complete_unknown_mention_kept(self, composer):
        resolved = composer.resolve_mentions([Mention(ChannelRef("C7", "random"))])
        assert resolved == [Mention(ChannelRef("C7", "random"))]

    def test_directory_name_refreshes_stale_name(self, composer):
        resolved = composer.resolve_mentions([Mention(ChannelRef("C1", "old-name"))])
        assert resolved[0].mentioned.name == "general"

    def test_per_message_mentions_collected(self, composer):
        msg = text("see", [Mention(ChannelRef("", "general"), text="<at>general</at>")])
        result = composer.compose([msg])
        assert result.first.mentions == [Mention(ChannelRef("C1", "general"), "<at>general</at>")]

    def test_input_not_mutated(self, composer):
        mention = Mention(ChannelRef("", "general"))
        composer.compose([text("x", [mention])])
        assert mention.mentioned.id == ""

    def test_mention_entity_format(self):
        entity = Mention(ChannelRef("C1", "general")).to_entity()
        assert entity == {
            "type": "mention",
            "mentioned": {"id": "C1", "name": "general"},
            "text": "<at>general</at>",
        }
