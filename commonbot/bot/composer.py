"""
Message Composer — Merges heterogeneous message parts into delivery units.

Text parts are joined with newlines, cards become attachments, mentions are
completed against the channel directory. For proactive delivery the result
is split in two so that the unit which opens a new thread carries at most
one rich attachment; the remaining cards follow in a second unit.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Optional

from commonbot.bot.channels.base import (
    ChannelRef,
    Composition,
    DeliveryUnit,
    Mention,
    Message,
    MessageType,
)
from commonbot.bot.directory import ChannelDirectory
from commonbot.bot.structured_logging import composer_log as log


class MessageComposer:
    """Pure composition apart from directory reads; inputs are never mutated."""

    def __init__(self, directory: ChannelDirectory):
        self.directory = directory

    def compose(
        self,
        messages: Iterable[Message],
        mentions: Optional[Iterable[Mention]] = None,
        *,
        proactive: bool = False,
    ) -> Composition:
        texts: List[str] = []
        attachments: List[Any] = []
        requested: List[Mention] = []

        for message in messages:
            msg_type = _message_type(message.type)
            if msg_type is MessageType.PLAIN_TEXT:
                texts.append(str(message.message))
            elif msg_type is MessageType.MSTEAMS_ADAPTIVE_CARD:
                attachments.append(message.message)
            else:
                log.error(
                    f"Unsupported type \"{_type_label(message.type)}\" for the message",
                    data={"message": message.message},
                )
                texts.append(json.dumps(message.message, default=str))
            requested.extend(message.mentions)

        if mentions:
            requested.extend(mentions)

        resolved = self.resolve_mentions(requested)
        text = "\n".join(texts)

        if text == "" and not attachments:
            log.warning("The message to be sent is empty!")
            return Composition()

        if not proactive:
            return Composition(first=DeliveryUnit(text, list(attachments), list(resolved)))

        # Proactive: a new thread is opened with at most one attachment
        if text:
            first = DeliveryUnit(text=text, mentions=list(resolved))
            remaining = list(attachments)
        else:
            first = DeliveryUnit(attachments=[attachments[0]], mentions=list(resolved))
            remaining = attachments[1:]

        rest = DeliveryUnit(attachments=remaining, mentions=list(resolved)) if remaining else None
        log.debug("Composed proactive units", data={
            "first": first.to_dict(),
            "rest": rest.to_dict() if rest else None,
        })
        return Composition(first=first, rest=rest)

    def resolve_mentions(self, mentions: Iterable[Mention]) -> List[Mention]:
        """
        Complete each mention from the directory. A mention survives only if
        both its id and name are known afterwards.
        """
        resolved: List[Mention] = []
        for mention in mentions:
            target = mention.mentioned
            channel_id, name = target.id.strip(), target.name.strip()

            if channel_id == "" and name != "":
                found = self.directory.find_by_name(name)
                if found is not None:
                    channel_id = found.id
            elif channel_id != "":
                found = self.directory.find_by_id(channel_id)
                if found is not None and found.name:
                    name = found.name
            log.debug(f"Mention {target.to_dict()} resolved to id={channel_id!r} name={name!r}")

            if channel_id and name:
                resolved.append(Mention(mentioned=ChannelRef(channel_id, name), text=mention.text))
        return resolved


def _message_type(value: Any) -> Optional[MessageType]:
    try:
        return MessageType(value)
    except ValueError:
        return None


def _type_label(value: Any) -> str:
    return value.value if isinstance(value, MessageType) else str(value)
