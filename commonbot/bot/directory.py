"""
Channel Directory — Live map of channel id ↔ name learned from inbound traffic.

Platforms rarely let a bot enumerate channels on demand, so the directory is
filled by the turn ingestor as events arrive and read by the composer and
router to complete half-known channel references.

Usage:
    directory = ChannelDirectory(capacity=1000)
    directory.record_channel(ChannelRef(id="19:abc", name="ops"))
    directory.find_by_name("ops")      # → ChannelRef(id="19:abc", name="ops")
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Dict, List, Optional

from commonbot.bot.channels.base import ChannelEntry, ChannelRef
from commonbot.bot.structured_logging import directory_log as log


class ChannelDirectory:
    """
    Bidirectional channel cache.

    Entries are ordered by when they were last recorded. When ``capacity`` is
    reached the least recently recorded channel is evicted; ``capacity=0``
    keeps every channel for the life of the process.
    """

    def __init__(self, capacity: int = 0):
        self.capacity = capacity
        self._entries: "OrderedDict[str, ChannelEntry]" = OrderedDict()
        self._by_name: Dict[str, str] = {}  # name -> id of the latest holder
        self._lock = threading.Lock()

    def record_channel(self, ref: ChannelRef) -> None:
        """Upsert a channel by id. A channel without an id is ignored."""
        channel_id = ref.id.strip()
        if not channel_id:
            return
        name = ref.name.strip()

        with self._lock:
            entry = self._entries.get(channel_id)
            if entry is None:
                entry = ChannelEntry(ref=ChannelRef(id=channel_id, name=name))
                self._entries[channel_id] = entry
                log.debug(f"New channel recorded: {channel_id} ({name or '?'})")
            else:
                old_name = entry.ref.name
                # A blank name carries no information, keep the known one
                if name and name != old_name:
                    entry.ref = ChannelRef(id=channel_id, name=name)
                    log.info(f"Channel {channel_id} renamed: {old_name!r} → {name!r}")
                    self._release_name(old_name, channel_id)
                entry.last_seen = time.time()
                self._entries.move_to_end(channel_id)

            if entry.ref.name:
                self._by_name[entry.ref.name] = channel_id

            if self.capacity and len(self._entries) > self.capacity:
                evicted_id, evicted = self._entries.popitem(last=False)
                self._release_name(evicted.ref.name, evicted_id)
                log.debug(f"Evicted channel {evicted_id} (capacity {self.capacity})")

    def find_by_id(self, channel_id: str) -> Optional[ChannelRef]:
        with self._lock:
            entry = self._entries.get(channel_id)
            return ChannelRef(entry.ref.id, entry.ref.name) if entry else None

    def find_by_name(self, name: str) -> Optional[ChannelRef]:
        """Exact, case-sensitive match. The most recently recorded holder wins."""
        with self._lock:
            channel_id = self._by_name.get(name)
            if channel_id is None:
                return None
            entry = self._entries[channel_id]
            return ChannelRef(entry.ref.id, entry.ref.name)

    def resolve(self, ref: ChannelRef) -> Optional[ChannelRef]:
        """
        Complete a half-known reference: look up by name when the id is blank,
        by id otherwise. Returns None when the channel is unknown.
        """
        if ref.id.strip() == "" and ref.name.strip() != "":
            return self.find_by_name(ref.name)
        if ref.id.strip() == "":
            return None
        return self.find_by_id(ref.id)

    def _release_name(self, name: str, channel_id: str) -> None:
        """Point ``name`` at its next most recent holder after ``channel_id`` left it."""
        if not name or self._by_name.get(name) != channel_id:
            return
        del self._by_name[name]
        for other_id in reversed(self._entries):
            if other_id != channel_id and self._entries[other_id].ref.name == name:
                self._by_name[name] = other_id
                break

    def snapshot(self) -> List[Dict]:
        """Return known channels, most recently seen first (served by /health)."""
        with self._lock:
            return [
                {"id": e.ref.id, "name": e.ref.name, "last_seen": e.last_seen}
                for e in reversed(self._entries.values())
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
