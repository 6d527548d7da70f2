"""
Delivery Endpoint Cache — channel id → platform endpoint (service URL).

A platform only reveals the endpoint for a channel on inbound traffic, so a
proactive send can only target channels the bot has already heard from.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from commonbot.bot.structured_logging import directory_log as log


class DeliveryEndpointCache:
    """Last-write-wins endpoint map with the same bounded eviction as the directory."""

    def __init__(self, capacity: int = 0):
        self.capacity = capacity
        self._endpoints: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.Lock()

    def record(self, channel_id: str, endpoint: str) -> None:
        channel_id = (channel_id or "").strip()
        endpoint = (endpoint or "").strip()
        if not channel_id or not endpoint:
            return
        with self._lock:
            previous = self._endpoints.get(channel_id)
            self._endpoints[channel_id] = endpoint
            self._endpoints.move_to_end(channel_id)
            if previous != endpoint:
                log.debug(f"Endpoint for {channel_id}: {endpoint}")
            if self.capacity and len(self._endpoints) > self.capacity:
                self._endpoints.popitem(last=False)

    def get(self, channel_id: str) -> Optional[str]:
        with self._lock:
            return self._endpoints.get((channel_id or "").strip())

    def is_empty(self) -> bool:
        with self._lock:
            return not self._endpoints

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)
