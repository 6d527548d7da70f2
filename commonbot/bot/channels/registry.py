"""
Platform Registry — Maps a chat tool type to the factory building its transport.

The bot resolves its platform once at startup:
* ``create()`` builds the transport for the configured chat tool.
* An unregistered chat tool is a wiring mistake and raises ConfigurationError.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Union

from commonbot.bot.channels.base import BaseTransport, ChatToolType
from commonbot.bot.errors import ConfigurationError

logger = logging.getLogger(__name__)

TransportFactory = Callable[..., BaseTransport]


class PlatformRegistry:
    """Registry of transport factories keyed by chat tool type."""

    def __init__(self):
        self._factories: Dict[ChatToolType, TransportFactory] = {}

    def register(self, chat_tool_type: ChatToolType, factory: TransportFactory) -> None:
        """Add a transport factory. The factory receives the settings object."""
        if chat_tool_type in self._factories:
            logger.warning("[REGISTRY] Replacing existing %s factory", chat_tool_type.value)
        self._factories[chat_tool_type] = factory
        logger.info("[REGISTRY] Registered platform: %s", chat_tool_type.value)

    def create(self, chat_tool_type: Union[ChatToolType, str], settings) -> BaseTransport:
        """Build the transport for ``chat_tool_type`` from ``settings``."""
        try:
            key = ChatToolType(chat_tool_type)
        except ValueError:
            logger.error("[REGISTRY] Unsupported chat tool: %s", chat_tool_type)
            raise ConfigurationError(f"Unsupported chat tool: {chat_tool_type}")

        factory = self._factories.get(key)
        if factory is None:
            logger.error("[REGISTRY] No transport registered for chat tool: %s", key.value)
            raise ConfigurationError(f"Unsupported chat tool: {key.value}")
        return factory(settings)

    def types(self) -> List[str]:
        """Return names of all registered chat tool types."""
        return [t.value for t in self._factories]


def default_registry() -> PlatformRegistry:
    """Registry with every transport shipped in this package."""
    from commonbot.bot.channels.msteams_channel import MsteamsTransport

    registry = PlatformRegistry()
    registry.register(ChatToolType.MSTEAMS, MsteamsTransport.from_settings)
    return registry
