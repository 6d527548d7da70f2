"""
CommonBot - Main Application Entry Point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from commonbot import __version__
from commonbot.api.messaging import build_router, set_bot_ref
from commonbot.bot.common_bot import CommonBot
from commonbot.bot.structured_logging import enable_structured_logging
from commonbot.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(bot: Optional[CommonBot] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app around ``bot``, or a bot for the configured platform."""
    settings = settings or (bot.settings if bot else get_settings())

    if settings.structured_logging:
        enable_structured_logging(getattr(logging, settings.log_level.upper(), logging.INFO))

    if bot is None:
        bot = CommonBot(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler - runs on startup and shutdown"""
        await bot.start()
        set_bot_ref(bot)
        logger.info("%s started (%s)", settings.app_name, bot.transport.chat_tool_type.value)
        yield
        set_bot_ref(None)
        await bot.stop()
        logger.info("%s stopped", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(build_router(settings.messaging_base_path))
    app.state.bot = bot
    return app


if __name__ == "__main__":
    import uvicorn
    _settings = get_settings()
    uvicorn.run(
        create_app(settings=_settings),
        host="0.0.0.0",
        port=8000,
    )
