"""
Messaging endpoint — receives platform activities and feeds the turn ingestor.
"""
import json

from fastapi import APIRouter, HTTPException, Request

from commonbot.bot.structured_logging import api_log as log

_bot = None


def set_bot_ref(bot):
    """Called from main.py lifespan to inject the bot reference."""
    global _bot
    _bot = bot


async def receive_activity(request: Request):
    """
    Inbound activity from the platform.

    POST /api/messages
    {
        "type": "message",
        "serviceUrl": "https://smba.trafficmanager.net/amer/",
        "channelData": {"channel": {"id": "19:...", "name": "ops"}},
        ...
    }
    """
    if not _bot:
        raise HTTPException(status_code=503, detail="Bot not available")

    try:
        activity = json.loads(await request.body())
    except ValueError:
        log.warning("Rejected inbound body: not valid JSON")
        raise HTTPException(status_code=400, detail="Body is not valid JSON")
    if not isinstance(activity, dict):
        log.warning("Rejected inbound body: not a JSON object")
        raise HTTPException(status_code=400, detail="Activity must be a JSON object")

    turn = await _bot.process_activity(activity)
    return {"status": "ok", "accepted": turn is not None}


async def health():
    """Delivery core status: platform, cache sizes, pending follow-ups, known channels."""
    if not _bot:
        return {"status": "starting"}
    return {
        "status": "healthy",
        **_bot.status(),
        "known_channels": _bot.directory.snapshot(),
    }


def build_router(base_path: str = "/api/messages") -> APIRouter:
    """Routes for the inbound messaging endpoint on ``base_path`` plus /health."""
    router = APIRouter(tags=["messaging"])
    router.add_api_route(base_path, receive_activity, methods=["POST"])
    router.add_api_route("/health", health, methods=["GET"])
    return router
