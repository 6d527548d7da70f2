from commonbot.api.messaging import build_router, set_bot_ref

__all__ = ["build_router", "set_bot_ref"]
