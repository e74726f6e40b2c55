"""API routers."""

from reward_engine.api.checkin import router as checkin_router
from reward_engine.api.coins import router as coins_router
from reward_engine.api.events import router as events_router
from reward_engine.api.games import router as games_router

__all__ = [
    "checkin_router",
    "coins_router",
    "events_router",
    "games_router",
]
