"""API routers."""
from rankmatch.routers import health, matches, matchmaking, player

__all__ = [
    "health",
    "matches",
    "matchmaking",
    "player",
]
