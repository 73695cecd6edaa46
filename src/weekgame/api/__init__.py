"""HTTP API for weekgame."""

from .server import WeekgameAPI, create_app

__all__ = ["WeekgameAPI", "create_app"]
