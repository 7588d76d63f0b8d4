"""
Shared pieces of the per-entity refreshers.

Each refresher reports progress through a RefreshLog. Batch callers read the
collected entries afterwards; streaming callers pass a sink that receives each
entry as it happens.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

LogSink = Callable[[Dict[str, Any]], Awaitable[None]]

_LEVELS = {
    "info": logging.INFO,
    "progress": logging.DEBUG,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class EntityRefreshError(Exception):
    """A refresh could not complete (bad input or nothing usable from the source)."""
    pass


class InvalidRefreshRequest(EntityRefreshError):
    """Request parameters a refresher cannot act on."""
    pass


class RefreshLog:
    """Progress log for one refresher run."""

    def __init__(self, entity: str, league_name: str, sink: Optional[LogSink] = None):
        self.entity = entity
        self.league_name = league_name
        self.sink = sink
        self.entries: List[Dict[str, Any]] = []

    async def emit(self, type: str, message: str, details: Optional[Dict[str, Any]] = None):
        entry: Dict[str, Any] = {"type": type, "message": message}
        if details:
            entry["details"] = details

        # Progress ticks only make sense live
        if type != "progress":
            self.entries.append(entry)

        logger.log(_LEVELS.get(type, logging.INFO), message, extra={
            "entity": self.entity,
            "league": self.league_name
        })

        if self.sink is not None:
            await self.sink(entry)


def require_stored_league(league) -> None:
    """
    Refuse to write rows for a league that has no database row.

    Raises:
        InvalidRefreshRequest: If the league has no internal id (built-in fallback)
    """
    if not league.id:
        raise InvalidRefreshRequest(f"League {league.name} is not in the database")
