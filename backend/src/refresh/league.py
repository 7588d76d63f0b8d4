"""
League context: which league a refresh runs for.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PREMIER_LEAGUE_API_ID = 39


@dataclass
class LeagueConfig:
    """A configured league (row of the leagues table)."""
    id: str               # Internal UUID
    api_id: int           # API-Football league id
    name: str
    current_season: int
    country: Optional[str] = None
    is_active: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LeagueConfig":
        return cls(
            id=str(row["id"]),
            api_id=int(row["api_id"]),
            name=row.get("name") or f"League {row['api_id']}",
            current_season=int(row["current_season"]),
            country=row.get("country"),
            is_active=bool(row.get("is_active") or False),
        )


def fallback_league(api_id: int, season: int) -> LeagueConfig:
    """Used when the database has no row for the default league."""
    name = "Premier League" if api_id == PREMIER_LEAGUE_API_ID else f"League {api_id}"
    return LeagueConfig(
        id="",
        api_id=api_id,
        name=name,
        current_season=season,
        country="England" if api_id == PREMIER_LEAGUE_API_ID else None,
        is_active=True,
    )


def resolve_league(
    db_client,
    league_id: Optional[str] = None,
    api_id: Optional[int] = None,
    default_api_id: int = PREMIER_LEAGUE_API_ID,
    default_season: int = 2025,
) -> LeagueConfig:
    """
    Resolve the league a request refers to.

    Lookup order: internal league_id, then API-Football api_id, then the default
    league. Unknown ids fall through to the default rather than failing.

    Args:
        db_client: SupabaseClient (or compatible) used for league lookups
        league_id: Internal league UUID from the request
        api_id: API-Football league id from the request
        default_api_id: API-Football id of the default league
        default_season: Season for the built-in fallback league

    Returns:
        LeagueConfig for the request
    """
    if league_id:
        row = db_client.get_league_by_id(league_id)
        if row:
            return LeagueConfig.from_row(row)
        logger.warning("Unknown league_id, using default league", extra={"league_id": league_id})

    if api_id is not None:
        row = db_client.get_league_by_api_id(api_id)
        if row:
            return LeagueConfig.from_row(row)
        logger.warning("Unknown league api_id, using default league", extra={"api_id": api_id})

    row = db_client.get_league_by_api_id(default_api_id)
    if row:
        return LeagueConfig.from_row(row)
    return fallback_league(default_api_id, default_season)
