"""
Supabase client for database operations.

Provides narrow queries (explicit column selection and WHERE clauses) and
natural-key upserts for the tables the refreshers own.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from supabase import create_client, Client

from config import Config

logger = logging.getLogger(__name__)

FIXTURE_CONFLICT_KEY = "api_id,league_id"
STANDINGS_CONFLICT_KEY = "league_id,season,team_id"

LEAGUE_COLUMNS = ["id", "api_id", "name", "country", "current_season", "is_active", "display_order"]
PHASE_FIXTURE_COLUMNS = ["id", "api_id", "match_date", "status"]


class SupabaseClient:
    """Client for interacting with Supabase database."""

    def __init__(self, config: Config):
        self.config = config
        self.client: Optional[Client] = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client."""
        if not self.config.supabase_url or not self.config.supabase_key:
            raise ValueError("Supabase URL and key are required")

        # Service key bypasses RLS for upserts; fall back to the anon key for reads
        key = self.config.supabase_service_key or self.config.supabase_key

        self.client = create_client(
            self.config.supabase_url,
            key
        )

        logger.info("Initialized Supabase client", extra={
            "url": self.config.supabase_url,
            "using_service_key": bool(self.config.supabase_service_key)
        })

    def _select_columns(self, columns: List[str]) -> str:
        """Format column list for SELECT statement."""
        return ", ".join(columns)

    # Leagues

    def get_league_by_id(self, league_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a league by internal UUID.

        Returns None when the league does not exist or the id is malformed.
        """
        try:
            result = (
                self.client.table("leagues")
                .select(self._select_columns(LEAGUE_COLUMNS))
                .eq("id", league_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.warning("League lookup by id failed", extra={"league_id": league_id, "error": str(e)})
            return None
        return result.data if result else None

    def get_league_by_api_id(self, api_id: int) -> Optional[Dict[str, Any]]:
        """Get a league by its API-Football id."""
        try:
            result = (
                self.client.table("leagues")
                .select(self._select_columns(LEAGUE_COLUMNS))
                .eq("api_id", api_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.warning("League lookup by api_id failed", extra={"api_id": api_id, "error": str(e)})
            return None
        return result.data if result else None

    def get_active_leagues(self) -> List[Dict[str, Any]]:
        """Get all active leagues in display order."""
        result = (
            self.client.table("leagues")
            .select(self._select_columns(LEAGUE_COLUMNS))
            .eq("is_active", True)
            .order("display_order")
            .execute()
        )
        return result.data or []

    # Fixtures

    def get_fixtures_in_window(
        self,
        league_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Dict[str, Any]]:
        """
        Get a league's fixtures with kickoff in [start, end], earliest first.

        Args:
            league_id: Internal league UUID
            start: Window start (aware datetime)
            end: Window end (aware datetime)

        Returns:
            List of {id, api_id, match_date, status} dictionaries
        """
        result = (
            self.client.table("fixtures")
            .select(self._select_columns(PHASE_FIXTURE_COLUMNS))
            .eq("league_id", league_id)
            .gte("match_date", start.isoformat())
            .lte("match_date", end.isoformat())
            .order("match_date")
            .execute()
        )
        return result.data or []

    def get_existing_fixture_api_ids(self, league_id: str, api_ids: Iterable[int]) -> Set[int]:
        """Which of the given API-Football fixture ids already have a row for this league."""
        ids = list(api_ids)
        if not ids:
            return set()
        result = (
            self.client.table("fixtures")
            .select("api_id")
            .eq("league_id", league_id)
            .in_("api_id", ids)
            .execute()
        )
        return {row["api_id"] for row in (result.data or [])}

    def upsert_fixtures(self, fixtures: List[Dict[str, Any]]):
        """
        Upsert fixtures keyed by (api_id, league_id).

        Args:
            fixtures: Fixture rows; each must include api_id and league_id
        """
        if not fixtures:
            return []
        result = self.client.table("fixtures").upsert(
            fixtures,
            on_conflict=FIXTURE_CONFLICT_KEY
        ).execute()

        return result.data

    # Teams / venues (lookups for mapping API ids to internal ids)

    def get_team_id_map(self, league_id: str) -> Dict[int, str]:
        """Map API-Football team id -> internal team id for a league."""
        result = (
            self.client.table("teams")
            .select("id, api_id")
            .eq("league_id", league_id)
            .execute()
        )
        return {row["api_id"]: row["id"] for row in (result.data or [])}

    def get_venue_id_map(self) -> Dict[int, str]:
        """Map API-Football venue id -> internal venue id."""
        result = self.client.table("venues").select("id, api_id").execute()
        return {row["api_id"]: row["id"] for row in (result.data or [])}

    # Standings

    def upsert_standings(self, standings: List[Dict[str, Any]]):
        """
        Upsert standings rows keyed by (league_id, season, team_id).

        Args:
            standings: Standings rows for one league and season
        """
        if not standings:
            return []
        result = self.client.table("standings").upsert(
            standings,
            on_conflict=STANDINGS_CONFLICT_KEY
        ).execute()

        return result.data
