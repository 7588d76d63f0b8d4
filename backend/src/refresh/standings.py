"""
Standings refresh module.

Pulls the league table from API-Football and upserts it keyed by
(league_id, season, team_id).
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from database.supabase_client import SupabaseClient
from football_api.client import FootballAPIClient
from refresh.entity import EntityRefreshError, LogSink, RefreshLog, require_stored_league
from refresh.league import LeagueConfig

logger = logging.getLogger(__name__)


def standing_to_row(
    item: Dict[str, Any],
    league: LeagueConfig,
    team_id: str,
    updated_at: str,
) -> Dict[str, Any]:
    """Map one API-Football standings entry to a standings row."""
    overall = item.get("all") or {}
    goals = overall.get("goals") or {}
    return {
        "league_id": league.id,
        "season": league.current_season,
        "team_id": team_id,
        "rank": item.get("rank"),
        "points": item.get("points"),
        "goal_diff": item.get("goalsDiff"),
        "form": item.get("form"),
        "description": item.get("description"),
        "played": overall.get("played"),
        "won": overall.get("win"),
        "drawn": overall.get("draw"),
        "lost": overall.get("lose"),
        "goals_for": goals.get("for"),
        "goals_against": goals.get("against"),
        "home_record": item.get("home"),
        "away_record": item.get("away"),
        "updated_at": updated_at,
    }


class StandingsRefresher:
    """Handles standings refresh operations."""

    def __init__(
        self,
        football_client: FootballAPIClient,
        db_client: SupabaseClient
    ):
        self.football_client = football_client
        self.db_client = db_client

    async def refresh(
        self,
        league: LeagueConfig,
        sink: Optional[LogSink] = None,
        **_ignored: Any,
    ) -> Dict[str, Any]:
        """
        Refresh the league table.

        Returns:
            Summary dict: success, imported, errors, total, duration, logs, league

        Raises:
            EntityRefreshError: If API-Football returns no standings
            InvalidRefreshRequest: If the league has no database row
            FootballAPIError: If API-Football fails after retries
        """
        require_stored_league(league)
        start = time.perf_counter()
        log = RefreshLog("standings", league.name, sink)

        await log.emit("info", f"Fetching standings for {league.name} from API-Football...")
        standings = await self.football_client.get_standings(league.api_id, league.current_season)
        if not standings:
            await log.emit("error", "No standings returned from API")
            raise EntityRefreshError("No standings returned from API")

        await log.emit("info", "Received standings data from API")
        team_map = self.db_client.get_team_id_map(league.id)
        await log.emit("info", f"Loaded {len(team_map)} teams for mapping")
        await log.emit("info", f"Processing {len(standings)} team standings...")

        updated_at = datetime.now(timezone.utc).isoformat()
        rows = []
        missing_teams = []
        for item in standings:
            team = item.get("team") or {}
            team_id = team_map.get(team.get("id"))
            if not team_id:
                missing_teams.append(team.get("name") or str(team.get("id")))
                continue
            rows.append(standing_to_row(item, league, team_id, updated_at))

        if missing_teams:
            await log.emit("warning", f"Teams not found: {', '.join(missing_teams)}")

        imported = 0
        errors = len(missing_teams)
        if rows:
            await log.emit("progress", f"Batch upserting {len(rows)} standings...")
            try:
                self.db_client.upsert_standings(rows)
                imported = len(rows)
            except Exception as e:
                logger.error("Standings upsert failed", extra={"league_id": league.id, "error": str(e)})
                await log.emit("error", f"Batch upsert error: {e}")
                errors += len(rows)

        duration = int((time.perf_counter() - start) * 1000)
        await log.emit("success", f"Completed: {imported} imported, {errors} errors ({duration / 1000:.1f}s)")

        return {
            "success": True,
            "imported": imported,
            "errors": errors,
            "total": len(standings),
            "duration": duration,
            "logs": log.entries,
            "league": league.name,
        }
