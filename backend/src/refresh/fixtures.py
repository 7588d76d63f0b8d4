"""
Fixtures refresh module.

Pulls fixtures from API-Football for a league and upserts them keyed by
(api_id, league_id). The mode picks which slice of the season to fetch.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from database.supabase_client import SupabaseClient
from football_api.client import FootballAPIClient
from refresh.entity import InvalidRefreshRequest, LogSink, RefreshLog, require_stored_league
from refresh.league import LeagueConfig
from utils.fixture_windows import format_api_date, get_fixture_window

logger = logging.getLogger(__name__)

FIXTURE_MODES = ("smart", "full", "upcoming", "recent", "next", "last", "live")
DEFAULT_MODE = "smart"
DEFAULT_COUNTS = {"next": 10, "last": 5}
PROGRESS_EVERY = 20


def parse_mode(mode: Optional[str]) -> str:
    """Unknown or missing modes fall back to smart."""
    return mode if mode in FIXTURE_MODES else DEFAULT_MODE


def parse_count(mode: str, count: Any) -> Optional[int]:
    """Fixture count for next/last modes."""
    if mode not in DEFAULT_COUNTS:
        return None
    if count is None or count == "":
        return DEFAULT_COUNTS[mode]
    try:
        value = int(count)
    except (TypeError, ValueError):
        raise InvalidRefreshRequest(f"Invalid count: {count}")
    if value < 1:
        raise InvalidRefreshRequest(f"Invalid count: {count}")
    return value


def fixture_to_row(
    item: Dict[str, Any],
    league: LeagueConfig,
    team_map: Dict[int, str],
    venue_map: Dict[int, str],
    updated_at: str,
) -> Optional[Dict[str, Any]]:
    """
    Map an API-Football fixture object to a fixtures row.

    Returns:
        Row dict, or None if either team is not known for this league
    """
    fixture = item.get("fixture") or {}
    teams = item.get("teams") or {}
    goals = item.get("goals") or {}
    score = item.get("score") or {}

    home_team_id = team_map.get((teams.get("home") or {}).get("id"))
    away_team_id = team_map.get((teams.get("away") or {}).get("id"))
    if not home_team_id or not away_team_id or fixture.get("id") is None:
        return None

    return {
        "api_id": fixture["id"],
        "league_id": league.id,
        "season": league.current_season,
        "round": (item.get("league") or {}).get("round"),
        "home_team_id": home_team_id,
        "away_team_id": away_team_id,
        "match_date": fixture.get("date"),
        "venue_id": venue_map.get((fixture.get("venue") or {}).get("id")),
        "referee": fixture.get("referee"),
        "status": (fixture.get("status") or {}).get("short"),
        "goals_home": goals.get("home"),
        "goals_away": goals.get("away"),
        "score_halftime": score.get("halftime"),
        "score_fulltime": score.get("fulltime"),
        "updated_at": updated_at,
    }


class FixturesRefresher:
    """Handles fixture refresh operations."""

    def __init__(
        self,
        football_client: FootballAPIClient,
        db_client: SupabaseClient
    ):
        self.football_client = football_client
        self.db_client = db_client

    async def _fetch(
        self,
        league: LeagueConfig,
        mode: str,
        count: Optional[int],
        now: Optional[datetime] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, str]]]:
        """Fetch fixtures for a mode. Returns (fixtures, date range or None)."""
        api_id, season = league.api_id, league.current_season

        if mode == "live":
            return await self.football_client.get_live_fixtures(api_id), None
        if mode == "full":
            return await self.football_client.get_fixtures(api_id, season), None
        if mode in ("next", "last"):
            return await self.football_client.get_fixtures(api_id, season, **{mode: count}), None

        window = get_fixture_window(now)
        if mode == "upcoming":
            date_range = {"from": format_api_date(window.now), "to": format_api_date(window.upcoming_end)}
        elif mode == "recent":
            date_range = {"from": format_api_date(window.recent), "to": format_api_date(window.now)}
        else:
            date_range = window.date_range()

        fixtures = await self.football_client.get_fixtures(api_id, season, **date_range)
        return fixtures, date_range

    async def refresh(
        self,
        league: LeagueConfig,
        mode: Optional[str] = None,
        count: Any = None,
        sink: Optional[LogSink] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Refresh fixtures for a league.

        Args:
            league: League to refresh
            mode: smart (default), full, upcoming, recent, next, last or live
            count: Number of fixtures for next/last
            sink: Receives each log entry as it is produced (streaming)
            now: Reference time for date windows

        Returns:
            Summary dict: success, inserted, updated, errors, total, duration,
            logs, league, mode and (for dated modes) dateRange

        Raises:
            InvalidRefreshRequest: For an invalid count or a league with no database row
            FootballAPIError: If API-Football fails after retries
        """
        require_stored_league(league)
        start = time.perf_counter()
        mode = parse_mode(mode)
        count = parse_count(mode, count)
        log = RefreshLog("fixtures", league.name, sink)

        label = "all" if mode == "full" else mode
        await log.emit("info", f"Fetching {label} fixtures for {league.name}...")

        fixtures, date_range = await self._fetch(league, mode, count, now)

        summary: Dict[str, Any] = {
            "success": True,
            "inserted": 0,
            "updated": 0,
            "errors": 0,
            "total": len(fixtures),
            "league": league.name,
            "mode": mode,
        }
        if date_range:
            summary["dateRange"] = date_range

        if not fixtures:
            if date_range:
                await log.emit("warning", f"No fixtures in date range ({date_range['from']} to {date_range['to']})")
            else:
                await log.emit("warning", "No fixtures returned from API")
            summary["duration"] = int((time.perf_counter() - start) * 1000)
            summary["logs"] = log.entries
            return summary

        range_info = f" ({date_range['from']} to {date_range['to']})" if date_range else ""
        await log.emit("info", f"Received {len(fixtures)} fixtures{range_info}")

        team_map = self.db_client.get_team_id_map(league.id)
        await log.emit("info", f"Loaded {len(team_map)} teams for mapping")
        venue_map = self.db_client.get_venue_id_map()

        updated_at = datetime.now(timezone.utc).isoformat()
        rows = []
        for item in fixtures:
            row = fixture_to_row(item, league, team_map, venue_map, updated_at)
            if row is None:
                summary["errors"] += 1
            else:
                rows.append(row)

        if summary["errors"]:
            await log.emit("warning", f"Skipped {summary['errors']} fixtures with unmapped teams")

        existing = self.db_client.get_existing_fixture_api_ids(league.id, [row["api_id"] for row in rows])

        await log.emit("info", "Processing fixtures...")
        for i in range(0, len(rows), PROGRESS_EVERY):
            batch = rows[i:i + PROGRESS_EVERY]
            await log.emit("progress", "Processing fixtures...", {
                "progress": {"current": i + 1, "total": len(rows)}
            })
            try:
                self.db_client.upsert_fixtures(batch)
            except Exception as e:
                logger.error("Fixture upsert failed", extra={
                    "league_id": league.id,
                    "batch_size": len(batch),
                    "error": str(e)
                })
                summary["errors"] += len(batch)
                continue
            for row in batch:
                if row["api_id"] in existing:
                    summary["updated"] += 1
                else:
                    summary["inserted"] += 1

        duration = int((time.perf_counter() - start) * 1000)
        await log.emit(
            "success",
            f"Completed: {summary['inserted']} new, {summary['updated']} updated, "
            f"{summary['errors']} errors ({duration / 1000:.1f}s)"
        )

        summary["duration"] = duration
        summary["logs"] = log.entries
        return summary
