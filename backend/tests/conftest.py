import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import pytest
from starlette.requests import Request

SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from config import Config  # noqa: E402
from refresh.executor import RefreshResult  # noqa: E402
from refresh.league import LeagueConfig  # noqa: E402
from utils.fixture_windows import parse_kickoff  # noqa: E402

ADMIN_KEY = "test-admin-key"
COOKIE_SECRET = "test-cookie-secret"


def make_config(**overrides) -> Config:
    values = dict(
        supabase_url="http://supabase.test",
        supabase_key="anon-key",
        football_api_base_url="https://football.test",
        football_api_key="football-key",
        min_request_interval=0.0,
        retry_backoff_base=0.0,
        max_retries=2,
        refresh_base_url="http://api.test",
        admin_api_key=ADMIN_KEY,
        cookie_secret=COOKIE_SECRET,
        refresh_rate_limit_max=20,
        smart_step_delay=0.0,
        refresh_rate_limit_window=3600,
    )
    values.update(overrides)
    return Config(**values)


class FakeSupabase:
    """In-memory stand-in for SupabaseClient, keyed the way the real tables are."""

    def __init__(self, leagues=None, fixtures=None, teams=None, venues=None):
        self.leagues: List[Dict[str, Any]] = leagues or []
        self.fixtures: Dict[tuple, Dict[str, Any]] = {}
        for row in fixtures or []:
            self.fixtures[(row["api_id"], row["league_id"])] = dict(row)
        self.teams: Dict[int, str] = teams or {}
        self.venues: Dict[int, str] = venues or {}
        self.standings: Dict[tuple, Dict[str, Any]] = {}
        self.fail_fixture_reads = False
        self.window_queries: List[tuple] = []

    def get_league_by_id(self, league_id):
        return next((row for row in self.leagues if row["id"] == league_id), None)

    def get_league_by_api_id(self, api_id):
        return next((row for row in self.leagues if row["api_id"] == api_id), None)

    def get_active_leagues(self):
        return [row for row in self.leagues if row.get("is_active")]

    def get_fixtures_in_window(self, league_id, start, end):
        self.window_queries.append((league_id, start, end))
        if self.fail_fixture_reads:
            raise RuntimeError("connection reset")
        rows = [
            row for (_, lid), row in self.fixtures.items()
            if lid == league_id and start <= parse_kickoff(row["match_date"]) <= end
        ]
        return sorted(rows, key=lambda row: parse_kickoff(row["match_date"]))

    def get_existing_fixture_api_ids(self, league_id, api_ids):
        return {api_id for api_id in api_ids if (api_id, league_id) in self.fixtures}

    def upsert_fixtures(self, rows):
        for row in rows:
            self.fixtures[(row["api_id"], row["league_id"])] = dict(row)
        return rows

    def get_team_id_map(self, league_id):
        return dict(self.teams)

    def get_venue_id_map(self):
        return dict(self.venues)

    def upsert_standings(self, rows):
        for row in rows:
            self.standings[(row["league_id"], row["season"], row["team_id"])] = dict(row)
        return rows


def fixture_row(api_id: int, kickoff: datetime, status: str, league_id: str = "league-1") -> Dict[str, Any]:
    return {
        "id": f"fx-{api_id}",
        "api_id": api_id,
        "league_id": league_id,
        "match_date": kickoff.isoformat(),
        "status": status,
    }


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def league():
    return LeagueConfig(
        id="league-1",
        api_id=39,
        name="Premier League",
        current_season=2025,
        country="England",
        is_active=True,
    )


@pytest.fixture
def league_row():
    return {
        "id": "league-1",
        "api_id": 39,
        "name": "Premier League",
        "country": "England",
        "current_season": 2025,
        "is_active": True,
        "display_order": 1,
    }


class RecordingExecutor:
    """Executor double: records dispatch order and fails the named endpoints."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self.events = []

    async def execute(self, descriptor, league, auth=None):
        self.calls.append((descriptor, league.id, auth))
        self.events.append(("start", descriptor))
        await asyncio.sleep(0)
        self.events.append(("end", descriptor))
        if descriptor in self.failing:
            return RefreshResult(endpoint=descriptor, success=False, duration=1, error="boom")
        return RefreshResult(endpoint=descriptor, success=True, duration=1)


def make_request(headers=None, client=("10.0.0.1", 5000)) -> Request:
    raw = [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()]
    return Request({
        "type": "http",
        "method": "POST",
        "path": "/api/data/refresh/phase",
        "query_string": b"",
        "headers": raw,
        "client": client,
    })


class FakeFootballClient:
    """API-Football double serving canned fixtures and standings."""

    def __init__(self, fixtures=None, standings=None, error=None):
        self.fixtures = fixtures or []
        self.standings = standings or []
        self.error = error
        self.calls = []

    async def get_fixtures(self, league, season, **params):
        self.calls.append(("fixtures", league, season, params))
        if self.error:
            raise self.error
        return self.fixtures

    async def get_live_fixtures(self, league):
        self.calls.append(("live", league))
        return self.fixtures

    async def get_standings(self, league, season):
        self.calls.append(("standings", league, season))
        return self.standings


def api_fixture(fixture_id, home=33, away=40, status="NS", venue=556):
    return {
        "fixture": {
            "id": fixture_id,
            "date": "2026-03-14T15:00:00+00:00",
            "referee": "M. Oliver",
            "venue": {"id": venue},
            "status": {"short": status},
        },
        "league": {"id": 39, "round": "Regular Season - 29"},
        "teams": {"home": {"id": home}, "away": {"id": away}},
        "goals": {"home": None, "away": None},
        "score": {"halftime": {"home": None, "away": None}, "fulltime": {"home": None, "away": None}},
    }


def api_standing(team_id, name, rank, points):
    return {
        "rank": rank,
        "team": {"id": team_id, "name": name},
        "points": points,
        "goalsDiff": 12,
        "form": "WWDLW",
        "description": "Promotion - Champions League (League phase: )",
        "all": {"played": 28, "win": 18, "draw": 6, "lose": 4, "goals": {"for": 55, "against": 43}},
        "home": {"played": 14, "win": 10},
        "away": {"played": 14, "win": 8},
    }
