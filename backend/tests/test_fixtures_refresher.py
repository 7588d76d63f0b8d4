from datetime import datetime, timezone

import pytest

from conftest import FakeFootballClient, FakeSupabase, api_fixture
from refresh.entity import InvalidRefreshRequest
from refresh.fixtures import FixturesRefresher, fixture_to_row
from refresh.league import LeagueConfig

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    return FakeSupabase(teams={33: "team-mu", 40: "team-liv"}, venues={556: "venue-ot"})


async def _refresh(client, db, league, **kwargs):
    return await FixturesRefresher(client, db).refresh(league, now=NOW, **kwargs)


@pytest.mark.asyncio
async def test_smart_mode_fetches_date_window(db, league):
    client = FakeFootballClient([api_fixture(1001)])
    summary = await _refresh(client, db, league)

    assert client.calls == [("fixtures", 39, 2025, {"from": "2026-03-11", "to": "2026-03-21"})]
    assert summary["mode"] == "smart"
    assert summary["dateRange"] == {"from": "2026-03-11", "to": "2026-03-21"}
    assert summary["inserted"] == 1
    assert summary["success"] is True


@pytest.mark.parametrize("mode,count,expected", [
    ("next", None, {"next": 10}),
    ("next", "3", {"next": 3}),
    ("last", None, {"last": 5}),
    ("full", None, {}),
    ("upcoming", None, {"from": "2026-03-14", "to": "2026-03-21"}),
    ("recent", None, {"from": "2026-03-11", "to": "2026-03-14"}),
    ("bogus", None, {"from": "2026-03-11", "to": "2026-03-21"}),
])
@pytest.mark.asyncio
async def test_mode_parameters(db, league, mode, count, expected):
    client = FakeFootballClient()
    await _refresh(client, db, league, mode=mode, count=count)
    assert client.calls[0][3] == expected


@pytest.mark.asyncio
async def test_live_mode_uses_live_endpoint(db, league):
    client = FakeFootballClient([api_fixture(1001, status="1H")])
    summary = await _refresh(client, db, league, mode="live")
    assert client.calls == [("live", 39)]
    assert db.fixtures[(1001, "league-1")]["status"] == "1H"
    assert "dateRange" not in summary


@pytest.mark.parametrize("count", ["0", "ten", "-2"])
@pytest.mark.asyncio
async def test_invalid_count(db, league, count):
    with pytest.raises(InvalidRefreshRequest):
        await _refresh(FakeFootballClient(), db, league, mode="next", count=count)


@pytest.mark.asyncio
async def test_rerun_updates_instead_of_duplicating(db, league):
    client = FakeFootballClient([api_fixture(1001), api_fixture(1002)])
    first = await _refresh(client, db, league)
    second = await _refresh(client, db, league)

    assert (first["inserted"], first["updated"]) == (2, 0)
    assert (second["inserted"], second["updated"]) == (0, 2)
    assert len(db.fixtures) == 2


@pytest.mark.asyncio
async def test_unmapped_teams_are_counted_as_errors(db, league):
    client = FakeFootballClient([api_fixture(1001), api_fixture(1002, home=999)])
    summary = await _refresh(client, db, league)

    assert summary["errors"] == 1
    assert summary["inserted"] == 1
    assert summary["total"] == 2
    assert (1002, "league-1") not in db.fixtures
    assert any(entry["type"] == "warning" for entry in summary["logs"])


@pytest.mark.asyncio
async def test_no_fixtures_is_a_successful_empty_run(db, league):
    summary = await _refresh(FakeFootballClient([]), db, league)
    assert summary["success"] is True
    assert summary["total"] == 0
    assert summary["logs"][-1]["message"] == "No fixtures in date range (2026-03-11 to 2026-03-21)"


@pytest.mark.asyncio
async def test_progress_reaches_the_sink(db, league):
    events = []

    async def sink(entry):
        events.append(entry)

    client = FakeFootballClient([api_fixture(i) for i in range(1, 26)])
    summary = await _refresh(client, db, league, sink=sink)

    progress = [e for e in events if e["type"] == "progress"]
    assert [e["details"]["progress"]["current"] for e in progress] == [1, 21]
    assert all(e["type"] != "progress" for e in summary["logs"])
    assert events[-1]["type"] == "success"


@pytest.mark.asyncio
async def test_league_without_database_row_is_rejected(db):
    fallback = LeagueConfig(id="", api_id=39, name="Premier League", current_season=2025)
    client = FakeFootballClient([api_fixture(1001)])

    with pytest.raises(InvalidRefreshRequest, match="not in the database"):
        await _refresh(client, db, fallback)
    assert client.calls == []
    assert db.fixtures == {}


def test_fixture_to_row_maps_fields(league):
    row = fixture_to_row(
        api_fixture(1001, status="FT"),
        league,
        {33: "team-mu", 40: "team-liv"},
        {},
        "2026-03-14T17:00:00+00:00",
    )
    assert row["api_id"] == 1001
    assert row["league_id"] == "league-1"
    assert row["season"] == 2025
    assert row["round"] == "Regular Season - 29"
    assert row["home_team_id"] == "team-mu"
    assert row["away_team_id"] == "team-liv"
    assert row["venue_id"] is None
    assert row["status"] == "FT"
    assert row["referee"] == "M. Oliver"
    assert row["score_fulltime"] == {"home": None, "away": None}
