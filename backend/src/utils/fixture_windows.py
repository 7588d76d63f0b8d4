"""
Fixture window utilities.

Date windows and API-Football status vocabulary used to keep refreshes and
phase detection limited to fixtures that matter right now.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, Optional

# Date window configuration
UPCOMING_DAYS = 7          # Fixtures for the next 7 days
RECENT_DAYS = 3            # Completed fixtures from the past 3 days
POST_MATCH_HOURS = 24      # A match counts as "recently completed" for 24h

# Match status codes from API-Football
NOT_STARTED_STATUSES = frozenset(["NS", "TBD"])
LIVE_STATUSES = frozenset(["1H", "2H", "HT", "ET", "BT", "P", "INT", "LIVE"])
COMPLETED_STATUSES = frozenset(["FT", "AET", "PEN"])
POSTPONED_STATUSES = frozenset(["PST", "SUSP", "CANC", "ABD", "AWD", "WO"])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_live_status(status: Any) -> bool:
    return isinstance(status, str) and status in LIVE_STATUSES


def is_completed_status(status: Any) -> bool:
    return isinstance(status, str) and status in COMPLETED_STATUSES


def is_not_started_status(status: Any) -> bool:
    return isinstance(status, str) and status in NOT_STARTED_STATUSES


def is_postponed_status(status: Any) -> bool:
    return isinstance(status, str) and status in POSTPONED_STATUSES


def parse_kickoff(value: Any) -> Optional[datetime]:
    """
    Parse a fixture match_date into an aware UTC datetime.

    Accepts ISO strings (with 'Z' or an offset) and datetimes. Naive values are
    taken as UTC. Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        kickoff = value
    elif isinstance(value, str) and value:
        try:
            kickoff = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if kickoff.tzinfo is None:
        kickoff = kickoff.replace(tzinfo=timezone.utc)
    return kickoff.astimezone(timezone.utc)


@dataclass(frozen=True)
class FixtureWindow:
    """Boundaries for smart fixture filtering (all UTC)."""

    now: datetime
    recent: datetime        # Start of recent window (midnight, X days ago)
    upcoming_end: datetime  # End of upcoming window (23:59:59, X days ahead)
    today_start: datetime
    today_end: datetime

    def date_range(self) -> Dict[str, str]:
        """API-Football from/to parameters (YYYY-MM-DD) spanning the window."""
        return {"from": format_api_date(self.recent), "to": format_api_date(self.upcoming_end)}


def get_fixture_window(
    now: Optional[datetime] = None,
    upcoming_days: int = UPCOMING_DAYS,
    recent_days: int = RECENT_DAYS,
) -> FixtureWindow:
    """Get the fixture window dates for smart filtering."""
    now = now or utc_now()
    today = now.date()
    today_start = datetime.combine(today, time.min, tzinfo=timezone.utc)
    today_end = datetime.combine(today, time.max, tzinfo=timezone.utc)
    return FixtureWindow(
        now=now,
        recent=today_start - timedelta(days=recent_days),
        upcoming_end=today_end + timedelta(days=upcoming_days),
        today_start=today_start,
        today_end=today_end,
    )


def get_detection_window(now: Optional[datetime] = None):
    """[now - 3 days, now + 7 days]: the fixture span phase detection looks at."""
    now = now or utc_now()
    return now - timedelta(days=RECENT_DAYS), now + timedelta(days=UPCOMING_DAYS)


def format_api_date(value: datetime) -> str:
    """Format date for API-Football queries (YYYY-MM-DD)."""
    return value.strftime("%Y-%m-%d")
