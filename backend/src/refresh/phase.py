"""
Match phase detection.

Classifies where a league sits in its fixture cycle from fixture kickoff times
and status codes, and folds the detailed sub-state into one of the four phases
the orchestrator can run.

Detection is a pure function of its input (plus an injectable "now"): no I/O,
and it never raises for empty or malformed fixture lists.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from utils.fixture_windows import (
    POST_MATCH_HOURS,
    is_completed_status,
    is_live_status,
    is_not_started_status,
    parse_kickoff,
    utc_now,
)


class Phase(Enum):
    """Orchestratable phases."""
    PRE_MATCH = "pre-match"
    IMMINENT = "imminent"
    LIVE = "live"
    POST_MATCH = "post-match"

    @classmethod
    def parse(cls, value: Any) -> Optional["Phase"]:
        """Return the phase named by value, or None if it names none."""
        if isinstance(value, Phase):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


DEFAULT_PHASE = Phase.PRE_MATCH


class MatchSubState(Enum):
    """Raw lifecycle states produced by the detector."""
    NO_MATCHES = "no-matches"              # Nothing in the next week
    WEEK_BEFORE = "week-before"            # Next match 1-7 days away
    DAY_BEFORE = "day-before"              # Next match within 24h
    MATCHDAY_MORNING = "matchday-morning"  # Match today, more than 3h away
    PRE_MATCH = "pre-match"                # Next match in 1-3h
    IMMINENT = "imminent"                  # Next match within the hour
    LIVE = "live"                          # Match in progress
    POST_MATCH = "post-match"              # Finished less than 2h ago
    DAY_AFTER = "day-after"                # Yesterday's results to sync


# Many-to-one fold; anything missing here falls back to DEFAULT_PHASE
SUB_STATE_TO_PHASE: Dict[MatchSubState, Phase] = {
    MatchSubState.PRE_MATCH: Phase.PRE_MATCH,
    MatchSubState.MATCHDAY_MORNING: Phase.PRE_MATCH,
    MatchSubState.DAY_BEFORE: Phase.PRE_MATCH,
    MatchSubState.IMMINENT: Phase.IMMINENT,
    MatchSubState.LIVE: Phase.LIVE,
    MatchSubState.POST_MATCH: Phase.POST_MATCH,
    MatchSubState.DAY_AFTER: Phase.POST_MATCH,
}

IMMINENT_HOURS = 1
PRE_MATCH_HOURS = 3
JUST_FINISHED_HOURS = 2
DAY_HOURS = 24
WEEK_HOURS = 168


def fold_sub_state(sub_state: Any) -> Phase:
    """
    Map a detector sub-state (enum or its string value) to an orchestratable phase.

    Total: unknown values, None and week-before/no-matches all map to pre-match.
    """
    if not isinstance(sub_state, MatchSubState):
        try:
            sub_state = MatchSubState(sub_state)
        except ValueError:
            return DEFAULT_PHASE
    return SUB_STATE_TO_PHASE.get(sub_state, DEFAULT_PHASE)


@dataclass(frozen=True)
class PhaseRecommendation:
    """Which data categories a sub-state calls for."""
    required: Tuple[str, ...]
    optional: Tuple[str, ...]
    skip: Tuple[str, ...]
    next_check_minutes: int
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "required": list(self.required),
            "optional": list(self.optional),
            "skip": list(self.skip),
            "nextCheckMinutes": self.next_check_minutes,
            "description": self.description,
        }


RECOMMENDATIONS: Dict[MatchSubState, PhaseRecommendation] = {
    MatchSubState.NO_MATCHES: PhaseRecommendation(
        (), ("standings", "injuries"), ("fixtures", "lineups", "odds", "statistics", "events"),
        360, "No matches in the next week. Minimal data sync needed.",
    ),
    MatchSubState.WEEK_BEFORE: PhaseRecommendation(
        ("team-stats",), ("injuries", "standings", "h2h"), ("lineups", "live-scores"),
        240, "Matches coming up this week. Sync team stats and injuries.",
    ),
    MatchSubState.DAY_BEFORE: PhaseRecommendation(
        ("injuries", "odds"), ("fixtures", "weather", "team-stats"), ("lineups", "statistics"),
        120, "Match tomorrow. Sync odds and final injury updates.",
    ),
    MatchSubState.MATCHDAY_MORNING: PhaseRecommendation(
        ("fixtures", "injuries", "odds"), ("weather",), ("team-stats", "standings"),
        60, "Matchday! Sync odds and check for any late injury news.",
    ),
    MatchSubState.PRE_MATCH: PhaseRecommendation(
        ("lineups", "odds"), ("weather", "injuries"), ("team-stats", "standings", "statistics"),
        30, "Match starting soon. Lineups should be available.",
    ),
    MatchSubState.IMMINENT: PhaseRecommendation(
        ("lineups",), ("odds",), ("team-stats", "standings", "injuries"),
        15, "Match starting very soon! Final lineup check.",
    ),
    MatchSubState.LIVE: PhaseRecommendation(
        ("live-scores",), ("events",), ("lineups", "odds", "team-stats", "injuries"),
        1, "Match in progress! Live score updates.",
    ),
    MatchSubState.POST_MATCH: PhaseRecommendation(
        ("statistics", "events", "fixtures"), ("lineups", "standings"), ("odds", "weather", "injuries"),
        30, "Match just finished. Sync full statistics.",
    ),
    MatchSubState.DAY_AFTER: PhaseRecommendation(
        ("standings", "statistics"), ("events", "team-stats"), ("lineups", "odds", "weather"),
        120, "Processing yesterday's results. Update standings.",
    ),
}


@dataclass
class PhaseDetectionResult:
    """Everything the detector worked out about a fixture window."""
    sub_state: MatchSubState
    phase: Phase
    next_match: Optional[Dict[str, Any]]
    next_match_time: Optional[datetime]
    hours_until_next: Optional[float]
    live_matches: int
    upcoming_today: int
    recently_completed: int

    @property
    def recommendation(self) -> PhaseRecommendation:
        return RECOMMENDATIONS[self.sub_state]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subState": self.sub_state.value,
            "phase": self.phase.value,
            "nextMatchTime": self.next_match_time.isoformat() if self.next_match_time else None,
            "hoursUntilNext": round(self.hours_until_next, 2) if self.hours_until_next is not None else None,
            "liveMatches": self.live_matches,
            "upcomingToday": self.upcoming_today,
            "recentlyCompleted": self.recently_completed,
            "recommendation": self.recommendation.to_dict(),
        }


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def _well_formed(fixtures: Any) -> List[Tuple[Dict[str, Any], datetime, str]]:
    """Keep fixtures with a parseable kickoff and a string status."""
    if fixtures is None or isinstance(fixtures, (str, bytes, dict)):
        return []
    try:
        items = list(fixtures)
    except TypeError:
        return []
    rows = []
    for fixture in items:
        if not isinstance(fixture, dict):
            continue
        kickoff = parse_kickoff(fixture.get("match_date"))
        status = fixture.get("status")
        if kickoff is None or not isinstance(status, str):
            continue
        rows.append((fixture, kickoff, status))
    return rows


def detect_current_phase(fixtures: Any, now: Optional[datetime] = None) -> PhaseDetectionResult:
    """
    Detect the current match phase from a league's nearby fixtures.

    Args:
        fixtures: Fixture rows (dicts with match_date and status), normally the
            [now - 3 days, now + 7 days] window ordered by kickoff.
        now: Reference time (aware UTC); defaults to the current time.

    Returns:
        PhaseDetectionResult with the raw sub-state and its folded phase
    """
    now = now or utc_now()
    rows = _well_formed(fixtures)

    recent_cutoff = now - timedelta(hours=POST_MATCH_HOURS)
    today = now.date()

    live = [f for f, _, status in rows if is_live_status(status)]
    upcoming = sorted(
        ((f, kickoff) for f, kickoff, status in rows if is_not_started_status(status) and kickoff > now),
        key=lambda item: item[1],
    )
    upcoming_today = [
        f for f, kickoff, status in rows
        if is_not_started_status(status) and kickoff.date() == today
    ]
    recently_completed = [
        kickoff for _, kickoff, status in rows
        if is_completed_status(status) and kickoff >= recent_cutoff
    ]

    next_match, next_match_time = upcoming[0] if upcoming else (None, None)
    hours_until_next = _hours_between(now, next_match_time) if next_match_time else None

    if live:
        sub_state = MatchSubState.LIVE
    elif hours_until_next is not None and 0 < hours_until_next <= IMMINENT_HOURS:
        sub_state = MatchSubState.IMMINENT
    elif hours_until_next is not None and IMMINENT_HOURS < hours_until_next <= PRE_MATCH_HOURS:
        sub_state = MatchSubState.PRE_MATCH
    elif upcoming_today and hours_until_next is not None and hours_until_next > PRE_MATCH_HOURS:
        sub_state = MatchSubState.MATCHDAY_MORNING
    elif recently_completed and not upcoming_today:
        hours_since_last = min(
            [abs(_hours_between(kickoff, now)) for kickoff in recently_completed] + [DAY_HOURS]
        )
        if hours_since_last <= JUST_FINISHED_HOURS:
            sub_state = MatchSubState.POST_MATCH
        else:
            sub_state = MatchSubState.DAY_AFTER
    elif hours_until_next is not None and hours_until_next <= DAY_HOURS:
        sub_state = MatchSubState.DAY_BEFORE
    elif hours_until_next is not None and hours_until_next <= WEEK_HOURS:
        sub_state = MatchSubState.WEEK_BEFORE
    else:
        sub_state = MatchSubState.NO_MATCHES

    return PhaseDetectionResult(
        sub_state=sub_state,
        phase=fold_sub_state(sub_state),
        next_match=next_match,
        next_match_time=next_match_time,
        hours_until_next=hours_until_next,
        live_matches=len(live),
        upcoming_today=len(upcoming_today),
        recently_completed=len(recently_completed),
    )


def detect_phase(fixtures: Any, now: Optional[datetime] = None) -> Phase:
    """Detect and fold in one step. An empty window yields pre-match."""
    return detect_current_phase(fixtures, now=now).phase


def phase_display_info(
    phase: Phase,
    hours_until_next: Optional[float] = None,
    live_matches: int = 0,
) -> Dict[str, str]:
    """Title/subtitle/urgency/icon for the admin panel."""
    if phase == Phase.LIVE:
        count = max(live_matches, 1)
        return {
            "title": f"{count} match{'es' if count > 1 else ''} in progress",
            "subtitle": "Live score sync active",
            "urgency": "critical",
            "icon": "play-circle",
        }
    if phase == Phase.IMMINENT:
        return {
            "title": "Kick-off imminent",
            "subtitle": f"{round(hours_until_next * 60)} minutes away" if hours_until_next else "Starting soon",
            "urgency": "critical",
            "icon": "clock",
        }
    if phase == Phase.POST_MATCH:
        return {
            "title": "Post-match processing",
            "subtitle": "Syncing match statistics",
            "urgency": "medium",
            "icon": "bar-chart",
        }
    return {
        "title": "Pre-match phase",
        "subtitle": f"Match in {hours_until_next:.1f} hours" if hours_until_next else "Match approaching",
        "urgency": "high",
        "icon": "users",
    }
