"""
Phase-to-endpoint table.

Static configuration: which per-entity refresh endpoints each orchestratable
phase requires, and which it can optionally add. This table is the only place
an endpoint is tied to a phase; the orchestrator receives it as a constructor
argument.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Tuple
from urllib.parse import parse_qsl

from refresh.phase import Phase


@dataclass(frozen=True)
class PhaseEndpoints:
    """Ordered endpoint descriptors ("name" or "name?query") for one phase."""
    required: Tuple[str, ...]
    optional: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, List[str]]:
        return {"required": list(self.required), "optional": list(self.optional)}


PHASE_ENDPOINTS: Dict[Phase, PhaseEndpoints] = {
    Phase.PRE_MATCH: PhaseEndpoints(
        required=("fixtures?mode=next&count=10", "standings", "injuries?mode=upcoming"),
        optional=("head-to-head", "team-stats", "weather", "odds"),
    ),
    Phase.IMMINENT: PhaseEndpoints(
        required=("lineups?mode=prematch", "odds"),
        optional=("injuries?mode=upcoming",),
    ),
    Phase.LIVE: PhaseEndpoints(
        required=("fixtures?mode=live",),
        optional=("fixture-statistics", "fixture-events"),
    ),
    Phase.POST_MATCH: PhaseEndpoints(
        required=(
            "fixtures?mode=last&count=5",
            "fixture-statistics?mode=smart",
            "fixture-events?mode=smart",
            "standings",
        ),
        optional=(),
    ),
}


def validate_phase_endpoints(table: Mapping[Phase, PhaseEndpoints]) -> None:
    """
    Check a phase table covers every phase with a non-empty required list.

    Raises:
        ValueError: listing every problem found
    """
    errors = []
    for phase in Phase:
        entry = table.get(phase)
        if entry is None:
            errors.append(f"{phase.value}: missing")
        elif not entry.required:
            errors.append(f"{phase.value}: no required endpoints")
    if errors:
        raise ValueError(f"Invalid phase endpoint table: {', '.join(errors)}")


def parse_endpoint(descriptor: str) -> Tuple[str, Dict[str, str]]:
    """
    Split an endpoint descriptor into its name and query parameters.

    >>> parse_endpoint("fixtures?mode=next&count=10")
    ('fixtures', {'mode': 'next', 'count': '10'})
    """
    name, _, query = descriptor.partition("?")
    return name, dict(parse_qsl(query, keep_blank_values=True))


def table_to_dict(table: Mapping[Phase, PhaseEndpoints]) -> Dict[str, Dict[str, List[str]]]:
    """JSON-friendly view of a phase table, keyed by phase value."""
    return {phase.value: entry.to_dict() for phase, entry in table.items()}
