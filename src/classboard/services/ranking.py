"""Leaderboard ordering and badge calculation.

Everything here is a pure function of its inputs so the ranking rules can be
exercised without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Sequence, Tuple
from uuid import UUID

from ..schemas.leaderboard import Badge


@dataclass(frozen=True)
class Standing:
    """Snapshot of one student's aggregate in a class."""

    student_id: UUID
    total: int
    has_negative_history: bool
    updated_at: datetime


@dataclass(frozen=True)
class RankedStanding:
    """A standing placed on the leaderboard with its derived annotations."""

    rank: int
    standing: Standing
    recent_gain: int = 0
    badges: Tuple[Badge, ...] = field(default_factory=tuple)


def ranking_key(standing: Standing) -> tuple:
    """Sort key implementing the leaderboard tie-break chain.

    At exactly zero points a student who recovered from a deduction ranks
    above one who never moved; at any other total a deduction history ranks
    below a clean one. Earlier arrival at the current total wins remaining ties.
    """

    if standing.total == 0:
        history_rank = 0 if standing.has_negative_history else 1
    else:
        history_rank = 1 if standing.has_negative_history else 0
    return (-standing.total, history_rank, standing.updated_at, str(standing.student_id))


def rank_standings(standings: Sequence[Standing]) -> List[Standing]:
    """Return standings in leaderboard order."""

    return sorted(standings, key=ranking_key)


def _most_improved(ordered: Sequence[Standing], gains: Mapping[UUID, int]) -> set:
    best = max((gains.get(s.student_id, 0) for s in ordered), default=0)
    if best <= 0:
        return set()
    return {s.student_id for s in ordered if gains.get(s.student_id, 0) == best}


def _biggest_climbers(ordered: Sequence[Standing], gains: Mapping[UUID, int]) -> set:
    # Python's sort is stable, so equal previous totals keep their current order.
    previous = sorted(ordered, key=lambda s: -(s.total - gains.get(s.student_id, 0)))
    previous_index: Dict[UUID, int] = {s.student_id: index for index, s in enumerate(previous)}

    improvements: Dict[UUID, int] = {}
    for current_index, standing in enumerate(ordered):
        before = previous_index.get(standing.student_id)
        if before is None:
            continue
        improvements[standing.student_id] = before - current_index

    best = max(improvements.values(), default=0)
    if best <= 0:
        return set()
    return {student_id for student_id, climbed in improvements.items() if climbed == best}


def build_leaderboard(
    standings: Sequence[Standing],
    recent_gains: Mapping[UUID, int],
) -> List[RankedStanding]:
    """Rank ``standings`` and attach badges derived from ``recent_gains``.

    ``recent_gains`` maps student ids to the sum of their ledger deltas inside
    the trailing badge window; students without entries count as zero.
    """

    ordered = rank_standings(standings)
    improved = _most_improved(ordered, recent_gains)
    climbers = _biggest_climbers(ordered, recent_gains)

    result: List[RankedStanding] = []
    for index, standing in enumerate(ordered):
        badges: List[Badge] = []
        if index == 0 and standing.total > 0:
            badges.append(Badge.TOP_1)
        if standing.student_id in improved:
            badges.append(Badge.MOST_IMPROVED)
        if standing.student_id in climbers:
            badges.append(Badge.BIGGEST_CLIMBER)
        result.append(
            RankedStanding(
                rank=index + 1,
                standing=standing,
                recent_gain=recent_gains.get(standing.student_id, 0),
                badges=tuple(badges),
            )
        )
    return result


def rank_of(standings: Sequence[Standing], student_id: UUID) -> int | None:
    """Return the 1-based leaderboard position of ``student_id``, if present."""

    for index, standing in enumerate(rank_standings(standings)):
        if standing.student_id == student_id:
            return index + 1
    return None
