"""Ledger reconciliation for running totals and the negative-history flag."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.cache import LeaderboardCache
from ..core.events import LeaderboardBroker
from ..models import ClassPointsTotal, Classroom, PointsLedger
from ..utils.datetime import utcnow
from .leaderboard_service import publish_class_change

logger = logging.getLogger(__name__)


def run_reconcile(
    session: Session,
    *,
    cache: Optional[LeaderboardCache] = None,
    broker: Optional[LeaderboardBroker] = None,
) -> dict[str, int]:
    """Recompute every running total from the ledger and repair drift.

    Totals that differ from the sum of their ledger deltas are reset to that
    sum, and ``has_negative_history`` is backfilled for pairs whose ledger
    holds a negative delta. The flag is never cleared. Returns summary
    statistics useful for logging/testing.
    """

    summary = {
        "aggregates_checked": 0,
        "totals_repaired": 0,
        "flags_backfilled": 0,
    }

    # Lock the totals first so adjustments committing meanwhile wait for us.
    totals = session.execute(select(ClassPointsTotal).with_for_update()).scalars().all()

    ledger_stmt = select(
        PointsLedger.class_id,
        PointsLedger.student_id,
        func.coalesce(func.sum(PointsLedger.delta), 0),
        func.min(PointsLedger.delta),
    ).group_by(PointsLedger.class_id, PointsLedger.student_id)
    ledger: Dict[Tuple[UUID, UUID], Tuple[int, Optional[int]]] = {
        (class_id, student_id): (int(total), lowest)
        for class_id, student_id, total, lowest in session.execute(ledger_stmt).all()
    }

    touched: Set[UUID] = set()
    now = utcnow()
    for points_total in totals:
        summary["aggregates_checked"] += 1
        expected, lowest = ledger.get((points_total.class_id, points_total.student_id), (0, None))

        if points_total.total != expected:
            logger.warning(
                "running total drift class=%s student=%s stored=%d ledger=%d",
                points_total.class_id,
                points_total.student_id,
                points_total.total,
                expected,
            )
            points_total.total = expected
            points_total.updated_at = now
            summary["totals_repaired"] += 1
            touched.add(points_total.class_id)

        if lowest is not None and lowest < 0 and not points_total.has_negative_history:
            points_total.has_negative_history = True
            summary["flags_backfilled"] += 1
            touched.add(points_total.class_id)

    session.commit()

    if touched:
        slugs = dict(
            session.execute(
                select(Classroom.class_id, Classroom.public_slug).where(Classroom.class_id.in_(touched))
            ).all()
        )
        for class_id in touched:
            publish_class_change(class_id, slugs.get(class_id), cache=cache, broker=broker)
    return summary
