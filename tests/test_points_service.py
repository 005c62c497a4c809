import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from classboard.core.cache import leaderboard_key, public_leaderboard_key
from classboard.core.errors import BulkAdjustmentFailed, NotEnrolled, NotFound, ValidationFailure
from classboard.models import ClassPointsTotal, PointsLedger
from classboard.services import class_service, leaderboard_service, points_service


def total_of(session, classroom, student) -> ClassPointsTotal:
    session.expire_all()
    return session.execute(
        select(ClassPointsTotal).where(
            ClassPointsTotal.class_id == classroom.class_id,
            ClassPointsTotal.student_id == student.student_id,
        )
    ).scalar_one()


def ledger_sum(session, classroom, student) -> int:
    return session.execute(
        select(func.coalesce(func.sum(PointsLedger.delta), 0)).where(
            PointsLedger.class_id == classroom.class_id,
            PointsLedger.student_id == student.student_id,
        )
    ).scalar_one()


def adjust(session, classroom, student, owner, delta, reason="Participation", **kwargs):
    return points_service.adjust_points(
        session,
        class_id=classroom.class_id,
        student_id=student.student_id,
        delta=delta,
        actor_id=owner.user_id,
        reason=reason,
        **kwargs,
    )


def test_total_tracks_ledger_sum(session, classroom, owner, enroll):
    student = enroll("Dewi Lestari")
    deltas = [10, 25, -5, 0, 40, -70, 3]
    for delta in deltas:
        adjust(session, classroom, student, owner, delta)

    assert total_of(session, classroom, student).total == sum(deltas)
    assert ledger_sum(session, classroom, student) == sum(deltas)
    count = session.execute(select(func.count(PointsLedger.ledger_entry_id))).scalar_one()
    assert count == len(deltas)


def test_adjustment_returns_entry_and_total(session, classroom, owner, enroll):
    student = enroll("Dewi Lestari")
    result = adjust(session, classroom, student, owner, 15, reason="  Quiz winner  ")

    assert result.ledger_entry.delta == 15
    assert result.ledger_entry.reason == "Quiz winner"
    assert result.ledger_entry.created_by_user_id == owner.user_id
    assert result.points_total.total == 15
    assert result.points_total.has_negative_history is False


def test_negative_history_is_sticky(session, classroom, owner, enroll):
    student = enroll("Dewi Lestari")
    adjust(session, classroom, student, owner, 20)
    assert total_of(session, classroom, student).has_negative_history is False

    adjust(session, classroom, student, owner, -5, reason="Late homework")
    adjust(session, classroom, student, owner, 500)
    adjust(session, classroom, student, owner, 0)

    points_total = total_of(session, classroom, student)
    assert points_total.total == 515
    assert points_total.has_negative_history is True


def test_zero_delta_writes_ledger_but_leaves_total(session, classroom, owner, enroll):
    student = enroll("Dewi Lestari")
    adjust(session, classroom, student, owner, 30)
    before = total_of(session, classroom, student)
    stamp = before.updated_at

    result = adjust(session, classroom, student, owner, 0, reason="Checked in")

    after = total_of(session, classroom, student)
    assert result.ledger_entry.delta == 0
    assert after.total == 30
    assert after.updated_at == stamp
    assert len(points_service.get_history(session, class_id=classroom.class_id, student_id=student.student_id)) == 2


def test_unenrolled_student_is_rejected_before_any_write(session, classroom, owner, enroll):
    outsider = enroll("Budi Santoso")
    class_service.remove_students(session, classroom, student_ids=[outsider.student_id])

    with pytest.raises(NotEnrolled) as excinfo:
        adjust(session, classroom, outsider, owner, 10)

    assert excinfo.value.student_id == outsider.student_id
    assert session.execute(select(func.count(PointsLedger.ledger_entry_id))).scalar_one() == 0


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_empty_reason_is_rejected(session, classroom, owner, enroll, reason):
    student = enroll("Dewi Lestari")
    with pytest.raises(ValidationFailure):
        adjust(session, classroom, student, owner, 5, reason=reason)


@pytest.mark.parametrize("delta", [1.5, "10", True])
def test_non_integer_delta_is_rejected(session, classroom, owner, enroll, delta):
    student = enroll("Dewi Lestari")
    with pytest.raises(ValidationFailure):
        adjust(session, classroom, student, owner, delta)


def test_unknown_class(session, owner):
    with pytest.raises(NotFound):
        points_service.adjust_points(
            session,
            class_id=uuid.uuid4(),
            student_id=uuid.uuid4(),
            delta=1,
            actor_id=owner.user_id,
            reason="x",
        )


def test_adjust_invalidates_cached_leaderboards(session, classroom, owner, enroll, cache):
    student = enroll("Dewi Lestari")
    first = leaderboard_service.get_leaderboard(session, class_id=classroom.class_id, cache=cache)
    assert first[0].total == 0
    cache.set(public_leaderboard_key(classroom.public_slug), {"stale": True})

    adjust(session, classroom, student, owner, 42, cache=cache)

    assert cache.get(leaderboard_key(classroom.class_id)) is None
    assert cache.get(public_leaderboard_key(classroom.public_slug)) is None
    refreshed = leaderboard_service.get_leaderboard(session, class_id=classroom.class_id, cache=cache)
    assert refreshed[0].total == 42


def test_cache_failure_does_not_fail_the_write(session, classroom, owner, enroll):
    class BrokenCache:
        def delete(self, *keys):
            raise ConnectionError("cache down")

    student = enroll("Dewi Lestari")
    result = adjust(session, classroom, student, owner, 7, cache=BrokenCache())
    assert result.points_total.total == 7


def test_bulk_applies_to_every_student_once(session, classroom, owner, enroll):
    students = [enroll(name) for name in ("Dewi Lestari", "Budi Santoso", "Rina Wati")]
    ids = [s.student_id for s in students]

    results = points_service.bulk_adjust_points(
        session,
        class_id=classroom.class_id,
        student_ids=ids + [ids[0]],
        delta=5,
        actor_id=owner.user_id,
        reason="Group project",
    )

    assert [r.ledger_entry.student_id for r in results] == ids
    for student in students:
        assert total_of(session, classroom, student).total == 5


def test_bulk_with_unenrolled_student_changes_nothing(session, classroom, owner, enroll):
    a, b = enroll("Dewi Lestari"), enroll("Budi Santoso")
    adjust(session, classroom, a, owner, 10)
    adjust(session, classroom, b, owner, 20)
    stranger = uuid.uuid4()

    with pytest.raises(NotEnrolled) as excinfo:
        points_service.bulk_adjust_points(
            session,
            class_id=classroom.class_id,
            student_ids=[a.student_id, stranger, b.student_id],
            delta=-3,
            actor_id=owner.user_id,
            reason="Noise",
        )

    assert excinfo.value.student_id == stranger
    assert total_of(session, classroom, a).total == 10
    assert total_of(session, classroom, b).total == 20
    assert total_of(session, classroom, a).has_negative_history is False
    assert session.execute(select(func.count(PointsLedger.ledger_entry_id))).scalar_one() == 2


def test_bulk_storage_error_rolls_back_whole_batch(session, classroom, owner, enroll, monkeypatch):
    a, b, c = enroll("Dewi Lestari"), enroll("Budi Santoso"), enroll("Rina Wati")
    original = points_service._apply_delta
    calls = []

    def flaky_apply(session_, **kwargs):
        calls.append(kwargs["student_id"])
        if len(calls) == 2:
            raise OperationalError("UPDATE class_points_totals", {}, Exception("deadlock detected"))
        return original(session_, **kwargs)

    monkeypatch.setattr(points_service, "_apply_delta", flaky_apply)

    with pytest.raises(BulkAdjustmentFailed) as excinfo:
        points_service.bulk_adjust_points(
            session,
            class_id=classroom.class_id,
            student_ids=[a.student_id, b.student_id, c.student_id],
            delta=10,
            actor_id=owner.user_id,
            reason="Lab work",
        )

    assert excinfo.value.student_id == b.student_id
    assert excinfo.value.status_code == 500
    for student in (a, b, c):
        assert total_of(session, classroom, student).total == 0
    assert session.execute(select(func.count(PointsLedger.ledger_entry_id))).scalar_one() == 0


def test_empty_bulk_is_a_no_op(session, classroom, owner, cache, broker):
    cache.set(leaderboard_key(classroom.class_id), [])
    result = points_service.bulk_adjust_points(
        session,
        class_id=classroom.class_id,
        student_ids=[],
        delta=10,
        actor_id=owner.user_id,
        reason="Nothing",
        cache=cache,
        broker=broker,
    )
    assert result == []
    assert cache.get(leaderboard_key(classroom.class_id)) == []


def test_history_newest_first(session, classroom, owner, enroll):
    student = enroll("Dewi Lestari")
    for delta in (1, 2, 3):
        adjust(session, classroom, student, owner, delta, reason=f"Round {delta}")

    history = points_service.get_history(session, class_id=classroom.class_id, student_id=student.student_id)
    assert [entry.delta for entry in history] == [3, 2, 1]

    page = points_service.get_history(
        session, class_id=classroom.class_id, student_id=student.student_id, limit=1, offset=1
    )
    assert [entry.delta for entry in page] == [2]


def test_public_history_requires_public_class(session, classroom, owner, enroll):
    student = enroll("Dewi Lestari")
    adjust(session, classroom, student, owner, 5)

    with pytest.raises(NotFound):
        points_service.get_public_history(session, slug=classroom.public_slug, student_id=student.student_id)

    class_service.update_class(session, classroom, is_public=True)
    history = points_service.get_public_history(session, slug=classroom.public_slug, student_id=student.student_id)
    assert [entry.delta for entry in history] == [5]

    with pytest.raises(NotFound):
        points_service.get_public_history(session, slug=classroom.public_slug, student_id=uuid.uuid4())
