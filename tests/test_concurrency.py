import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from classboard.core.database import Base
from classboard.models import ClassPointsTotal, PointsLedger, User
from classboard.services import class_service, points_service

WORKERS = 8


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'classboard.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        engine.dispose()


def test_concurrent_adjustments_never_lose_updates(file_sessions):
    with file_sessions() as session:
        owner = User(name="Ibu Sari", email="sari@example.edu")
        session.add(owner)
        session.commit()
        classroom = class_service.create_class(session, name="Physics 101", description=None, owner=owner)
        student = class_service.enroll_student(
            session, classroom, name="Dewi Lestari", email="dewi@student.example.edu"
        ).student
        class_id, student_id, actor_id = classroom.class_id, student.student_id, owner.user_id

    start = threading.Barrier(WORKERS)

    def award(index: int) -> None:
        with file_sessions() as worker_session:
            start.wait()
            points_service.adjust_points(
                worker_session,
                class_id=class_id,
                student_id=student_id,
                delta=10,
                actor_id=actor_id,
                reason=f"Worker {index}",
            )

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        list(pool.map(award, range(WORKERS)))

    with file_sessions() as session:
        total = session.execute(
            select(ClassPointsTotal.total).where(
                ClassPointsTotal.class_id == class_id, ClassPointsTotal.student_id == student_id
            )
        ).scalar_one()
        entries = session.execute(select(func.count(PointsLedger.ledger_entry_id))).scalar_one()

    assert total == 10 * WORKERS
    assert entries == WORKERS
