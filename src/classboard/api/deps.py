"""Request-scoped dependencies shared by the v1 routers."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..core.cache import LeaderboardCache
from ..core.database import get_db
from ..core.errors import ClassboardError
from ..core.events import LeaderboardBroker
from ..models import Classroom, User
from ..services import class_service


def get_leaderboard_cache(request: Request) -> LeaderboardCache:
    return request.app.state.leaderboard_cache


def get_leaderboard_broker(request: Request) -> LeaderboardBroker:
    return request.app.state.leaderboard_broker


def get_current_actor(
    x_actor_id: Optional[UUID] = Header(None, description="Authenticated staff user id"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the acting staff user placed on the request by the auth gateway."""

    if x_actor_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor")
    actor = db.get(User, x_actor_id)
    if actor is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown actor")
    return actor


def get_managed_class(
    class_id: UUID,
    actor: User = Depends(get_current_actor),
    db: Session = Depends(get_db),
) -> Classroom:
    """Load a class the actor owns, assists, or administers."""

    try:
        return class_service.get_class_for_actor(db, class_id, actor)
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
