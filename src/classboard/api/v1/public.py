"""Public, slug-addressed leaderboard endpoints and live updates."""

from __future__ import annotations

import json
from typing import AsyncIterator, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ...core.cache import LeaderboardCache
from ...core.config import get_settings
from ...core.database import SessionLocal, get_db
from ...core.errors import ClassboardError
from ...core.events import BrokerClosed, LeaderboardBroker
from ...schemas import LedgerEntryRead, PublicLeaderboard
from ...services import leaderboard_service, points_service
from ..deps import get_leaderboard_broker, get_leaderboard_cache

router = APIRouter(prefix="/classes/public", tags=["public"])


def _frame(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _resolve_stream_class(slug: str) -> UUID:
    # short-lived session: the stream outlives any request-scoped connection
    session = SessionLocal()
    try:
        return leaderboard_service.resolve_public_class(session, slug).class_id
    finally:
        session.close()


async def leaderboard_events(
    class_id: UUID,
    request: Request,
    broker: LeaderboardBroker,
    keepalive: float,
) -> AsyncIterator[str]:
    """Server-Sent Events frames for one subscriber.

    The subscription is opened once the body starts streaming and is
    released when the generator exits.
    """

    try:
        subscription = broker.subscribe(class_id)
    except BrokerClosed:
        return
    try:
        yield _frame({"status": "connected"})
        while not await request.is_disconnected():
            try:
                changed = await subscription.wait(timeout=keepalive)
            except BrokerClosed:
                break
            if changed is None:
                yield ": keepalive\n\n"
                continue
            yield _frame({"class_id": str(changed)})
    finally:
        broker.unsubscribe(subscription)


@router.get(
    "/{slug}",
    response_model=PublicLeaderboard,
    summary="Public leaderboard",
    responses={404: {"description": "Unknown or private class"}},
)
def get_public_leaderboard(
    slug: str,
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
) -> PublicLeaderboard:
    """Return class metadata and leaderboard for a class marked public."""

    try:
        return leaderboard_service.get_public_leaderboard(db, slug=slug, cache=cache)
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get("/{slug}/stream", summary="Live leaderboard change notifications")
async def stream_class_updates(
    slug: str,
    request: Request,
    broker: LeaderboardBroker = Depends(get_leaderboard_broker),
) -> StreamingResponse:
    """Push a frame whenever the class leaderboard changes; clients re-fetch on each."""

    try:
        class_id = await run_in_threadpool(_resolve_stream_class, slug)
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    return StreamingResponse(
        leaderboard_events(class_id, request, broker, get_settings().stream_keepalive_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@router.get(
    "/{slug}/students/{student_id}/history",
    response_model=List[LedgerEntryRead],
    summary="Public ledger history of a student",
)
def get_public_history(
    slug: str,
    student_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[LedgerEntryRead]:
    try:
        entries = points_service.get_public_history(
            db, slug=slug, student_id=student_id, limit=limit, offset=offset
        )
        return list(entries)
    except ClassboardError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
