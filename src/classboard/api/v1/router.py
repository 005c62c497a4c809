"""Primary API router definition."""

from fastapi import APIRouter

from . import classes, points, public, students

api_router = APIRouter()

# public routes first so "/classes/public/..." never matches "/classes/{class_id}"
api_router.include_router(public.router)
api_router.include_router(classes.router)
api_router.include_router(points.router)
api_router.include_router(students.router)


@api_router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    """Basic health probe endpoint."""
    return {"status": "ok"}
