"""Service layer exports."""

from . import (
	class_service,
	leaderboard_service,
	points_service,
	progress_service,
	ranking,
	reconcile_service,
)

__all__ = [
	"class_service",
	"leaderboard_service",
	"points_service",
	"progress_service",
	"ranking",
	"reconcile_service",
]
