"""Public schema exports."""

from .classroom import (
	AssistantAdd,
	ClassCreate,
	ClassRead,
	ClassStats,
	ClassUpdate,
	ClassWithStats,
	EnrollmentRead,
	EnrollStudent,
	ImportRow,
	ImportStudents,
	RemoveStudents,
	UserSummary,
)
from .leaderboard import Badge, LeaderboardEntry, PublicClassInfo, PublicLeaderboard
from .points import AdjustmentRead, LedgerEntryRead, PointsAdjust, PointsBulkAdjust, PointsTotalRead
from .student import ClassProgress, StudentProgress, StudentSummary

__all__ = [
	"AdjustmentRead",
	"AssistantAdd",
	"Badge",
	"ClassCreate",
	"ClassProgress",
	"ClassRead",
	"ClassStats",
	"ClassUpdate",
	"ClassWithStats",
	"EnrollmentRead",
	"EnrollStudent",
	"ImportRow",
	"ImportStudents",
	"LeaderboardEntry",
	"LedgerEntryRead",
	"PointsAdjust",
	"PointsBulkAdjust",
	"PointsTotalRead",
	"PublicClassInfo",
	"PublicLeaderboard",
	"RemoveStudents",
	"StudentProgress",
	"StudentSummary",
	"UserSummary",
]
