"""Check-in decision engine, ledgers and value objects."""

from .decision_engine import AttendanceDecisionEngine, classify_arrival
from .ledger import AttendanceLedger, InMemoryAttendanceLedger
from .models import (
    AttendanceDecision,
    AttendanceRecord,
    AttendanceRequest,
    Course,
    FaceReference,
    FaceSample,
    StudentProfile,
    SubmissionState,
)

__all__ = [
    "AttendanceDecisionEngine",
    "classify_arrival",
    "AttendanceLedger",
    "InMemoryAttendanceLedger",
    "AttendanceDecision",
    "AttendanceRecord",
    "AttendanceRequest",
    "Course",
    "FaceReference",
    "FaceSample",
    "StudentProfile",
    "SubmissionState",
]
