"""Value objects shared by the decision engine, ledgers and HTTP layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

REFERENCE_EMBEDDING = "embedding"
REFERENCE_TOKEN = "token"

STATUS_PRESENT = "present"
STATUS_LATE = "late"

# Rejection reason codes
REASON_NOT_ENROLLED = "not enrolled"
REASON_COURSE_NOT_FOUND = "course not found"
REASON_ALREADY_MARKED = "already marked today"
REASON_NOT_REGISTERED = "not registered"
REASON_VERIFICATION_FAILED = "verification failed"

REJECTION_MESSAGES = {
    REASON_NOT_ENROLLED: "You are not enrolled in this course",
    REASON_COURSE_NOT_FOUND: "Course not found",
    REASON_ALREADY_MARKED: "Attendance already marked for today in this course",
    REASON_NOT_REGISTERED: "No registered face found. Please register your face first.",
    REASON_VERIFICATION_FAILED: "Face verification failed. Please try again.",
}

REJECTION_STATUS = {
    REASON_COURSE_NOT_FOUND: 404,
}


def normalize_course_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class SubmissionState(str, Enum):
    RECEIVED = "received"
    IDENTITY_CHECKED = "identity_checked"
    ENROLLMENT_CHECKED = "enrollment_checked"
    DUPLICATE_CHECKED = "duplicate_checked"
    CLASSIFIED = "classified"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class FaceReference:
    """Stored biometric descriptor: an embedding vector or a provider token."""

    kind: str
    value: Union[Sequence[float], str]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["FaceReference"]:
        token = row.get("face_token")
        if token:
            return cls(kind=REFERENCE_TOKEN, value=token)
        raw = row.get("face_embedding")
        if raw:
            try:
                values = json.loads(raw) if isinstance(raw, str) else list(raw)
            except (TypeError, ValueError):
                # Unreadable stored vector: keep it registered so verification fails closed
                return cls(kind=REFERENCE_EMBEDDING, value=[])
            if not isinstance(values, list):
                return cls(kind=REFERENCE_EMBEDDING, value=[])
            if values:
                return cls(kind=REFERENCE_EMBEDDING, value=values)
        return None


@dataclass(frozen=True)
class FaceSample:
    """Captured sample: a client-side embedding or a base64 image."""

    kind: str
    value: Union[Sequence[float], str]


@dataclass
class StudentProfile:
    student_id: str
    full_name: str
    enrolled_courses: List[str] = field(default_factory=list)
    face_reference: Optional[FaceReference] = None

    def is_enrolled(self, course_code: str) -> bool:
        code = normalize_course_code(course_code)
        return any(normalize_course_code(c) == code for c in self.enrolled_courses)


@dataclass
class Course:
    course_code: str
    course_name: str = ""
    is_active: bool = True
    schedule_days: List[str] = field(default_factory=list)
    schedule_time: Optional[str] = None

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> Optional["Course"]:
        if not row:
            return None
        days = row.get("schedule_days") or "[]"
        return cls(
            course_code=row["course_code"],
            course_name=row.get("course_name") or "",
            is_active=bool(row.get("is_active", 1)),
            schedule_days=json.loads(days) if isinstance(days, str) else list(days),
            schedule_time=row.get("schedule_time"),
        )


@dataclass
class AttendanceRequest:
    student: StudentProfile
    course_code: str
    sample: FaceSample
    location: Optional[Dict[str, float]] = None
    notes: Optional[str] = None
    device_info: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass
class AttendanceRecord:
    student_id: str
    course_code: str
    attendance_date: date
    status: str
    confidence_score: float
    timestamp: datetime
    is_late: bool = False
    late_minutes: int = 0
    student_name: Optional[str] = None
    location: Optional[Dict[str, float]] = None
    notes: Optional[str] = None
    device_info: Optional[str] = None
    ip_address: Optional[str] = None
    method: str = "face_recognition"
    record_id: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "attendanceId": self.record_id,
            "courseCode": self.course_code,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "confidenceScore": self.confidence_score,
            "isLate": self.is_late,
            "lateMinutes": self.late_minutes,
        }


@dataclass
class AttendanceDecision:
    """Terminal outcome of one submission."""

    state: SubmissionState
    record: Optional[AttendanceRecord] = None
    reason: Optional[str] = None
    similarity: Optional[float] = None

    @property
    def accepted(self) -> bool:
        return self.state is SubmissionState.ACCEPTED

    @property
    def message(self) -> str:
        if self.accepted:
            suffix = " (Late)" if self.record and self.record.is_late else ""
            return f"Attendance marked successfully{suffix}"
        return REJECTION_MESSAGES.get(self.reason or "", "Attendance rejected")

    @property
    def http_status(self) -> int:
        if self.accepted:
            return 200
        return REJECTION_STATUS.get(self.reason or "", 400)
