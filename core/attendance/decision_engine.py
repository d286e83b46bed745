"""Attendance decision engine.

One submission walks ``Received -> IdentityChecked -> EnrollmentChecked ->
DuplicateChecked -> Classified`` and ends ``Accepted`` or ``Rejected``. The
cheap checks (enrollment, course, duplicate, registration) all run before the
similarity oracle, which is the only step allowed to touch the network.

The ledger's conditional insert is the only serialization point: two
submissions may both pass the duplicate check, but only one commit wins and
the loser is reported as ``already marked today``.
"""

from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Any, Callable, Optional, Tuple

from core.attendance.models import (
    REASON_ALREADY_MARKED,
    REASON_COURSE_NOT_FOUND,
    REASON_NOT_ENROLLED,
    REASON_NOT_REGISTERED,
    REASON_VERIFICATION_FAILED,
    STATUS_LATE,
    STATUS_PRESENT,
    AttendanceDecision,
    AttendanceRecord,
    AttendanceRequest,
    Course,
    SubmissionState,
    normalize_course_code,
)
from core.errors import DuplicateAttendanceError, VerificationError

Clock = Callable[[], datetime]
CourseLookup = Callable[[str], Optional[Course]]

SIMILARITY_THRESHOLD = 0.85
COURSE_START_TIME = time(9, 0)
GRACE_PERIOD_MINUTES = 15


def classify_arrival(
    now: datetime,
    start_time: time = COURSE_START_TIME,
    grace_minutes: int = GRACE_PERIOD_MINUTES,
) -> Tuple[str, bool, int]:
    """Return ``(status, is_late, late_minutes)`` for an arrival at ``now``.

    The start time is the same wall-clock time on ``now``'s day. Minutes are
    whole minutes elapsed (floored), so 09:15:59 is still inside a 15 minute
    grace period.
    """
    start = datetime.combine(now.date(), start_time, tzinfo=now.tzinfo)
    if now <= start:
        return STATUS_PRESENT, False, 0
    diff_minutes = int((now - start).total_seconds() // 60)
    if diff_minutes <= grace_minutes:
        return STATUS_PRESENT, False, 0
    return STATUS_LATE, True, diff_minutes


class AttendanceDecisionEngine:
    """Classifies a check-in against the ledger and commits accepted ones."""

    def __init__(
        self,
        *,
        ledger: Any,
        course_lookup: CourseLookup,
        oracle: Any,
        notifier: Any = None,
        clock: Clock = datetime.now,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        course_start: time = COURSE_START_TIME,
        grace_minutes: int = GRACE_PERIOD_MINUTES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._ledger = ledger
        self._course_lookup = course_lookup
        self._oracle = oracle
        self._notifier = notifier
        self._clock = clock
        self._threshold = similarity_threshold
        self._course_start = course_start
        self._grace_minutes = grace_minutes
        self._logger = logger or logging.getLogger(__name__)

    def _reject(
        self, request: AttendanceRequest, reason: str, similarity: Optional[float] = None
    ) -> AttendanceDecision:
        self._logger.info(
            "[Attendance] Rejected %s for %s: %s",
            request.student.student_id,
            normalize_course_code(request.course_code),
            reason,
        )
        return AttendanceDecision(
            state=SubmissionState.REJECTED, reason=reason, similarity=similarity
        )

    def _advance(self, request: AttendanceRequest, state: SubmissionState) -> None:
        self._logger.debug("[Attendance] %s -> %s", request.student.student_id, state.value)

    def submit(self, request: AttendanceRequest) -> AttendanceDecision:
        student = request.student
        course_code = normalize_course_code(request.course_code)
        self._advance(request, SubmissionState.RECEIVED)
        self._advance(request, SubmissionState.IDENTITY_CHECKED)

        if not student.is_enrolled(course_code):
            return self._reject(request, REASON_NOT_ENROLLED)

        course = self._course_lookup(course_code)
        if course is None or not course.is_active:
            return self._reject(request, REASON_COURSE_NOT_FOUND)
        self._advance(request, SubmissionState.ENROLLMENT_CHECKED)

        # One clock read keys both the duplicate check and the stored record
        now = self._clock()
        if self._ledger.find_attendance(student.student_id, course_code, now.date()):
            return self._reject(request, REASON_ALREADY_MARKED)
        self._advance(request, SubmissionState.DUPLICATE_CHECKED)

        reference = student.face_reference
        if reference is None or reference.kind != request.sample.kind:
            return self._reject(request, REASON_NOT_REGISTERED)

        try:
            similarity = float(self._oracle.verify(reference, request.sample))
        except VerificationError as exc:
            self._logger.warning(
                "[Verification] %s (%s) failed: %s", student.student_id, reference.kind, exc
            )
            return self._reject(request, REASON_VERIFICATION_FAILED)
        except Exception:
            self._logger.exception(
                "[Verification] Oracle crashed for %s (%s)", student.student_id, reference.kind
            )
            return self._reject(request, REASON_VERIFICATION_FAILED)

        if similarity < self._threshold:
            self._logger.warning(
                "[Verification] %s below threshold: %.4f < %.2f",
                student.student_id,
                similarity,
                self._threshold,
            )
            return self._reject(request, REASON_VERIFICATION_FAILED, similarity)

        status, is_late, late_minutes = classify_arrival(
            now, self._course_start, self._grace_minutes
        )
        self._advance(request, SubmissionState.CLASSIFIED)

        record = AttendanceRecord(
            student_id=student.student_id,
            student_name=student.full_name,
            course_code=course_code,
            attendance_date=now.date(),
            status=status,
            confidence_score=similarity,
            timestamp=now,
            is_late=is_late,
            late_minutes=late_minutes,
            location=request.location,
            notes=request.notes,
            device_info=request.device_info,
            ip_address=request.ip_address,
        )
        try:
            record.record_id = self._ledger.insert_attendance(record)
        except DuplicateAttendanceError as exc:
            self._logger.info("[Attendance] Lost commit race: %s", exc)
            return self._reject(request, REASON_ALREADY_MARKED, similarity)

        self._logger.info(
            "[Attendance] Accepted %s for %s: %s (score %.4f, late %d min)",
            student.student_id,
            course_code,
            status,
            similarity,
            late_minutes,
        )
        if is_late:
            self._notify_late(record)
        return AttendanceDecision(
            state=SubmissionState.ACCEPTED, record=record, similarity=similarity
        )

    def _notify_late(self, record: AttendanceRecord) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(
                record.student_id,
                "Late Attendance Recorded",
                f"You were marked late for {record.course_code} by {record.late_minutes} minutes.",
                "warning",
                record.course_code,
            )
        except Exception as exc:
            self._logger.warning(
                "[Attendance] Late notification for %s dropped: %s", record.student_id, exc
            )


__all__ = [
    "AttendanceDecisionEngine",
    "classify_arrival",
    "SIMILARITY_THRESHOLD",
    "COURSE_START_TIME",
    "GRACE_PERIOD_MINUTES",
]
