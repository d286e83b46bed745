"""
Attendance Tracker - Quản lý logic điểm danh
Nối HTTP layer với decision engine: nạp sinh viên, dựng request, ghi log kết quả
"""
from typing import Any, Dict, Optional

from core.attendance.decision_engine import AttendanceDecisionEngine
from core.attendance.models import (
    AttendanceDecision,
    AttendanceRequest,
    Course,
    FaceReference,
    FaceSample,
    StudentProfile,
    normalize_course_code,
)
from core.errors import NotFoundError
from logging_config import verification_logger


class AttendanceTracker:
    """Service quản lý logic điểm danh"""

    def __init__(self, database, oracle, notifier=None, clock=None, policy=None, logger=None):
        self.db = database
        self.logger = logger
        policy = policy or {}
        engine_kwargs = dict(
            ledger=database,
            course_lookup=self._lookup_course,
            oracle=oracle,
            notifier=notifier,
            logger=logger,
            **policy,
        )
        if clock is not None:
            engine_kwargs['clock'] = clock
        self.engine = AttendanceDecisionEngine(**engine_kwargs)

    def _lookup_course(self, course_code: str) -> Optional[Course]:
        return Course.from_row(self.db.get_course(course_code, active_only=False))

    def load_student(self, student_id: str) -> StudentProfile:
        """Nạp hồ sơ sinh viên đang hoạt động; 404 nếu không tồn tại"""
        row = self.db.get_student(student_id)
        if not row:
            raise NotFoundError('Student not found')
        return StudentProfile(
            student_id=row['student_id'],
            full_name=row.get('full_name') or row['student_id'],
            enrolled_courses=row.get('enrolled_courses') or [],
            face_reference=FaceReference.from_row(row),
        )

    def mark_attendance(
        self,
        student_id: str,
        course_code: str,
        sample: FaceSample,
        location: Optional[Dict[str, float]] = None,
        notes: Optional[str] = None,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> AttendanceDecision:
        """
        Đánh giá một lần điểm danh
        Returns: AttendanceDecision (Accepted hoặc Rejected kèm lý do)
        """
        student = self.load_student(student_id)
        request = AttendanceRequest(
            student=student,
            course_code=normalize_course_code(course_code),
            sample=sample,
            location=location,
            notes=notes,
            device_info=device_info,
            ip_address=ip_address,
        )
        decision = self.engine.submit(request)
        outcome = decision.record.status if decision.accepted else f"rejected ({decision.reason})"
        verification_logger.log_decision(
            student.student_id, request.course_code, outcome, decision.similarity
        )
        return decision

    def history(self, student_id: str, limit: int = 10) -> Any:
        return self.db.get_student_attendance_history(student_id, limit=limit)
