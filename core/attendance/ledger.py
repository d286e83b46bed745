"""Attendance ledgers.

A ledger is anything exposing ``find_attendance(student_id, course_code,
attendance_date)`` and ``insert_attendance(record) -> int``. The insert must be
a conditional insert: of several concurrent inserts for the same
(student, course, date) key exactly one succeeds and the others raise
``DuplicateAttendanceError``. ``database.DatabaseManager`` gets this from a
SQLite unique index; ``InMemoryAttendanceLedger`` from a lock.
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import date
from typing import Dict, Optional, Tuple

from core.attendance.models import AttendanceRecord, normalize_course_code
from core.errors import DuplicateAttendanceError

LedgerKey = Tuple[str, str, str]


class AttendanceLedger:
    """Protocol-ish base class for duck-typed ledgers."""

    def find_attendance(
        self, student_id: str, course_code: str, attendance_date: date
    ) -> Optional[dict]:  # pragma: no cover - interface
        raise NotImplementedError

    def insert_attendance(self, record: AttendanceRecord) -> int:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryAttendanceLedger(AttendanceLedger):
    """Thread-safe ledger keeping records in a dict keyed by (student, course, date)."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._records: Dict[LedgerKey, AttendanceRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _key(student_id: str, course_code: str, attendance_date: date) -> LedgerKey:
        return (student_id, normalize_course_code(course_code), attendance_date.isoformat())

    def find_attendance(self, student_id, course_code, attendance_date):
        with self._lock:
            record = self._records.get(self._key(student_id, course_code, attendance_date))
        if record is None:
            return None
        return {"id": record.record_id, "status": record.status}

    def insert_attendance(self, record: AttendanceRecord) -> int:
        key = self._key(record.student_id, record.course_code, record.attendance_date)
        with self._lock:
            if key in self._records:
                raise DuplicateAttendanceError(
                    f"Attendance already recorded for {key[0]} in {key[1]} on {key[2]}"
                )
            record.record_id = next(self._ids)
            self._records[key] = record
        self._logger.debug("Ledger stored record %s for %s", record.record_id, key)
        return record.record_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["AttendanceLedger", "InMemoryAttendanceLedger"]
