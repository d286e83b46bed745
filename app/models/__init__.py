"""
Models Package - Business logic models
Centralized business logic separated from Flask routes
"""

from .attendance_tracker import AttendanceTracker
from .notification_sink import NotificationSink

__all__ = [
    'AttendanceTracker',
    'NotificationSink',
]
