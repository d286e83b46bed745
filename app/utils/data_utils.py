"""
Data utilities
Helper functions cho data transformation và validation
"""
import json
import math

from flask import request

from core.errors import ValidationError

# Trang lớn hơn mức này bị kẹp lại (OFFSET của SQLite là số nguyên 64-bit)
MAX_PAGE = 10000


def get_request_data():
    """Lấy request data từ JSON hoặc form."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('Malformed JSON body')
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        return data
    return request.form.to_dict()


def parse_bool(value, default=None):
    """
    Phân tích giá trị boolean từ string, int, hoặc bool.
    Returns: True, False, hoặc default nếu không xác định được.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ('true', '1', 'yes', 'on'):
            return True
        if lower in ('false', '0', 'no', 'off'):
            return False
    return default


def parse_positive_int(value, default, maximum=None):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if maximum is not None:
        number = min(number, maximum)
    return number


def parse_page(value):
    return parse_positive_int(value, default=1, maximum=MAX_PAGE)


def require_text(data, field, message=None):
    """Lấy chuỗi bắt buộc (đã strip) hoặc raise ValidationError."""
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message or f'{field} is required')
    return value.strip()


def optional_text(data, field):
    value = data.get(field)
    if isinstance(value, str):
        return value.strip() or None
    return None


def parse_face_vector(values, field, min_length, max_length):
    """Kiểm tra mảng số (embedding) với độ dài hợp lệ."""
    if not isinstance(values, list) or not values:
        raise ValidationError(f'{field} must be a non-empty numeric array')
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in values):
        raise ValidationError(f'{field} must contain only numbers')
    if not all(math.isfinite(v) for v in values):
        raise ValidationError(f'{field} must contain only finite numbers')
    if len(values) < min_length or len(values) > max_length:
        raise ValidationError(
            f'{field} must be a numeric array of length between {min_length} and {max_length}'
        )
    return [float(v) for v in values]


def strip_data_url(image_base64):
    """Bỏ tiền tố data:image/...;base64, nếu có."""
    if image_base64.startswith('data:') and ',' in image_base64:
        return image_base64.split(',', 1)[1]
    return image_base64


def parse_location(value):
    """Chuẩn hóa vị trí {latitude, longitude}; trả về None nếu không có."""
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError('location must be an object with latitude and longitude')
    try:
        latitude = float(value.get('latitude', 0))
        longitude = float(value.get('longitude', 0))
    except (TypeError, ValueError) as exc:
        raise ValidationError('location coordinates must be numbers') from exc
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise ValidationError('location coordinates out of range')
    return {'latitude': latitude, 'longitude': longitude}


def serialize_student_record(student_row):
    """Chuyển bản ghi sinh viên thành dict an toàn (không lộ dữ liệu khuôn mặt)."""
    if not student_row:
        return None
    contact = student_row.get('emergency_contact')
    return {
        'studentId': student_row.get('student_id'),
        'studentName': student_row.get('full_name'),
        'email': student_row.get('email'),
        'phoneNumber': student_row.get('phone'),
        'address': student_row.get('address'),
        'dateOfBirth': student_row.get('date_of_birth'),
        'enrolledCourses': student_row.get('enrolled_courses') or [],
        'academicYear': student_row.get('academic_year'),
        'semester': student_row.get('semester'),
        'emergencyContact': json.loads(contact) if contact else None,
        'faceRegistered': bool(student_row.get('face_token') or student_row.get('face_embedding')),
        'lastLogin': student_row.get('last_login'),
    }


def serialize_course(course_row):
    days = course_row.get('schedule_days') or '[]'
    return {
        'courseCode': course_row['course_code'],
        'courseName': course_row.get('course_name'),
        'instructor': course_row.get('instructor'),
        'department': course_row.get('department'),
        'credits': course_row.get('credits'),
        'description': course_row.get('description'),
        'schedule': {
            'days': json.loads(days) if isinstance(days, str) else days,
            'time': course_row.get('schedule_time') or '',
            'room': course_row.get('room') or '',
        },
        'maxCapacity': course_row.get('max_capacity'),
        'semester': course_row.get('semester'),
        'academicYear': course_row.get('academic_year'),
        'isActive': bool(course_row.get('is_active', 1)),
    }


def serialize_attendance_row(row):
    return {
        'attendanceId': row['id'],
        'courseCode': row['course_code'],
        'courseName': row.get('course_name'),
        'date': row['attendance_date'],
        'timestamp': row['timestamp'],
        'status': row['status'],
        'confidenceScore': row.get('confidence_score'),
        'isLate': bool(row.get('is_late')),
        'lateMinutes': row.get('late_minutes') or 0,
    }


def serialize_notification(row):
    return {
        'id': row['id'],
        'title': row['title'],
        'message': row['message'],
        'type': row['type'],
        'isRead': bool(row['is_read']),
        'courseCode': row.get('course_code'),
        'createdAt': row.get('created_at'),
    }


def pagination_payload(page, limit, total):
    return {
        'currentPage': page,
        'totalPages': math.ceil(total / limit) if limit else 0,
        'total': total,
        'hasMore': page * limit < total,
    }

