"""
Utils package
"""
from .data_utils import (
    get_request_data,
    parse_bool,
    parse_positive_int,
    parse_page,
    require_text,
    optional_text,
    parse_face_vector,
    strip_data_url,
    parse_location,
    serialize_student_record,
    serialize_course,
    serialize_attendance_row,
    serialize_notification,
    pagination_payload
)

__all__ = [
    'get_request_data',
    'parse_bool',
    'parse_positive_int',
    'parse_page',
    'require_text',
    'optional_text',
    'parse_face_vector',
    'strip_data_url',
    'parse_location',
    'serialize_student_record',
    'serialize_course',
    'serialize_attendance_row',
    'serialize_notification',
    'pagination_payload'
]
