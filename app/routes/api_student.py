"""
API routes for students
Đăng ký khuôn mặt và điểm danh bằng khuôn mặt cho sinh viên đã đăng nhập
"""
from flask import Blueprint, current_app, g, jsonify, request

from app import globals as app_globals
from app.middleware.auth import role_required
from app.utils import (
    get_request_data,
    optional_text,
    parse_face_vector,
    parse_location,
    parse_positive_int,
    require_text,
    serialize_attendance_row,
    serialize_course,
    strip_data_url,
)
from core.attendance.models import (
    REFERENCE_EMBEDDING,
    REFERENCE_TOKEN,
    FaceReference,
    FaceSample,
)
from core.errors import NotFoundError, ValidationError, VerificationError
from logging_config import get_client_ip, verification_logger

student_api_bp = Blueprint('student_api', __name__, url_prefix='/api/student')


def _current_student_id():
    return g.user.get('student_id')


def _decision_response(decision):
    """Chuyển AttendanceDecision thành JSON response."""
    if decision.accepted:
        return jsonify({
            'success': True,
            'message': decision.message,
            'data': decision.record.to_payload(),
        })
    return jsonify({
        'success': False,
        'error': decision.message,
        'reason': decision.reason,
    }), decision.http_status


def _embedding_bounds():
    return (
        current_app.config['MIN_EMBEDDING_LENGTH'],
        current_app.config['MAX_EMBEDDING_LENGTH'],
    )


@student_api_bp.route('/face/register', methods=['POST'])
@role_required('student')
def register_face_embedding():
    """Lưu embedding khuôn mặt của sinh viên (ghi đè tham chiếu cũ)."""
    data = get_request_data()
    min_len, max_len = _embedding_bounds()
    encodings = parse_face_vector(data.get('encodings'), 'encodings', min_len, max_len)

    student_id = _current_student_id()
    if not app_globals.db.set_face_embedding(student_id, encodings):
        raise NotFoundError('Student not found')

    verification_logger.log_face_registered(student_id, REFERENCE_EMBEDDING)
    return jsonify({'success': True, 'message': 'Face encodings registered successfully'})


@student_api_bp.route('/face/register-image', methods=['POST'])
@role_required('student')
def register_face_image():
    """Đăng ký khuôn mặt qua Face++ (lưu face_token)."""
    data = get_request_data()
    image_base64 = strip_data_url(require_text(data, 'imageBase64', 'imageBase64 is required'))

    student_id = _current_student_id()
    if not app_globals.db.get_student(student_id):
        raise NotFoundError('Student not found')

    try:
        face_token = app_globals.facepp_client.detect(image_base64)
    except VerificationError as exc:
        verification_logger.log_verification_error(f"register-image {student_id}: {exc}")
        raise ValidationError('Face not detected. Please try again.', reason='no face detected') from exc

    app_globals.db.set_face_token(student_id, face_token)
    verification_logger.log_face_registered(student_id, REFERENCE_TOKEN)
    return jsonify({'success': True, 'message': 'Face registered successfully'})


@student_api_bp.route('/face/status', methods=['GET'])
@role_required('student')
def face_status():
    """Kiểm tra sinh viên đã đăng ký khuôn mặt chưa."""
    student = app_globals.db.get_student(_current_student_id())
    if not student:
        raise NotFoundError('Student not found')
    reference = FaceReference.from_row(student)
    return jsonify({
        'success': True,
        'data': {
            'isRegistered': reference is not None,
            'referenceKind': reference.kind if reference else None,
        },
    })


@student_api_bp.route('/attendance', methods=['POST'])
@role_required('student')
def mark_attendance_embedding():
    """Điểm danh bằng embedding khuôn mặt do client tính."""
    data = get_request_data()
    course_code = require_text(data, 'courseCode', 'Course code is required')
    min_len, max_len = _embedding_bounds()
    face_data = parse_face_vector(data.get('faceData'), 'faceData', min_len, max_len)
    location = parse_location(data.get('location'))

    decision = app_globals.attendance_tracker.mark_attendance(
        student_id=_current_student_id(),
        course_code=course_code,
        sample=FaceSample(kind=REFERENCE_EMBEDDING, value=face_data),
        location=location,
        notes=optional_text(data, 'notes'),
        device_info=request.headers.get('User-Agent') or 'Unknown Device',
        ip_address=get_client_ip(request),
    )
    return _decision_response(decision)


@student_api_bp.route('/attendance-image', methods=['POST'])
@role_required('student')
def mark_attendance_image():
    """Điểm danh bằng ảnh (so khớp Face++)."""
    data = get_request_data()
    course_code = require_text(data, 'courseCode', 'Course code is required')
    image_base64 = strip_data_url(require_text(data, 'imageBase64', 'imageBase64 is required'))
    location = parse_location(data.get('location'))

    decision = app_globals.attendance_tracker.mark_attendance(
        student_id=_current_student_id(),
        course_code=course_code,
        sample=FaceSample(kind=REFERENCE_TOKEN, value=image_base64),
        location=location,
        notes=optional_text(data, 'notes'),
        device_info=request.headers.get('User-Agent') or 'Unknown Device',
        ip_address=get_client_ip(request),
    )
    return _decision_response(decision)


@student_api_bp.route('/attendance/history', methods=['GET'])
@role_required('student')
def attendance_history():
    """Lịch sử điểm danh gần đây của sinh viên."""
    limit = parse_positive_int(request.args.get('limit'), default=10, maximum=50)
    rows = app_globals.attendance_tracker.history(_current_student_id(), limit=limit)
    return jsonify({'success': True, 'data': [serialize_attendance_row(r) for r in rows]})


@student_api_bp.route('/courses', methods=['GET'])
@role_required('student')
def student_courses():
    """Các môn học đang hoạt động mà sinh viên đã đăng ký."""
    rows = app_globals.db.get_courses_for_student(_current_student_id())
    return jsonify({'success': True, 'data': [serialize_course(r) for r in rows]})
