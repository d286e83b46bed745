"""
API routes for admins
Quản lý sinh viên và môn học (provisioning)
"""
from flask import Blueprint, current_app, g, jsonify, request

from app import globals as app_globals
from app.middleware.auth import role_required
from app.utils import (
    get_request_data,
    optional_text,
    pagination_payload,
    parse_page,
    parse_positive_int,
    require_text,
    serialize_course,
    serialize_student_record,
    strip_data_url,
)
from core.attendance.models import normalize_course_code
from core.errors import NotFoundError, ValidationError, VerificationError
from logging_config import security_logger, verification_logger

admin_api_bp = Blueprint('admin_api', __name__, url_prefix='/api/admin')


def _admin_name():
    return g.user.get('unique_id')


@admin_api_bp.route('/students', methods=['POST'])
@role_required('admin')
def create_student():
    """Tạo sinh viên mới kèm danh sách môn đăng ký."""
    data = get_request_data()
    message = 'Student name, ID, and date of birth are required'
    student_name = require_text(data, 'studentName', message)
    student_id = require_text(data, 'studentId', message)
    date_of_birth = require_text(data, 'dateOfBirth', message)
    email = optional_text(data, 'email')

    courses = data.get('enrolledCourses') or []
    if not isinstance(courses, list) or not all(isinstance(c, str) for c in courses):
        raise ValidationError('enrolledCourses must be a list of course codes')
    courses = sorted({normalize_course_code(c) for c in courses if c.strip()})

    if app_globals.db.student_exists(student_id, email):
        raise ValidationError('Student with this ID or email already exists')

    if courses:
        found = {c['course_code'] for c in app_globals.db.list_courses(course_codes=courses)}
        invalid = [c for c in courses if c not in found]
        if invalid:
            raise ValidationError(f"Invalid course codes: {', '.join(invalid)}")

    try:
        app_globals.db.create_student(
            student_id=student_id,
            full_name=student_name,
            date_of_birth=date_of_birth,
            enrolled_courses=courses,
            email=email,
            phone=optional_text(data, 'phoneNumber'),
            address=optional_text(data, 'address'),
            academic_year=optional_text(data, 'academicYear'),
            semester=optional_text(data, 'semester'),
            emergency_contact=data.get('emergencyContact') if isinstance(data.get('emergencyContact'), dict) else None,
        )
    except ValueError as exc:
        raise ValidationError('Student ID already exists') from exc

    # Đăng ký khuôn mặt nếu có ảnh; lỗi không làm hỏng việc tạo sinh viên
    face_image = optional_text(data, 'faceImage')
    face_registered = False
    if face_image:
        try:
            token = app_globals.facepp_client.detect(strip_data_url(face_image))
            app_globals.db.set_face_token(student_id, token)
            verification_logger.log_face_registered(student_id, 'token')
            face_registered = True
        except VerificationError as exc:
            current_app.logger.warning(
                "Face registration failed during student creation for %s: %s", student_id, exc
            )

    app_globals.notification_sink.notify(
        student_id,
        'Welcome to the Attendance System',
        f'Welcome {student_name}! Your account has been created successfully.',
        'success',
    )
    security_logger.log_admin_action(_admin_name(), 'create_student', student_id)

    return jsonify({
        'success': True,
        'message': 'Student created successfully',
        'data': {
            'studentId': student_id,
            'studentName': student_name,
            'enrolledCourses': courses,
            'faceRegistered': face_registered,
            'academicInfo': {
                'academicYear': optional_text(data, 'academicYear'),
                'semester': optional_text(data, 'semester'),
            },
        },
    }), 201


@admin_api_bp.route('/students', methods=['GET'])
@role_required('admin')
def list_students():
    """Danh sách sinh viên (tìm kiếm, lọc theo môn, phân trang)."""
    page = parse_page(request.args.get('page'))
    limit = parse_positive_int(request.args.get('limit'), default=50, maximum=200)
    students, total = app_globals.db.list_students(
        search=request.args.get('search'),
        course_code=request.args.get('courseCode'),
        page=page,
        limit=limit,
    )
    return jsonify({
        'success': True,
        'data': [serialize_student_record(s) for s in students],
        'pagination': pagination_payload(page, limit, total),
    })


@admin_api_bp.route('/students/<student_id>', methods=['DELETE'])
@role_required('admin')
def delete_student(student_id):
    """Xóa sinh viên cùng đăng ký môn và lịch sử điểm danh."""
    if not app_globals.db.delete_student(student_id):
        raise NotFoundError('Student not found')
    security_logger.log_admin_action(_admin_name(), 'delete_student', student_id)
    return jsonify({'success': True, 'message': 'Student deleted successfully'})


@admin_api_bp.route('/courses', methods=['GET'])
@role_required('admin')
def list_courses():
    courses = app_globals.db.list_courses(active_only=True)
    return jsonify({
        'success': True,
        'data': [serialize_course(c) for c in courses],
        'message': f'Found {len(courses)} active courses',
    })


@admin_api_bp.route('/courses', methods=['POST'])
@role_required('admin')
def create_course():
    """Tạo môn học mới."""
    data = get_request_data()
    course_code = normalize_course_code(require_text(data, 'courseCode', 'Course code and name are required'))
    course_name = require_text(data, 'courseName', 'Course code and name are required')

    if app_globals.db.get_course(course_code, active_only=False):
        raise ValidationError('Course with this code already exists')

    schedule = data.get('schedule') if isinstance(data.get('schedule'), dict) else {}
    try:
        app_globals.db.create_course(
            course_code=course_code,
            course_name=course_name,
            instructor=optional_text(data, 'instructor'),
            department=optional_text(data, 'department'),
            credits=parse_positive_int(data.get('credits'), default=3),
            description=optional_text(data, 'description'),
            schedule=schedule,
            max_capacity=parse_positive_int(data.get('maxCapacity'), default=50),
            semester=optional_text(data, 'semester'),
            academic_year=optional_text(data, 'academicYear'),
            created_by=_admin_name(),
        )
    except ValueError as exc:
        raise ValidationError('Course code already exists') from exc

    security_logger.log_admin_action(_admin_name(), 'create_course', course_code)
    course = app_globals.db.get_course(course_code)
    return jsonify({
        'success': True,
        'message': 'Course created successfully',
        'data': serialize_course(course),
    }), 201


@admin_api_bp.route('/courses/<course_code>/deactivate', methods=['POST'])
@role_required('admin')
def deactivate_course(course_code):
    """Ngừng kích hoạt môn học; bản ghi điểm danh cũ được giữ nguyên."""
    if not app_globals.db.deactivate_course(course_code):
        raise NotFoundError('Course not found')
    security_logger.log_admin_action(_admin_name(), 'deactivate_course', normalize_course_code(course_code))
    return jsonify({'success': True, 'message': 'Course deactivated'})
