"""
Authentication routes
Đăng nhập admin / sinh viên, đăng ký admin, đăng xuất (bearer token)
"""
from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.security import generate_password_hash

from app import globals as app_globals
from app.middleware.auth import issue_token, role_required, verify_user_password
from app.utils import get_request_data, optional_text, require_text
from core.errors import AuthError, ValidationError
from logging_config import get_client_ip, security_logger

auth_api_bp = Blueprint('auth_api', __name__, url_prefix='/api/auth')


@auth_api_bp.route('/admin/register', methods=['POST'])
@role_required('admin')
def admin_register():
    """Tạo tài khoản admin mới (chỉ admin hiện có được phép)."""
    data = get_request_data()
    admin_name = require_text(data, 'adminName', 'Admin name, unique ID, and password are required')
    unique_id = require_text(data, 'uniqueId', 'Admin name, unique ID, and password are required')
    password = data.get('password') or ''
    if not isinstance(password, str) or not password:
        raise ValidationError('Admin name, unique ID, and password are required')

    min_length = current_app.config['MIN_ADMIN_PASSWORD_LENGTH']
    if len(password) < min_length:
        raise ValidationError(f'Password must be at least {min_length} characters long')

    email = optional_text(data, 'email')
    if app_globals.db.admin_exists(unique_id, email):
        raise ValidationError('Admin with this unique ID or email already exists')

    try:
        admin_id = app_globals.db.create_admin(
            full_name=admin_name,
            unique_id=unique_id,
            password_hash=generate_password_hash(password),
            admin_level=optional_text(data, 'adminLevel') or 'admin',
            email=email,
            phone=optional_text(data, 'phoneNumber'),
        )
    except ValueError as exc:
        raise ValidationError('Unique ID already exists') from exc

    security_logger.log_admin_action(g.user.get('unique_id'), 'register_admin', unique_id)
    return jsonify({
        'success': True,
        'message': 'Admin registered successfully',
        'data': {
            'adminId': admin_id,
            'adminName': admin_name,
            'uniqueId': unique_id,
            'adminLevel': optional_text(data, 'adminLevel') or 'admin',
        },
    }), 201


@auth_api_bp.route('/admin/login', methods=['POST'])
def admin_login():
    """Đăng nhập admin bằng mã định danh và mật khẩu."""
    data = get_request_data()
    unique_id = require_text(data, 'uniqueId', 'Unique ID and password are required')
    password = data.get('password')
    if not isinstance(password, str) or not password:
        raise ValidationError('Unique ID and password are required')

    ip_address = get_client_ip(request)
    admin = app_globals.db.get_admin_by_unique_id(unique_id)
    if not admin or not verify_user_password(admin, password):
        security_logger.log_login(unique_id, ip_address, success=False)
        raise AuthError('Invalid credentials')

    app_globals.db.record_login(admin['id'])
    token, expires_at = issue_token(admin)
    security_logger.log_login(unique_id, ip_address, success=True)
    return jsonify({
        'success': True,
        'message': 'Login successful',
        'data': {
            'token': token,
            'expiresAt': expires_at,
            'user': {
                'id': admin['id'],
                'role': 'admin',
                'adminName': admin['full_name'],
                'uniqueId': admin['unique_id'],
                'adminLevel': admin.get('admin_level'),
                'email': admin.get('email'),
                'phoneNumber': admin.get('phone'),
            },
        },
    })


@auth_api_bp.route('/student/login', methods=['POST'])
def student_login():
    """Đăng nhập sinh viên bằng mã sinh viên."""
    data = get_request_data()
    student_id = require_text(data, 'studentId', 'Student ID is required')

    ip_address = get_client_ip(request)
    student = app_globals.db.get_student(student_id)
    if not student:
        security_logger.log_login(student_id, ip_address, success=False)
        raise AuthError('Student not found or inactive')

    app_globals.db.record_login(student['id'])
    token, expires_at = issue_token(student)
    security_logger.log_login(student_id, ip_address, success=True)
    return jsonify({
        'success': True,
        'message': 'Login successful',
        'data': {
            'token': token,
            'expiresAt': expires_at,
            'user': {
                'id': student['id'],
                'role': 'student',
                'studentName': student['full_name'],
                'studentId': student['student_id'],
                'enrolledCourses': student['enrolled_courses'],
                'academicYear': student.get('academic_year'),
                'semester': student.get('semester'),
            },
        },
    })


@auth_api_bp.route('/logout', methods=['POST'])
def logout():
    """Thu hồi token hiện tại."""
    app_globals.db.revoke_token(g.token)
    user = g.user or {}
    security_logger.log_logout(user.get('unique_id') or user.get('student_id'), get_client_ip(request))
    return jsonify({'success': True, 'message': 'Logged out'})
