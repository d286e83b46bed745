"""
Authentication middleware
Xử lý bearer token, phân quyền theo vai trò và log request
"""
import hashlib
import secrets
import time
from functools import wraps

from flask import current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from app import globals as app_globals
from logging_config import api_logger, get_client_ip, log_request_info, security_logger


# Public endpoints không cần authentication
PUBLIC_ENDPOINTS = {
    'static',
    'system_api.health',
    'auth_api.admin_login',
    'auth_api.student_login',
}


def is_public_endpoint(endpoint):
    """Xác định endpoint có được phép truy cập công khai hay không."""
    if not endpoint:
        return False
    if endpoint == 'static' or endpoint.startswith('static.'):
        return True
    return endpoint in PUBLIC_ENDPOINTS


def extract_bearer_token():
    """Lấy token từ header Authorization: Bearer <token>."""
    header = request.headers.get('Authorization', '')
    parts = header.split(' ', 1)
    if len(parts) == 2 and parts[0].lower() == 'bearer' and parts[1].strip():
        return parts[1].strip()
    return None


def verify_user_password(user_record, candidate_password):
    """Kiểm tra mật khẩu người dùng (hỗ trợ hash legacy)."""
    if not user_record or not candidate_password:
        return False
    stored_hash = user_record.get('password_hash') or ''
    if not stored_hash:
        return False

    if stored_hash.startswith(('pbkdf2:', 'scrypt:')):
        return check_password_hash(stored_hash, candidate_password)

    # Legacy SHA256 hash support
    legacy_hash = hashlib.sha256(candidate_password.encode('utf-8')).hexdigest()
    if secrets.compare_digest(legacy_hash, stored_hash):
        try:
            new_hash = generate_password_hash(candidate_password)
            app_globals.db.update_user_password(user_record['id'], new_hash)
            user_record['password_hash'] = new_hash
            current_app.logger.info("Đã nâng cấp hash mật khẩu cho người dùng %s", user_record.get('unique_id'))
        except Exception as exc:
            current_app.logger.warning("Không thể nâng cấp hash mật khẩu: %s", exc)
        return True

    return False


def issue_token(user_record):
    """Tạo bearer token mới cho người dùng đã xác thực."""
    ttl_seconds = current_app.config['TOKEN_TTL_HOURS'] * 3600
    token = secrets.token_urlsafe(32)
    now = time.time()
    app_globals.db.purge_expired_tokens(now)
    expires_at = now + ttl_seconds
    app_globals.db.create_token(user_record['id'], token, expires_at)
    return token, expires_at


def role_required(*roles):
    """Decorator kiểm tra quyền truy cập dựa trên vai trò."""
    allowed_roles = {role.lower() for role in roles if role}

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            user = getattr(g, 'user', None)
            if not user:
                return jsonify({'success': False, 'error': 'Access token required'}), 401

            user_role = (user.get('role') or '').lower()
            if allowed_roles and user_role not in allowed_roles:
                current_app.logger.warning(
                    "User %s bị chặn truy cập %s (cần %s)",
                    user.get('unique_id') or user.get('student_id'),
                    request.path,
                    ','.join(sorted(allowed_roles)),
                )
                security_logger.log_unauthorized_access(
                    request.path, get_client_ip(request), user.get('id')
                )
                message = 'Admin access required' if 'admin' in allowed_roles else 'Student access required'
                return jsonify({'success': False, 'error': message}), 403

            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def load_logged_in_user():
    """Nạp người dùng từ bearer token và bảo vệ các route yêu cầu đăng nhập."""
    g.request_started = time.perf_counter()
    g.user = None
    g.token = extract_bearer_token()
    if g.token:
        g.user = app_globals.db.get_user_by_token(g.token, time.time())

    log_request_info(request, user_id=g.user.get('id') if g.user else None)

    if is_public_endpoint(request.endpoint) or request.endpoint is None:
        return None

    if g.token is None:
        return jsonify({'success': False, 'error': 'Access token required'}), 401
    if g.user is None:
        security_logger.log_unauthorized_access(request.path, get_client_ip(request))
        return jsonify({'success': False, 'error': 'Invalid or expired token'}), 403
    return None


def log_response_info(response):
    """Log status và thời gian xử lý của request."""
    started = getattr(g, 'request_started', None)
    duration = time.perf_counter() - started if started is not None else None
    api_logger.log_response(request.path, response.status_code, duration)
    return response


def register_auth_middleware(app):
    """Đăng ký authentication middleware với Flask app."""
    app.before_request(load_logged_in_user)
    app.after_request(log_response_info)
