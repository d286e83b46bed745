"""
Cấu hình logging cho backend điểm danh bằng khuôn mặt

Ba file log xoay vòng trong LOG_DIR:
- attendance_system.log: toàn bộ log ứng dụng
- errors.log: chỉ ERROR trở lên
- security.log: đăng nhập, token, thao tác admin
"""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Đánh dấu handler do setup_logging gắn để gỡ khi tạo lại app
_HANDLER_TAG = '_attendance_handler'


def _rotating_handler(path, level, formatter, max_bytes, backup_count):
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _detach_previous_handlers(*loggers):
    for target in loggers:
        for handler in list(target.handlers):
            if getattr(handler, _HANDLER_TAG, False):
                target.removeHandler(handler)
                handler.close()


def setup_logging(app, log_dir='logs', log_level='INFO', max_log_size=10*1024*1024, backup_count=5):
    """
    Thiết lập logging cho ứng dụng Flask

    Args:
        app: Flask app instance
        log_dir: Thư mục chứa file log
        log_level: Mức độ log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        max_log_size: Kích thước tối đa của mỗi file log (bytes)
        backup_count: Số file backup giữ lại
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    security = logging.getLogger('security')
    _detach_previous_handlers(root_logger, security)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_handlers = [
        _rotating_handler(log_dir / 'attendance_system.log', level, formatter, max_log_size, backup_count),
        _rotating_handler(log_dir / 'errors.log', logging.ERROR, formatter, max_log_size, backup_count),
        console_handler,
    ]
    security_handler = _rotating_handler(
        log_dir / 'security.log', logging.INFO, formatter, max_log_size, backup_count
    )

    for handler in root_handlers + [security_handler]:
        setattr(handler, _HANDLER_TAG, True)

    root_logger.setLevel(level)
    for handler in root_handlers:
        root_logger.addHandler(handler)
    security.addHandler(security_handler)
    security.setLevel(logging.INFO)

    for name in ('verification', 'database', 'api'):
        logging.getLogger(name).setLevel(logging.INFO)

    app.logger.setLevel(level)
    app.logger.info("=" * 50)
    app.logger.info("FACE CHECK-IN BACKEND STARTUP")
    app.logger.info(f"Timestamp: {datetime.now().isoformat()}")
    app.logger.info(f"Log Level: {logging.getLevelName(level)}")
    app.logger.info(f"Log Directory: {log_dir.absolute()}")
    app.logger.info("=" * 50)


class SecurityLogger:
    """Sự kiện bảo mật: đăng nhập, đăng xuất, truy cập bị chặn, thao tác admin"""

    def __init__(self):
        self.logger = logging.getLogger('security')

    def log_login(self, account, ip_address, success=True):
        if success:
            self.logger.info(f"LOGIN OK - Account: {account}, IP: {ip_address}")
        else:
            self.logger.warning(f"LOGIN REJECTED - Account: {account}, IP: {ip_address}")

    def log_logout(self, account, ip_address):
        self.logger.info(f"TOKEN REVOKED - Account: {account}, IP: {ip_address}")

    def log_unauthorized_access(self, endpoint, ip_address, user_id=None):
        """Token thiếu/hết hạn hoặc sai vai trò"""
        who = f", User #{user_id}" if user_id else ""
        self.logger.warning(f"ACCESS DENIED - {endpoint} from {ip_address}{who}")

    def log_admin_action(self, admin_id, action, target=None):
        suffix = f" -> {target}" if target else ""
        self.logger.info(f"ADMIN {admin_id}: {action}{suffix}")


class VerificationLogger:
    """Đăng ký khuôn mặt và quyết định điểm danh (điểm số chỉ ghi ở server)"""

    def __init__(self):
        self.logger = logging.getLogger('verification')

    def log_face_registered(self, student_id, reference_kind):
        self.logger.info(f"Face reference stored - Student: {student_id}, Kind: {reference_kind}")

    def log_decision(self, student_id, course_code, outcome, similarity=None):
        score = f", Similarity: {similarity:.4f}" if similarity is not None else ""
        self.logger.info(f"Check-in {outcome} - Student: {student_id}, Course: {course_code}{score}")

    def log_verification_error(self, error_message):
        self.logger.error(f"Verification error - {error_message}")


class APILogger:
    """Một dòng cho mỗi request / response / lỗi không xử lý được"""

    def __init__(self):
        self.logger = logging.getLogger('api')

    def log_request(self, method, path, user_id=None, ip_address=None):
        parts = [f"{method} {path}"]
        if user_id:
            parts.append(f"user #{user_id}")
        if ip_address:
            parts.append(f"ip {ip_address}")
        self.logger.info("--> " + ", ".join(parts))

    def log_response(self, path, status_code, duration=None):
        timing = f" in {duration * 1000:.1f}ms" if duration is not None else ""
        self.logger.info(f"<-- {path} {status_code}{timing}")

    def log_error(self, path, error_message, status_code=500):
        self.logger.error(f"!!! {path} {status_code}: {error_message}")


security_logger = SecurityLogger()
verification_logger = VerificationLogger()
api_logger = APILogger()


def get_client_ip(request):
    """IP thật của client (ưu tiên header của reverse proxy)"""
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr


def log_request_info(request, user_id=None):
    ip_address = get_client_ip(request)
    api_logger.log_request(request.method, request.path, user_id=user_id, ip_address=ip_address)
    return ip_address
