"""
App package initialization
Khởi tạo Flask application và cấu hình
"""
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

import config
from app import globals as app_globals
from app.models import AttendanceTracker, NotificationSink
from core.errors import AttendanceError
from core.verification import CosineSimilarityStrategy, FacePlusPlusStrategy, SimilarityOracle
from database import DatabaseManager
from logging_config import api_logger, setup_logging
from services import EmbeddingApiClient, FacePlusPlusClient

CONFIG_KEYS = (
    'SECRET_KEY',
    'MAX_CONTENT_LENGTH',
    'DATABASE_PATH',
    'SEED_DEFAULT_DATA',
    'LOG_DIR',
    'LOG_LEVEL',
    'TOKEN_TTL_HOURS',
    'MIN_ADMIN_PASSWORD_LENGTH',
    'SIMILARITY_THRESHOLD',
    'COURSE_START_TIME',
    'GRACE_PERIOD_MINUTES',
    'MIN_EMBEDDING_LENGTH',
    'MAX_EMBEDDING_LENGTH',
    'FACEPP_API_KEY',
    'FACEPP_API_SECRET',
    'FACEPP_DETECT_URL',
    'FACEPP_COMPARE_URL',
    'VERIFICATION_TIMEOUT_SECONDS',
    'FACE_API_URL',
    'FACE_API_KEY',
    'APP_VERSION',
)


def _init_verification_services(app):
    """Khởi tạo client Face++ / embedding API và similarity oracle"""
    facepp_client = app.config.get('FACEPP_CLIENT') or FacePlusPlusClient(
        api_key=app.config['FACEPP_API_KEY'],
        api_secret=app.config['FACEPP_API_SECRET'],
        detect_url=app.config['FACEPP_DETECT_URL'],
        compare_url=app.config['FACEPP_COMPARE_URL'],
        timeout=app.config['VERIFICATION_TIMEOUT_SECONDS'],
    )
    embedding_client = app.config.get('EMBEDDING_CLIENT') or EmbeddingApiClient(
        url=app.config['FACE_API_URL'],
        api_key=app.config['FACE_API_KEY'],
        timeout=app.config['VERIFICATION_TIMEOUT_SECONDS'],
    )

    oracle = SimilarityOracle(logger=app.logger)
    oracle.add_strategy(CosineSimilarityStrategy())
    oracle.add_strategy(FacePlusPlusStrategy(client=facepp_client, logger=app.logger))
    if not getattr(facepp_client, 'configured', True):
        app.logger.warning("[STARTUP] ⚠️ Face++ credentials missing, image check-ins will be rejected")

    return facepp_client, embedding_client, oracle


def _register_error_handlers(app):
    """Trả lỗi JSON có cấu trúc cho toàn bộ API"""

    @app.errorhandler(AttendanceError)
    def handle_attendance_error(error):
        if error.http_status >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({
            'success': False,
            'error': f'Route {request.method} {request.path} not found',
        }), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def handle_too_large(error):
        return jsonify({'success': False, 'error': 'Request payload too large'}), 413

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        if isinstance(error, HTTPException):
            return jsonify({'success': False, 'error': error.description}), error.code
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        api_logger.log_error(request.path, str(error))
        return jsonify({'success': False, 'error': 'Internal server error'}), 500


def create_app(test_config=None):
    """Factory function để tạo Flask application"""
    app = Flask(__name__)

    # Cấu hình cơ bản
    for key in CONFIG_KEYS:
        app.config[key] = getattr(config, key)
    app.config['CLOCK'] = None
    app.config['FACEPP_CLIENT'] = None
    app.config['EMBEDDING_CLIENT'] = None
    if test_config:
        app.config.update(test_config)

    # Thiết lập logging
    setup_logging(app, log_dir=app.config['LOG_DIR'], log_level=app.config['LOG_LEVEL'])

    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")
    app.logger.info(f"[STARTUP] Database path: {os.path.abspath(app.config['DATABASE_PATH'])}")

    # =============================================================================
    # INITIALIZE SERVICES
    # =============================================================================

    # 1. Database
    app_globals.db = DatabaseManager(
        app.config['DATABASE_PATH'],
        seed_defaults=app.config['SEED_DEFAULT_DATA'],
    )
    app.logger.info("[STARTUP] ✅ Database initialized")

    # 2. Verification services
    (app_globals.facepp_client,
     app_globals.embedding_client,
     app_globals.similarity_oracle) = _init_verification_services(app)
    app.logger.info("[STARTUP] ✅ Similarity oracle initialized")

    # 3. Notification sink
    app_globals.notification_sink = NotificationSink(app_globals.db, logger=app.logger)

    # 4. AttendanceTracker
    app_globals.clock = app.config['CLOCK']
    app_globals.attendance_tracker = AttendanceTracker(
        database=app_globals.db,
        oracle=app_globals.similarity_oracle,
        notifier=app_globals.notification_sink,
        clock=app_globals.clock,
        policy={
            'similarity_threshold': app.config['SIMILARITY_THRESHOLD'],
            'course_start': app.config['COURSE_START_TIME'],
            'grace_minutes': app.config['GRACE_PERIOD_MINUTES'],
        },
        logger=app.logger,
    )
    app.logger.info("[STARTUP] ✅ AttendanceTracker initialized")

    # Đăng ký middleware
    from app.middleware.auth import register_auth_middleware
    register_auth_middleware(app)

    # Đăng ký blueprints
    from app.routes import register_blueprints
    register_blueprints(app)

    _register_error_handlers(app)

    return app
