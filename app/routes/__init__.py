"""
Routes package
Đăng ký tất cả các blueprints
"""
from .api_admin import admin_api_bp
from .api_auth import auth_api_bp
from .api_notifications import notifications_api_bp
from .api_student import student_api_bp
from .api_system import system_api_bp


def register_blueprints(app):
    """Đăng ký tất cả các blueprints với Flask app."""
    # Authentication routes
    app.register_blueprint(auth_api_bp)

    # API routes
    app.register_blueprint(admin_api_bp)
    app.register_blueprint(student_api_bp)
    app.register_blueprint(notifications_api_bp)
    app.register_blueprint(system_api_bp)

    app.logger.info("✅ Đã đăng ký tất cả blueprints")
