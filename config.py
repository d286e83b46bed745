# config.py - Configuration and constants for the attendance backend

import os

from dotenv import load_dotenv

# Chính sách điểm danh (cố định, không cấu hình theo request)
from core.attendance.decision_engine import (
    COURSE_START_TIME,
    GRACE_PERIOD_MINUTES,
    SIMILARITY_THRESHOLD,
)

load_dotenv()

# Flask app configuration
SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
MAX_CONTENT_LENGTH = 100 * 1024 * 1024  # 100MB (ảnh base64 từ mobile)

# Storage and logging
DATABASE_PATH = os.getenv('DATABASE_PATH', 'attendance_system.db')
SEED_DEFAULT_DATA = os.getenv('SEED_DEFAULT_DATA', '1') == '1'
LOG_DIR = os.getenv('LOG_DIR', 'logs')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Auth tokens
TOKEN_TTL_HOURS = max(1, int(os.getenv('TOKEN_TTL_HOURS', '24')))
MIN_ADMIN_PASSWORD_LENGTH = 8

# Face reference validation
MIN_EMBEDDING_LENGTH = 64
MAX_EMBEDDING_LENGTH = 1024

# Face++ (opaque face token strategy)
FACEPP_API_KEY = os.getenv('FACEPP_API_KEY', '')
FACEPP_API_SECRET = os.getenv('FACEPP_API_SECRET', '')
FACEPP_DETECT_URL = os.getenv('FACEPP_DETECT_URL', 'https://api-us.faceplusplus.com/facepp/v3/detect')
FACEPP_COMPARE_URL = os.getenv('FACEPP_COMPARE_URL', 'https://api-us.faceplusplus.com/facepp/v3/compare')
VERIFICATION_TIMEOUT_SECONDS = 15

# External embedding API (diagnostic encode endpoint)
FACE_API_URL = os.getenv('FACE_API_URL', '')
FACE_API_KEY = os.getenv('FACE_API_KEY', '')

APP_VERSION = '2.0.0'
