"""
API routes for system status
Health check và API tạo embedding (chẩn đoán)
"""
from datetime import datetime

from flask import Blueprint, current_app, jsonify

from app import globals as app_globals
from app.utils import get_request_data, require_text, strip_data_url
from core.errors import UpstreamServiceError

system_api_bp = Blueprint('system_api', __name__, url_prefix='/api')


@system_api_bp.route('/health', methods=['GET'])
def health():
    """Trạng thái hệ thống"""
    database_ok = app_globals.db.ping()
    return jsonify({
        'status': 'OK' if database_ok else 'DEGRADED',
        'timestamp': datetime.now().isoformat(),
        'version': current_app.config['APP_VERSION'],
        'database': 'connected' if database_ok else 'unavailable',
        'verification': app_globals.similarity_oracle.describe(),
    }), 200 if database_ok else 503


@system_api_bp.route('/face/encode', methods=['POST'])
def encode_face():
    """Gọi API bên ngoài để lấy embedding từ ảnh base64."""
    data = get_request_data()
    image_base64 = strip_data_url(require_text(data, 'imageBase64', 'imageBase64 is required'))
    try:
        embedding = app_globals.embedding_client.get_embedding(image_base64)
    except UpstreamServiceError:
        current_app.logger.exception("[FaceAPI] Encode request failed")
        raise
    return jsonify({'success': True, 'data': {'embedding': embedding, 'length': len(embedding)}})
