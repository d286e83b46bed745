"""
API routes for notifications
Danh sách thông báo và đánh dấu đã đọc
"""
from flask import Blueprint, g, jsonify, request

from app import globals as app_globals
from app.utils import pagination_payload, parse_bool, parse_page, parse_positive_int, serialize_notification
from core.errors import NotFoundError

notifications_api_bp = Blueprint('notifications_api', __name__, url_prefix='/api/notifications')


def _notification_owner():
    """Admin nhận thông báo theo uniqueId, sinh viên theo studentId."""
    if g.user.get('role') == 'admin':
        return g.user.get('unique_id')
    return g.user.get('student_id')


@notifications_api_bp.route('', methods=['GET'])
def list_notifications():
    owner = _notification_owner()
    page = parse_page(request.args.get('page'))
    limit = parse_positive_int(request.args.get('limit'), default=20, maximum=100)
    unread_only = parse_bool(request.args.get('unreadOnly'), default=False)

    rows, total = app_globals.db.list_notifications(owner, unread_only=unread_only, page=page, limit=limit)
    return jsonify({
        'success': True,
        'data': {
            'notifications': [serialize_notification(r) for r in rows],
            'unreadCount': app_globals.db.count_unread_notifications(owner),
            'pagination': pagination_payload(page, limit, total),
        },
    })


@notifications_api_bp.route('/<int:notification_id>/read', methods=['PUT'])
def mark_notification_read(notification_id):
    row = app_globals.db.mark_notification_read(notification_id, _notification_owner())
    if not row:
        raise NotFoundError('Notification not found')
    return jsonify({
        'success': True,
        'message': 'Notification marked as read',
        'data': serialize_notification(row),
    })
