"""
Notification Sink - Lưu thông báo cho người dùng
Fire-and-forget side channel: lỗi được log và bỏ qua, không ảnh hưởng request
"""
from typing import Optional


class NotificationSink:
    """Service ghi thông báo vào bảng notifications"""

    def __init__(self, database, logger=None):
        self.db = database
        self.logger = logger

    def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: str = 'info',
        course_code: Optional[str] = None
    ) -> Optional[int]:
        """Tạo thông báo; trả về ID hoặc None nếu không ghi được"""
        try:
            notification_id = self.db.create_notification(
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                course_code=course_code,
            )
        except Exception as e:
            if self.logger:
                self.logger.warning(f"[Notification] Không thể tạo thông báo cho {user_id}: {e}")
            return None

        if self.logger:
            self.logger.debug(f"[Notification] {type} -> {user_id}: {title}")
        return notification_id
