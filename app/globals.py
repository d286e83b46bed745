"""
Global state module
Các service instance dùng chung, được khởi tạo trong app/__init__.py
"""

# Singleton instances (sẽ được khởi tạo trong create_app)
db = None
similarity_oracle = None
facepp_client = None
embedding_client = None
notification_sink = None
attendance_tracker = None
clock = None
