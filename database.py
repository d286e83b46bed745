"""
Database module for Attendance System
Quản lý cơ sở dữ liệu SQLite cho hệ thống điểm danh bằng khuôn mặt
"""

import json
import sqlite3
import logging
from contextlib import contextmanager
from datetime import date, datetime

from werkzeug.security import generate_password_hash

from core.attendance.ledger import AttendanceLedger
from core.attendance.models import AttendanceRecord, normalize_course_code
from core.errors import DuplicateAttendanceError

logger = logging.getLogger('database')

DEFAULT_COURSES = [
    ('ICT651', 'Advanced Database Systems', 'Dr. Smith', ['Monday', 'Wednesday'], '09:00-10:30', 'CS-101', 50),
    ('ICT654', 'Machine Learning', 'Dr. Johnson', ['Tuesday', 'Thursday'], '10:00-11:30', 'CS-102', 40),
    ('ICT623', 'Web Development', 'Prof. Brown', ['Monday', 'Friday'], '14:00-15:30', 'CS-103', 45),
    ('ICT624', 'Mobile App Development', 'Dr. Wilson', ['Wednesday', 'Friday'], '16:00-17:30', 'CS-104', 35),
]


class DatabaseManager(AttendanceLedger):
    def __init__(self, db_path="attendance_system.db", seed_defaults=True):
        self.db_path = str(db_path)
        self.seed_defaults = seed_defaults
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Tạo kết nối database (commit khi thành công, luôn đóng kết nối)"""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row  # Cho phép truy cập theo tên cột
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self):
        """Khởi tạo database và các bảng"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Bảng người dùng (admin và sinh viên)
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    role VARCHAR(20) NOT NULL,
                    full_name VARCHAR(100) NOT NULL,
                    unique_id VARCHAR(50) UNIQUE,
                    password_hash VARCHAR(255),
                    admin_level VARCHAR(20),
                    student_id VARCHAR(30) UNIQUE,
                    date_of_birth DATE,
                    email VARCHAR(100),
                    phone VARCHAR(20),
                    address TEXT,
                    academic_year VARCHAR(20),
                    semester VARCHAR(20),
                    emergency_contact TEXT,
                    face_embedding TEXT,
                    face_token VARCHAR(255),
                    is_active BOOLEAN DEFAULT 1,
                    last_login TIMESTAMP,
                    login_count INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            # DB tạo trước khi có cột emergency_contact
            self._ensure_column(cursor, 'users', 'emergency_contact', 'TEXT')

            # Bảng môn học
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS courses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    course_code VARCHAR(30) UNIQUE NOT NULL,
                    course_name VARCHAR(150) NOT NULL,
                    instructor VARCHAR(100),
                    department VARCHAR(100),
                    credits INTEGER DEFAULT 3,
                    description TEXT,
                    schedule_days TEXT,
                    schedule_time VARCHAR(30),
                    room VARCHAR(50),
                    max_capacity INTEGER DEFAULT 50,
                    semester VARCHAR(20),
                    academic_year VARCHAR(20),
                    is_active BOOLEAN DEFAULT 1,
                    created_by VARCHAR(50),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Bảng đăng ký môn học của sinh viên
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS student_courses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(30) NOT NULL,
                    course_code VARCHAR(30) NOT NULL,
                    joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (student_id, course_code),
                    FOREIGN KEY (student_id) REFERENCES users(student_id)
                )
            ''')

            # Bảng điểm danh
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(30) NOT NULL,
                    student_name VARCHAR(100),
                    course_code VARCHAR(30) NOT NULL,
                    attendance_date DATE NOT NULL,
                    timestamp TIMESTAMP NOT NULL,
                    status VARCHAR(20) DEFAULT 'present',
                    confidence_score REAL,
                    is_late BOOLEAN DEFAULT 0,
                    late_minutes INTEGER DEFAULT 0,
                    latitude REAL,
                    longitude REAL,
                    device_info TEXT,
                    ip_address VARCHAR(64),
                    method VARCHAR(20) DEFAULT 'face_recognition',
                    notes TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Bảng thông báo
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id VARCHAR(50) NOT NULL,
                    title VARCHAR(150) NOT NULL,
                    message TEXT NOT NULL,
                    type VARCHAR(20) DEFAULT 'info',
                    is_read BOOLEAN DEFAULT 0,
                    course_code VARCHAR(30),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Bảng tokens cho mobile app
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS user_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    token VARCHAR(255) UNIQUE NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at REAL NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            ''')

            # Mỗi sinh viên chỉ có một bản ghi cho mỗi môn trong một ngày
            cursor.execute(
                'CREATE UNIQUE INDEX IF NOT EXISTS idx_attendance_unique_day '
                'ON attendance(student_id, course_code, attendance_date)'
            )
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance(student_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_student_courses_student ON student_courses(student_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_tokens_user ON user_tokens(user_id)')

            if self.seed_defaults:
                self._create_default_admin(cursor)
                self._create_default_courses(cursor)

        logger.info("Database initialized successfully (%s)", self.db_path)

    def _ensure_column(self, cursor, table_name, column_name, column_def):
        """Thêm cột mới nếu chưa tồn tại (dùng cho nâng cấp DB)."""
        cursor.execute(f"PRAGMA table_info({table_name})")
        columns = [row[1] for row in cursor.fetchall()]
        if column_name in columns:
            return
        ddl = f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_def}".strip()
        try:
            cursor.execute(ddl)
        except sqlite3.OperationalError as exc:
            logger.warning(
                "Không thể thêm cột %s.%s (%s): %s",
                table_name,
                column_name,
                column_def,
                exc,
            )

    def _create_default_admin(self, cursor):
        """Tạo tài khoản admin mặc định"""
        cursor.execute('SELECT id FROM users WHERE unique_id = ?', ('admin001',))
        if cursor.fetchone():
            return
        cursor.execute('''
            INSERT INTO users (role, full_name, unique_id, password_hash, admin_level, email)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', ('admin', 'System Administrator', 'admin001',
              generate_password_hash('admin123'), 'super_admin', 'admin@attendance.com'))
        logger.info("Default admin created (ID: admin001)")

    def _create_default_courses(self, cursor):
        """Tạo các môn học mặc định"""
        for code, name, instructor, days, time_slot, room, capacity in DEFAULT_COURSES:
            cursor.execute('''
                INSERT OR IGNORE INTO courses (
                    course_code, course_name, instructor, department, credits,
                    schedule_days, schedule_time, room, max_capacity, semester, academic_year
                )
                VALUES (?, ?, ?, 'Computer Science', 3, ?, ?, ?, ?, 'Fall 2024', '2024-2025')
            ''', (code, name, instructor, json.dumps(days), time_slot, room, capacity))

    def ping(self):
        """Kiểm tra kết nối database"""
        try:
            with self.get_connection() as conn:
                conn.execute('SELECT 1')
            return True
        except sqlite3.Error as exc:
            logger.error("Database ping failed: %s", exc)
            return False

    # === QUẢN LÝ NGƯỜI DÙNG ===

    def get_admin_by_unique_id(self, unique_id):
        """Lấy tài khoản admin theo mã định danh."""
        if not unique_id:
            return None
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE unique_id = ? AND role = 'admin' AND is_active = 1",
                (unique_id,)
            ).fetchone()
            return dict(row) if row else None

    def admin_exists(self, unique_id, email=None):
        with self.get_connection() as conn:
            row = conn.execute(
                'SELECT id FROM users WHERE unique_id = ? OR (email IS NOT NULL AND email = ?)',
                (unique_id, email)
            ).fetchone()
            return row is not None

    def create_admin(self, full_name, unique_id, password_hash, admin_level='admin', email=None, phone=None):
        """Tạo tài khoản admin mới và trả về ID."""
        if not full_name or not unique_id or not password_hash:
            raise ValueError("Thiếu thông tin tạo tài khoản admin")
        try:
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT INTO users (role, full_name, unique_id, password_hash, admin_level, email, phone)
                    VALUES ('admin', ?, ?, ?, ?, ?, ?)
                ''', (full_name, unique_id, password_hash, admin_level or 'admin', email, phone))
                return cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Tài khoản {unique_id} đã tồn tại") from exc

    def update_user_password(self, user_id, password_hash):
        """Cập nhật mật khẩu người dùng."""
        if not user_id or not password_hash:
            return False
        with self.get_connection() as conn:
            cursor = conn.execute(
                'UPDATE users SET password_hash = ? WHERE id = ? AND is_active = 1',
                (password_hash, user_id)
            )
            return cursor.rowcount > 0

    def record_login(self, user_id):
        """Cập nhật thống kê đăng nhập."""
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE users
                SET last_login = ?, login_count = COALESCE(login_count, 0) + 1
                WHERE id = ? AND is_active = 1
            ''', (datetime.now().isoformat(), user_id))
            return cursor.rowcount > 0

    # === TOKENS ===

    def create_token(self, user_id, token, expires_at):
        with self.get_connection() as conn:
            conn.execute(
                'INSERT INTO user_tokens (user_id, token, expires_at) VALUES (?, ?, ?)',
                (user_id, token, float(expires_at))
            )

    def get_user_by_token(self, token, now_ts):
        """Trả về người dùng sở hữu token còn hạn."""
        if not token:
            return None
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT u.* FROM user_tokens t
                JOIN users u ON u.id = t.user_id
                WHERE t.token = ? AND t.expires_at > ? AND u.is_active = 1
            ''', (token, float(now_ts))).fetchone()
            return dict(row) if row else None

    def revoke_token(self, token):
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM user_tokens WHERE token = ?', (token,))
            return cursor.rowcount > 0

    def purge_expired_tokens(self, now_ts):
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM user_tokens WHERE expires_at <= ?', (float(now_ts),))
            return cursor.rowcount

    # === QUẢN LÝ SINH VIÊN ===

    def create_student(self, student_id, full_name, date_of_birth, enrolled_courses=None,
                       email=None, phone=None, address=None, academic_year=None,
                       semester=None, emergency_contact=None):
        """Thêm sinh viên mới cùng danh sách môn đăng ký"""
        courses = [normalize_course_code(c) for c in (enrolled_courses or []) if c]
        try:
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT INTO users (
                        role, full_name, student_id, date_of_birth, email, phone, address,
                        academic_year, semester, emergency_contact
                    )
                    VALUES ('student', ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (full_name, student_id, date_of_birth, email, phone, address,
                      academic_year, semester,
                      json.dumps(emergency_contact) if emergency_contact else None))
                for code in courses:
                    conn.execute(
                        'INSERT OR IGNORE INTO student_courses (student_id, course_code) VALUES (?, ?)',
                        (student_id, code)
                    )
                logger.info("Created student %s with %d course(s)", student_id, len(courses))
                return cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Mã sinh viên {student_id} đã tồn tại") from exc

    def student_exists(self, student_id, email=None):
        with self.get_connection() as conn:
            row = conn.execute(
                'SELECT id FROM users WHERE student_id = ? OR (email IS NOT NULL AND email = ?)',
                (student_id, email)
            ).fetchone()
            return row is not None

    def get_student(self, student_id, active_only=True):
        """Lấy thông tin sinh viên kèm danh sách môn đã đăng ký"""
        if not student_id:
            return None
        query = "SELECT * FROM users WHERE student_id = ? AND role = 'student'"
        if active_only:
            query += ' AND is_active = 1'
        with self.get_connection() as conn:
            row = conn.execute(query, (student_id,)).fetchone()
            if not row:
                return None
            student = dict(row)
            student['enrolled_courses'] = self._enrolled_codes(conn, student_id)
            return student

    def _enrolled_codes(self, conn, student_id):
        rows = conn.execute(
            'SELECT course_code FROM student_courses WHERE student_id = ? ORDER BY course_code',
            (student_id,)
        ).fetchall()
        return [r['course_code'] for r in rows]

    def list_students(self, search=None, course_code=None, page=1, limit=50):
        """Danh sách sinh viên (có tìm kiếm, lọc theo môn, phân trang)"""
        clauses = ["u.role = 'student'", 'u.is_active = 1']
        params = []
        if search:
            like = f'%{search.strip()}%'
            clauses.append('(u.full_name LIKE ? OR u.student_id LIKE ? OR u.email LIKE ?)')
            params.extend([like, like, like])
        if course_code:
            clauses.append(
                'u.student_id IN (SELECT student_id FROM student_courses WHERE course_code = ?)'
            )
            params.append(normalize_course_code(course_code))
        where = ' AND '.join(clauses)
        offset = max(page - 1, 0) * limit
        with self.get_connection() as conn:
            total = conn.execute(f'SELECT COUNT(*) FROM users u WHERE {where}', params).fetchone()[0]
            rows = conn.execute(
                f'SELECT u.* FROM users u WHERE {where} ORDER BY u.full_name LIMIT ? OFFSET ?',
                params + [limit, offset]
            ).fetchall()
            students = []
            for row in rows:
                student = dict(row)
                student['enrolled_courses'] = self._enrolled_codes(conn, student['student_id'])
                students.append(student)
            return students, total

    def delete_student(self, student_id):
        """Xóa sinh viên, đăng ký môn học và lịch sử điểm danh"""
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT id FROM users WHERE student_id = ? AND role = 'student'", (student_id,)
            ).fetchone()
            if not row:
                return False
            conn.execute('DELETE FROM student_courses WHERE student_id = ?', (student_id,))
            conn.execute('DELETE FROM attendance WHERE student_id = ?', (student_id,))
            conn.execute('DELETE FROM user_tokens WHERE user_id = ?', (row['id'],))
            conn.execute('DELETE FROM users WHERE id = ?', (row['id'],))
            logger.info("Deleted student %s", student_id)
            return True

    def set_face_embedding(self, student_id, embedding):
        """Lưu embedding khuôn mặt (ghi đè, xóa face_token cũ)"""
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE users
                SET face_embedding = ?, face_token = NULL, updated_at = ?
                WHERE student_id = ? AND role = 'student' AND is_active = 1
            ''', (json.dumps([float(v) for v in embedding]), datetime.now().isoformat(), student_id))
            return cursor.rowcount > 0

    def set_face_token(self, student_id, face_token):
        """Lưu face_token của Face++ (ghi đè, xóa embedding cũ)"""
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE users
                SET face_token = ?, face_embedding = NULL, updated_at = ?
                WHERE student_id = ? AND role = 'student' AND is_active = 1
            ''', (face_token, datetime.now().isoformat(), student_id))
            return cursor.rowcount > 0

    # === QUẢN LÝ MÔN HỌC ===

    def create_course(self, course_code, course_name, instructor=None, department=None,
                      credits=3, description=None, schedule=None, max_capacity=50,
                      semester=None, academic_year=None, created_by=None):
        """Tạo môn học mới (mã môn được chuẩn hóa chữ hoa)"""
        code = normalize_course_code(course_code)
        schedule = schedule or {}
        try:
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT INTO courses (
                        course_code, course_name, instructor, department, credits, description,
                        schedule_days, schedule_time, room, max_capacity, semester, academic_year,
                        created_by
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (code, course_name, instructor, department, credits, description,
                      json.dumps(schedule.get('days') or []), schedule.get('time') or '',
                      schedule.get('room') or '', max_capacity, semester, academic_year,
                      created_by))
                return cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Course code {code} already exists") from exc

    def get_course(self, course_code, active_only=True):
        query = 'SELECT * FROM courses WHERE course_code = ?'
        if active_only:
            query += ' AND is_active = 1'
        with self.get_connection() as conn:
            row = conn.execute(query, (normalize_course_code(course_code),)).fetchone()
            return dict(row) if row else None

    def list_courses(self, active_only=True, course_codes=None):
        clauses, params = [], []
        if active_only:
            clauses.append('is_active = 1')
        if course_codes is not None:
            codes = [normalize_course_code(c) for c in course_codes]
            if not codes:
                return []
            clauses.append(f"course_code IN ({','.join('?' for _ in codes)})")
            params.extend(codes)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ''
        with self.get_connection() as conn:
            rows = conn.execute(f'SELECT * FROM courses {where} ORDER BY course_code', params).fetchall()
            return [dict(r) for r in rows]

    def deactivate_course(self, course_code):
        """Ngừng kích hoạt môn học (soft delete)"""
        with self.get_connection() as conn:
            cursor = conn.execute(
                'UPDATE courses SET is_active = 0, updated_at = ? WHERE course_code = ? AND is_active = 1',
                (datetime.now().isoformat(), normalize_course_code(course_code))
            )
            return cursor.rowcount > 0

    def get_courses_for_student(self, student_id):
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT c.* FROM courses c
                JOIN student_courses sc ON sc.course_code = c.course_code
                WHERE sc.student_id = ? AND c.is_active = 1
                ORDER BY c.course_code
            ''', (student_id,)).fetchall()
            return [dict(r) for r in rows]

    # === ĐIỂM DANH ===

    def find_attendance(self, student_id, course_code, attendance_date):
        """Tìm bản ghi điểm danh của sinh viên trong ngày"""
        day = attendance_date.isoformat() if isinstance(attendance_date, date) else attendance_date
        with self.get_connection() as conn:
            row = conn.execute('''
                SELECT * FROM attendance
                WHERE student_id = ? AND course_code = ? AND attendance_date = ?
            ''', (student_id, normalize_course_code(course_code), day)).fetchone()
            return dict(row) if row else None

    def insert_attendance(self, record: AttendanceRecord):
        """Ghi bản ghi điểm danh; unique index chặn bản ghi thứ hai trong ngày"""
        location = record.location or {}
        try:
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT INTO attendance (
                        student_id, student_name, course_code, attendance_date, timestamp,
                        status, confidence_score, is_late, late_minutes, latitude, longitude,
                        device_info, ip_address, method, notes
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (record.student_id, record.student_name,
                      normalize_course_code(record.course_code),
                      record.attendance_date.isoformat(), record.timestamp.isoformat(),
                      record.status, record.confidence_score, 1 if record.is_late else 0,
                      record.late_minutes, location.get('latitude', 0), location.get('longitude', 0),
                      record.device_info, record.ip_address, record.method, record.notes))
                record_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            raise DuplicateAttendanceError(
                f"Attendance already recorded for {record.student_id} in "
                f"{record.course_code} on {record.attendance_date.isoformat()}"
            ) from exc
        logger.info("Marked attendance for %s (%s) in %s",
                    record.student_name, record.student_id, record.course_code)
        return record_id

    def get_student_attendance_history(self, student_id, limit=30):
        """Lấy lịch sử điểm danh của sinh viên"""
        with self.get_connection() as conn:
            rows = conn.execute('''
                SELECT a.*, c.course_name
                FROM attendance a
                LEFT JOIN courses c ON c.course_code = a.course_code
                WHERE a.student_id = ?
                ORDER BY a.timestamp DESC
                LIMIT ?
            ''', (student_id, limit)).fetchall()
            return [dict(r) for r in rows]

    # === THÔNG BÁO ===

    def create_notification(self, user_id, title, message, type='info', course_code=None):
        with self.get_connection() as conn:
            cursor = conn.execute('''
                INSERT INTO notifications (user_id, title, message, type, course_code)
                VALUES (?, ?, ?, ?, ?)
            ''', (user_id, title, message, type, course_code))
            return cursor.lastrowid

    def list_notifications(self, user_id, unread_only=False, page=1, limit=20):
        where = 'user_id = ?'
        params = [user_id]
        if unread_only:
            where += ' AND is_read = 0'
        offset = max(page - 1, 0) * limit
        with self.get_connection() as conn:
            total = conn.execute(f'SELECT COUNT(*) FROM notifications WHERE {where}', params).fetchone()[0]
            rows = conn.execute(
                f'SELECT * FROM notifications WHERE {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?',
                params + [limit, offset]
            ).fetchall()
            return [dict(r) for r in rows], total

    def count_unread_notifications(self, user_id):
        with self.get_connection() as conn:
            return conn.execute(
                'SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0', (user_id,)
            ).fetchone()[0]

    def mark_notification_read(self, notification_id, user_id):
        with self.get_connection() as conn:
            cursor = conn.execute(
                'UPDATE notifications SET is_read = 1 WHERE id = ? AND user_id = ?',
                (notification_id, user_id)
            )
            if cursor.rowcount == 0:
                return None
            row = conn.execute('SELECT * FROM notifications WHERE id = ?', (notification_id,)).fetchone()
            return dict(row) if row else None
