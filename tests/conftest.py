"""Shared fixtures: a Flask app on a temporary SQLite file with fake face services."""
from datetime import datetime

import pytest

from app import create_app
from app import globals as app_globals
from core.errors import UpstreamServiceError, VerificationError


class FakeClock:
    """Callable clock whose current time the test can move."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeFacePlusPlusClient:
    configured = True

    def __init__(self):
        self.confidence = 95.0
        self.compare_error = None
        self.compare_calls = []

    def detect(self, image_base64):
        if image_base64 == 'no-face':
            raise VerificationError('No face detected')
        return f'token-{image_base64[:12]}'

    def compare(self, face_token, image_base64):
        self.compare_calls.append((face_token, image_base64))
        if self.compare_error is not None:
            raise self.compare_error
        return self.confidence


class FakeEmbeddingClient:
    configured = True

    def __init__(self):
        self.fail = False

    def get_embedding(self, image_base64):
        if self.fail:
            raise UpstreamServiceError('Face API request failed: connection refused')
        return [0.25] * 128


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 4, 9, 5))


@pytest.fixture
def facepp():
    return FakeFacePlusPlusClient()


@pytest.fixture
def embedding_client():
    return FakeEmbeddingClient()


@pytest.fixture
def app(tmp_path, clock, facepp, embedding_client):
    app = create_app({
        'TESTING': True,
        'DATABASE_PATH': str(tmp_path / 'attendance.db'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'LOG_LEVEL': 'WARNING',
        'SEED_DEFAULT_DATA': True,
        'CLOCK': clock,
        'FACEPP_CLIENT': facepp,
        'EMBEDDING_CLIENT': embedding_client,
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return app_globals.db


@pytest.fixture
def embedding():
    return [float(i % 9 + 1) for i in range(128)]


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client):
    resp = client.post('/api/auth/admin/login', json={'uniqueId': 'admin001', 'password': 'admin123'})
    assert resp.status_code == 200
    return bearer(resp.get_json()['data']['token'])


@pytest.fixture
def student(db):
    db.create_student(
        'S1001', 'Alice Nguyen', '2002-05-01',
        enrolled_courses=['ICT651', 'ict654'],
        email='alice@example.com',
    )
    return 'S1001'


@pytest.fixture
def student_headers(client, student):
    resp = client.post('/api/auth/student/login', json={'studentId': student})
    assert resp.status_code == 200
    return bearer(resp.get_json()['data']['token'])


@pytest.fixture
def registered_student(client, student_headers, embedding):
    resp = client.post('/api/student/face/register', json={'encodings': embedding}, headers=student_headers)
    assert resp.status_code == 200
    return student_headers
