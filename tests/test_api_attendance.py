from datetime import datetime

import pytest

from core.errors import VerificationError


def mark(client, headers, embedding, course='ICT651', **extra):
    payload = {'courseCode': course, 'faceData': embedding}
    payload.update(extra)
    return client.post('/api/student/attendance', json=payload, headers=headers)


def test_face_status_before_and_after_registration(client, student_headers, embedding):
    resp = client.get('/api/student/face/status', headers=student_headers)
    assert resp.get_json()['data'] == {'isRegistered': False, 'referenceKind': None}

    client.post('/api/student/face/register', json={'encodings': embedding}, headers=student_headers)
    resp = client.get('/api/student/face/status', headers=student_headers)
    assert resp.get_json()['data'] == {'isRegistered': True, 'referenceKind': 'embedding'}


@pytest.mark.parametrize('encodings', [
    [0.1] * 10,
    [0.1] * 2000,
    'not-a-list',
    [0.1] * 63 + ['x'],
    [],
])
def test_register_rejects_bad_encodings(client, student_headers, encodings):
    resp = client.post('/api/student/face/register', json={'encodings': encodings}, headers=student_headers)
    assert resp.status_code == 400
    assert resp.get_json()['success'] is False


def test_on_time_attendance_is_accepted(client, registered_student, embedding):
    resp = mark(client, registered_student, embedding, location={'latitude': 10.77, 'longitude': 106.7})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['message'] == 'Attendance marked successfully'
    assert body['data']['status'] == 'present'
    assert body['data']['isLate'] is False
    assert body['data']['lateMinutes'] == 0
    assert body['data']['courseCode'] == 'ICT651'
    assert body['data']['confidenceScore'] == pytest.approx(1.0)


def test_second_submission_same_day_is_rejected(client, registered_student, embedding):
    assert mark(client, registered_student, embedding).status_code == 200
    resp = mark(client, registered_student, embedding, course='ict651')
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'already marked today'


def test_not_enrolled_course_is_rejected(client, registered_student, embedding):
    resp = mark(client, registered_student, embedding, course='ICT623')
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['reason'] == 'not enrolled'
    assert body['error'] == 'You are not enrolled in this course'


def test_unregistered_student_is_rejected(client, student_headers, embedding):
    resp = mark(client, student_headers, embedding)
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'not registered'


def test_different_face_fails_verification(client, registered_student):
    other = [float((-1) ** i) for i in range(128)]
    resp = mark(client, registered_student, other)
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['reason'] == 'verification failed'
    assert 'similarity' not in body


def test_missing_course_code_is_validation_error(client, registered_student, embedding):
    resp = client.post('/api/student/attendance', json={'faceData': embedding}, headers=registered_student)
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Course code is required'


def test_bad_location_is_validation_error(client, registered_student, embedding):
    resp = mark(client, registered_student, embedding, location={'latitude': 'north', 'longitude': 1})
    assert resp.status_code == 400


def test_deactivated_course_returns_404(client, registered_student, admin_headers, embedding):
    assert client.post('/api/admin/courses/ICT651/deactivate', headers=admin_headers).status_code == 200
    resp = mark(client, registered_student, embedding)
    assert resp.status_code == 404
    assert resp.get_json()['reason'] == 'course not found'


def test_late_attendance_creates_notification(client, clock, registered_student, embedding):
    clock.now = datetime(2024, 3, 4, 9, 20)
    resp = mark(client, registered_student, embedding)
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['message'] == 'Attendance marked successfully (Late)'
    assert body['data']['status'] == 'late'
    assert body['data']['lateMinutes'] == 20

    notes = client.get('/api/notifications', headers=registered_student).get_json()['data']
    assert notes['unreadCount'] == 1
    assert notes['notifications'][0]['title'] == 'Late Attendance Recorded'
    assert notes['notifications'][0]['courseCode'] == 'ICT651'


def test_within_grace_period_is_present(client, clock, registered_student, embedding):
    clock.now = datetime(2024, 3, 4, 9, 15, 59)
    resp = mark(client, registered_student, embedding)
    assert resp.get_json()['data']['status'] == 'present'


def test_history_lists_accepted_records(client, clock, registered_student, embedding):
    mark(client, registered_student, embedding)
    clock.now = datetime(2024, 3, 5, 9, 40)
    mark(client, registered_student, embedding)

    rows = client.get('/api/student/attendance/history', headers=registered_student).get_json()['data']
    assert [r['date'] for r in rows] == ['2024-03-05', '2024-03-04']
    assert rows[0]['status'] == 'late'
    assert rows[0]['courseName'] == 'Advanced Database Systems'


def test_student_courses(client, student_headers):
    rows = client.get('/api/student/courses', headers=student_headers).get_json()['data']
    assert [r['courseCode'] for r in rows] == ['ICT651', 'ICT654']


def test_image_registration_and_attendance(client, student_headers, facepp):
    resp = client.post(
        '/api/student/face/register-image',
        json={'imageBase64': 'data:image/jpeg;base64,aGVsbG8td29ybGQ='},
        headers=student_headers,
    )
    assert resp.status_code == 200
    status = client.get('/api/student/face/status', headers=student_headers).get_json()['data']
    assert status['referenceKind'] == 'token'

    facepp.confidence = 92.0
    resp = client.post(
        '/api/student/attendance-image',
        json={'courseCode': 'ICT654', 'imageBase64': 'c2Vjb25kLWltYWdl'},
        headers=student_headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()['data']['confidenceScore'] == pytest.approx(0.92)
    assert facepp.compare_calls == [('token-aGVsbG8td29y', 'c2Vjb25kLWltYWdl')]


def test_image_registration_without_face(client, student_headers):
    resp = client.post(
        '/api/student/face/register-image', json={'imageBase64': 'no-face'}, headers=student_headers
    )
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'no face detected'


def test_low_provider_confidence_fails(client, student_headers, facepp):
    client.post('/api/student/face/register-image', json={'imageBase64': 'aGVsbG8='}, headers=student_headers)
    facepp.confidence = 60.0
    resp = client.post(
        '/api/student/attendance-image',
        json={'courseCode': 'ICT651', 'imageBase64': 'aGVsbG8='},
        headers=student_headers,
    )
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'verification failed'


def test_provider_timeout_fails_closed(client, student_headers, facepp):
    client.post('/api/student/face/register-image', json={'imageBase64': 'aGVsbG8='}, headers=student_headers)
    facepp.compare_error = VerificationError('Face++ request timed out after 15s')
    resp = client.post(
        '/api/student/attendance-image',
        json={'courseCode': 'ICT651', 'imageBase64': 'aGVsbG8='},
        headers=student_headers,
    )
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'verification failed'
    history = client.get('/api/student/attendance/history', headers=student_headers).get_json()['data']
    assert history == []


def test_embedding_sample_against_token_reference(client, student_headers, facepp, embedding):
    client.post('/api/student/face/register-image', json={'imageBase64': 'aGVsbG8='}, headers=student_headers)
    resp = mark(client, student_headers, embedding)
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'not registered'
    assert facepp.compare_calls == []


def test_encode_endpoint(client, student_headers, embedding_client):
    resp = client.post('/api/face/encode', json={'imageBase64': 'aGVsbG8='}, headers=student_headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['length'] == 128

    embedding_client.fail = True
    resp = client.post('/api/face/encode', json={'imageBase64': 'aGVsbG8='}, headers=student_headers)
    assert resp.status_code == 502
    assert resp.get_json()['success'] is False


def test_corrupted_stored_embedding_fails_verification(client, db, registered_student, embedding):
    with db.get_connection() as conn:
        conn.execute("UPDATE users SET face_embedding = '[0.1, 0.2' WHERE student_id = 'S1001'")

    status = client.get('/api/student/face/status', headers=registered_student)
    assert status.status_code == 200
    assert status.get_json()['data'] == {'isRegistered': True, 'referenceKind': 'embedding'}

    resp = mark(client, registered_student, embedding)
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'verification failed'
    assert db.find_attendance('S1001', 'ICT651', datetime(2024, 3, 4).date()) is None
