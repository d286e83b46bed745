import hashlib


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


def test_health_is_public(client):
    resp = client.get('/api/health')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'OK'
    assert body['database'] == 'connected'
    assert body['version'] == '2.0.0'
    assert {s['reference'] for s in body['verification']} == {'embedding', 'token'}


def test_protected_route_requires_token(client):
    resp = client.get('/api/student/courses')
    assert resp.status_code == 401
    assert resp.get_json() == {'success': False, 'error': 'Access token required'}


def test_unknown_token_is_forbidden(client):
    resp = client.get('/api/student/courses', headers=bearer('not-a-real-token'))
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'Invalid or expired token'


def test_unknown_route_returns_json_404(client):
    resp = client.get('/api/does-not-exist')
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'Route GET /api/does-not-exist not found'


def test_admin_login_success(client):
    resp = client.post('/api/auth/admin/login', json={'uniqueId': 'admin001', 'password': 'admin123'})
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['token']
    assert data['user']['role'] == 'admin'
    assert 'password_hash' not in data['user']


def test_admin_login_wrong_password(client):
    resp = client.post('/api/auth/admin/login', json={'uniqueId': 'admin001', 'password': 'nope'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid credentials'


def test_admin_login_missing_fields(client):
    resp = client.post('/api/auth/admin/login', json={'uniqueId': 'admin001'})
    assert resp.status_code == 400
    assert resp.get_json()['success'] is False


def test_malformed_json_is_rejected(client):
    resp = client.post('/api/auth/admin/login', data='{not json', content_type='application/json')
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Malformed JSON body'


def test_student_login_unknown_student(client):
    resp = client.post('/api/auth/student/login', json={'studentId': 'NOPE'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Student not found or inactive'


def test_student_login_returns_enrolled_courses(client, student):
    resp = client.post('/api/auth/student/login', json={'studentId': student})
    assert resp.status_code == 200
    assert resp.get_json()['data']['user']['enrolledCourses'] == ['ICT651', 'ICT654']


def test_student_cannot_use_admin_routes(client, student_headers):
    resp = client.get('/api/admin/students', headers=student_headers)
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'Admin access required'


def test_admin_cannot_use_student_routes(client, admin_headers):
    resp = client.get('/api/student/courses', headers=admin_headers)
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'Student access required'


def test_logout_revokes_token(client, student_headers):
    assert client.post('/api/auth/logout', headers=student_headers).status_code == 200
    resp = client.get('/api/student/courses', headers=student_headers)
    assert resp.status_code == 403


def test_admin_register_requires_admin(client, student_headers):
    payload = {'adminName': 'Second', 'uniqueId': 'admin002', 'password': 'longenough'}
    assert client.post('/api/auth/admin/register', json=payload).status_code == 401
    assert client.post('/api/auth/admin/register', json=payload, headers=student_headers).status_code == 403


def test_admin_register_and_login(client, admin_headers):
    short = {'adminName': 'Second', 'uniqueId': 'admin002', 'password': 'short'}
    resp = client.post('/api/auth/admin/register', json=short, headers=admin_headers)
    assert resp.status_code == 400
    assert 'at least 8 characters' in resp.get_json()['error']

    payload = dict(short, password='longenough', email='second@example.com')
    resp = client.post('/api/auth/admin/register', json=payload, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.get_json()['data']['uniqueId'] == 'admin002'

    again = client.post('/api/auth/admin/register', json=payload, headers=admin_headers)
    assert again.status_code == 400

    login = client.post('/api/auth/admin/login', json={'uniqueId': 'admin002', 'password': 'longenough'})
    assert login.status_code == 200


def test_legacy_sha256_password_is_upgraded(client, db):
    legacy = hashlib.sha256(b'legacy-pass').hexdigest()
    db.create_admin('Legacy', 'legacy01', legacy)
    resp = client.post('/api/auth/admin/login', json={'uniqueId': 'legacy01', 'password': 'legacy-pass'})
    assert resp.status_code == 200
    assert db.get_admin_by_unique_id('legacy01')['password_hash'] != legacy
