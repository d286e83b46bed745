import pytest
import requests

from core.errors import UpstreamServiceError, VerificationError
from services import EmbeddingApiClient, FacePlusPlusClient


class FakeResponse:
    def __init__(self, status_code=200, body=None, raise_json=False):
        self.status_code = status_code
        self._body = body
        self._raise_json = raise_json

    def json(self):
        if self._raise_json:
            raise ValueError('No JSON object could be decoded')
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def facepp(session):
    return FacePlusPlusClient('key', 'secret', timeout=15, session=session)


def test_detect_returns_first_face_token():
    session = FakeSession(FakeResponse(body={'faces': [{'face_token': 'abc123'}, {'face_token': 'zzz'}]}))
    assert facepp(session).detect('aW1n') == 'abc123'
    url, kwargs = session.calls[0]
    assert kwargs['timeout'] == 15
    assert kwargs['data']['api_key'] == 'key'
    assert kwargs['data']['image_base64'] == 'aW1n'


def test_detect_without_faces_fails():
    session = FakeSession(FakeResponse(body={'faces': []}))
    with pytest.raises(VerificationError, match='No face detected'):
        facepp(session).detect('aW1n')


def test_compare_returns_confidence():
    session = FakeSession(FakeResponse(body={'confidence': 91.2}))
    assert facepp(session).compare('tok', 'aW1n') == pytest.approx(91.2)


@pytest.mark.parametrize('body', [{}, {'confidence': 'high'}, {'confidence': True}, {'confidence': float('nan')}])
def test_compare_rejects_malformed_confidence(body):
    with pytest.raises(VerificationError, match='Invalid compare response'):
        facepp(FakeSession(FakeResponse(body=body))).compare('tok', 'aW1n')


def test_timeout_becomes_verification_error():
    session = FakeSession(error=requests.Timeout('read timed out'))
    with pytest.raises(VerificationError, match='timed out'):
        facepp(session).compare('tok', 'aW1n')


def test_connection_error_becomes_verification_error():
    session = FakeSession(error=requests.ConnectionError('refused'))
    with pytest.raises(VerificationError):
        facepp(session).detect('aW1n')


def test_provider_error_message_fails():
    session = FakeSession(FakeResponse(status_code=400, body={'error_message': 'INVALID_FACE_TOKEN'}))
    with pytest.raises(VerificationError, match='INVALID_FACE_TOKEN'):
        facepp(session).compare('tok', 'aW1n')


def test_non_json_response_fails():
    session = FakeSession(FakeResponse(status_code=502, raise_json=True))
    with pytest.raises(VerificationError):
        facepp(session).detect('aW1n')


def test_unconfigured_client_never_calls_out():
    session = FakeSession(FakeResponse(body={'confidence': 99}))
    client = FacePlusPlusClient('', '', session=session)
    assert client.configured is False
    with pytest.raises(VerificationError):
        client.compare('tok', 'aW1n')
    assert session.calls == []


def test_embedding_client_returns_floats():
    session = FakeSession(FakeResponse(body={'embedding': [1, 2.5, 3]}))
    client = EmbeddingApiClient('https://face.example/encode', 'k', session=session)
    assert client.get_embedding('aW1n') == [1.0, 2.5, 3.0]
    assert session.calls[0][1]['headers']['Authorization'] == 'Bearer k'


def test_embedding_client_upstream_failure():
    session = FakeSession(FakeResponse(status_code=500, body={}))
    client = EmbeddingApiClient('https://face.example/encode', 'k', session=session)
    with pytest.raises(UpstreamServiceError):
        client.get_embedding('aW1n')


def test_embedding_client_bad_payload():
    session = FakeSession(FakeResponse(body={'embedding': ['x', None]}))
    client = EmbeddingApiClient('https://face.example/encode', 'k', session=session)
    with pytest.raises(UpstreamServiceError):
        client.get_embedding('aW1n')
