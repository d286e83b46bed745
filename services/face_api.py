"""
Clients cho các dịch vụ khuôn mặt bên ngoài.

- FacePlusPlusClient: detect (lấy face_token khi đăng ký) và compare (so khớp
  khi điểm danh) qua Face++ REST API.
- EmbeddingApiClient: gọi API tạo embedding từ ảnh base64 (chẩn đoán).

Mọi lỗi mạng, timeout hay phản hồi sai định dạng đều được chuyển thành
VerificationError / UpstreamServiceError để route trả về lỗi có cấu trúc.
"""

import logging
import math
from typing import List, Optional

import requests

from core.errors import UpstreamServiceError, VerificationError

logger = logging.getLogger(__name__)

DEFAULT_DETECT_URL = 'https://api-us.faceplusplus.com/facepp/v3/detect'
DEFAULT_COMPARE_URL = 'https://api-us.faceplusplus.com/facepp/v3/compare'


class FacePlusPlusClient:
    """Client Face++ với timeout cố định cho mỗi request."""

    def __init__(self,
                 api_key: str,
                 api_secret: str,
                 detect_url: str = DEFAULT_DETECT_URL,
                 compare_url: str = DEFAULT_COMPARE_URL,
                 timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key or ''
        self.api_secret = api_secret or ''
        self.detect_url = detect_url
        self.compare_url = compare_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def _post(self, url: str, form: dict) -> dict:
        if not self.configured:
            raise VerificationError('Face++ not configured')
        payload = dict(form, api_key=self.api_key, api_secret=self.api_secret)
        try:
            response = self.session.post(url, data=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            raise VerificationError(f'Face++ request timed out after {self.timeout}s') from exc
        except requests.RequestException as exc:
            raise VerificationError(f'Face++ unreachable: {exc}') from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise VerificationError(
                f'Face++ returned non-JSON response (HTTP {response.status_code})'
            ) from exc
        if not isinstance(body, dict):
            raise VerificationError('Face++ returned malformed response')
        if response.status_code >= 400 or body.get('error_message'):
            raise VerificationError(
                f"Face++ error (HTTP {response.status_code}): {body.get('error_message')}"
            )
        return body

    def detect(self, image_base64: str) -> str:
        """Phát hiện khuôn mặt và trả về face_token của khuôn mặt đầu tiên."""
        body = self._post(self.detect_url, {
            'image_base64': image_base64,
            'return_landmark': '0',
            'return_attributes': 'none',
        })
        faces = body.get('faces')
        if not isinstance(faces, list) or not faces:
            raise VerificationError('No face detected')
        token = faces[0].get('face_token') if isinstance(faces[0], dict) else None
        if not token:
            raise VerificationError('Face++ detect response missing face_token')
        logger.debug("Face++ detect returned %d face(s)", len(faces))
        return token

    def compare(self, face_token: str, image_base64: str) -> float:
        """So khớp face_token đã lưu với ảnh mới. Trả về confidence (0-100)."""
        body = self._post(self.compare_url, {
            'face_token1': face_token,
            'image_base64_2': image_base64,
        })
        confidence = body.get('confidence')
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            # Face++ bỏ trường confidence khi ảnh thứ hai không có khuôn mặt
            raise VerificationError('Invalid compare response')
        if not math.isfinite(confidence):
            raise VerificationError('Invalid compare response')
        return float(confidence)


class EmbeddingApiClient:
    """Client cho API tạo embedding (Bearer token, JSON)."""

    def __init__(self, url: str, api_key: str, timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.url = url or ''
        self.api_key = api_key or ''
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def get_embedding(self, image_base64: str) -> List[float]:
        if not self.configured:
            raise UpstreamServiceError('Face API not configured')
        try:
            response = self.session.post(
                self.url,
                json={'imageBase64': image_base64},
                headers={'Authorization': f'Bearer {self.api_key}'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise UpstreamServiceError(f'Face API request failed: {exc}') from exc
        except ValueError as exc:
            raise UpstreamServiceError('Face API returned non-JSON response') from exc

        embedding = body.get('embedding') if isinstance(body, dict) else None
        if not isinstance(embedding, list):
            raise UpstreamServiceError('Invalid embedding response')
        try:
            return [float(v) for v in embedding]
        except (TypeError, ValueError) as exc:
            raise UpstreamServiceError('Invalid embedding response') from exc
