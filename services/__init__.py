"""
External face services used by the attendance backend.

This package provides:
- Face++ detect/compare client (opaque face tokens)
- Embedding API client (diagnostic encode endpoint)
"""

from .face_api import EmbeddingApiClient, FacePlusPlusClient

__all__ = [
	'EmbeddingApiClient',
	'FacePlusPlusClient',
]
