"""Similarity oracle strategies.

The decision engine only needs ``verify(reference, sample) -> float``. Two
strategies satisfy it: cosine similarity over stored embeddings, and the
Face++ detect/compare service which stores an opaque face token. The
``SimilarityOracle`` dispatches on the kind of reference stored for the
student so a student is only ever verified one way.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from core.attendance.models import (
    REFERENCE_EMBEDDING,
    REFERENCE_TOKEN,
    FaceReference,
    FaceSample,
)
from core.errors import VerificationError


def cosine_similarity(a: Sequence[Any], b: Sequence[Any]) -> float:
    """Cosine similarity clamped to [0, 1].

    Returns 0.0 for empty or mismatched vectors, non-numeric or non-finite
    entries and zero-norm vectors instead of raising.
    """
    if a is None or b is None:
        return 0.0
    try:
        vec_a = np.asarray(a, dtype="float64").ravel()
        vec_b = np.asarray(b, dtype="float64").ravel()
    except (TypeError, ValueError):
        return 0.0
    if vec_a.size == 0 or vec_b.size == 0 or vec_a.size != vec_b.size:
        return 0.0
    if not (np.all(np.isfinite(vec_a)) and np.all(np.isfinite(vec_b))):
        return 0.0
    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0 or not math.isfinite(norm_a * norm_b):
        return 0.0
    score = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    if not math.isfinite(score):
        return 0.0
    return min(max(score, 0.0), 1.0)


class SimilarityStrategy:
    """Protocol-ish base class for duck-typed strategies."""

    name: str = "strategy"
    reference_kind: str = ""

    def verify(self, reference: Any, sample: Any) -> float:  # pragma: no cover - interface
        raise NotImplementedError

    def is_ready(self) -> bool:
        return True


class CosineSimilarityStrategy(SimilarityStrategy):
    name = "cosine"
    reference_kind = REFERENCE_EMBEDDING

    def verify(self, reference: Sequence[float], sample: Sequence[float]) -> float:
        return cosine_similarity(reference, sample)


class FacePlusPlusStrategy(SimilarityStrategy):
    name = "facepp"
    reference_kind = REFERENCE_TOKEN

    def __init__(self, *, client: Any, logger: Optional[logging.Logger] = None) -> None:
        self._client = client
        self._logger = logger or logging.getLogger(__name__)

    def is_ready(self) -> bool:
        return bool(self._client is not None and self._client.configured)

    def verify(self, reference: str, sample: str) -> float:
        if self._client is None:
            raise VerificationError("Face++ client missing")
        if not isinstance(reference, str) or not reference:
            raise VerificationError("Malformed face token")
        if not isinstance(sample, str) or not sample:
            raise VerificationError("Missing image for comparison")
        confidence = self._client.compare(reference, sample)
        return min(max(confidence / 100.0, 0.0), 1.0)


class SimilarityOracle:
    """Routes a verification to the strategy matching the stored reference."""

    def __init__(self, *, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._strategies: Dict[str, SimilarityStrategy] = {}
        self._lock = threading.RLock()
        self._calls = 0

    def add_strategy(self, strategy: Optional[SimilarityStrategy]) -> None:
        if strategy is None:
            return
        with self._lock:
            self._strategies[strategy.reference_kind] = strategy
        self._logger.info(
            "[Verification] Added strategy %s for %s references",
            strategy.name,
            strategy.reference_kind,
        )

    @property
    def call_count(self) -> int:
        with self._lock:
            return self._calls

    def verify(self, reference: FaceReference, sample: FaceSample) -> float:
        if reference.kind != sample.kind:
            raise VerificationError(
                f"Sample kind {sample.kind} does not match {reference.kind} reference"
            )
        with self._lock:
            strategy = self._strategies.get(reference.kind)
            self._calls += 1
        if strategy is None:
            raise VerificationError(f"No strategy for {reference.kind} references")
        score = float(strategy.verify(reference.value, sample.value))
        if not math.isfinite(score) or score < 0.0 or score > 1.0:
            raise VerificationError(f"Strategy {strategy.name} returned invalid score {score!r}")
        return score

    def describe(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {"name": s.name, "reference": kind, "ready": s.is_ready()}
                for kind, s in self._strategies.items()
            ]


__all__ = [
    "cosine_similarity",
    "SimilarityStrategy",
    "CosineSimilarityStrategy",
    "FacePlusPlusStrategy",
    "SimilarityOracle",
]
