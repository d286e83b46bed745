import math

import pytest

from core.attendance.models import FaceReference, FaceSample
from core.errors import VerificationError
from core.verification import (
    CosineSimilarityStrategy,
    FacePlusPlusStrategy,
    SimilarityOracle,
    cosine_similarity,
)


def test_identical_vectors_score_one():
    vec = [0.3, -1.2, 4.0, 0.0, 2.5]
    assert cosine_similarity(vec, vec) == pytest.approx(1.0)


def test_scaled_vector_scores_one():
    assert cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)


def test_orthogonal_vectors_score_zero():
    assert cosine_similarity([1, 0], [0, 1]) == 0.0


def test_opposite_vectors_clamp_to_zero():
    assert cosine_similarity([1, 2, 3], [-1, -2, -3]) == 0.0


@pytest.mark.parametrize('a, b', [
    ([], []),
    ([1, 2, 3], [1, 2]),
    ([0, 0, 0], [1, 2, 3]),
    ([1, float('nan'), 3], [1, 2, 3]),
    ([1, float('inf'), 3], [1, 2, 3]),
    (['a', 'b'], [1, 2]),
    (None, [1, 2]),
])
def test_degenerate_inputs_fail_closed(a, b):
    assert cosine_similarity(a, b) == 0.0


def test_score_always_in_unit_interval():
    score = cosine_similarity([0.9, 0.1, 0.4], [0.8, 0.3, 0.2])
    assert 0.0 <= score <= 1.0
    assert math.isfinite(score)


class StubFaceClient:
    configured = True

    def __init__(self, confidence=90.0, error=None):
        self.confidence = confidence
        self.error = error

    def compare(self, face_token, image_base64):
        if self.error:
            raise self.error
        return self.confidence


def build_oracle(client=None):
    oracle = SimilarityOracle()
    oracle.add_strategy(CosineSimilarityStrategy())
    oracle.add_strategy(FacePlusPlusStrategy(client=client or StubFaceClient()))
    return oracle


def test_oracle_dispatches_embedding_reference_to_cosine():
    oracle = build_oracle()
    ref = FaceReference('embedding', [1.0, 2.0, 3.0])
    assert oracle.verify(ref, FaceSample('embedding', [1.0, 2.0, 3.0])) == pytest.approx(1.0)
    assert oracle.call_count == 1


def test_oracle_dispatches_token_reference_to_facepp():
    oracle = build_oracle(StubFaceClient(confidence=87.5))
    score = oracle.verify(FaceReference('token', 'tok-1'), FaceSample('token', 'aW1hZ2U='))
    assert score == pytest.approx(0.875)


def test_facepp_confidence_is_clamped():
    oracle = build_oracle(StubFaceClient(confidence=140.0))
    assert oracle.verify(FaceReference('token', 'tok'), FaceSample('token', 'img')) == 1.0


def test_oracle_rejects_kind_mismatch():
    oracle = build_oracle()
    with pytest.raises(VerificationError):
        oracle.verify(FaceReference('token', 'tok'), FaceSample('embedding', [1.0]))


def test_oracle_without_strategy_raises():
    oracle = SimilarityOracle()
    with pytest.raises(VerificationError):
        oracle.verify(FaceReference('embedding', [1.0]), FaceSample('embedding', [1.0]))


def test_facepp_strategy_propagates_client_failure():
    oracle = build_oracle(StubFaceClient(error=VerificationError('Face++ request timed out after 15s')))
    with pytest.raises(VerificationError):
        oracle.verify(FaceReference('token', 'tok'), FaceSample('token', 'img'))


def test_facepp_strategy_rejects_empty_token():
    strategy = FacePlusPlusStrategy(client=StubFaceClient())
    with pytest.raises(VerificationError):
        strategy.verify('', 'img')


def test_describe_lists_strategies():
    kinds = {entry['reference'] for entry in build_oracle().describe()}
    assert kinds == {'embedding', 'token'}
