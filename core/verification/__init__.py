"""Identity verification: similarity strategies and the oracle dispatching to them."""

from .oracle import (
    CosineSimilarityStrategy,
    FacePlusPlusStrategy,
    SimilarityOracle,
    SimilarityStrategy,
    cosine_similarity,
)

__all__ = [
    "CosineSimilarityStrategy",
    "FacePlusPlusStrategy",
    "SimilarityOracle",
    "SimilarityStrategy",
    "cosine_similarity",
]
