"""
Error types and the vectorization result type.

Model calls return a `Vectorization` instead of raising: index rebuild inspects
`ok` and skips the document, query-time ranking calls `unwrap()` and lets the
typed failure reach the caller.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np


class DocRankError(Exception):
    """Base class for all errors raised by docrank."""


class VocabularyMismatch(DocRankError):
    """Normalized text shares no terms with the model vocabulary."""


class AnnotationFailure(DocRankError):
    """The text annotation engine could not process the input."""


class IndexingAnomaly(DocRankError):
    """Any other per-document failure during index rebuild."""


class InvalidDataset(DocRankError):
    """Empty dataset or an item without relevant labels."""


@dataclass(frozen=True)
class Vectorization:
    """Outcome of converting text into a vector.

    Exactly one of `vector` and `failure` is set.

    Attributes:
        vector: The 1-D vector on success
        failure: The vocabulary mismatch on failure
    """
    vector: Optional[np.ndarray] = None
    failure: Optional[VocabularyMismatch] = None

    def __post_init__(self) -> None:
        if (self.vector is None) == (self.failure is None):
            raise ValueError("Vectorization requires exactly one of vector or failure")

    @classmethod
    def success(cls, vector: np.ndarray) -> "Vectorization":
        return cls(vector=vector)

    @classmethod
    def mismatch(cls, message: str) -> "Vectorization":
        return cls(failure=VocabularyMismatch(message))

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> np.ndarray:
        """Return the vector or raise the stored failure.

        Raises:
            VocabularyMismatch: When the text could not be vectorized
        """
        if self.failure is not None:
            raise self.failure
        return self.vector
