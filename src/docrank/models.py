"""
Vector model module.

Defines the capability every vector model offers (fit, vector_from_text,
similarity) and the bag-of-words variant built on scikit-learn's TF-IDF
vectorizer. The dense transformer variant lives in `embeddings.py`.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer

from .config import Config
from .errors import Vectorization
from .normalize import TextNormalizer


logger = logging.getLogger(__name__)


def cosine_similarity(vector1: np.ndarray, vector2: np.ndarray) -> float:
    """Cosine similarity of two vectors.

    Returns:
        float: dot(v1, v2) / (|v1| * |v2|), or NaN when either vector has zero magnitude

    Raises:
        ValueError: When the vectors have different sizes
    """
    a = np.asarray(vector1, dtype=np.float64).ravel()
    b = np.asarray(vector2, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ValueError(f"Vector sizes differ: {a.shape[0]} != {b.shape[0]}")

    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0.0:
        return float("nan")
    return float(np.dot(a, b) / denominator)


class VectorModel(ABC):
    """Maps normalized text to fixed-size vectors.

    Attributes:
        normalizer: Normalizer applied to every text before vectorization
    """

    def __init__(self, normalizer: TextNormalizer) -> None:
        self.normalizer = normalizer

    def terms(self, text: str) -> List[str]:
        """Normalized, sentinel-free, non-empty tokens of `text`."""
        return [t for t in self.normalizer.normalize(text, strip_sentinels=True) if t]

    @abstractmethod
    def fit(self, texts: Iterable[str]) -> None:
        """Train or update the model's vocabulary and vector state."""

    @abstractmethod
    def vector_from_text(self, text: str) -> Vectorization:
        """Vectorize `text`; a mismatch result when no term is in the vocabulary."""

    def similarity(self, vector1: np.ndarray, vector2: np.ndarray) -> float:
        return cosine_similarity(vector1, vector2)


class TfidfModel(VectorModel):
    """Bag-of-words model: TF-IDF weights over normalized tokens.

    Args:
        normalizer: Text normalizer used as the vectorizer's analyzer
        sublinear_tf: Use 1 + log(tf) term frequencies
    """

    def __init__(self, normalizer: TextNormalizer, sublinear_tf: bool = True) -> None:
        super().__init__(normalizer)
        self.sublinear_tf = sublinear_tf
        self.vectorizer: Optional[TfidfVectorizer] = None
        self._fitted = False

    @property
    def vocabulary_size(self) -> int:
        return len(self.vectorizer.vocabulary_) if self.vectorizer is not None else 0

    def fit(self, texts: Iterable[str]) -> None:
        texts = list(texts)
        vectorizer = TfidfVectorizer(analyzer=self.terms, sublinear_tf=self.sublinear_tf)
        try:
            vectorizer.fit(texts)
        except ValueError as e:
            # scikit-learn refuses empty corpora and empty vocabularies
            logger.warning(f"TF-IDF vocabulary is empty ({len(texts)} texts): {e}")
            self.vectorizer = None
        else:
            self.vectorizer = vectorizer
        self._fitted = True
        logger.debug(f"TF-IDF model fitted on {len(texts)} texts, vocabulary size {self.vocabulary_size}")

    def vector_from_text(self, text: str) -> Vectorization:
        if not self._fitted:
            raise RuntimeError("TF-IDF model has not been fitted")

        if self.vectorizer is None:
            return Vectorization.mismatch("Model vocabulary is empty")

        matrix = self.vectorizer.transform([text])
        if matrix.nnz == 0:
            return Vectorization.mismatch(f"No terms of the text are in the model vocabulary: {text[:80]!r}")
        return Vectorization.success(matrix.toarray().ravel())


def build_model(cfg: Config, normalizer: TextNormalizer) -> VectorModel:
    """Create the vector model selected by `cfg.model_type`."""
    if cfg.model_type == "tfidf":
        logger.debug("Using TF-IDF model")
        return TfidfModel(normalizer)

    if cfg.model_type == "transformer":
        # Imported lazily so the bag-of-words path never loads transformers
        from .embeddings import TransformerModel
        logger.debug(f"Using transformer model: {cfg.embed_model}")
        return TransformerModel(cfg, normalizer)

    raise ValueError(f"Unknown model type: {cfg.model_type}")
