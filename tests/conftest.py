from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pytest

from src.docrank.annotate import AnnotatedToken, AnnotationEngine, AnnotationEnginePool
from src.docrank.config import Config
from src.docrank.errors import Vectorization
from src.docrank.models import VectorModel
from src.docrank.normalize import TextNormalizer


class WhitespaceEngine(AnnotationEngine):
    """Splits sentences on '.' and tokens on whitespace; lemma is the lowercased word."""

    def __init__(self, tags: Optional[Dict[str, str]] = None) -> None:
        super().__init__()
        self.tags = tags or {}
        self.calls = 0

    def _annotate(self, text: str) -> List[List[AnnotatedToken]]:
        self.calls += 1
        sentences = []
        for raw in text.split("."):
            words = raw.split()
            if words:
                sentences.append([AnnotatedToken(text=w, lemma=w.lower(), pos=self.tags.get(w)) for w in words])
        return sentences


class ScriptedEngine(AnnotationEngine):
    """Returns the same pre-annotated sentences for any text."""

    def __init__(self, sentences: Sequence[Sequence[AnnotatedToken]]) -> None:
        super().__init__()
        self.sentences = [list(s) for s in sentences]

    def _annotate(self, text: str) -> List[List[AnnotatedToken]]:
        return self.sentences


class DictModel(VectorModel):
    """Vectors looked up by exact text; unknown texts mismatch, `failing` texts raise."""

    def __init__(self, vectors: Dict[str, Sequence[float]], failing: Iterable[str] = ()) -> None:
        super().__init__(normalizer=None)
        self.vectors = {text: np.asarray(v, dtype=np.float64) for text, v in vectors.items()}
        self.failing = set(failing)

    def fit(self, texts: Iterable[str]) -> None:
        pass

    def vector_from_text(self, text: str) -> Vectorization:
        if text in self.failing:
            raise RuntimeError(f"cannot vectorize {text!r}")
        if text not in self.vectors:
            return Vectorization.mismatch(f"unknown text {text!r}")
        return Vectorization.success(self.vectors[text])


@pytest.fixture()
def make_normalizer():
    def _make(engine_factory=WhitespaceEngine, pre_processor=None, **cfg_kwargs) -> TextNormalizer:
        cfg = Config(device="cpu", **cfg_kwargs)
        return TextNormalizer(cfg, AnnotationEnginePool(engine_factory), pre_processor=pre_processor)
    return _make
