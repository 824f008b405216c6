import math

import numpy as np
import pytest

from src.docrank.config import Config
from src.docrank.errors import VocabularyMismatch
from src.docrank.models import TfidfModel, build_model, cosine_similarity


@pytest.mark.parametrize("vector", [[1.0, 2.0, 3.0], [-0.5, 0.0, 4.0], [1e-6, 1e-6]])
def test_self_similarity_is_one(vector):
    assert cosine_similarity(np.array(vector), np.array(vector)) == pytest.approx(1.0)


def test_orthogonal_and_opposite_vectors():
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 1.0])) == pytest.approx(0.0)
    assert cosine_similarity(np.array([1.0, 2.0]), np.array([-1.0, -2.0])) == pytest.approx(-1.0)


def test_zero_vector_similarity_is_nan():
    assert math.isnan(cosine_similarity(np.zeros(3), np.array([1.0, 2.0, 3.0])))
    assert math.isnan(cosine_similarity(np.zeros(3), np.zeros(3)))


def test_vectors_of_different_size_are_rejected():
    with pytest.raises(ValueError):
        cosine_similarity(np.ones(2), np.ones(3))


@pytest.fixture()
def tfidf(make_normalizer):
    model = TfidfModel(make_normalizer())
    model.fit(["Apple banana", "Cherry date", "Banana cherry"])
    return model


def test_tfidf_vectorizes_known_terms(tfidf):
    result = tfidf.vector_from_text("apple")

    assert result.ok
    assert result.vector.shape == (tfidf.vocabulary_size,)
    assert tfidf.vocabulary_size == 4


def test_tfidf_similarity_prefers_shared_terms(tfidf):
    query = tfidf.vector_from_text("apple").unwrap()
    first = tfidf.vector_from_text("Apple banana").unwrap()
    second = tfidf.vector_from_text("Cherry date").unwrap()

    assert tfidf.similarity(first, query) > tfidf.similarity(second, query)
    assert tfidf.similarity(second, query) == pytest.approx(0.0)


def test_tfidf_unknown_terms_are_a_mismatch(tfidf):
    result = tfidf.vector_from_text("zebra quokka")

    assert not result.ok
    with pytest.raises(VocabularyMismatch):
        result.unwrap()


def test_tfidf_empty_corpus_mismatches_everything(make_normalizer):
    model = TfidfModel(make_normalizer())
    model.fit([])

    assert not model.vector_from_text("apple").ok


def test_tfidf_requires_fit(make_normalizer):
    with pytest.raises(RuntimeError):
        TfidfModel(make_normalizer()).vector_from_text("apple")


def test_sentinels_never_enter_the_vocabulary(make_normalizer):
    normalizer = make_normalizer(allowed_pos_tags={"NN"}, strip_sentinels=False)
    model = TfidfModel(normalizer)
    model.fit(["<DOC> apple </DOC>"])

    assert set(model.vectorizer.vocabulary_) == {"apple"}


def test_build_model_selects_tfidf(make_normalizer):
    model = build_model(Config(device="cpu"), make_normalizer())

    assert isinstance(model, TfidfModel)


def test_vectorization_holds_exactly_one_outcome():
    from src.docrank.errors import Vectorization

    with pytest.raises(ValueError):
        Vectorization()
    assert Vectorization.success(np.ones(2)).ok
    assert not Vectorization.mismatch("nothing known").ok
