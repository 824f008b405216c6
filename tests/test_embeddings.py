import sys

import pytest
import torch

from src.docrank import embeddings
from src.docrank.config import Config
from src.docrank.embeddings import TransformerModel, build_embedder, last_token_pool

from .conftest import WhitespaceEngine


class FakeModel:
    def __init__(self):
        self.device = None
        self.evaluating = False

    def to(self, device):
        self.device = device
        return self

    def eval(self):
        self.evaluating = True


class FakeAutoModel:
    """Records load kwargs; the first `failures` loads raise `error`."""

    def __init__(self, error=None, failures=0):
        self.error = error
        self.failures = failures
        self.calls = []

    def from_pretrained(self, name, **kwargs):
        self.calls.append(dict(kwargs))
        if len(self.calls) <= self.failures:
            raise self.error
        return FakeModel()


@pytest.fixture()
def fake_tokenizer(monkeypatch):
    class FakeAutoTokenizer:
        @staticmethod
        def from_pretrained(name, **kwargs):
            return ("tokenizer", name, kwargs)

    monkeypatch.setattr(embeddings, "AutoTokenizer", FakeAutoTokenizer)


def _cfg(**kwargs):
    return Config(device="cpu", embed_model="test/model", **kwargs)


def test_build_embedder_loads_model_on_device(monkeypatch, fake_tokenizer):
    auto_model = FakeAutoModel()
    monkeypatch.setattr(embeddings, "AutoModel", auto_model)

    model, tokenizer = build_embedder(_cfg(embed_model_kwargs={}, embed_tokenizer_kwargs={"padding_side": "left"}))

    assert tokenizer == ("tokenizer", "test/model", {"padding_side": "left"})
    assert model.device == "cpu"
    assert model.evaluating
    assert auto_model.calls == [{}]


def test_build_embedder_retries_without_flash_attention(monkeypatch, fake_tokenizer):
    auto_model = FakeAutoModel(ValueError("Model does not support Flash Attention 2.0 yet"), failures=1)
    monkeypatch.setattr(embeddings, "AutoModel", auto_model)
    monkeypatch.setattr(embeddings, "_model_kwargs", lambda cfg: {"attn_implementation": "flash_attention_2"})

    model, _ = build_embedder(_cfg())

    assert isinstance(model, FakeModel)
    assert auto_model.calls == [{"attn_implementation": "flash_attention_2"}, {}]


def test_build_embedder_reports_other_load_errors(monkeypatch, fake_tokenizer):
    auto_model = FakeAutoModel(OSError("no such model"), failures=1)
    monkeypatch.setattr(embeddings, "AutoModel", auto_model)

    with pytest.raises(RuntimeError):
        build_embedder(_cfg(embed_model_kwargs={}))

    assert len(auto_model.calls) == 1


def test_missing_flash_attn_package_drops_the_kwarg(monkeypatch):
    monkeypatch.setitem(sys.modules, "flash_attn", None)

    kwargs = embeddings._model_kwargs(_cfg(embed_model_kwargs={"attn_implementation": "flash_attention_2"}))

    assert kwargs == {}


def test_last_token_pool_handles_both_padding_sides():
    hidden = torch.arange(12, dtype=torch.float32).reshape(2, 3, 2)

    left = last_token_pool(hidden, torch.tensor([[0, 1, 1], [1, 1, 1]]))
    right = last_token_pool(hidden, torch.tensor([[1, 1, 0], [1, 0, 0]]))

    assert left.tolist() == [[4.0, 5.0], [10.0, 11.0]]
    assert right.tolist() == [[2.0, 3.0], [6.0, 7.0]]


def test_text_without_terms_is_a_mismatch(make_normalizer):
    model = TransformerModel(_cfg(), make_normalizer(WhitespaceEngine, allowed_pos_tags={"NN"}))

    result = model.vector_from_text("<DOC> </DOC>")

    assert not result.ok
