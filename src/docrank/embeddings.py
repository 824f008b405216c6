"""
Embedding vector processing module.

Dense vector model: normalized text is encoded with a Hugging Face
transformer, pooled at the last token and L2-normalized.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import torch
import torch.nn.functional as F
from torch import Tensor
from transformers import AutoTokenizer, AutoModel

from .config import Config
from .errors import Vectorization
from .models import VectorModel
from .normalize import TextNormalizer


logger = logging.getLogger(__name__)


def _should_fallback_from_flash_attn(error: Exception) -> bool:
    """Return True if the exception implies Flash Attention 2 is unsupported."""
    message = str(error).lower()
    keywords = (
        "does not support flash attention 2.0",
        "flash attention 2",
        "flash_attention_2",
        "flash_attn_2_can_dispatch",
    )
    return any(k in message for k in keywords)


def last_token_pool(last_hidden_states: Tensor, attention_mask: Tensor) -> Tensor:
    """Extract embeddings from the last token position.

    Handles both left and right padding by finding the actual last token position.

    Args:
        last_hidden_states: Hidden states from the model
        attention_mask: Attention mask tensor

    Returns:
        Tensor: Pooled embeddings from last token positions
    """
    left_padding = (attention_mask[:, -1].sum() == attention_mask.shape[0])
    if left_padding:
        return last_hidden_states[:, -1]
    sequence_lengths = attention_mask.sum(dim=1) - 1
    batch_size = last_hidden_states.shape[0]
    return last_hidden_states[torch.arange(batch_size, device=last_hidden_states.device), sequence_lengths]


def _model_kwargs(cfg: Config) -> Dict[str, Any]:
    """Model kwargs from `cfg`, without Flash Attention 2 when flash_attn is missing."""
    model_kwargs = dict(cfg.embed_model_kwargs or {})

    if model_kwargs.get("attn_implementation") == "flash_attention_2":
        try:
            import flash_attn  # noqa: F401
        except ImportError:
            logger.warning("Flash Attention 2 not available, removing attn_implementation from kwargs")
            model_kwargs.pop("attn_implementation", None)

    if cfg.device == "cuda":
        model_kwargs.setdefault("dtype", torch.bfloat16)
    return model_kwargs


def build_embedder(cfg: Config) -> Tuple[AutoModel, AutoTokenizer]:
    """Load the embedding model and tokenizer named by `cfg.embed_model`.

    A model that rejects Flash Attention 2 is loaded once more without it.

    Returns:
        Tuple[AutoModel, AutoTokenizer]: The configured embedding model and tokenizer

    Raises:
        RuntimeError: When the model cannot be loaded
    """
    logger.debug(f"Loading embedding model: {cfg.embed_model}")

    tokenizer_kwargs = dict(cfg.embed_tokenizer_kwargs or {})
    tokenizer = AutoTokenizer.from_pretrained(cfg.embed_model, **tokenizer_kwargs)

    model_kwargs = _model_kwargs(cfg)
    try:
        model = AutoModel.from_pretrained(cfg.embed_model, **model_kwargs)
    except Exception as e:
        if model_kwargs.get("attn_implementation") != "flash_attention_2" or not _should_fallback_from_flash_attn(e):
            raise RuntimeError(f"Could not load embedding model {cfg.embed_model}") from e
        logger.warning(f"Model rejected Flash Attention 2, retrying without it: {e}")
        model_kwargs.pop("attn_implementation", None)
        try:
            model = AutoModel.from_pretrained(cfg.embed_model, **model_kwargs)
        except Exception as e2:
            raise RuntimeError(f"Could not load embedding model {cfg.embed_model}") from e2

    logger.debug(f"Embedding model loaded with kwargs={model_kwargs}")
    model = model.to(cfg.device)
    model.eval()
    return model, tokenizer


class TransformerModel(VectorModel):
    """Dense model backed by a pre-trained transformer encoder.

    The encoder is loaded on first use. `fit` only loads it; the vocabulary
    check is that normalization leaves at least one term.

    Args:
        cfg: Config with embed_model, device and embedding settings
        normalizer: Text normalizer applied before encoding
    """

    def __init__(self, cfg: Config, normalizer: TextNormalizer) -> None:
        super().__init__(normalizer)
        self.cfg = cfg
        self._embedder: Optional[Tuple[AutoModel, AutoTokenizer]] = None

    @property
    def embedder(self) -> Tuple[AutoModel, AutoTokenizer]:
        if self._embedder is None:
            self._embedder = build_embedder(self.cfg)
        return self._embedder

    def fit(self, texts: Iterable[str]) -> None:
        logger.debug("Transformer model is pre-trained; fit only loads the encoder")
        _ = self.embedder

    def encode(self, texts: List[str]) -> np.ndarray:
        """Encode already-normalized texts into L2-normalized float32 vectors.

        Returns:
            np.ndarray: Matrix of embeddings with shape (n_texts, embedding_dim)
        """
        if not texts:
            raise ValueError("Input text list cannot be empty")

        model, tokenizer = self.embedder
        vectors: List[np.ndarray] = []
        batch_size = self.cfg.embedding_batch

        for i in range(0, len(texts), batch_size):
            batch_texts = texts[i:i + batch_size]
            batch_dict = tokenizer(
                batch_texts,
                padding=True,
                truncation=True,
                max_length=self.cfg.embed_max_length,
                return_tensors="pt",
            ).to(model.device)

            with torch.inference_mode():
                outputs = model(**batch_dict)
                embeddings = last_token_pool(outputs.last_hidden_state, batch_dict["attention_mask"])
                embeddings = F.normalize(embeddings, p=2, dim=1)  # l2 norm
                vectors.append(embeddings.cpu().to(torch.float32).numpy())

        return np.vstack(vectors)

    def vector_from_text(self, text: str) -> Vectorization:
        terms = self.terms(text)
        if not terms:
            return Vectorization.mismatch(f"Text has no terms after normalization: {text[:80]!r}")
        return Vectorization.success(self.encode([" ".join(terms)])[0])
