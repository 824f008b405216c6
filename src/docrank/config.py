"""
Configuration management module.

Provides all configuration parameters for document ranking experiments, with
support for environment variable overrides and parameter validation.
"""
import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, FrozenSet

import torch


logger = logging.getLogger(__name__)


# Penn Treebank nouns, verbs, adjectives and adverbs
DEFAULT_POS_TAGS: FrozenSet[str] = frozenset({
    "NN", "NNS", "NNP", "NNPS",
    "VB", "VBD", "VBG", "VBN", "VBP", "VBZ",
    "JJ", "JJR", "JJS",
    "RB", "RBR", "RBS",
})

MODEL_TYPES = ("tfidf", "transformer")
MISSING_LABEL_POLICIES = ("zero", "error", "unbounded")


@dataclass
class Config:
    """Configuration class for document ranking experiments.

    Attributes:
        allowed_pos_tags: POS tags permitted through the normalizer
        use_stemming: Emit stems instead of lemmas
        strip_sentinels: Drop NONE placeholders from normalized token sequences
        documents_dir: Folder-per-label document collection
        dataset_file: JSON evaluation set ([{"input": ..., "output": [...]}])
        ir_dataset_id: Optional IR Datasets corpus used instead of documents_dir/dataset_file
        max_docs: Maximum number of documents to read (for development/testing)
        use_body: Whether to use the document body content of IR Datasets corpora
        model_type: Vector model variant ("tfidf" or "transformer")
        embed_model: Embedding model name (Hugging Face model ID) for the transformer variant
        embed_model_kwargs: Advanced model kwargs for the embedding model (e.g., flash_attention_2)
        embed_tokenizer_kwargs: Advanced tokenizer kwargs for the embedding model (e.g., padding_side)
        embed_max_length: Maximum sequence length for the transformer tokenizer
        device: Computing device (cuda/cpu)
        embedding_batch: Embedding batch size
        engine_pool_size: Number of annotation engines kept in the pool
        missing_label_policy: How MRR treats a relevant label absent from the ranking
        top_k: Number of ranked documents shown for an ad-hoc query
        eval_measures: Additional ir_measures metrics computed on the ranking run
    """
    # Normalization
    allowed_pos_tags: FrozenSet[str] = DEFAULT_POS_TAGS
    use_stemming: bool = False
    strip_sentinels: bool = True

    # Data
    documents_dir: str = "./data/documents"
    dataset_file: str = "./data/dataset.json"
    ir_dataset_id: Optional[str] = None
    max_docs: Optional[int] = None
    use_body: bool = False

    # Model
    model_type: str = "tfidf"
    embed_model: str = "Qwen/Qwen3-Embedding-0.6B"
    embed_model_kwargs: Optional[Dict[str, Any]] = field(default_factory=lambda: {
        "attn_implementation": "flash_attention_2"
    })
    embed_tokenizer_kwargs: Optional[Dict[str, Any]] = field(default_factory=lambda: {
        "padding_side": "left"
    })
    embed_max_length: int = 512
    device: str = field(default_factory=lambda: "cuda" if torch.cuda.is_available() else "cpu")
    embedding_batch: int = 8

    # Resources
    engine_pool_size: int = 1

    # Evaluation
    missing_label_policy: str = "zero"
    top_k: int = 10
    eval_measures: List[str] = field(default_factory=lambda: ["RR", "nDCG@10", "P@10", "AP"])

    def __post_init__(self) -> None:
        """Post-initialization validation and processing."""
        self.allowed_pos_tags = frozenset(self.allowed_pos_tags)
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate the reasonableness of configuration parameters."""
        if not self.allowed_pos_tags:
            logger.warning("allowed_pos_tags is empty; every tagged token will be filtered out")

        if self.model_type not in MODEL_TYPES:
            raise ValueError(f"model_type must be one of {MODEL_TYPES}, but got: {self.model_type}")

        if self.missing_label_policy not in MISSING_LABEL_POLICIES:
            raise ValueError(
                f"missing_label_policy must be one of {MISSING_LABEL_POLICIES}, "
                f"but got: {self.missing_label_policy}"
            )

        if self.max_docs is not None and self.max_docs <= 0:
            raise ValueError(f"max_docs must be positive, but got: {self.max_docs}")

        if self.embedding_batch <= 0:
            raise ValueError(f"embedding_batch must be positive, but got: {self.embedding_batch}")

        if self.embed_max_length <= 0:
            raise ValueError(f"embed_max_length must be positive, but got: {self.embed_max_length}")

        if self.engine_pool_size <= 0:
            raise ValueError(f"engine_pool_size must be positive, but got: {self.engine_pool_size}")

        if self.top_k <= 0:
            raise ValueError(f"top_k must be positive, but got: {self.top_k}")

        if self.missing_label_policy == "unbounded":
            logger.warning("missing_label_policy=unbounded: absent relevant labels produce an infinite MRR")

        # Normalize/validate device keyword
        device_norm = str(self.device).strip().lower()

        if device_norm in ("cuda", "gpu"):
            if torch.cuda.is_available():
                self.device = "cuda"
            else:
                logger.warning("CUDA requested but not available; falling back to CPU")
                self.device = "cpu"

        elif device_norm == "cpu":
            self.device = "cpu"

        else:
            logger.warning(f"Unknown device '{self.device}', falling back to CPU")
            self.device = "cpu"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config: A config instance with environment variables loaded

        Raises:
            ValueError: When an environment variable value cannot be parsed
        """
        def get_env_int(key: str, default: str, allow_none: bool = False) -> Optional[int]:
            """Safely get an integer value from an environment variable."""
            value = os.getenv(key, default)
            if allow_none and (value is None or value.lower() in ('none', 'null', '')):
                return None
            try:
                return int(value)
            except ValueError as e:
                error_msg = f"Environment variable {key} must be an integer"
                if allow_none:
                    error_msg += " or None"
                error_msg += f", but got: {value}"
                raise ValueError(error_msg) from e

        def get_env_bool(key: str, default: str = "0") -> bool:
            """Safely get a boolean value from an environment variable."""
            value = os.getenv(key, default).lower()
            return value in ("1", "true", "yes", "on")

        def get_env_str_list(key: str, default: str) -> List[str]:
            """Get a comma-separated list of strings from an environment variable."""
            value = os.getenv(key, default)
            return [x.strip() for x in value.split(",") if x.strip()]

        logger.debug("Loading configuration from environment variables...")

        default_config = cls()

        config = cls(
            allowed_pos_tags=frozenset(get_env_str_list(
                "ALLOWED_POS_TAGS", ",".join(sorted(default_config.allowed_pos_tags))
            )),
            use_stemming=get_env_bool("USE_STEMMING", str(default_config.use_stemming).lower()),
            strip_sentinels=get_env_bool("STRIP_SENTINELS", str(default_config.strip_sentinels).lower()),
            documents_dir=os.getenv("DOCUMENTS_DIR", default_config.documents_dir),
            dataset_file=os.getenv("DATASET_FILE", default_config.dataset_file),
            ir_dataset_id=os.getenv("IR_DATASET_ID") or default_config.ir_dataset_id,
            max_docs=get_env_int(
                "MAX_DOCS",
                str(default_config.max_docs) if default_config.max_docs is not None else "None",
                allow_none=True,
            ),
            use_body=get_env_bool("USE_BODY", str(default_config.use_body).lower()),
            model_type=os.getenv("MODEL_TYPE", default_config.model_type),
            embed_model=os.getenv("EMBED_MODEL", default_config.embed_model),
            embed_model_kwargs=default_config.embed_model_kwargs,
            embed_tokenizer_kwargs=default_config.embed_tokenizer_kwargs,
            embed_max_length=get_env_int("EMBED_MAX_LENGTH", str(default_config.embed_max_length)),
            device=os.getenv("DEVICE", default_config.device),
            embedding_batch=get_env_int("EMBEDDING_BATCH", str(default_config.embedding_batch)),
            engine_pool_size=get_env_int("ENGINE_POOL_SIZE", str(default_config.engine_pool_size)),
            missing_label_policy=os.getenv("MISSING_LABEL_POLICY", default_config.missing_label_policy),
            top_k=get_env_int("TOP_K", str(default_config.top_k)),
            eval_measures=get_env_str_list("EVAL_MEASURES", ",".join(default_config.eval_measures)),
        )

        logger.debug("Configuration loaded from environment variables")
        return config

    def to_dict(self) -> dict:
        """Convert the configuration to a dictionary format."""
        return {
            "allowed_pos_tags": sorted(self.allowed_pos_tags),
            "use_stemming": self.use_stemming,
            "strip_sentinels": self.strip_sentinels,
            "documents_dir": self.documents_dir,
            "dataset_file": self.dataset_file,
            "ir_dataset_id": self.ir_dataset_id,
            "max_docs": self.max_docs,
            "use_body": self.use_body,
            "model_type": self.model_type,
            "embed_model": self.embed_model,
            "embed_model_kwargs": self.embed_model_kwargs,
            "embed_tokenizer_kwargs": self.embed_tokenizer_kwargs,
            "embed_max_length": self.embed_max_length,
            "device": self.device,
            "embedding_batch": self.embedding_batch,
            "engine_pool_size": self.engine_pool_size,
            "missing_label_policy": self.missing_label_policy,
            "top_k": self.top_k,
            "eval_measures": self.eval_measures,
        }
