"""
Document ranking and evaluation module.

This package provides:
- Text normalization (NLTK annotation, POS filtering, NONE sentinels)
- Vector models (TF-IDF bag-of-words, transformer embeddings)
- Document index snapshots rebuilt in full from a document source
- Similarity ranking with NaN handling
- Mean Reciprocal Rank and standard IR metrics (ir_measures)

Main components:
- Config: configuration management
- TextNormalizer: text -> normalized tokens
- TfidfModel / TransformerModel: text -> vectors
- DocumentIndex, rebuild_index: index snapshots
- rank, ranked_labels, Retriever: ranking
- evaluate, evaluate_runs: evaluation
"""

from .config import Config
from .errors import (
    DocRankError,
    VocabularyMismatch,
    AnnotationFailure,
    IndexingAnomaly,
    InvalidDataset,
    Vectorization,
)
from .annotate import AnnotatedToken, AnnotationEngine, AnnotationEnginePool, NltkAnnotationEngine, build_engine_pool
from .normalize import NONE, TextNormalizer, TokenStream, common_preprocessor, lowercase_preprocessor
from .models import VectorModel, TfidfModel, build_model, cosine_similarity
from .data import (
    LabelledDocument,
    DocumentSource,
    InMemoryDocumentSource,
    FolderDocumentSource,
    IrDatasetDocumentSource,
    DataSetItem,
    DataSet,
    load_dataset_file,
    dataset_from_queries,
)
from .index import DocumentIndex, rebuild_index
from .search import NAN_SCORE, RankedEntry, Retriever, rank, ranked_labels
from .evaluate import evaluate, evaluate_runs, item_score, reciprocal_rank

# Public API
__all__ = [
    # configuration
    "Config",

    # errors
    "DocRankError",
    "VocabularyMismatch",
    "AnnotationFailure",
    "IndexingAnomaly",
    "InvalidDataset",
    "Vectorization",

    # normalization
    "AnnotatedToken",
    "AnnotationEngine",
    "AnnotationEnginePool",
    "NltkAnnotationEngine",
    "build_engine_pool",
    "NONE",
    "TextNormalizer",
    "TokenStream",
    "common_preprocessor",
    "lowercase_preprocessor",

    # models
    "VectorModel",
    "TfidfModel",
    "build_model",
    "cosine_similarity",

    # data loading
    "LabelledDocument",
    "DocumentSource",
    "InMemoryDocumentSource",
    "FolderDocumentSource",
    "IrDatasetDocumentSource",
    "DataSetItem",
    "DataSet",
    "load_dataset_file",
    "dataset_from_queries",

    # index and ranking
    "DocumentIndex",
    "rebuild_index",
    "NAN_SCORE",
    "RankedEntry",
    "Retriever",
    "rank",
    "ranked_labels",

    # evaluation
    "evaluate",
    "evaluate_runs",
    "item_score",
    "reciprocal_rank",
]
