"""
Document index module.

Responsibilities:
- Hold an immutable snapshot of label -> vector and label -> content
- Rebuild a snapshot in full from a document source and a vector model,
  skipping documents that cannot be vectorized
"""
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

import numpy as np
from tqdm import tqdm

from .data import DocumentSource
from .errors import IndexingAnomaly
from .models import VectorModel


logger = logging.getLogger(__name__)


def _frozen(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class DocumentIndex:
    """Immutable snapshot of an indexed document collection.

    Every label in `vectors` is also in `contents`; documents that could not
    be vectorized keep their content for display but are never ranked.

    Attributes:
        vectors: Read-only mapping from label to document vector
        contents: Read-only mapping from label to original content
    """
    vectors: Mapping[str, np.ndarray] = field(default_factory=dict)
    contents: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        missing = set(self.vectors) - set(self.contents)
        if missing:
            raise ValueError(f"Vectors without content: {sorted(missing)[:5]}")
        object.__setattr__(self, "vectors", _frozen(self.vectors))
        object.__setattr__(self, "contents", _frozen(self.contents))

    def __len__(self) -> int:
        return len(self.vectors)

    @property
    def labels(self) -> List[str]:
        return list(self.vectors)

    def content_for(self, label: str) -> Optional[str]:
        return self.contents.get(label)


def _checked_vector(label: str, vector: np.ndarray, vectors: Mapping[str, np.ndarray]) -> np.ndarray:
    vector = np.asarray(vector)
    if vector.ndim != 1:
        raise IndexingAnomaly(f"Vector for {label!r} must be 1-D, but got shape {vector.shape}")
    if vectors:
        dimension = next(iter(vectors.values())).shape[0]
        if vector.shape[0] != dimension:
            raise IndexingAnomaly(f"Vector for {label!r} has dimension {vector.shape[0]}, expected {dimension}")
    if not np.all(np.isfinite(vector)):
        raise IndexingAnomaly(f"Vector for {label!r} contains non-finite values")
    return vector


def rebuild_index(source: DocumentSource, model: VectorModel, show_progress: bool = False) -> DocumentIndex:
    """Build a fresh index from every document in `source`.

    Per-document failures are logged and the document is skipped; the rebuild
    itself never aborts because of a single document. A skipped document is
    never ranked, but its content stays available through `content_for`, so
    the content map may hold labels without a vector. Duplicate labels are
    resolved last-write-wins, and a later duplicate that cannot be vectorized
    also drops the earlier vector.

    Args:
        source: Resettable document source; it is reset before reading
        model: Fitted vector model
        show_progress: Whether to display a tqdm progress bar

    Returns:
        DocumentIndex: The new snapshot
    """
    vectors: Dict[str, np.ndarray] = {}
    contents: Dict[str, str] = {}
    skipped = 0

    for document in tqdm(source, desc="Indexing documents", unit="doc", disable=not show_progress):
        label = document.label
        if label is None:
            logger.warning("Document without label will be ignored")
            skipped += 1
            continue

        if label in contents:
            logger.debug(f"Duplicate label {label!r}: later document replaces the earlier one")
        contents[label] = document.content
        vectors.pop(label, None)

        try:
            result = model.vector_from_text(document.content)
            if not result.ok:
                logger.warning(f"Document {label!r} has no matches in model vocabulary. It will be ignored.")
                skipped += 1
                continue
            vectors[label] = _checked_vector(label, result.vector, vectors)
        except Exception as e:
            logger.warning(f"Document {label!r} could not be indexed. It will be ignored: {e}")
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} documents while rebuilding the index")
    logger.debug(f"Index rebuilt: {len(vectors)} vectors, {len(contents)} documents")
    return DocumentIndex(vectors=vectors, contents=contents)
