"""
Retrieval functions module.

Exposed functions:
- rank: Score every indexed document against a query and sort by similarity
- ranked_labels: Label-only projection of `rank`

`Retriever` owns the current index snapshot of a document collection and
replaces it wholesale on rebuild.
"""
import logging
import math
import threading
from dataclasses import dataclass
from typing import List, Optional

from .data import DocumentSource
from .index import DocumentIndex, rebuild_index
from .models import VectorModel


logger = logging.getLogger(__name__)


# Score given to documents whose similarity is undefined (zero-magnitude vectors)
NAN_SCORE = -0.1


@dataclass(frozen=True)
class RankedEntry:
    label: str
    score: float


def rank(query: str, index: DocumentIndex, model: VectorModel) -> List[RankedEntry]:
    """Rank every document of `index` by similarity to `query`.

    NaN similarities are replaced by NAN_SCORE so the result is totally
    ordered. Equal scores keep the index's iteration order.

    Args:
        query: The query text
        index: Snapshot to rank
        model: Vector model the index was built with

    Returns:
        List[RankedEntry]: Entries sorted by score descending

    Raises:
        VocabularyMismatch: When the query cannot be vectorized
    """
    query_vector = model.vector_from_text(query).unwrap()

    entries: List[RankedEntry] = []
    for label, vector in index.vectors.items():
        score = model.similarity(vector, query_vector)
        if math.isnan(score):
            score = NAN_SCORE
        entries.append(RankedEntry(label, float(score)))

    entries.sort(key=lambda entry: entry.score, reverse=True)
    logger.debug(f"Ranked {len(entries)} documents")
    return entries


def ranked_labels(query: str, index: DocumentIndex, model: VectorModel) -> List[str]:
    return [entry.label for entry in rank(query, index, model)]


class Retriever:
    """Ranks queries against the latest index of a document source.

    Readers take the current snapshot reference once per call, so a rebuild
    running concurrently is never observed half-done.

    Attributes:
        source: Document source the index is built from
        model: Fitted vector model
    """

    def __init__(self, source: DocumentSource, model: VectorModel) -> None:
        self.source = source
        self.model = model
        self._snapshot = DocumentIndex()
        self._rebuild_lock = threading.Lock()

    @property
    def snapshot(self) -> DocumentIndex:
        return self._snapshot

    def rebuild(self, show_progress: bool = False) -> DocumentIndex:
        """Rebuild the index from the source and swap it in.

        Returns:
            DocumentIndex: The new snapshot
        """
        with self._rebuild_lock:
            snapshot = rebuild_index(self.source, self.model, show_progress=show_progress)
            self._snapshot = snapshot
        logger.info(f"Index ready: {len(snapshot)} ranked documents, {len(snapshot.contents)} with content")
        return snapshot

    def rank(self, query: str) -> List[RankedEntry]:
        return rank(query, self._snapshot, self.model)

    def ranked_labels(self, query: str) -> List[str]:
        return ranked_labels(query, self._snapshot, self.model)

    def get_document_content(self, label: str) -> Optional[str]:
        return self._snapshot.content_for(label)
