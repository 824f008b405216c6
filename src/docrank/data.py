"""
Data loading module.

Provides resettable document sources (in-memory, folder-per-label and
IR-Datasets corpora) and the query/answer datasets used for evaluation.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import ir_datasets

from .config import Config
from .errors import InvalidDataset


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelledDocument:
    label: str
    content: str


class DocumentSource(ABC):
    """Resettable, repeatable iterator over labelled documents.

    Iterating with `for` always starts from the beginning; `has_next()` and
    `next_document()` walk an explicit cursor that `reset()` rewinds.
    """

    def __init__(self) -> None:
        self._cursor: Optional[Iterator[LabelledDocument]] = None
        self._pending: Optional[LabelledDocument] = None

    @abstractmethod
    def _documents(self) -> Iterator[LabelledDocument]:
        """Yield every document from the start of the source."""

    def reset(self) -> None:
        self._cursor = self._documents()
        self._pending = None

    def has_next(self) -> bool:
        if self._cursor is None:
            self.reset()
        if self._pending is None:
            self._pending = next(self._cursor, None)
        return self._pending is not None

    def next_document(self) -> LabelledDocument:
        if not self.has_next():
            raise StopIteration
        document, self._pending = self._pending, None
        return document

    def __iter__(self) -> Iterator[LabelledDocument]:
        self.reset()
        while self.has_next():
            yield self.next_document()


class InMemoryDocumentSource(DocumentSource):
    """Documents from a sequence of (label, content) pairs."""

    def __init__(self, documents: Iterable[Tuple[str, str]]) -> None:
        super().__init__()
        self.documents = [LabelledDocument(label, content) for label, content in documents]

    def _documents(self) -> Iterator[LabelledDocument]:
        return iter(self.documents)


class FolderDocumentSource(DocumentSource):
    """Documents stored as files, labelled by their parent folder name.

    `root/<label>/<any file>`; files are visited in sorted path order, so
    several files under one folder share a label and the last one wins when
    indexed.
    """

    def __init__(self, root: Union[str, Path], encoding: str = "utf-8") -> None:
        super().__init__()
        self.root = Path(root)
        self.encoding = encoding
        if not self.root.is_dir():
            raise FileNotFoundError(f"Document folder does not exist: {self.root}")

    def _documents(self) -> Iterator[LabelledDocument]:
        for path in sorted(p for p in self.root.rglob("*") if p.is_file()):
            if path.parent == self.root:
                logger.debug(f"Skipping unlabelled file at the root: {path}")
                continue
            try:
                content = path.read_text(encoding=self.encoding)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable document {path}: {e}")
                continue
            yield LabelledDocument(path.parent.name, content)


class IrDatasetDocumentSource(DocumentSource):
    """Documents of an IR-Datasets corpus, labelled by doc_id."""

    def __init__(self, ds: Any, cfg: Config) -> None:  # ds: ir_datasets.Dataset
        super().__init__()
        self.ds = ds
        self.max_docs = cfg.max_docs
        self.use_body = cfg.use_body

    def _documents(self) -> Iterator[LabelledDocument]:
        doc_count = 0
        empty_count = 0

        for d in self.ds.docs_iter():
            if self.max_docs and doc_count >= self.max_docs:
                logger.debug(f"Reached max docs limit: {self.max_docs}")
                break

            parts = []
            if getattr(d, "title", None):
                parts.append(d.title.strip())
            if getattr(d, "abstract", None):
                parts.append(d.abstract.strip())
            if getattr(d, "text", None):
                parts.append(d.text.strip())
            if self.use_body and getattr(d, "body", None):
                parts.append(d.body.strip())

            text = "\n\n".join(parts)

            if text.strip():
                yield LabelledDocument(d.doc_id, text)
                doc_count += 1
            else:
                empty_count += 1
                logger.debug(f"Empty document: {d.doc_id}")

        if empty_count > 0:
            logger.warning(f"Skipped {empty_count} empty documents")


@dataclass(frozen=True)
class DataSetItem:
    """One evaluation case.

    Attributes:
        input: Query text
        relevant_labels: Correct answer labels; duplicates weight a label more
    """
    input: str
    relevant_labels: Tuple[str, ...]


@dataclass(frozen=True)
class DataSet:
    items: Tuple[DataSetItem, ...]

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Sequence[str]]]) -> "DataSet":
        return cls(tuple(DataSetItem(text, tuple(labels)) for text, labels in pairs))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[DataSetItem]:
        return iter(self.items)


def load_dataset_file(path: Union[str, Path]) -> DataSet:
    """Load an evaluation set from JSON.

    The file holds a list of objects with an "input" string and an "output"
    list of relevant labels.

    Args:
        path: Path to the JSON file

    Returns:
        DataSet: The loaded dataset

    Raises:
        FileNotFoundError: When the file does not exist
        InvalidDataset: When the content does not have the expected shape
    """
    path = Path(path)
    logger.debug(f"Loading dataset file: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise InvalidDataset(f"Dataset file must contain a JSON list: {path}")

    items: List[DataSetItem] = []
    for position, entry in enumerate(raw):
        try:
            text = entry["input"]
            labels = entry["output"]
        except (KeyError, TypeError) as e:
            raise InvalidDataset(f"Dataset entry {position} needs 'input' and 'output': {entry!r}") from e
        if isinstance(labels, str):
            labels = [labels]
        items.append(DataSetItem(str(text), tuple(str(label) for label in labels)))

    logger.debug(f"Loaded {len(items)} dataset items")
    return DataSet(tuple(items))


def load_ir_dataset(cfg: Config) -> Any:  # ir_datasets.Dataset
    """Load an IR-Datasets dataset.

    Raises:
        ValueError: When the dataset ID is missing or invalid
    """
    if not cfg.ir_dataset_id:
        raise ValueError("ir_dataset_id is not configured")
    try:
        logger.debug(f"Loading dataset: {cfg.ir_dataset_id}")
        return ir_datasets.load(cfg.ir_dataset_id)
    except Exception as e:
        logger.error(f"Failed to load dataset {cfg.ir_dataset_id}: {e}")
        raise ValueError(f"Invalid dataset ID: {cfg.ir_dataset_id}") from e


def load_queries(ds: Any) -> List[Tuple[str, str]]:  # ds: ir_datasets.Dataset
    """Load (query_id, query_text) pairs, skipping empty queries."""
    queries: List[Tuple[str, str]] = []

    logger.debug("Loading queries...")
    for q in ds.queries_iter():
        qtext = getattr(q, "text", None) or getattr(q, "summary", None) or getattr(q, "description", None) or ""
        if qtext.strip():
            queries.append((q.query_id, qtext))
        else:
            logger.warning(f"Empty query: {q.query_id}")

    logger.debug(f"Loaded {len(queries)} queries")
    return queries


def load_qrels(ds: Any) -> List[Any]:  # List[ir_datasets.Qrel]
    logger.debug("Loading relevance judgments...")
    qrels = list(ds.qrels_iter())
    logger.debug(f"Loaded {len(qrels)} relevance judgments")
    return qrels


def dataset_from_queries(
    queries: Sequence[Tuple[str, str]],
    qrels: Iterable[Any],
) -> Tuple[DataSet, List[str]]:
    """Build a dataset from queries and relevance judgments.

    Documents judged with relevance > 0 are the relevant labels; queries
    without any are left out.

    Returns:
        Tuple[DataSet, List[str]]: The dataset and the query IDs of its items, in order
    """
    relevant: Dict[str, List[str]] = {}
    for qrel in qrels:
        if qrel.relevance > 0:
            relevant.setdefault(qrel.query_id, []).append(qrel.doc_id)

    items: List[DataSetItem] = []
    query_ids: List[str] = []
    for qid, qtext in queries:
        labels = relevant.get(qid)
        if not labels:
            logger.debug(f"Query {qid} has no relevant documents, skipping")
            continue
        items.append(DataSetItem(qtext, tuple(labels)))
        query_ids.append(qid)

    skipped = len(queries) - len(items)
    if skipped:
        logger.warning(f"Skipped {skipped} queries without relevant documents")
    return DataSet(tuple(items)), query_ids
