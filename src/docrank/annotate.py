"""
Linguistic annotation module.

Wraps the NLTK pipeline (sentence splitting, tokenization, Penn Treebank POS
tagging, WordNet lemmatization or Porter stemming) behind a small engine
interface, and provides a pool that hands out engines one caller at a time.
"""
import logging
import queue
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

import nltk
from nltk.stem import PorterStemmer, WordNetLemmatizer

from .errors import AnnotationFailure


logger = logging.getLogger(__name__)


# (resource path, download package)
NLTK_RESOURCES = (
    ("tokenizers/punkt", "punkt"),
    ("tokenizers/punkt_tab", "punkt_tab"),
    ("taggers/averaged_perceptron_tagger", "averaged_perceptron_tagger"),
    ("taggers/averaged_perceptron_tagger_eng", "averaged_perceptron_tagger_eng"),
    ("corpora/wordnet", "wordnet"),
)

# Penn Treebank tag prefix -> WordNet POS
_WORDNET_POS = {"J": "a", "V": "v", "N": "n", "R": "r"}


@dataclass(frozen=True)
class AnnotatedToken:
    """A single token produced by an annotation engine.

    Attributes:
        text: Surface form as it appears in the input
        lemma: Dictionary form, if the engine produces lemmas
        stem: Stemmed form, if the engine produces stems
        pos: Part-of-speech tag, if the engine tags
    """
    text: str
    lemma: Optional[str] = None
    stem: Optional[str] = None
    pos: Optional[str] = None


Sentence = List[AnnotatedToken]


class AnnotationEngine(ABC):
    """Stateful linguistic pipeline.

    An engine holds the document it last processed; callers must `reset()` it
    before every `process()` call.
    """

    def __init__(self) -> None:
        self._document: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return self._document is None

    def reset(self) -> None:
        self._document = None

    def process(self, text: str) -> List[Sentence]:
        """Annotate `text` and return its sentences.

        Raises:
            AnnotationFailure: When the engine is not blank or the pipeline fails
        """
        if not self.is_blank:
            raise AnnotationFailure("Annotation engine must be reset before processing new text")
        self._document = text
        try:
            return self._annotate(text)
        except AnnotationFailure:
            raise
        except Exception as e:
            raise AnnotationFailure(f"Failed to annotate text: {e}") from e

    @abstractmethod
    def _annotate(self, text: str) -> List[Sentence]:
        """Run the underlying pipeline."""


def ensure_nltk_resources(download: bool = True) -> None:
    """Make sure the NLTK models used by `NltkAnnotationEngine` are present.

    Newer NLTK releases renamed some resources (punkt_tab, *_eng); missing
    ones are downloaded quietly and download failures only warn, so whichever
    name the installed version needs ends up available.
    """
    for path, package in NLTK_RESOURCES:
        try:
            nltk.data.find(path)
        except LookupError:
            if not download:
                raise
            logger.info(f"Downloading NLTK resource: {package}")
            if not nltk.download(package, quiet=True):
                logger.warning(f"NLTK resource could not be downloaded: {package}")


class NltkAnnotationEngine(AnnotationEngine):
    """Annotation engine backed by NLTK.

    Produces stems when `use_stemming` is set and lemmas otherwise, never both.
    """

    def __init__(self, use_stemming: bool = False) -> None:
        super().__init__()
        self.use_stemming = use_stemming
        self._stemmer = PorterStemmer() if use_stemming else None
        self._lemmatizer = None if use_stemming else WordNetLemmatizer()

    def _annotate(self, text: str) -> List[Sentence]:
        sentences: List[Sentence] = []
        for raw_sentence in nltk.sent_tokenize(text):
            words = nltk.word_tokenize(raw_sentence)
            sentences.append([self._token(word, pos) for word, pos in nltk.pos_tag(words)])
        return sentences

    def _token(self, word: str, pos: str) -> AnnotatedToken:
        if self._stemmer is not None:
            return AnnotatedToken(text=word, stem=self._stemmer.stem(word), pos=pos)
        wordnet_pos = _WORDNET_POS.get(pos[:1], "n")
        return AnnotatedToken(text=word, lemma=self._lemmatizer.lemmatize(word.lower(), wordnet_pos), pos=pos)


class AnnotationEnginePool:
    """Fixed-size pool of annotation engines.

    Engines are created lazily up to `size`; `checkout()` blocks while all of
    them are in use.
    """

    def __init__(self, factory: Callable[[], AnnotationEngine], size: int = 1) -> None:
        if size <= 0:
            raise ValueError(f"Pool size must be positive, but got: {size}")
        self._factory = factory
        self._size = size
        self._created = 0
        self._idle: "queue.LifoQueue[AnnotationEngine]" = queue.LifoQueue()
        self._create_lock = threading.Lock()

    @property
    def size(self) -> int:
        return self._size

    def _acquire(self) -> AnnotationEngine:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._create_lock:
            if self._created < self._size:
                engine = self._factory()
                self._created += 1
                logger.debug(f"Created annotation engine {self._created}/{self._size}")
                return engine

        return self._idle.get()

    @contextmanager
    def checkout(self) -> Iterator[AnnotationEngine]:
        """Borrow a blank engine for the duration of the `with` block."""
        engine = self._acquire()
        engine.reset()
        try:
            yield engine
        finally:
            engine.reset()
            self._idle.put(engine)


def build_engine_pool(use_stemming: bool = False, size: int = 1) -> AnnotationEnginePool:
    """Create a pool of NLTK engines, fetching NLTK resources first if needed."""
    ensure_nltk_resources()
    return AnnotationEnginePool(lambda: NltkAnnotationEngine(use_stemming=use_stemming), size=size)
