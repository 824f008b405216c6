"""
Text normalization module.

Turns raw text into a sequence of normalized tokens: each annotated token is
replaced by its lemma, stem or surface form, and tokens that fail the
POS/markup filter become the NONE sentinel so positions stay aligned with the
source text until sentinels are explicitly stripped.
"""
import logging
import re
import string
from typing import Callable, List, Optional

from .annotate import AnnotatedToken, AnnotationEnginePool
from .config import Config


logger = logging.getLogger(__name__)


NONE = "NONE"

# <TAG> or </TAG>
_MARKUP_TAG = re.compile(r"</?[A-Z]+>")

_PUNCTUATION_AND_DIGITS = str.maketrans("", "", string.punctuation + string.digits)

PreProcessor = Callable[[str], str]


def lowercase_preprocessor(token: str) -> str:
    return token.lower()


def common_preprocessor(token: str) -> str:
    """Lowercase and remove punctuation and digits."""
    return token.translate(_PUNCTUATION_AND_DIGITS).lower()


class TokenStream:
    """Normalized tokens of one text, in source order.

    Raw forms (sentinels included) are stored; sentinel stripping and the
    pre-processor are applied when the tokens are read.

    Attributes:
        raw: Emitted tokens before pre-processing
        strip_sentinels: Whether `tokens()` omits NONE entries
        pre_processor: Optional function applied to each non-sentinel token on read
    """

    def __init__(
        self,
        raw: List[str],
        strip_sentinels: bool = False,
        pre_processor: Optional[PreProcessor] = None,
    ) -> None:
        self.raw = list(raw)
        self.strip_sentinels = strip_sentinels
        self.pre_processor = pre_processor

    def __len__(self) -> int:
        return len(self.raw)

    def __iter__(self):
        return iter(self.tokens())

    def tokens(self) -> List[str]:
        result: List[str] = []
        for token in self.raw:
            if token == NONE:
                if not self.strip_sentinels:
                    result.append(token)
                continue
            result.append(self.pre_processor(token) if self.pre_processor else token)
        return result


class TextNormalizer:
    """Converts text into filtered, normalized tokens.

    Args:
        cfg: Config providing allowed_pos_tags, use_stemming and strip_sentinels
        pool: Pool of annotation engines; one engine is checked out per call
        pre_processor: Optional token pre-processor applied on read
    """

    def __init__(
        self,
        cfg: Config,
        pool: AnnotationEnginePool,
        pre_processor: Optional[PreProcessor] = None,
    ) -> None:
        self.allowed_pos_tags = frozenset(cfg.allowed_pos_tags)
        self.use_stemming = cfg.use_stemming
        self.strip_sentinels = cfg.strip_sentinels
        self.pool = pool
        self.pre_processor = pre_processor

    def is_valid(self, token: AnnotatedToken) -> bool:
        """Markup tags and tokens tagged outside the allow-set are invalid.

        Untagged tokens are always valid.
        """
        if _MARKUP_TAG.fullmatch(token.text):
            return False
        if token.pos is not None and token.pos not in self.allowed_pos_tags:
            return False
        return True

    def _emit(self, token: AnnotatedToken) -> str:
        if not self.is_valid(token):
            return NONE
        if self.use_stemming and token.stem is not None:
            return token.stem
        if token.lemma is not None:
            return token.lemma
        if token.stem is not None:
            return token.stem
        return token.text

    def stream(self, text: str, strip_sentinels: Optional[bool] = None) -> TokenStream:
        """Annotate `text` and return its token stream.

        Args:
            text: Raw input text
            strip_sentinels: Overrides the configured setting when not None

        Returns:
            TokenStream: The emitted tokens

        Raises:
            AnnotationFailure: When the annotation engine cannot process the text
        """
        with self.pool.checkout() as engine:
            sentences = engine.process(text)

        raw = [self._emit(token) for sentence in sentences for token in sentence]
        return TokenStream(
            raw,
            strip_sentinels=self.strip_sentinels if strip_sentinels is None else strip_sentinels,
            pre_processor=self.pre_processor,
        )

    def normalize(self, text: str, strip_sentinels: Optional[bool] = None) -> List[str]:
        return self.stream(text, strip_sentinels=strip_sentinels).tokens()
