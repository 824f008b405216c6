import threading
import time

import pytest

from src.docrank.annotate import AnnotatedToken, AnnotationEnginePool
from src.docrank.errors import AnnotationFailure
from src.docrank.normalize import NONE, TokenStream, common_preprocessor, lowercase_preprocessor

from .conftest import ScriptedEngine, WhitespaceEngine


ALLOWED = {"NN", "VB", "JJ"}


@pytest.fixture()
def five_tokens():
    return [[
        AnnotatedToken("Cats", lemma="cat", pos="NN"),
        AnnotatedToken("the", lemma="the", pos="DT"),
        AnnotatedToken("chase", lemma="chase", pos="VB"),
        AnnotatedToken("quickly", lemma="quickly", pos="RB"),
        AnnotatedToken("mice", lemma="mouse", pos="NN"),
    ]]


def test_disallowed_pos_become_sentinels(make_normalizer, five_tokens):
    normalizer = make_normalizer(lambda: ScriptedEngine(five_tokens), allowed_pos_tags=ALLOWED, strip_sentinels=False)

    tokens = normalizer.normalize("ignored")

    assert tokens == ["cat", NONE, "chase", NONE, "mouse"]


def test_strip_sentinels_removes_placeholders(make_normalizer, five_tokens):
    normalizer = make_normalizer(lambda: ScriptedEngine(five_tokens), allowed_pos_tags=ALLOWED, strip_sentinels=True)

    assert normalizer.normalize("ignored") == ["cat", "chase", "mouse"]
    assert len(normalizer.normalize("ignored", strip_sentinels=False)) == 5


def test_markup_tags_are_invalid_and_untagged_tokens_valid(make_normalizer):
    normalizer = make_normalizer(WhitespaceEngine, allowed_pos_tags=ALLOWED, strip_sentinels=False)

    assert normalizer.normalize("<DOC> Hello world </DOC>") == [NONE, "hello", "world", NONE]


def test_lowercase_markup_is_not_a_tag(make_normalizer):
    normalizer = make_normalizer(WhitespaceEngine, strip_sentinels=False)

    assert normalizer.normalize("<doc>") == ["<doc>"]


def test_emission_prefers_lemma_then_stem_then_text(make_normalizer):
    sentences = [[
        AnnotatedToken("running", lemma="run", stem="runn"),
        AnnotatedToken("studies", stem="studi"),
        AnnotatedToken("Paris"),
    ]]
    normalizer = make_normalizer(lambda: ScriptedEngine(sentences))

    assert normalizer.normalize("ignored") == ["run", "studi", "Paris"]


def test_stemming_config_prefers_stem_over_lemma(make_normalizer):
    sentences = [[
        AnnotatedToken("running", lemma="run", stem="runn"),
        AnnotatedToken("mice", lemma="mouse"),
    ]]
    normalizer = make_normalizer(lambda: ScriptedEngine(sentences), use_stemming=True)

    assert normalizer.normalize("ignored") == ["runn", "mouse"]


def test_tokens_from_all_sentences_keep_order(make_normalizer):
    normalizer = make_normalizer(WhitespaceEngine)

    assert normalizer.normalize("One two. Three. Four five") == ["one", "two", "three", "four", "five"]


def test_pre_processor_is_applied_on_read(make_normalizer):
    sentences = [[AnnotatedToken("Hello,", pos="NN"), AnnotatedToken("x", pos="DT"), AnnotatedToken("42nd")]]
    normalizer = make_normalizer(
        lambda: ScriptedEngine(sentences),
        pre_processor=common_preprocessor,
        allowed_pos_tags={"NN"},
        strip_sentinels=False,
    )

    stream = normalizer.stream("ignored")

    assert stream.raw == ["Hello,", NONE, "42nd"]
    assert stream.tokens() == ["hello", NONE, "nd"]


def test_token_stream_without_pre_processor():
    stream = TokenStream(["A", NONE, "B"], strip_sentinels=True)

    assert list(stream) == ["A", "B"]
    assert len(stream) == 3


def test_lowercase_preprocessor():
    assert lowercase_preprocessor("MiXeD") == "mixed"


def test_engine_failure_surfaces_as_annotation_failure(make_normalizer):
    class BrokenEngine(WhitespaceEngine):
        def _annotate(self, text):
            raise UnicodeError("bad input")

    normalizer = make_normalizer(BrokenEngine)

    with pytest.raises(AnnotationFailure):
        normalizer.normalize("anything")


def test_engine_refuses_to_process_without_reset():
    engine = WhitespaceEngine()
    engine.process("first")

    with pytest.raises(AnnotationFailure):
        engine.process("second")

    engine.reset()
    assert engine.process("second")[0][0].text == "second"


def test_pool_reuses_and_resets_engines():
    created = []

    def factory():
        engine = WhitespaceEngine()
        created.append(engine)
        return engine

    pool = AnnotationEnginePool(factory, size=1)

    with pool.checkout() as engine:
        assert engine.is_blank
        engine.process("one")
    with pool.checkout() as again:
        assert again is engine
        assert again.is_blank
        again.process("two")

    assert len(created) == 1
    assert engine.is_blank
    assert engine.calls == 2


def test_failed_engine_creation_does_not_use_up_the_pool():
    attempts = []

    def flaky_factory():
        attempts.append(1)
        if len(attempts) == 1:
            raise OSError("model files missing")
        return WhitespaceEngine()

    pool = AnnotationEnginePool(flaky_factory, size=1)

    with pytest.raises(OSError):
        with pool.checkout():
            pass

    checked_out = []

    def borrow():
        with pool.checkout() as engine:
            checked_out.append(engine)

    worker = threading.Thread(target=borrow, daemon=True)
    worker.start()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert len(checked_out) == 1
    assert len(attempts) == 2


def test_concurrent_checkouts_never_share_an_engine():
    created = []
    holders = {}
    holders_lock = threading.Lock()
    shared = []

    def factory():
        engine = WhitespaceEngine()
        created.append(engine)
        return engine

    pool = AnnotationEnginePool(factory, size=2)
    start = threading.Barrier(6)

    def worker(n):
        start.wait()
        for _ in range(20):
            with pool.checkout() as engine:
                with holders_lock:
                    if id(engine) in holders:
                        shared.append(engine)
                    holders[id(engine)] = n
                engine.process(f"text {n}")
                time.sleep(0.001)
                with holders_lock:
                    del holders[id(engine)]

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert not any(thread.is_alive() for thread in threads)
    assert shared == []
    assert len(created) <= 2
    assert sum(engine.calls for engine in created) == 6 * 20
    assert all(engine.is_blank for engine in created)


def test_pool_rejects_non_positive_size():
    with pytest.raises(ValueError):
        AnnotationEnginePool(WhitespaceEngine, size=0)


@pytest.mark.parametrize("use_stemming", [False, True])
def test_nltk_engine_produces_one_normal_form(use_stemming):
    from src.docrank.annotate import NltkAnnotationEngine

    engine = NltkAnnotationEngine(use_stemming=use_stemming)
    try:
        sentences = engine.process("The cats were running. Dogs bark.")
    except AnnotationFailure as e:
        if isinstance(e.__cause__, LookupError):
            pytest.skip("NLTK models are not installed")
        raise

    assert len(sentences) == 2
    cats = sentences[0][1]
    assert cats.text == "cats"
    assert cats.pos == "NNS"
    if use_stemming:
        assert cats.stem == "cat" and cats.lemma is None
    else:
        assert cats.lemma == "cat" and cats.stem is None
