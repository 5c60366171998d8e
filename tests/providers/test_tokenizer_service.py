import pytest

from civicrag.providers.tokenizer_service import TokenizerService, create_backend
from civicrag.shared.config import TokenizerConfig
from civicrag.shared.errors import ConfigurationError

from conftest import LocalBpeBackend


def test_tail_tokens_returns_last_tokens(word_tokenizer):
    tail = word_tokenizer.tail_tokens("one two three four", 2)

    assert word_tokenizer.backend.decode(tail) == "three four"
    assert len(word_tokenizer.tail_tokens("one two", 5)) == 2
    assert word_tokenizer.tail_tokens("one two", 0) == []


def test_join_after_tokens_keeps_the_exact_prefix():
    service = TokenizerService(LocalBpeBackend(["Setbacks", "apply", "district", "Pools"]))
    tail = service.tail_tokens("Setbacks apply district.", 2)

    # "." would merge with a bare paragraph break
    assert service.join_after_tokens(tail, ["\n\n"], "Pools") is None
    joined = service.join_after_tokens(tail, ["\n\n", " \n\n"], "Pools")

    assert joined == " district. \n\nPools"
    assert service.backend.encode(joined)[:2] == tail
    assert service.join_after_tokens([], ["\n\n"], "Pools") is None


def test_split_by_tokens_overlaps_and_drops_nothing(word_tokenizer):
    text = " ".join(f"w{i}" for i in range(20))

    pieces = word_tokenizer.split_by_tokens(text, max_tokens=8, overlap_tokens=2)

    assert [p.split() for p in pieces] == [
        [f"w{i}" for i in range(0, 8)],
        [f"w{i}" for i in range(6, 14)],
        [f"w{i}" for i in range(12, 20)],
    ]


def test_split_by_tokens_rejects_bad_windows(word_tokenizer):
    with pytest.raises(ValueError):
        word_tokenizer.split_by_tokens("a b c", max_tokens=0)
    with pytest.raises(ValueError):
        word_tokenizer.split_by_tokens("a b c", max_tokens=2, overlap_tokens=2)


def test_unknown_backend_rejected():
    with pytest.raises(ConfigurationError):
        create_backend(TokenizerConfig(backend="sentencepiece"))


def test_hf_backend_requires_model_id():
    with pytest.raises(ConfigurationError):
        create_backend(TokenizerConfig(backend="hf"))
