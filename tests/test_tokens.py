import asyncio

import pytest

from patchbay import tokens
from patchbay.tokens import clamp_multiplier, estimate_tokens, estimate_tokens_sync


def run(coro):
    return asyncio.run(coro)


def test_empty_input_is_zero():
    assert run(estimate_tokens("")) == 0


def test_empty_input_ignores_aux_files(tmp_path):
    aux = tmp_path / "extra.txt"
    aux.write_text("one two three")
    assert run(estimate_tokens("", [str(aux)])) == 0


@pytest.mark.parametrize("text", ["   ", "\n", " \n\t "])
def test_whitespace_only_input_counts_as_one(text):
    assert run(estimate_tokens(text)) == 1
    assert estimate_tokens_sync(text) == 1


def test_word_count_times_multiplier():
    # 2 words * 1.1 -> 3
    assert run(estimate_tokens("hello world")) == 3


def test_punctuation_adds_a_little():
    # 2 words -> 3, 2 punctuation chars * 0.1 * 1.1 -> 1
    assert run(estimate_tokens("a, b.")) == 4


@pytest.mark.parametrize("given, expected", [(5.0, 2.0), (0.5, 1.0), (1.5, 1.5), (None, 1.1)])
def test_multiplier_is_clamped(given, expected):
    assert clamp_multiplier(given) == expected


def test_clamped_multiplier_is_used():
    assert run(estimate_tokens("hello world", multiplier=5)) == 4
    assert run(estimate_tokens("hello world", multiplier=0.5)) == 2


def test_aux_files_are_added(tmp_path):
    aux = tmp_path / "extra.txt"
    aux.write_text("one two three")
    # 3 + ceil(3 * 1.1)
    assert run(estimate_tokens("hello world", [str(aux)])) == 7


def test_unreadable_aux_files_are_skipped(tmp_path):
    missing = tmp_path / "nope.txt"
    assert run(estimate_tokens("hello world", [str(missing)])) == 3


def test_falls_back_to_character_count(monkeypatch):
    def boom(text, multiplier):
        raise RuntimeError("tokenizer exploded")

    monkeypatch.setattr(tokens, "_word_estimate", boom)
    # ceil(11 / 4 * 1.1)
    assert run(estimate_tokens("hello world")) == 4


def test_never_negative_and_nonzero_for_text():
    for text in ["x", "!!!", "a" * 500, "été"]:
        assert run(estimate_tokens(text)) >= 1


def test_sync_wrapper():
    assert estimate_tokens_sync("hello world") == 3


def test_sync_wrapper_inside_running_loop(tmp_path):
    aux = tmp_path / "extra.txt"
    aux.write_text("one two three")

    async def host():
        return estimate_tokens_sync("hello world", [str(aux), str(tmp_path / "nope.txt")])

    assert run(host()) == 7


def test_sync_wrapper_inside_running_loop_handles_empty_text():
    async def host():
        return estimate_tokens_sync("")

    assert run(host()) == 0
