import pytest

from kanban_errors import GenerationExhausted
from shortlink import SHORT_LINK_LEN, generate_short_link, is_short_link


def test_generated_short_link_shape():
    code = generate_short_link(lambda _c: False)

    assert len(code) == SHORT_LINK_LEN
    assert is_short_link(code)
    assert code == code.lower()


def test_generation_skips_taken_tokens():
    taken = {"aaaaaaaa", "bbbbbbbb"}
    draws = iter(["aaaaaaaa", "bbbbbbbb", "cccccccc"])
    seen: list[str] = []

    def exists(code):
        seen.append(code)
        return code in taken

    code = generate_short_link(exists, draw=lambda _n: next(draws))

    assert code == "cccccccc"
    assert seen == ["aaaaaaaa", "bbbbbbbb", "cccccccc"]
    assert not exists(code)


def test_generation_is_bounded():
    calls = {"n": 0}

    def exists(_code):
        calls["n"] += 1
        return True

    with pytest.raises(GenerationExhausted):
        generate_short_link(exists, max_attempts=7)

    assert calls["n"] == 7


@pytest.mark.parametrize("value", ["ABCDEFGH", "abc", "abcdefg!", None, 12345678])
def test_is_short_link_rejects_bad_values(value):
    assert not is_short_link(value)
