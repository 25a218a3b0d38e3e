import pytest

from page_meta import compute_page_meta, page_options


@pytest.mark.parametrize(
    "item_count,page,limit,page_count,has_prev,has_next",
    [
        (0, 1, 10, 0, False, False),
        (10, 1, 10, 1, False, False),
        (11, 1, 10, 2, False, True),
        (11, 2, 10, 2, True, False),
        (25, 3, 5, 5, True, True),
        (3, 4, 10, 1, True, False),
    ],
)
def test_compute_page_meta_derivations(item_count, page, limit, page_count, has_prev, has_next):
    meta = compute_page_meta(item_count, page, limit)

    assert meta.page_count == page_count
    assert meta.has_previous_page is has_prev
    assert meta.has_next_page is has_next
    assert meta.item_count == item_count


def test_page_meta_json_uses_snake_case_keys():
    assert compute_page_meta(11, 1, 10).to_json() == {
        "page": 1,
        "limit": 10,
        "item_count": 11,
        "page_count": 2,
        "has_previous_page": False,
        "has_next_page": True,
    }


def test_page_options_defaults(settings):
    options = page_options(None, None, settings)

    assert (options.page, options.limit, options.offset) == (1, 10, 0)


def test_page_options_parses_strings_and_computes_offset(settings):
    options = page_options("3", "20", settings)

    assert (options.page, options.limit, options.offset) == (3, 20, 40)


def test_page_options_caps_limit(settings):
    assert page_options(1, 500, settings).limit == settings.max_page_limit


@pytest.mark.parametrize("raw", ["0", "-2", "abc", "", True])
def test_page_options_rejects_non_positive_values(settings, raw):
    options = page_options(raw, raw, settings)

    assert options.page == 1
    assert options.limit == settings.default_page_limit
