from typing import NamedTuple

import pytest

from mcpserve.pagination import decode_cursor, encode_cursor, paginate


class Item(NamedTuple):
    name: str


ITEMS = [Item(n) for n in ("a", "b", "c", "d", "e")]


def test_encode_cursor_known_value():
    assert encode_cursor("tool654") == "dG9vbDY1NA=="
    assert decode_cursor("dG9vbDY1NA==") == "tool654"


def test_cursor_round_trip():
    assert decode_cursor(encode_cursor("My Resource")) == "My Resource"


@pytest.mark.parametrize("bad", ["not-base64!", "abc", "dG9vbDY1NA"])
def test_decode_invalid_cursor(bad):
    with pytest.raises(ValueError):
        decode_cursor(bad)


def test_cursor_past_only_item_returns_empty_page():
    items = [Item("My Resource")]
    page, next_cursor = paginate(items, encode_cursor("My Resource"), 2)
    assert page == []
    assert next_cursor == ""


def test_no_limit_returns_everything():
    page, next_cursor = paginate(ITEMS, "", None)
    assert page == ITEMS
    assert next_cursor == ""


def test_walk_pages_with_limit():
    page, cursor = paginate(ITEMS, None, 2)
    assert [i.name for i in page] == ["a", "b"]
    assert cursor == encode_cursor("b")
    page, cursor = paginate(ITEMS, cursor, 2)
    assert [i.name for i in page] == ["c", "d"]
    assert cursor == encode_cursor("d")
    page, cursor = paginate(ITEMS, cursor, 2)
    assert [i.name for i in page] == ["e"]
    assert cursor == ""


def test_full_last_page_still_yields_cursor():
    items = [Item("a"), Item("b")]
    page, cursor = paginate(items, None, 2)
    assert [i.name for i in page] == ["a", "b"]
    assert cursor == encode_cursor("b")
    page, cursor = paginate(items, cursor, 2)
    assert page == []
    assert cursor == ""


def test_cursor_between_names_starts_after_it():
    page, _ = paginate(ITEMS, encode_cursor("bb"), None)
    assert [i.name for i in page] == ["c", "d", "e"]


def test_invalid_cursor_propagates():
    with pytest.raises(ValueError):
        paginate(ITEMS, "%%%", 2)