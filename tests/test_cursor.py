from __future__ import annotations

import pytest

from projectboard.errors import ValidationError
from projectboard.search import Cursor, SearchHit

pytestmark = pytest.mark.unit


def test_token_round_trip() -> None:
    cursor = Cursor(last_score=6, last_id=42)

    assert Cursor.decode(cursor.encode()) == cursor


@pytest.mark.parametrize("token", [None, ""])
def test_empty_token_is_first_page(token) -> None:
    assert Cursor.decode(token).is_first_page


@pytest.mark.parametrize("token", ["not-a-cursor", "e30", "WzEsMiwzXQ"])
def test_malformed_token_is_rejected(token) -> None:
    with pytest.raises(ValidationError):
        Cursor.decode(token)


@pytest.mark.parametrize(("last_score", "last_id"), [(-1, 1), (1, -5), (True, 1), ("2", 1)])
def test_cursor_fields_must_be_non_negative_ints(last_score, last_id) -> None:
    with pytest.raises(ValidationError):
        Cursor(last_score=last_score, last_id=last_id)


def test_cursor_comes_from_last_row_of_page() -> None:
    page = [SearchHit(entity_id=1, score=3), SearchHit(entity_id=2, score=2)]

    assert Cursor.from_page(page) == Cursor(last_score=2, last_id=2)
    assert Cursor.from_page([]) is None


def test_admits_matches_keyset_predicate() -> None:
    cursor = Cursor(last_score=2, last_id=5)

    assert cursor.admits(1, 1, ranked=True)
    assert cursor.admits(2, 6, ranked=True)
    assert not cursor.admits(2, 5, ranked=True)
    assert not cursor.admits(3, 9, ranked=True)
    # Unranked queries only compare ids
    assert cursor.admits(0, 6, ranked=False)
    assert not cursor.admits(0, 5, ranked=False)
