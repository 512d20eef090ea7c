"""Keyset pagination cursor.

Results are ordered by ``score DESC, id ASC``. The resume point of the next
page is the last row of the current one: its score and id. Passing both back
keeps every row whose (score, id) sorts strictly after that pair, so ties on
score are walked in id order and no row is skipped or repeated.
"""
from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from ..errors import ValidationError


class _Ranked(Protocol):
    entity_id: int
    score: int


def _check_int(name: str, value) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"Cursor {name} must be a non-negative integer")


@dataclass(frozen=True)
class Cursor:
    last_score: int | None = None
    last_id: int | None = None

    def __post_init__(self) -> None:
        _check_int("last_score", self.last_score)
        _check_int("last_id", self.last_id)

    @property
    def is_first_page(self) -> bool:
        return self.last_score is None and self.last_id is None

    def uses_score(self, ranked: bool) -> bool:
        """Whether the resume predicate compares scores or only ids."""
        return ranked and self.last_score is not None and self.last_id is not None

    def admits(self, score: int, entity_id: int, ranked: bool) -> bool:
        """Python rendition of the keyset predicate, for backends ranking outside SQL."""
        if self.uses_score(ranked):
            return score < self.last_score or (score == self.last_score and entity_id > self.last_id)
        if self.last_id is not None:
            return entity_id > self.last_id
        return True

    @classmethod
    def from_page(cls, page: Sequence[_Ranked]) -> Cursor | None:
        """Cursor for the page after ``page``; ``None`` when the page is empty."""
        if not page:
            return None
        last = page[-1]
        return cls(last_score=last.score, last_id=last.entity_id)

    def encode(self) -> str:
        raw = json.dumps([self.last_score, self.last_id], separators=(",", ":")).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str | None) -> Cursor:
        """Parse a token produced by ``encode``. Empty tokens mean the first page."""
        if not token:
            return cls()
        try:
            padded = token + "=" * (-len(token) % 4)
            last_score, last_id = json.loads(base64.urlsafe_b64decode(padded.encode()))
        except (binascii.Error, ValueError, TypeError) as e:
            raise ValidationError("Malformed cursor token") from e
        return cls(last_score=last_score, last_id=last_id)
