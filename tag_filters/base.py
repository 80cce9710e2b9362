"""Base classes and shared errors for tag filtering."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

STANDARD = "standard"
SQLITE = "sqlite"
DIALECTS = (STANDARD, SQLITE)


class TagFilterError(Exception):
    """Base class for tag filter errors raised at the API boundary."""


class ExpressionError(TagFilterError):
    """A wire-form expression could not be converted into a tree."""


class TagStore(ABC):
    """Narrow read interface onto the persistence layer.

    Both methods take SQL with ``?`` placeholders and a parameter sequence
    whose order matches the placeholders left to right.
    """

    # How compound-select operands are grouped when compiling for this store
    dialect: str = STANDARD

    @abstractmethod
    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Any | None:
        """Return the first row of the result, or None."""
        pass

    @abstractmethod
    def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[Any]:
        """Return every row of the result."""
        pass
