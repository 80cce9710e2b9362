"""Run compiled tag filters against the session catalog."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .base import TagStore
from .compiler import build_tag_filter_query
from .expression import FilterExpression

logger = logging.getLogger("session-tags.filters")


class FilterExecutor:
    """Executes tag filters through an explicitly passed store."""

    def __init__(self, store: TagStore):
        self.store = store

    def build_query(self, expression: FilterExpression | Mapping[str, Any]) -> tuple[str, list]:
        """Return the full session-id statement and its parameters."""
        result = build_tag_filter_query(expression, dialect=self.store.dialect)
        return f"SELECT s.id FROM sessions s {result.where_clause}", result.params

    def execute(self, expression: FilterExpression | Mapping[str, Any]) -> list[str]:
        """
        Return ids of sessions matching ``expression``, in result-set order.

        Errors from the store are logged with the failing statement and
        re-raised unchanged.
        """
        query, params = self.build_query(expression)

        try:
            rows = self.store.query_all(query, params)
        except Exception:
            logger.exception("Failed to execute filter query: %s params=%r", query, params)
            raise

        return [row[0] for row in rows]


def get_filtered_session_ids(
    store: TagStore, expression: FilterExpression | Mapping[str, Any]
) -> list[str]:
    """Compile ``expression`` and return the ids of matching sessions."""
    return FilterExecutor(store).execute(expression)
