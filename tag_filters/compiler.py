"""
Compile tag filter expressions into SQL.

Each node is lowered to a subquery returning a column of session ids.
Children are combined with set operations rather than joins:

    tag  ->  SELECT session_id FROM session_tags WHERE tag_id = ?
    and  ->  (a) INTERSECT (b) ...
    or   ->  (a) UNION (b) ...
    not  ->  SELECT id FROM sessions EXCEPT (a)

Parameters are appended to a shared list in the order their placeholders
appear in the generated text.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .base import DIALECTS, SQLITE, STANDARD, TagFilterError
from .expression import (
    AndNode,
    FilterExpression,
    NotNode,
    OrNode,
    TagNode,
    as_expression,
)

logger = logging.getLogger("session-tags.filters")

TAG_SUBQUERY = "SELECT session_id FROM session_tags WHERE tag_id = ?"
ALL_SESSIONS = "SELECT id FROM sessions"
MATCH_ALL = "WHERE 1=1"

Param = Union[int, str]


class CompileError(TagFilterError):
    """A malformed node was found while compiling in strict mode."""

    def __init__(self, reason: str, path: str):
        super().__init__(f"{path}: {reason}")
        self.reason = reason
        self.path = path


@dataclass
class FilterResult:
    """WHERE clause for ``sessions s`` plus its positional parameters."""
    where_clause: str
    params: list[Param] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"whereClause": self.where_clause, "params": list(self.params)}


@dataclass
class CompileResult:
    """Outcome of a strict compilation: exactly one of query/error is set."""
    query: FilterResult | None = None
    error: CompileError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _group(subquery: str, dialect: str) -> str:
    """Wrap a subquery so it can be used as a compound-select operand."""
    if dialect == SQLITE:
        # SQLite rejects parenthesised compound operands
        return f"SELECT * FROM ({subquery})"
    return f"({subquery})"


def _malformed(reason: str, path: str, strict: bool) -> None:
    if strict:
        raise CompileError(reason, path)
    logger.warning("Dropping malformed filter node at %s: %s", path, reason)
    return None


def build_subquery(
    node: FilterExpression,
    params: list[Param],
    dialect: str = STANDARD,
    strict: bool = False,
    path: str = "root",
) -> str | None:
    """
    Recursively build the subquery for one node.

    Args:
        node: Current node of the filter tree
        params: Accumulated parameters (appended to in place)
        dialect: Operand grouping style, "standard" or "sqlite"
        strict: Raise CompileError instead of dropping malformed nodes
        path: Location of ``node`` in the tree, used in messages

    Returns:
        SQL subquery text, or None when the node adds no constraint
    """
    if isinstance(node, TagNode):
        return _build_tag(node, params, strict, path)
    if isinstance(node, AndNode):
        return _build_compound(node, "INTERSECT", params, dialect, strict, path)
    if isinstance(node, OrNode):
        return _build_compound(node, "UNION", params, dialect, strict, path)
    if isinstance(node, NotNode):
        return _build_not(node, params, dialect, strict, path)
    return _malformed(f"unknown node {node!r}", path, strict)


def _build_tag(node: TagNode, params: list[Param], strict: bool, path: str) -> str | None:
    if node.tag_id is None:
        reason = "tag expression missing tagId"
        if node.name is not None:
            reason = f"tag '{node.name}' was never resolved to an id"
        return _malformed(reason, path, strict)

    params.append(node.tag_id)
    return TAG_SUBQUERY


def _build_compound(
    node: AndNode | OrNode,
    operator: str,
    params: list[Param],
    dialect: str,
    strict: bool,
    path: str,
) -> str | None:
    if not node.children:
        return _malformed(f"{_operator_name(node)} expression has no children", path, strict)

    subqueries = []
    for index, child in enumerate(node.children):
        sq = build_subquery(child, params, dialect, strict, f"{path}.children[{index}]")
        if sq is not None:
            subqueries.append(sq)

    if not subqueries:
        return None
    if len(subqueries) == 1:
        return subqueries[0]

    return f" {operator} ".join(_group(sq, dialect) for sq in subqueries)


def _build_not(
    node: NotNode, params: list[Param], dialect: str, strict: bool, path: str,
) -> str | None:
    if node.child is None:
        return _malformed("NOT expression has no children", path, strict)

    child_subquery = build_subquery(node.child, params, dialect, strict, f"{path}.child")
    if child_subquery is None:
        return None

    return f"{ALL_SESSIONS} EXCEPT {_group(child_subquery, dialect)}"


def _operator_name(node: AndNode | OrNode) -> str:
    return "AND" if isinstance(node, AndNode) else "OR"


def build_tag_filter_query(
    expression: FilterExpression | Mapping[str, Any],
    strict: bool = False,
    dialect: str = STANDARD,
) -> FilterResult:
    """
    Convert a filter expression into a WHERE clause for ``sessions s``.

    An expression that compiles to nothing matches every session.

    Example:
        >>> build_tag_filter_query({"type": "tag", "tagId": 1})
        FilterResult(where_clause='WHERE s.id IN (SELECT session_id FROM session_tags WHERE tag_id = ?)', params=[1])
    """
    if dialect not in DIALECTS:
        raise ValueError(f"Unknown SQL dialect: {dialect!r}")

    params: list[Param] = []
    subquery = build_subquery(as_expression(expression), params, dialect, strict)

    if subquery is None:
        return FilterResult(where_clause=MATCH_ALL, params=[])

    return FilterResult(where_clause=f"WHERE s.id IN ({subquery})", params=params)


def compile_tag_filter(
    expression: FilterExpression | Mapping[str, Any],
    dialect: str = STANDARD,
) -> CompileResult:
    """Strictly compile an expression, returning the error instead of raising it."""
    try:
        return CompileResult(query=build_tag_filter_query(expression, strict=True, dialect=dialect))
    except CompileError as e:
        return CompileResult(error=e)
