"""Tag filter expression trees and their JSON wire form."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Union

from .base import ExpressionError

logger = logging.getLogger("session-tags.filters")


@dataclass(frozen=True)
class TagNode:
    """Matches sessions carrying one tag."""
    tag_id: int | None
    # Raw name from filter text, cleared once resolved against the catalog
    name: str | None = None


@dataclass(frozen=True)
class AndNode:
    """Matches sessions matched by every child."""
    children: tuple[FilterExpression, ...] = ()


@dataclass(frozen=True)
class OrNode:
    """Matches sessions matched by any child."""
    children: tuple[FilterExpression, ...] = ()


@dataclass(frozen=True)
class NotNode:
    """Matches sessions not matched by the child."""
    child: FilterExpression | None = None


FilterExpression = Union[TagNode, AndNode, OrNode, NotNode]

NODE_TYPES = ("tag", "and", "or", "not")


def node_type(node: FilterExpression) -> str:
    """Return the wire-form type name of a node."""
    if isinstance(node, TagNode):
        return "tag"
    if isinstance(node, AndNode):
        return "and"
    if isinstance(node, OrNode):
        return "or"
    if isinstance(node, NotNode):
        return "not"
    raise ExpressionError(f"Not a filter expression node: {node!r}")


def expression_from_dict(data: Mapping[str, Any]) -> FilterExpression:
    """
    Convert a wire-form mapping into an expression tree.

    Malformed-but-typed nodes (a tag without ``tagId``, an operator without
    children) are kept so the compiler can decide how to treat them. Only
    input that cannot be represented at all raises ExpressionError.

    Args:
        data: Mapping like ``{"type": "and", "children": [...]}``

    Returns:
        The equivalent FilterExpression
    """
    if not isinstance(data, Mapping):
        raise ExpressionError(f"Expression node must be an object, got {type(data).__name__}")

    kind = data.get("type")
    if kind == "tag":
        tag_id = data.get("tagId")
        if tag_id is not None and (isinstance(tag_id, bool) or not isinstance(tag_id, int)):
            raise ExpressionError(f"tagId must be an integer, got {tag_id!r}")
        if tag_id is not None and tag_id < 1:
            raise ExpressionError(f"tagId must be positive, got {tag_id}")
        return TagNode(tag_id=tag_id)

    children = data.get("children") or []
    if not isinstance(children, (list, tuple)):
        raise ExpressionError(f"children must be a list, got {type(children).__name__}")

    if kind == "and":
        return AndNode(tuple(expression_from_dict(c) for c in children))
    if kind == "or":
        return OrNode(tuple(expression_from_dict(c) for c in children))
    if kind == "not":
        if len(children) > 1:
            logger.warning(
                "NOT expression has %d children; only the first is used", len(children)
            )
        return NotNode(expression_from_dict(children[0]) if children else None)

    raise ExpressionError(f"Unknown expression type: {kind!r}")


def expression_to_dict(node: FilterExpression) -> dict[str, Any]:
    """Convert an expression tree back into its wire form."""
    if isinstance(node, TagNode):
        return {"type": "tag", "tagId": node.tag_id}
    if isinstance(node, NotNode):
        children = [] if node.child is None else [expression_to_dict(node.child)]
        return {"type": "not", "children": children}
    return {
        "type": node_type(node),
        "children": [expression_to_dict(c) for c in node.children],
    }


def as_expression(expression: FilterExpression | Mapping[str, Any]) -> FilterExpression:
    """Accept either a tree or its wire form."""
    if isinstance(expression, (TagNode, AndNode, OrNode, NotNode)):
        return expression
    return expression_from_dict(expression)


def iter_tag_nodes(node: FilterExpression) -> Iterator[TagNode]:
    """Yield every tag leaf in depth-first, left-to-right order."""
    if isinstance(node, TagNode):
        yield node
    elif isinstance(node, NotNode):
        if node.child is not None:
            yield from iter_tag_nodes(node.child)
    else:
        for child in node.children:
            yield from iter_tag_nodes(child)


def collect_tag_ids(node: FilterExpression) -> list[int]:
    """Return the distinct tag ids referenced by a tree, in first-seen order."""
    seen = dict.fromkeys(n.tag_id for n in iter_tag_nodes(node) if n.tag_id is not None)
    return list(seen)
