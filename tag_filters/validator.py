"""Advisory checks for tag filter expressions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .base import TagStore
from .expression import FilterExpression, NODE_TYPES, as_expression, collect_tag_ids

TAG_LOOKUP = "SELECT id FROM tags WHERE id = ?"


@dataclass
class ValidationResult:
    """Whether every referenced tag exists, and which ones don't."""
    valid: bool
    missing_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "missingIds": list(self.missing_ids)}


@dataclass
class StructureReport:
    """Structural problems found in a wire-form expression."""
    valid: bool
    errors: list[str] = field(default_factory=list)


class TagValidator:
    """Checks expression tag references against the tag catalog.

    The compiler never calls this: a filter on an unknown tag simply matches
    nothing. Callers that want an explicit diagnostic run it first.
    """

    def __init__(self, store: TagStore):
        self.store = store

    def validate(self, expression: FilterExpression | Mapping[str, Any]) -> ValidationResult:
        missing_ids = [
            tag_id
            for tag_id in collect_tag_ids(as_expression(expression))
            if self.store.query_one(TAG_LOOKUP, (tag_id,)) is None
        ]
        return ValidationResult(valid=not missing_ids, missing_ids=missing_ids)


def validate_tag_ids(
    store: TagStore, expression: FilterExpression | Mapping[str, Any]
) -> ValidationResult:
    """Return which tag ids referenced by ``expression`` are not in the catalog."""
    return TagValidator(store).validate(expression)


def validate_expression(data: Any) -> StructureReport:
    """
    Check a wire-form expression for structural correctness.

    Stricter than compilation: AND/OR need at least two children and NOT
    exactly one. Never raises on malformed input.

    Args:
        data: Raw mapping, e.g. parsed from a JSON request body

    Returns:
        StructureReport with path-prefixed error messages
    """
    errors: list[str] = []

    def check(node: Any, path: str) -> None:
        if not isinstance(node, Mapping):
            errors.append(f"{path}: Expression node must be an object")
            return

        kind = node.get("type")
        if kind not in NODE_TYPES:
            errors.append(f"{path}: Invalid node type '{kind}'")
            return

        children = node.get("children")

        if kind == "tag":
            if children:
                errors.append(f"{path}: Tag nodes should not have children")
            tag_id = node.get("tagId")
            if tag_id is None:
                errors.append(f"{path}: Tag node is missing tagId")
            elif isinstance(tag_id, bool) or not isinstance(tag_id, int) or tag_id < 1:
                errors.append(f"{path}: tagId must be a positive integer, got {tag_id!r}")
            return

        if not isinstance(children, (list, tuple)) or not children:
            errors.append(f"{path}: {kind.upper()} node must have children")
            return

        if kind == "not" and len(children) != 1:
            errors.append(f"{path}: NOT node must have exactly 1 child, has {len(children)}")

        if kind in ("and", "or") and len(children) < 2:
            errors.append(
                f"{path}: {kind.upper()} node must have at least 2 children, has {len(children)}"
            )

        for index, child in enumerate(children):
            check(child, f"{path}[{index}]")

    check(data, "root")

    return StructureReport(valid=not errors, errors=errors)
