"""
Parse filter text like ``(#feature OR #bugfix) AND NOT #wip``.

Grammar (precedence NOT > AND > OR, keywords case-insensitive):

    expression = or_expr
    or_expr    = and_expr ("OR" and_expr)*
    and_expr   = not_expr ("AND" not_expr)*
    not_expr   = "NOT" not_expr | primary
    primary    = TAG | "(" expression ")"

Tags are ``#name`` or ``#123``. Names stay unresolved on the TagNode until
resolve_tag_names() looks them up in the catalog.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from .base import TagFilterError
from .expression import AndNode, FilterExpression, NotNode, OrNode, TagNode

TAG = "TAG"
AND = "AND"
OR = "OR"
NOT = "NOT"
LPAREN = "LPAREN"
RPAREN = "RPAREN"
EOF = "EOF"

KEYWORDS = {AND, OR, NOT}

_TAG_CHARS = re.compile(r"[A-Za-z0-9_-]+")
_WORD = re.compile(r"[A-Za-z]+")

# Lookup returns a tag row/dict with "id" and "name", or None
TagLookup = Callable[[str], Any]


class ParseError(TagFilterError):
    """Filter text is not a valid expression."""

    def __init__(self, message: str, position: int):
        super().__init__(f"Parse error at position {position}: {message}")
        self.position = position


class ResolutionError(TagFilterError):
    """A tag referenced in filter text does not exist."""


@dataclass(frozen=True)
class Token:
    type: str
    value: str
    position: int


def tokenize(text: str) -> list[Token]:
    """Split filter text into tokens, ending with an EOF token."""
    tokens: list[Token] = []
    position = 0

    while position < len(text):
        char = text[position]

        if char.isspace():
            position += 1
            continue

        if char == "#":
            match = _TAG_CHARS.match(text, position + 1)
            if not match:
                raise ParseError("Empty tag name after #", position)
            tokens.append(Token(TAG, match.group(), position))
            position = match.end()
            continue

        if char == "(":
            tokens.append(Token(LPAREN, char, position))
            position += 1
            continue

        if char == ")":
            tokens.append(Token(RPAREN, char, position))
            position += 1
            continue

        match = _WORD.match(text, position)
        if match:
            word = match.group()
            if word.upper() not in KEYWORDS:
                raise ParseError(f"Unknown keyword '{word}'. Expected AND, OR, or NOT", position)
            tokens.append(Token(word.upper(), word.upper(), position))
            position = match.end()
            continue

        raise ParseError(f"Unexpected character '{char}'", position)

    tokens.append(Token(EOF, "", position))
    return tokens


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.current = 0

    def parse(self) -> FilterExpression:
        expr = self._or_expression()
        if self._peek().type != EOF:
            token = self._peek()
            raise ParseError(f"Unexpected token '{token.value}' after expression", token.position)
        return expr

    def _or_expression(self) -> FilterExpression:
        operands = [self._and_expression()]
        while self._match(OR):
            operands.append(self._and_expression())
        return _combine(OrNode, operands)

    def _and_expression(self) -> FilterExpression:
        operands = [self._not_expression()]
        while self._match(AND):
            operands.append(self._not_expression())
        return _combine(AndNode, operands)

    def _not_expression(self) -> FilterExpression:
        if self._match(NOT):
            return NotNode(self._not_expression())
        return self._primary()

    def _primary(self) -> FilterExpression:
        if self._match(LPAREN):
            expr = self._or_expression()
            if not self._match(RPAREN):
                raise ParseError("Expected closing parenthesis", self._peek().position)
            return expr

        token = self._peek()
        if token.type == TAG:
            self._advance()
            if token.value.isdigit() and str(int(token.value)) == token.value:
                return TagNode(tag_id=int(token.value))
            return TagNode(tag_id=None, name=token.value)

        raise ParseError(
            f"Expected tag or opening parenthesis, got '{token.value}'", token.position
        )

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self._advance()
            return True
        return False

    def _peek(self) -> Token:
        return self.tokens[self.current]

    def _advance(self) -> Token:
        token = self.tokens[self.current]
        if self.current < len(self.tokens) - 1:
            self.current += 1
        return token


def _combine(node_cls: type, operands: list[FilterExpression]) -> FilterExpression:
    """Build an AND/OR node, flattening operands of the same operator."""
    if len(operands) == 1:
        return operands[0]

    children: list[FilterExpression] = []
    for operand in operands:
        if isinstance(operand, node_cls):
            children.extend(operand.children)
        else:
            children.append(operand)
    return node_cls(tuple(children))


def parse_filter(text: str) -> FilterExpression:
    """
    Parse filter text into an expression tree.

    Raises:
        ParseError: On empty input or invalid syntax
    """
    if not text or not text.strip():
        raise ParseError("Empty filter expression", 0)
    return _Parser(tokenize(text)).parse()


def _field(tag: Any, key: str) -> Any:
    if isinstance(tag, dict):
        return tag.get(key)
    try:
        return tag[key]
    except (KeyError, IndexError, TypeError):
        return getattr(tag, key, None)


def resolve_tag_names(expression: FilterExpression, lookup: TagLookup) -> FilterExpression:
    """
    Return a copy of ``expression`` with every tag leaf bound to a catalog id.

    Args:
        expression: Tree from parse_filter()
        lookup: Finds a tag by name or by numeric id given as a string

    Raises:
        ResolutionError: If a referenced tag does not exist
    """
    if isinstance(expression, TagNode):
        if expression.name is not None:
            tag = lookup(expression.name)
            if tag is None:
                raise ResolutionError(f"Tag '{expression.name}' not found")
        elif expression.tag_id is not None:
            tag = lookup(str(expression.tag_id))
            if tag is None:
                raise ResolutionError(f"Tag with ID {expression.tag_id} not found")
        else:
            return expression
        return TagNode(tag_id=_field(tag, "id"))

    if isinstance(expression, NotNode):
        if expression.child is None:
            return expression
        return replace(expression, child=resolve_tag_names(expression.child, lookup))

    return replace(
        expression,
        children=tuple(resolve_tag_names(c, lookup) for c in expression.children),
    )


def stringify_expression(
    expression: FilterExpression, lookup: Callable[[int], Any] | None = None
) -> str:
    """Render a tree back to filter text, naming tags through ``lookup`` if given."""
    if isinstance(expression, TagNode):
        if expression.tag_id is None:
            return f"#{expression.name}" if expression.name else "#unknown"
        if lookup is not None:
            tag = lookup(expression.tag_id)
            if tag is not None:
                return f"#{_field(tag, 'name')}"
        return f"#{expression.tag_id}"

    if isinstance(expression, NotNode):
        child = expression.child
        if child is None:
            return "NOT"
        text = stringify_expression(child, lookup)
        if isinstance(child, (AndNode, OrNode)):
            text = f"({text})"
        return f"NOT {text}"

    operator = "AND" if isinstance(expression, AndNode) else "OR"
    if not expression.children:
        return operator

    parts = []
    for child in expression.children:
        text = stringify_expression(child, lookup)
        if isinstance(expression, AndNode) and isinstance(child, OrNode):
            text = f"({text})"
        parts.append(text)
    return f" {operator} ".join(parts)
