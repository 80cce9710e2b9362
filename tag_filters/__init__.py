"""Boolean tag filters over sessions, compiled to SQL set operations."""

from .base import TagStore, TagFilterError, ExpressionError, STANDARD, SQLITE
from .expression import (
    TagNode,
    AndNode,
    OrNode,
    NotNode,
    FilterExpression,
    expression_from_dict,
    expression_to_dict,
    collect_tag_ids,
)
from .compiler import (
    FilterResult,
    CompileResult,
    CompileError,
    build_tag_filter_query,
    compile_tag_filter,
)
from .validator import (
    TagValidator,
    ValidationResult,
    StructureReport,
    validate_tag_ids,
    validate_expression,
)
from .executor import FilterExecutor, get_filtered_session_ids
from .parser import (
    ParseError,
    ResolutionError,
    tokenize,
    parse_filter,
    resolve_tag_names,
    stringify_expression,
)

__all__ = [
    'TagStore',
    'TagFilterError',
    'ExpressionError',
    'STANDARD',
    'SQLITE',
    'TagNode',
    'AndNode',
    'OrNode',
    'NotNode',
    'FilterExpression',
    'expression_from_dict',
    'expression_to_dict',
    'collect_tag_ids',
    'FilterResult',
    'CompileResult',
    'CompileError',
    'build_tag_filter_query',
    'compile_tag_filter',
    'TagValidator',
    'ValidationResult',
    'StructureReport',
    'validate_tag_ids',
    'validate_expression',
    'FilterExecutor',
    'get_filtered_session_ids',
    'ParseError',
    'ResolutionError',
    'tokenize',
    'parse_filter',
    'resolve_tag_names',
    'stringify_expression',
]
