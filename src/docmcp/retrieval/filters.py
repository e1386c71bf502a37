"""Metadata filter expressions for vector queries.

Filters are a small expression tree over the chunk metadata keys that are
denormalized onto ``document_chunks``. ``compile_filter`` turns a tree into
a SQLAlchemy predicate so filtering happens in the store, not in Python.

    expr = And(Eq("versionId", "v1"), Gte("chunkIndex", 2))
    stmt = select(DocumentChunkORM).where(compile_filter(expr))
"""

from dataclasses import dataclass
from typing import Any, Union

from sqlalchemy import and_, not_, or_, select
from sqlalchemy.sql.elements import ColumnElement

from docmcp.errors import FilterExpressionError
from docmcp.storage.database import DocumentChunkORM, DocumentORM

# Metadata key -> column. Document columns are reached through a subquery
# so no join is needed at the call site.
_CHUNK_COLUMNS = {
    "versionId": DocumentChunkORM.version_id,
    "documentId": DocumentChunkORM.document_id,
    "chunkIndex": DocumentChunkORM.chunk_index,
    "tokenCount": DocumentChunkORM.token_count,
}
_DOCUMENT_COLUMNS = {
    "documentPath": DocumentORM.path,
    "documentTitle": DocumentORM.title,
}

FILTER_KEYS = frozenset(_CHUNK_COLUMNS) | frozenset(_DOCUMENT_COLUMNS)


@dataclass(frozen=True)
class Comparison:
    key: str
    value: Any

    op = "eq"


class Eq(Comparison):
    op = "eq"


class Ne(Comparison):
    op = "ne"


class Gt(Comparison):
    op = "gt"


class Gte(Comparison):
    op = "gte"


class Lt(Comparison):
    op = "lt"


class Lte(Comparison):
    op = "lte"


class In(Comparison):
    op = "in"


class Nin(Comparison):
    op = "nin"


@dataclass(frozen=True, init=False)
class And:
    operands: tuple["FilterExpression", ...]

    def __init__(self, *operands: "FilterExpression"):
        object.__setattr__(self, "operands", tuple(operands))


@dataclass(frozen=True, init=False)
class Or:
    operands: tuple["FilterExpression", ...]

    def __init__(self, *operands: "FilterExpression"):
        object.__setattr__(self, "operands", tuple(operands))


@dataclass(frozen=True)
class Not:
    operand: "FilterExpression"


FilterExpression = Union[Comparison, And, Or, Not]


def _apply(column, op: str, value: Any) -> ColumnElement:
    if op == "eq":
        return column == value
    if op == "ne":
        return column != value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op in ("in", "nin"):
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise FilterExpressionError(f"'{op}' needs a list of values, got {type(value).__name__}")
        clause = column.in_(list(value))
        return clause if op == "in" else not_(clause)
    raise FilterExpressionError(f"Unknown comparison operator: {op}")


def _compile_comparison(expr: Comparison) -> ColumnElement:
    if expr.key in _CHUNK_COLUMNS:
        return _apply(_CHUNK_COLUMNS[expr.key], expr.op, expr.value)
    if expr.key in _DOCUMENT_COLUMNS:
        matching_docs = select(DocumentORM.id).where(
            _apply(_DOCUMENT_COLUMNS[expr.key], expr.op, expr.value)
        )
        return DocumentChunkORM.document_id.in_(matching_docs)
    raise FilterExpressionError(
        f"Unknown filter key: {expr.key!r}. Expected one of {sorted(FILTER_KEYS)}"
    )


def compile_filter(expr: FilterExpression) -> ColumnElement:
    """
    Compile a filter expression into a SQLAlchemy predicate over chunks.

    Args:
        expr: Expression tree built from Eq/Ne/Gt/Gte/Lt/Lte/In/Nin/And/Or/Not

    Returns:
        A boolean column expression usable in ``select(...).where()``

    Raises:
        FilterExpressionError: On unknown keys, operators or malformed nodes
    """
    if isinstance(expr, Comparison):
        return _compile_comparison(expr)
    if isinstance(expr, And):
        if not expr.operands:
            raise FilterExpressionError("And() needs at least one operand")
        return and_(*(compile_filter(op) for op in expr.operands))
    if isinstance(expr, Or):
        if not expr.operands:
            raise FilterExpressionError("Or() needs at least one operand")
        return or_(*(compile_filter(op) for op in expr.operands))
    if isinstance(expr, Not):
        return not_(compile_filter(expr.operand))
    raise FilterExpressionError(f"Unsupported filter node: {type(expr).__name__}")


_OPERATORS = {
    "eq": Eq,
    "ne": Ne,
    "gt": Gt,
    "gte": Gte,
    "lt": Lt,
    "lte": Lte,
    "in": In,
    "nin": Nin,
}


def parse_filter(data: dict) -> FilterExpression:
    """
    Build an expression tree from its JSON form.

    ``{"and": [{"eq": ["versionId", "v1"]}, {"not": {"in": ["chunkIndex", [0, 1]]}}]}``
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise FilterExpressionError("Filter node must be an object with exactly one operator")
    (op, arg), = data.items()
    op = op.lower()
    if op in ("and", "or"):
        if not isinstance(arg, list):
            raise FilterExpressionError(f"'{op}' expects a list of filters")
        operands = [parse_filter(item) for item in arg]
        return And(*operands) if op == "and" else Or(*operands)
    if op == "not":
        return Not(parse_filter(arg))
    if op in _OPERATORS:
        if not isinstance(arg, list) or len(arg) != 2 or not isinstance(arg[0], str):
            raise FilterExpressionError(f"'{op}' expects [key, value]")
        return _OPERATORS[op](arg[0], arg[1])
    raise FilterExpressionError(f"Unknown filter operator: {op}")
