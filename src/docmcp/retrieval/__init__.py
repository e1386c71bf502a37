"""Retrieval package."""

from docmcp.retrieval.embeddings import (
    Embedder,
    SentenceTransformerEmbedder,
    embed_with_timeout,
    get_embedder,
)
from docmcp.retrieval.filters import (
    And,
    Eq,
    FilterExpression,
    Gt,
    Gte,
    In,
    Lt,
    Lte,
    Ne,
    Nin,
    Not,
    Or,
    compile_filter,
    parse_filter,
)
from docmcp.retrieval.hybrid import HybridSearchEngine, combine_scores
from docmcp.retrieval.lexical import BM25LexicalIndex, LexicalIndex, tokenize
from docmcp.retrieval.vector import VectorIndex, VectorMatch

__all__ = [
    "And",
    "BM25LexicalIndex",
    "Embedder",
    "Eq",
    "FilterExpression",
    "Gt",
    "Gte",
    "HybridSearchEngine",
    "In",
    "LexicalIndex",
    "Lt",
    "Lte",
    "Ne",
    "Nin",
    "Not",
    "Or",
    "SentenceTransformerEmbedder",
    "VectorIndex",
    "VectorMatch",
    "combine_scores",
    "compile_filter",
    "embed_with_timeout",
    "get_embedder",
    "parse_filter",
    "tokenize",
]
