"""Token-window chunker for splitting document text before embedding."""

from typing import Protocol

import tiktoken

from docmcp.config import get_settings
from docmcp.models.document import ChunkDraft


class Chunker(Protocol):
    def chunk(self, text: str) -> list[ChunkDraft]:
        ...


class TokenWindowChunker:
    """
    Split text into fixed-size token windows with overlap.

    Windows end at a sentence or paragraph boundary when one falls in the
    second half of the window.
    """

    def __init__(
        self,
        max_tokens: int | None = None,
        overlap_tokens: int | None = None,
    ):
        settings = get_settings()
        self.max_tokens = max_tokens or settings.chunk_max_tokens
        self.overlap_tokens = overlap_tokens if overlap_tokens is not None else settings.chunk_overlap_tokens
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")
        self.tokenizer = tiktoken.get_encoding("cl100k_base")

    def chunk(self, text: str) -> list[ChunkDraft]:
        """
        Split text into chunks.

        Returns:
            Chunks in document order; empty for blank text
        """
        if not text.strip():
            return []

        tokens = self.tokenizer.encode(text)
        if len(tokens) <= self.max_tokens:
            return [ChunkDraft(content=text.strip(), token_count=len(tokens))]

        chunks = []
        start = 0
        while start < len(tokens):
            end = min(start + self.max_tokens, len(tokens))

            if end < len(tokens):
                window_text = self.tokenizer.decode(tokens[start:end])
                for sep in ["\n\n", ". ", ".\n", "\n"]:
                    last_sep = window_text.rfind(sep)
                    if last_sep > len(window_text) // 2:
                        end = start + len(self.tokenizer.encode(window_text[: last_sep + 1]))
                        break

            content = self.tokenizer.decode(tokens[start:end]).strip()
            if content:
                chunks.append(ChunkDraft(content=content, token_count=self._count_tokens(content)))

            if end >= len(tokens):
                break
            start = max(start + 1, end - self.overlap_tokens)

        return chunks

    def _count_tokens(self, text: str) -> int:
        return len(self.tokenizer.encode(text))


# Singleton chunker instance
_chunker = None


def get_chunker() -> TokenWindowChunker:
    """Get the singleton chunker instance."""
    global _chunker
    if _chunker is None:
        _chunker = TokenWindowChunker()
    return _chunker
