"""DocMCP: versioned documentation sync with hybrid search."""

__version__ = "0.1.0"
