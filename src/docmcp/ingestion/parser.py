"""Light document inspection: titles, document types and code blocks."""

import re
from pathlib import PurePosixPath

from docmcp.models.document import CodeBlock

H1_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)
ADOC_TITLE_PATTERN = re.compile(r"^=\s+(.+)$", re.MULTILINE)
RST_TITLE_PATTERN = re.compile(r"^(\S.*)\n[=#*\-~^]{3,}\s*$", re.MULTILINE)
HTML_TITLE_PATTERN = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
FRONT_MATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---", re.DOTALL)
FRONT_MATTER_TITLE_PATTERN = re.compile(r"^title:\s*['\"]?(.+?)['\"]?\s*$", re.MULTILINE)
FENCE_PATTERN = re.compile(r"^ {0,3}(`{3,}|~{3,})\s*([^`]*)$")
ADOC_SOURCE_PATTERN = re.compile(r"^\[source(?:,\s*([^,\]]+))?[^\]]*\]\s*$")
ADOC_DELIMITER = "----"

# Longer descriptions are cut and marked with "..."
MAX_DESCRIPTION_LENGTH = 200

_DOC_TYPES = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".adoc": "asciidoc",
    ".asciidoc": "asciidoc",
    ".html": "html",
    ".htm": "html",
    ".txt": "text",
    ".rst": "rst",
}


def doc_type_for(path: str) -> str:
    return _DOC_TYPES.get(PurePosixPath(path).suffix.lower(), "text")


def extract_title(content: str, path: str) -> str:
    """Extract a title from front matter or the first heading, else the filename."""
    front_matter_match = FRONT_MATTER_PATTERN.match(content)
    if front_matter_match:
        title_match = FRONT_MATTER_TITLE_PATTERN.search(front_matter_match.group(1))
        if title_match:
            return title_match.group(1).strip()

    doc_type = doc_type_for(path)
    if doc_type == "markdown":
        patterns = [H1_PATTERN]
    elif doc_type == "asciidoc":
        patterns = [ADOC_TITLE_PATTERN]
    elif doc_type == "html":
        patterns = [HTML_TITLE_PATTERN]
    elif doc_type == "rst":
        patterns = [RST_TITLE_PATTERN]
    else:
        patterns = []

    for pattern in patterns:
        match = pattern.search(content)
        if match:
            title = re.sub(r"\s+", " ", match.group(1)).strip()
            if title:
                return title

    stem = PurePosixPath(path).stem
    return stem.replace("-", " ").replace("_", " ").title()


def extract_code_blocks(content: str, path: str) -> list[CodeBlock]:
    """
    Find code blocks in Markdown or AsciiDoc content.

    Markdown fenced blocks (``` or ~~~) and AsciiDoc ``[source,lang]``
    listings are recognised; other formats yield no blocks. The paragraph
    right before a block becomes its description.

    Args:
        content: Document text
        path: Document path, used to pick the format

    Returns:
        Blocks in source order with 1-based line numbers of their delimiters
    """
    doc_type = doc_type_for(path)
    lines = content.splitlines()
    if doc_type == "markdown":
        return _markdown_blocks(lines)
    if doc_type == "asciidoc":
        return _asciidoc_blocks(lines)
    return []


def _markdown_blocks(lines: list[str]) -> list[CodeBlock]:
    blocks = []
    i = 0
    while i < len(lines):
        match = FENCE_PATTERN.match(lines[i])
        if not match:
            i += 1
            continue

        fence, info = match.group(1), match.group(2).strip()
        closing = re.compile(rf"^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}\s*$")
        start = i
        i += 1
        body = []
        while i < len(lines) and not closing.match(lines[i]):
            body.append(lines[i])
            i += 1

        # An unclosed fence runs to the end of the document
        end = min(i, len(lines) - 1)
        blocks.append(
            CodeBlock(
                language=info.split()[0] if info else None,
                code="\n".join(body),
                description=_description_before(lines, start),
                start_line=start + 1,
                end_line=end + 1,
            )
        )
        i += 1
    return blocks


def _asciidoc_blocks(lines: list[str]) -> list[CodeBlock]:
    blocks = []
    i = 0
    while i < len(lines) - 1:
        match = ADOC_SOURCE_PATTERN.match(lines[i])
        if not match or lines[i + 1].strip() != ADOC_DELIMITER:
            i += 1
            continue

        language = match.group(1).strip() if match.group(1) else None
        attribute_line = i
        i += 2
        body = []
        while i < len(lines) and lines[i].strip() != ADOC_DELIMITER:
            body.append(lines[i])
            i += 1

        end = min(i, len(lines) - 1)
        blocks.append(
            CodeBlock(
                language=language,
                code="\n".join(body),
                description=_description_before(lines, attribute_line),
                start_line=attribute_line + 2,
                end_line=end + 1,
            )
        )
        i += 1
    return blocks


def _description_before(lines: list[str], index: int) -> str | None:
    """Join the paragraph ending just above ``lines[index]``."""
    j = index - 1
    while j >= 0 and not lines[j].strip():
        j -= 1

    paragraph = []
    while j >= 0 and lines[j].strip():
        if FENCE_PATTERN.match(lines[j]) or lines[j].strip() == ADOC_DELIMITER:
            break
        paragraph.append(lines[j].strip())
        j -= 1

    if not paragraph:
        return None
    description = " ".join(reversed(paragraph))
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH] + "..."
    return description
