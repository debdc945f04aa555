"""Format-aware document access built on the content store.

Markdown, JSON, YAML and plain text can be read and written. Word, PDF and
Excel files are read-only: their text is extracted for display and prompts.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

from linkchat.files import ContentStore, FileOperationError


logger = logging.getLogger(__name__)

FORMAT_BY_EXTENSION = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".txt": "txt",
    ".docx": "docx",
    ".pdf": "pdf",
    ".xlsx": "xlsx",
    ".xlsm": "xlsx",
}

TEXT_FORMATS = ("markdown", "json", "yaml", "txt")
BINARY_FORMATS = ("docx", "pdf", "xlsx")
SUPPORTED_FORMATS = TEXT_FORMATS + BINARY_FORMATS

FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)(.*)\Z", re.DOTALL)
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")


# =============================================================================
# Document shapes
# =============================================================================

@dataclass
class Heading:
    level: int
    text: str
    line: int


@dataclass
class Link:
    text: str
    url: str


@dataclass
class MarkdownDocument:
    """Markdown split into frontmatter and body."""
    content: str
    frontmatter: dict = field(default_factory=dict)
    headings: list[Heading] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)


@dataclass
class StructuredData:
    """Parsed JSON or YAML. ``raw`` keeps the text when parsing failed."""
    data: Any
    is_valid: bool = True
    raw: str = ""


@dataclass
class SearchMatch:
    line: int
    text: str


@dataclass
class DocumentMetadata:
    format: str
    size: int
    last_modified: Optional[datetime] = None
    encoding: str = "utf-8"
    structure: dict = field(default_factory=dict)


@dataclass
class DocumentResult:
    """Outcome of a document operation; check ``success`` before ``content``."""
    success: bool
    message: str = ""
    content: Any = None
    metadata: Optional[DocumentMetadata] = None
    backup_path: Optional[str] = None
    error: str = ""

    @classmethod
    def ok(cls, message: str, **kwargs) -> "DocumentResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, error: str) -> "DocumentResult":
        return cls(success=False, message=error, error=error)


def detect_format(path: str) -> str:
    """Document format from the file extension ("txt" when unknown)."""
    return FORMAT_BY_EXTENSION.get(Path(path).suffix.lower(), "txt")


# =============================================================================
# Parsing and serialising
# =============================================================================

def parse_markdown(text: str) -> MarkdownDocument:
    """Split frontmatter off and index headings and links."""
    frontmatter: dict = {}
    body = text

    match = FRONTMATTER_PATTERN.match(text)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
        except yaml.YAMLError:
            loaded = None
        if isinstance(loaded, dict):
            frontmatter = loaded
            body = match.group(2)

    headings = []
    in_fence = False
    for number, line in enumerate(body.split("\n"), 1):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        heading = HEADING_PATTERN.match(line)
        if heading:
            headings.append(Heading(level=len(heading.group(1)), text=heading.group(2), line=number))

    links = [Link(text=m.group(1), url=m.group(2)) for m in LINK_PATTERN.finditer(body)]
    return MarkdownDocument(content=body, frontmatter=frontmatter, headings=headings, links=links)


def render_markdown(doc: MarkdownDocument) -> str:
    if not doc.frontmatter:
        return doc.content
    header = yaml.safe_dump(doc.frontmatter, allow_unicode=True, sort_keys=False)
    return f"---\n{header}---\n{doc.content}"


def _parse_structured(text: str, fmt: str) -> StructuredData:
    try:
        data = json.loads(text) if fmt == "json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        logger.debug("Invalid %s content: %s", fmt, e)
        return StructuredData(data=None, is_valid=False, raw=text)
    return StructuredData(data=data, raw=text)


def serialize(content: Any, fmt: str) -> str:
    """Turn in-memory content into file text for ``fmt``."""
    if isinstance(content, StructuredData):
        content = content.data if content.is_valid else content.raw

    if fmt == "markdown":
        if isinstance(content, MarkdownDocument):
            return render_markdown(content)
        if isinstance(content, dict) and "content" in content:
            return render_markdown(MarkdownDocument(
                content=str(content["content"]),
                frontmatter=dict(content.get("frontmatter") or {}),
            ))
        return str(content)

    if fmt == "json":
        if isinstance(content, str):
            return content
        return json.dumps(content, indent=2, ensure_ascii=False) + "\n"

    if fmt == "yaml":
        if isinstance(content, str):
            return content
        return yaml.safe_dump(content, allow_unicode=True, sort_keys=False)

    if isinstance(content, MarkdownDocument):
        return content.content
    return content if isinstance(content, str) else str(content)


def _structure(content: Any, text: str) -> dict:
    if isinstance(content, MarkdownDocument):
        return {
            "headings": len(content.headings),
            "links": len(content.links),
            "has_frontmatter": bool(content.frontmatter),
        }
    if isinstance(content, StructuredData):
        info = {"type": type(content.data).__name__, "valid": content.is_valid}
        if isinstance(content.data, dict):
            info["keys"] = list(content.data.keys())
        elif isinstance(content.data, list):
            info["items"] = len(content.data)
        return info
    return {"lines": len(text.splitlines())}


# =============================================================================
# Read-only office formats
# =============================================================================

def extract_docx_text(file_path: Path) -> str:
    """Paragraphs (headings marked with ##) followed by table rows."""
    from docx import Document

    doc = Document(str(file_path))
    lines = []
    for para in doc.paragraphs:
        if not para.text.strip():
            continue
        if para.style is not None and para.style.name.startswith("Heading"):
            lines.append(f"## {para.text}")
        else:
            lines.append(para.text)

    for index, table in enumerate(doc.tables, 1):
        lines.append(f"\n[Table {index}]")
        for row in table.rows:
            lines.append(" | ".join(cell.text.strip() for cell in row.cells))

    return "\n".join(lines)


def extract_pdf_text(file_path: Path) -> str:
    """Text of each page under a page marker."""
    import pypdf

    reader = pypdf.PdfReader(str(file_path))
    pages = []
    for number, page in enumerate(reader.pages, 1):
        text = page.extract_text() or ""
        if text.strip():
            pages.append(f"--- Page {number} ---\n{text.strip()}")
    return "\n\n".join(pages)


def extract_xlsx_text(file_path: Path) -> str:
    """Every sheet as pipe-separated rows."""
    import openpyxl

    workbook = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    try:
        lines = []
        for sheet in workbook.worksheets:
            lines.append(f"[Sheet: {sheet.title}]")
            for row in sheet.iter_rows(values_only=True):
                lines.append(" | ".join("" if cell is None else str(cell) for cell in row))
        return "\n".join(lines)
    finally:
        workbook.close()


EXTRACTORS = {
    "docx": extract_docx_text,
    "pdf": extract_pdf_text,
    "xlsx": extract_xlsx_text,
}


# =============================================================================
# Store
# =============================================================================

class DocumentStore:
    """Structured read/write/search/convert over a ContentStore."""

    def __init__(self, store: ContentStore):
        self.store = store

    def _metadata(self, path: str, fmt: str, structure: Optional[dict] = None) -> DocumentMetadata:
        info = self.store.get_info(path)
        return DocumentMetadata(
            format=fmt,
            size=info.size,
            last_modified=info.last_modified,
            structure=structure or {},
        )

    def _read_text(self, path: str, fmt: str) -> str:
        if fmt in BINARY_FORMATS:
            file_path = self.store.resolve(path)
            if not file_path.exists():
                raise FileOperationError(f"File not found: {path}", path)
            return EXTRACTORS[fmt](file_path)
        return self.store.read(path)

    def read(self, path: str, fmt: Optional[str] = None) -> DocumentResult:
        """Read and parse a document."""
        fmt = fmt or detect_format(path)
        if fmt not in SUPPORTED_FORMATS:
            return DocumentResult.fail(f"Unsupported format: {fmt}")

        try:
            text = self._read_text(path, fmt)
        except FileOperationError as e:
            return DocumentResult.fail(e.message)
        except Exception as e:
            # Third-party parsers raise their own exception types
            logger.warning("Failed to extract %s from %s: %s", fmt, path, e)
            return DocumentResult.fail(f"Failed to read {fmt} document {path}: {e}")

        if fmt == "markdown":
            content: Any = parse_markdown(text)
        elif fmt in ("json", "yaml"):
            content = _parse_structured(text, fmt)
        else:
            content = text

        return DocumentResult.ok(
            f"Document read: {path}",
            content=content,
            metadata=self._metadata(path, fmt, _structure(content, text)),
        )

    def write(
        self,
        path: str,
        content: Any,
        fmt: Optional[str] = None,
        backup: bool = True,
    ) -> DocumentResult:
        """Serialise ``content`` for the target format and write it."""
        fmt = fmt or detect_format(path)
        if fmt in BINARY_FORMATS:
            return DocumentResult.fail(f"Writing {fmt} documents is not supported")
        if fmt not in TEXT_FORMATS:
            return DocumentResult.fail(f"Unsupported format: {fmt}")

        try:
            text = serialize(content, fmt)
        except (TypeError, ValueError, yaml.YAMLError) as e:
            return DocumentResult.fail(f"Cannot serialise content as {fmt}: {e}")

        result = self.store.write(path, text, backup=backup)
        if not result.success:
            return DocumentResult.fail(result.error)

        return DocumentResult.ok(
            result.message,
            content=text,
            metadata=self._metadata(path, fmt),
            backup_path=result.backup_path,
        )

    def search(self, path: str, query: str, case_sensitive: bool = False) -> DocumentResult:
        """Find lines containing ``query``; ``content`` is a list of SearchMatch."""
        if not query:
            return DocumentResult.fail("Search query is required")

        fmt = detect_format(path)
        try:
            text = self._read_text(path, fmt)
        except FileOperationError as e:
            return DocumentResult.fail(e.message)
        except Exception as e:
            logger.warning("Failed to extract %s from %s: %s", fmt, path, e)
            return DocumentResult.fail(f"Failed to read {fmt} document {path}: {e}")

        needle = query if case_sensitive else query.lower()
        matches = [
            SearchMatch(line=number, text=line)
            for number, line in enumerate(text.split("\n"), 1)
            if needle in (line if case_sensitive else line.lower())
        ]
        return DocumentResult.ok(
            f"Found {len(matches)} match(es) in {path}",
            content=matches,
            metadata=self._metadata(path, fmt),
        )

    def convert(self, source: str, destination: str, target_format: Optional[str] = None) -> DocumentResult:
        """Read ``source`` and write it to ``destination`` in another format."""
        target = target_format or detect_format(destination)
        if target not in TEXT_FORMATS:
            return DocumentResult.fail(f"Cannot convert to {target}")

        read = self.read(source)
        if not read.success:
            return read

        converted = _convert_content(read.content, target)
        result = self.write(destination, converted, fmt=target)
        if result.success:
            result.message = f"Converted {source} ({read.metadata.format}) -> {destination} ({target})"
            logger.info(result.message)
        return result

    def get_info(self, path: str) -> DocumentResult:
        """Metadata only; fails when the file is missing."""
        info = self.store.get_info(path)
        if not info.exists:
            return DocumentResult.fail(f"File not found: {path}")
        return DocumentResult.ok(f"Document info: {path}", metadata=self._metadata(path, detect_format(path)))


def _convert_content(content: Any, target: str) -> Any:
    if isinstance(content, StructuredData):
        data = content.data if content.is_valid else content.raw
        if target in ("json", "yaml"):
            return data
        if target == "markdown":
            return f"```json\n{json.dumps(data, indent=2, ensure_ascii=False)}\n```\n"
        return json.dumps(data, indent=2, ensure_ascii=False)

    if isinstance(content, MarkdownDocument):
        if target == "markdown":
            return content
        if target in ("json", "yaml"):
            return {"frontmatter": content.frontmatter, "content": content.content}
        return content.content

    if target in ("json", "yaml"):
        return {"content": content}
    return content
