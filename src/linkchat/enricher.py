"""Inject referenced file contents into outgoing messages."""

import json
import logging
from typing import Optional

import yaml

from linkchat.documents import DocumentResult, DocumentStore, MarkdownDocument, StructuredData
from linkchat.extract import compile_keywords, extract_file_paths
from linkchat.files import ContentStore, FileOperationError


logger = logging.getLogger(__name__)

DOCUMENT_OPERATION_KEYWORDS = [
    "modify", "edit", "update", "rewrite", "change", "document", "file", "content",
    "修改", "编辑", "更新", "重写", "改写", "更改", "文档", "文件", "内容",
]

CONTEXT_INSTRUCTION = (
    "Base your answer on the document content shown above. "
    "When you change a file, return its complete new content in a single fenced code block."
)

_DOCUMENT_OPERATION = compile_keywords(DOCUMENT_OPERATION_KEYWORDS)


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def render_document(content) -> str:
    """Text for a parsed document, shaped by its format."""
    if isinstance(content, MarkdownDocument):
        parts = []
        if content.frontmatter:
            frontmatter = yaml.safe_dump(content.frontmatter, allow_unicode=True, sort_keys=False)
            parts.append(f"Frontmatter:\n{frontmatter.rstrip()}")
        parts.append(content.content)
        return "\n\n".join(parts)

    if isinstance(content, StructuredData):
        if not content.is_valid:
            return content.raw
        return json.dumps(content.data, indent=2, ensure_ascii=False, default=str)

    return str(content)


class ContextEnricher:
    """Adds a labelled block per referenced document to a message."""

    def __init__(self, documents: DocumentStore, store: Optional[ContentStore] = None):
        self.documents = documents
        self.store = store or documents.store

    def _document_block(self, path: str) -> Optional[str]:
        result: DocumentResult = self.documents.read(path)
        if result.success:
            meta = result.metadata
            return (
                f"[Document: {path}] Format: {meta.format} | Size: {_format_size(meta.size)}\n"
                f"```\n{render_document(result.content)}\n```"
            )

        logger.debug("Structured read failed for %s: %s", path, result.error)
        try:
            raw = self.store.read(path)
        except FileOperationError as e:
            logger.info("Skipping %s for context: %s", path, e.message)
            return None
        return f"[Document: {path}] Format: raw | Size: {_format_size(len(raw.encode('utf-8')))}\n```\n{raw}\n```"

    def build_context(self, paths: list[str]) -> str:
        """Labelled content blocks for every readable path ("" when none are)."""
        blocks = []
        for path in paths:
            try:
                block = self._document_block(path)
            except Exception:
                logger.exception("Unexpected error reading %s for context", path)
                continue
            if block:
                blocks.append(block)
        return "\n\n".join(blocks)

    def enhance(self, message: str) -> str:
        """Return message with document context appended, or unchanged.

        Never raises: any failure falls back to the original message.
        """
        try:
            if not _DOCUMENT_OPERATION.search(message or ""):
                return message

            paths = extract_file_paths(message)
            if not paths:
                return message

            context = self.build_context(paths)
            if not context:
                return message

            logger.debug("Enriched message with %d document(s)", len(paths))
            return f"{message}\n\n{context}\n\n{CONTEXT_INSTRUCTION}"
        except Exception:
            logger.exception("Context enrichment failed")
            return message
