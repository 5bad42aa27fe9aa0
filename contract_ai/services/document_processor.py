"""
Document processing service for uploaded contracts.

Converts Word, PDF and plain-text uploads into:
  - plain text (what the AI reviews and what suggestion offsets refer to),
  - a Lexical editor state (what the frontend renders tracked changes on),
  - DocumentMetadata (checksum, word/page counts, conversion errors).

Word files go through mammoth twice: raw text for analysis and HTML for
the editor.  The HTML is mapped onto Lexical block nodes with
BeautifulSoup; inline formatting becomes the Lexical format bitmask.
"""
from __future__ import annotations

import dataclasses
import io
import logging
import math
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF
import mammoth
from bs4 import BeautifulSoup
from bs4.element import NavigableString, Tag
from dateutil import parser as date_parser
from docx import Document as DocxDocument
from docx.shared import Pt

from contract_ai.config import settings
from contract_ai.utils.helpers import generate_hash

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIME_TYPES: Dict[str, str] = {
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "doc": "application/msword",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "rtf": "application/rtf",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

LEGACY_WORD_MESSAGE = "Legacy .doc files are not supported. Save the document as .docx and upload it again."

# Lexical text format bits
FORMAT_BOLD = 1
FORMAT_ITALIC = 2
FORMAT_STRIKETHROUGH = 4
FORMAT_UNDERLINE = 8
FORMAT_CODE = 16
FORMAT_SUBSCRIPT = 32
FORMAT_SUPERSCRIPT = 64

_INLINE_FORMATS: Dict[str, int] = {
    "strong": FORMAT_BOLD,
    "b": FORMAT_BOLD,
    "em": FORMAT_ITALIC,
    "i": FORMAT_ITALIC,
    "s": FORMAT_STRIKETHROUGH,
    "del": FORMAT_STRIKETHROUGH,
    "strike": FORMAT_STRIKETHROUGH,
    "u": FORMAT_UNDERLINE,
    "code": FORMAT_CODE,
    "sub": FORMAT_SUBSCRIPT,
    "sup": FORMAT_SUPERSCRIPT,
}

_HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_LIST_TAGS = {"ul", "ol"}

_PARTY_PATTERNS = [
    re.compile(r"between\s+([^,]+?)\s+(?:and|&)", re.IGNORECASE),
    re.compile(r"party.*?:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"client.*?:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"vendor.*?:\s*([^\n]+)", re.IGNORECASE),
]
_EFFECTIVE_DATE = re.compile(r"effective.*?date.*?:?\s*([^\n]+)", re.IGNORECASE)
_EXPIRATION_DATE = re.compile(r"expir.*?date.*?:?\s*([^\n]+)", re.IGNORECASE)
_CONTRACT_TYPE_PATTERNS = [
    re.compile(r"(?:this\s+)?(\w+\s+agreement)", re.IGNORECASE),
    re.compile(r"(?:this\s+)?(\w+\s+contract)", re.IGNORECASE),
    re.compile(r"(non-disclosure\s+agreement)", re.IGNORECASE),
    re.compile(r"(service\s+agreement)", re.IGNORECASE),
    re.compile(r"(employment\s+agreement)", re.IGNORECASE),
    re.compile(r"(license\s+agreement)", re.IGNORECASE),
]
_DEFINED_TERM = re.compile(r"[\"“]([^\"“”]+)[\"”]\s+(?:means|shall mean)")
_CAPITALIZED_TERM = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclasses.dataclass
class DocumentMetadata:
    """Facts recorded about an uploaded file."""

    original_name: str
    mime_type: str
    file_size: int
    checksum: str
    word_count: int
    page_count: Optional[int] = None
    extracted_at: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    processing_errors: List[str] = dataclasses.field(default_factory=list)
    title: str = ""
    author: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation for ``Contract.metadata_json``."""
        data = dataclasses.asdict(self)
        data["extracted_at"] = self.extracted_at.isoformat()
        return data


@dataclasses.dataclass
class ProcessedDocument:
    """
    Output of the DocumentProcessor.

    Attributes:
        content:       Plain text of the document.  Suggestion offsets index
                       into this string.
        metadata:      DocumentMetadata for the upload.
        lexical_state: Lexical editor JSON (``{"root": {...}}``).
    """

    content: str
    metadata: DocumentMetadata
    lexical_state: Dict[str, Any]


@dataclasses.dataclass
class FileValidation:
    valid: bool
    error: Optional[str] = None
    reason: Optional[str] = None  # "size" or "type"


@dataclasses.dataclass
class ContractMetadata:
    parties: List[str]
    effective_date: Optional[str]
    expiration_date: Optional[str]
    contract_type: Optional[str]
    key_terms: List[str]


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class DocumentProcessor:
    """Turns uploaded bytes into text, Lexical state and metadata."""

    async def process_upload(self, buffer: bytes, original_name: str) -> ProcessedDocument:
        """
        Dispatch on the file extension.

        Raises:
            ValueError:   Unsupported extension.
            RuntimeError: The file could not be read.
        """
        ext = Path(original_name).suffix.lower().lstrip(".")
        if ext == "docx":
            return await self.process_word_document(buffer, original_name)
        if ext == "pdf":
            return await self.process_pdf_document(buffer, original_name)
        if ext == "txt":
            try:
                text = buffer.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise RuntimeError(f"Text file is not valid UTF-8: {exc}") from exc
            return await self.process_plain_text(text, original_name)
        if ext == "doc":
            raise ValueError(LEGACY_WORD_MESSAGE)
        raise ValueError(f"Unsupported file type: {ext or original_name!r}")

    # ------------------------------------------------------------------
    # Word
    # ------------------------------------------------------------------

    async def process_word_document(self, buffer: bytes, original_name: str) -> ProcessedDocument:
        """Extract text and editor state from a Word document."""
        logger.info("Processing Word document: %s", original_name)

        try:
            checksum = generate_hash(buffer)

            raw_result = mammoth.extract_raw_text(io.BytesIO(buffer))
            html_result = mammoth.convert_to_html(io.BytesIO(buffer))

            content = raw_result.value
            html_content = html_result.value

            word_count = self.count_words(content)
            processing_errors = [
                msg.message
                for msg in [*raw_result.messages, *html_result.messages]
                if msg.type == "error"
            ]

            metadata = DocumentMetadata(
                original_name=original_name,
                mime_type=self.get_mime_type_from_name(original_name),
                file_size=len(buffer),
                checksum=checksum,
                word_count=word_count,
                page_count=self.estimate_page_count(content),
                processing_errors=processing_errors,
            )
            self._read_core_properties(buffer, metadata)

            lexical_state = self.html_to_lexical(html_content)

        except Exception as exc:
            logger.error("Failed to process document %s: %s", original_name, exc)
            raise RuntimeError(f"Document processing failed: {exc}") from exc

        logger.info(
            "Document processed: %d words, %d errors",
            metadata.word_count,
            len(metadata.processing_errors),
        )
        return ProcessedDocument(content=content, metadata=metadata, lexical_state=lexical_state)

    @staticmethod
    def _read_core_properties(buffer: bytes, metadata: DocumentMetadata) -> None:
        """Copy title/author from the docx core properties, when readable."""
        try:
            core = DocxDocument(io.BytesIO(buffer)).core_properties
        except Exception as exc:
            logger.warning("Could not read core properties: %s", exc)
            return
        metadata.title = core.title or ""
        metadata.author = core.author or ""

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def process_pdf_document(self, buffer: bytes, original_name: str) -> ProcessedDocument:
        """Extract page text from a PDF with PyMuPDF."""
        logger.info("Processing PDF document: %s", original_name)
        try:
            doc = fitz.open(stream=buffer, filetype="pdf")
        except Exception as exc:
            raise RuntimeError(f"Cannot open PDF file: {exc}") from exc

        try:
            if doc.needs_pass:
                raise RuntimeError(
                    "PDF is password-protected. Please provide an unlocked copy."
                )
            pages = [page.get_text("text").strip() for page in doc]
            page_count = doc.page_count
            raw_meta = doc.metadata or {}
        finally:
            doc.close()

        content = "\n\n".join(p for p in pages if p)
        metadata = DocumentMetadata(
            original_name=original_name,
            mime_type=MIME_TYPES["pdf"],
            file_size=len(buffer),
            checksum=generate_hash(buffer),
            word_count=self.count_words(content),
            page_count=page_count,
            title=raw_meta.get("title", "") or "",
            author=raw_meta.get("author", "") or "",
        )
        return ProcessedDocument(
            content=content,
            metadata=metadata,
            lexical_state=self.text_to_lexical(content),
        )

    # ------------------------------------------------------------------
    # Plain text
    # ------------------------------------------------------------------

    async def process_plain_text(self, text: str, filename: str) -> ProcessedDocument:
        buffer = text.encode("utf-8")
        metadata = DocumentMetadata(
            original_name=filename,
            mime_type="text/plain",
            file_size=len(buffer),
            checksum=generate_hash(buffer),
            word_count=self.count_words(text),
        )
        return ProcessedDocument(
            content=text,
            metadata=metadata,
            lexical_state=self.text_to_lexical(text),
        )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    @staticmethod
    def count_words(text: str) -> int:
        return len(text.split())

    def estimate_page_count(self, text: str) -> int:
        """Rough estimate at WORDS_PER_PAGE words per page."""
        return math.ceil(self.count_words(text) / settings.WORDS_PER_PAGE)

    @staticmethod
    def get_mime_type_from_name(filename: str) -> str:
        ext = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
        return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)

    # ------------------------------------------------------------------
    # Lexical conversion
    # ------------------------------------------------------------------

    def html_to_lexical(self, html: str) -> Dict[str, Any]:
        """
        Convert mammoth HTML into a Lexical editor state.

        Paragraphs, headings, list items, quotes and table rows become block
        nodes.  HTML without any block element collapses to one paragraph
        holding the tag-stripped text.
        """
        soup = BeautifulSoup(html or "", "html.parser")
        children: List[Dict[str, Any]] = []

        for element in soup.children:
            if isinstance(element, Tag):
                children.extend(self._block_nodes(element))
            elif isinstance(element, NavigableString) and element.strip():
                children.append(_paragraph_node([_text_node(str(element))]))

        if not children:
            text_content = re.sub(r"<[^>]*>", "", html or "")
            children = [_paragraph_node([_text_node(text_content)])]

        return _root_node(children)

    def _block_nodes(self, element: Tag) -> List[Dict[str, Any]]:
        name = element.name
        if name in _HEADING_TAGS:
            node = _block_node("heading", self._inline_nodes(element))
            node["tag"] = name
            return [node]
        if name == "p":
            return [_paragraph_node(self._inline_nodes(element))]
        if name in _LIST_TAGS:
            return [self._list_node(element, indent=0)]
        if name == "blockquote":
            return [_block_node("quote", self._inline_nodes(element))]
        if name == "table":
            rows: List[Dict[str, Any]] = []
            for tr in element.find_all("tr"):
                cells = [c.get_text(" ", strip=True) for c in tr.find_all(["th", "td"])]
                cells = [c for c in cells if c]
                if cells:
                    rows.append(_paragraph_node([_text_node(" | ".join(cells))]))
            return rows
        # Unknown wrappers (div, section, ...): descend into children
        nodes: List[Dict[str, Any]] = []
        for child in element.children:
            if isinstance(child, Tag):
                nodes.extend(self._block_nodes(child))
            elif isinstance(child, NavigableString) and child.strip():
                nodes.append(_paragraph_node([_text_node(str(child))]))
        return nodes

    def _list_node(self, element: Tag, indent: int) -> Dict[str, Any]:
        ordered = element.name == "ol"
        items: List[Dict[str, Any]] = []
        for value, li in enumerate(element.find_all("li", recursive=False), start=1):
            item = _block_node("listitem", self._inline_nodes(li), indent=indent)
            item["value"] = value
            items.append(item)
            for nested in li.find_all(list(_LIST_TAGS), recursive=False):
                wrapper = _block_node("listitem", [self._list_node(nested, indent + 1)], indent=indent)
                wrapper["value"] = value
                items.append(wrapper)

        node = _block_node("list", items, indent=indent)
        node["listType"] = "number" if ordered else "bullet"
        node["start"] = 1
        node["tag"] = element.name
        return node

    def _inline_nodes(self, element: Tag, fmt: int = 0) -> List[Dict[str, Any]]:
        nodes: List[Dict[str, Any]] = []
        for child in element.children:
            if isinstance(child, NavigableString):
                text = str(child)
                if text:
                    nodes.append(_text_node(text, fmt))
            elif isinstance(child, Tag):
                if child.name in _LIST_TAGS:
                    continue  # handled by _list_node
                if child.name == "br":
                    nodes.append({"type": "linebreak", "version": 1})
                    continue
                nodes.extend(self._inline_nodes(child, fmt | _INLINE_FORMATS.get(child.name, 0)))
        return nodes

    def text_to_lexical(self, text: str) -> Dict[str, Any]:
        """Convert plain text to Lexical, one paragraph per blank-line block."""
        paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
        return _root_node([_paragraph_node([_text_node(p)]) for p in paragraphs])

    def lexical_to_text(self, lexical_state: Optional[Dict[str, Any]]) -> str:
        root = (lexical_state or {}).get("root") or {}
        children = root.get("children") or []
        return "\n\n".join(_node_text(node) for node in children)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_to_word(self, lexical_state: Optional[Dict[str, Any]]) -> bytes:
        """Render a Lexical state as a .docx file and return its bytes."""
        document = DocxDocument()
        root = (lexical_state or {}).get("root") or {}
        blocks = root.get("children") or []

        if not blocks:
            document.add_paragraph("")

        for block in blocks:
            block_type = block.get("type")
            if block_type == "heading":
                level = _heading_level(block.get("tag", "h1"))
                paragraph = document.add_heading("", level=level)
                _add_runs(paragraph, block.get("children") or [])
            elif block_type == "list":
                _add_list(document, block)
            elif block_type == "quote":
                paragraph = document.add_paragraph(style="Quote")
                _add_runs(paragraph, block.get("children") or [])
            else:
                paragraph = document.add_paragraph()
                _add_runs(paragraph, block.get("children") or [])

        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_file(
        self,
        filename: str,
        size: int,
        content_type: Optional[str] = None,
    ) -> FileValidation:
        """Check an upload against MAX_FILE_SIZE and ALLOWED_FILE_TYPES."""
        max_size = settings.MAX_FILE_SIZE
        allowed_types = settings.get_allowed_file_types()

        if size > max_size:
            return FileValidation(
                valid=False,
                reason="size",
                error=(
                    f"File size {size / 1024 / 1024:.1f}MB exceeds maximum allowed "
                    f"size of {max_size / 1024 / 1024:.1f}MB"
                ),
            )

        # Browsers and curl often send octet-stream; fall back to the extension
        mime_type = content_type
        if not mime_type or mime_type == DEFAULT_MIME_TYPE:
            mime_type = self.get_mime_type_from_name(filename)

        if mime_type not in allowed_types:
            return FileValidation(
                valid=False,
                reason="type",
                error=(
                    f"File type {mime_type} is not supported. "
                    f"Allowed types: {', '.join(allowed_types)}"
                ),
            )

        return FileValidation(valid=True)

    # ------------------------------------------------------------------
    # Contract metadata (regex heuristics)
    # ------------------------------------------------------------------

    def extract_contract_metadata(self, content: str) -> ContractMetadata:
        return ContractMetadata(
            parties=self._extract_parties(content),
            effective_date=self._extract_date(content, _EFFECTIVE_DATE),
            expiration_date=self._extract_date(content, _EXPIRATION_DATE),
            contract_type=self._extract_contract_type(content),
            key_terms=self._extract_key_terms(content),
        )

    @staticmethod
    def _extract_parties(content: str) -> List[str]:
        parties: List[str] = []
        for pattern in _PARTY_PATTERNS:
            match = pattern.search(content)
            if match and match.group(1).strip():
                parties.append(match.group(1).strip())
        return list(dict.fromkeys(parties))

    @staticmethod
    def _extract_date(content: str, pattern: re.Pattern) -> Optional[str]:
        match = pattern.search(content)
        if not match or not match.group(1).strip():
            return None
        date_str = match.group(1).strip()
        try:
            parsed = date_parser.parse(date_str, default=datetime(2000, 1, 1))
        except (ValueError, OverflowError):
            return date_str
        return parsed.date().isoformat()

    @staticmethod
    def _extract_contract_type(content: str) -> Optional[str]:
        for pattern in _CONTRACT_TYPE_PATTERNS:
            match = pattern.search(content)
            if match:
                return match.group(1).lower()
        return None

    @staticmethod
    def _extract_key_terms(content: str) -> List[str]:
        terms: List[str] = [m.group(1) for m in _DEFINED_TERM.finditer(content)]

        term_counts: Dict[str, int] = {}
        for term in _CAPITALIZED_TERM.findall(content):
            if len(term) > 3:
                term_counts[term] = term_counts.get(term, 0) + 1
        terms.extend(term for term, count in term_counts.items() if count >= 3)

        return list(dict.fromkeys(terms))[: settings.MAX_KEY_TERMS]


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _text_node(text: str, fmt: int = 0) -> Dict[str, Any]:
    return {
        "detail": 0,
        "format": fmt,
        "mode": "normal",
        "style": "",
        "text": text,
        "type": "text",
        "version": 1,
    }


def _block_node(node_type: str, children: List[Dict[str, Any]], indent: int = 0) -> Dict[str, Any]:
    return {
        "children": children,
        "direction": "ltr",
        "format": "",
        "indent": indent,
        "type": node_type,
        "version": 1,
    }


def _paragraph_node(children: List[Dict[str, Any]]) -> Dict[str, Any]:
    return _block_node("paragraph", children)


def _root_node(children: List[Dict[str, Any]]) -> Dict[str, Any]:
    root = _block_node("root", children)
    return {"root": root}


def _node_text(node: Dict[str, Any]) -> str:
    node_type = node.get("type")
    if node_type == "text":
        return node.get("text") or ""
    if node_type == "linebreak":
        return "\n"
    children = node.get("children") or []
    separator = "\n" if node_type == "list" else ""
    return separator.join(_node_text(child) for child in children)


def _heading_level(tag: str) -> int:
    try:
        return max(1, min(int(tag[1:]), 9))
    except (ValueError, IndexError):
        return 1


def _add_runs(paragraph, nodes: List[Dict[str, Any]]) -> None:
    for node in nodes:
        node_type = node.get("type")
        if node_type == "linebreak":
            paragraph.add_run().add_break()
            continue
        if node_type != "text":
            _add_runs(paragraph, node.get("children") or [])
            continue
        fmt = node.get("format") or 0
        if not isinstance(fmt, int):
            fmt = 0
        run = paragraph.add_run(node.get("text") or "")
        run.bold = bool(fmt & FORMAT_BOLD) or None
        run.italic = bool(fmt & FORMAT_ITALIC) or None
        run.underline = bool(fmt & FORMAT_UNDERLINE) or None
        if fmt & FORMAT_STRIKETHROUGH:
            run.font.strike = True
        if fmt & FORMAT_SUBSCRIPT:
            run.font.subscript = True
        if fmt & FORMAT_SUPERSCRIPT:
            run.font.superscript = True
        if fmt & FORMAT_CODE:
            run.font.name = "Courier New"
            run.font.size = Pt(10)


def _add_list(document, list_node: Dict[str, Any]) -> None:
    style = "List Number" if list_node.get("listType") == "number" else "List Bullet"
    for item in list_node.get("children") or []:
        item_children = item.get("children") or []
        nested = [c for c in item_children if c.get("type") == "list"]
        if nested:
            for child_list in nested:
                _add_list(document, child_list)
            continue
        paragraph = document.add_paragraph(style=style)
        _add_runs(paragraph, item_children)
