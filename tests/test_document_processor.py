"""Tests for upload processing, Lexical conversion, export and metadata heuristics."""
import io

import fitz
import pytest
from docx import Document as DocxDocument

from contract_ai.services.document_processor import (
    DEFAULT_MIME_TYPE,
    FORMAT_BOLD,
    FORMAT_ITALIC,
    FORMAT_UNDERLINE,
    MIME_TYPES,
    DocumentProcessor,
)
from contract_ai.utils.helpers import generate_hash
from tests.conftest import make_docx

processor = DocumentProcessor()


def _root_children(state):
    return state["root"]["children"]


# ---------------------------------------------------------------------------
# HTML -> Lexical
# ---------------------------------------------------------------------------

def test_html_to_lexical_headings_and_formats():
    state = processor.html_to_lexical(
        "<h2>Terms</h2><p>Plain <strong>bold</strong> <em><u>both</u></em></p>"
    )
    heading, paragraph = _root_children(state)

    assert state["root"]["type"] == "root"
    assert heading["type"] == "heading"
    assert heading["tag"] == "h2"
    assert heading["children"][0]["text"] == "Terms"

    assert paragraph["type"] == "paragraph"
    assert [(n["text"], n["format"]) for n in paragraph["children"]] == [
        ("Plain ", 0),
        ("bold", FORMAT_BOLD),
        (" ", 0),
        ("both", FORMAT_ITALIC | FORMAT_UNDERLINE),
    ]


def test_html_to_lexical_lists():
    state = processor.html_to_lexical(
        "<ol><li>First</li><li>Second</li></ol>"
        "<ul><li>One<ul><li>Inner</li></ul></li><li>Two</li></ul>"
    )
    ordered, bullets = _root_children(state)

    assert ordered["listType"] == "number"
    assert ordered["tag"] == "ol"
    assert [item["value"] for item in ordered["children"]] == [1, 2]

    assert bullets["listType"] == "bullet"
    nested = bullets["children"][1]["children"][0]
    assert nested["type"] == "list"
    assert nested["indent"] == 1
    assert processor.lexical_to_text(state) == "First\nSecond\n\nOne\nInner\nTwo"


def test_html_to_lexical_tables_quotes_and_breaks():
    state = processor.html_to_lexical(
        "<table><tr><th>Fee</th><th>Amount</th></tr><tr><td>Setup</td><td>$100</td></tr></table>"
        "<blockquote><p>Quoted</p></blockquote>"
        "<p>Line one<br />Line two</p>"
    )
    header, row, quote, paragraph = _root_children(state)
    assert header["children"][0]["text"] == "Fee | Amount"
    assert row["children"][0]["text"] == "Setup | $100"
    assert quote["type"] == "quote"
    assert paragraph["children"][1] == {"type": "linebreak", "version": 1}
    assert processor.lexical_to_text({"root": {"children": [paragraph]}}) == "Line one\nLine two"


def test_html_to_lexical_descends_into_wrappers():
    state = processor.html_to_lexical("<div><section><p>Nested</p></section></div>")
    assert [c["children"][0]["text"] for c in _root_children(state)] == ["Nested"]


def test_html_to_lexical_fallback_single_paragraph():
    state = processor.html_to_lexical("just text")
    assert len(_root_children(state)) == 1
    assert _root_children(state)[0]["children"][0]["text"] == "just text"

    state = processor.html_to_lexical("")
    assert _root_children(state)[0]["type"] == "paragraph"
    assert _root_children(state)[0]["children"][0]["text"] == ""


def test_text_to_lexical_splits_on_blank_lines():
    state = processor.text_to_lexical("One\n\n\nTwo\n\n  \n\nThree")
    assert [c["children"][0]["text"] for c in _root_children(state)] == ["One", "Two", "Three"]
    assert processor.lexical_to_text(state) == "One\n\nTwo\n\nThree"


def test_lexical_to_text_handles_missing_state():
    assert processor.lexical_to_text(None) == ""
    assert processor.lexical_to_text({"root": {}}) == ""


# ---------------------------------------------------------------------------
# Upload processing
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_process_word_document():
    buffer = make_docx(
        ["This Services Agreement is made between Acme and Beta.", "Payment is due in 30 days."],
        heading="Master Agreement",
    )
    processed = await processor.process_word_document(buffer, "msa.docx")

    assert "Payment is due in 30 days." in processed.content
    assert processed.metadata.checksum == generate_hash(buffer)
    assert processed.metadata.mime_type == MIME_TYPES["docx"]
    assert processed.metadata.file_size == len(buffer)
    assert processed.metadata.word_count == processor.count_words(processed.content)
    assert processed.metadata.page_count == 1
    assert processed.metadata.processing_errors == []

    first = _root_children(processed.lexical_state)[0]
    assert first["type"] == "heading"
    assert first["tag"] == "h1"
    assert len(_root_children(processed.lexical_state)) == 3


@pytest.mark.asyncio
async def test_process_word_document_rejects_corrupt_file():
    with pytest.raises(RuntimeError, match="^Document processing failed: "):
        await processor.process_word_document(b"not a zip archive", "broken.docx")


@pytest.mark.asyncio
async def test_process_pdf_document():
    pdf = fitz.open()
    page = pdf.new_page()
    page.insert_text((72, 72), "Hello PDF contract")
    buffer = pdf.tobytes()
    pdf.close()

    processed = await processor.process_pdf_document(buffer, "scan.pdf")
    assert "Hello PDF contract" in processed.content
    assert processed.metadata.page_count == 1
    assert processed.metadata.mime_type == "application/pdf"
    assert len(_root_children(processed.lexical_state)) == 1


@pytest.mark.asyncio
async def test_process_upload_dispatch():
    processed = await processor.process_upload(b"First clause.\n\nSecond clause.", "notes.TXT")
    assert processed.content == "First clause.\n\nSecond clause."
    assert processed.metadata.mime_type == "text/plain"
    assert len(_root_children(processed.lexical_state)) == 2

    with pytest.raises(ValueError, match="Unsupported file type"):
        await processor.process_upload(b"MZ", "setup.exe")

    with pytest.raises(ValueError, match=r"Legacy \.doc files are not supported"):
        await processor.process_upload(b"\xd0\xcf\x11\xe0", "old-contract.doc")

    with pytest.raises(RuntimeError, match="not valid UTF-8"):
        await processor.process_upload(b"\xff\xfe\xfa", "bad.txt")


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def test_export_to_word_round_trip():
    state = processor.html_to_lexical(
        "<h1>Title</h1>"
        "<p>Normal <strong>Bold</strong></p>"
        "<ul><li>Alpha</li><li>Beta</li></ul>"
        "<ol><li>Step</li></ol>"
        "<blockquote>Cited</blockquote>"
    )
    data = processor.export_to_word(state)
    document = DocxDocument(io.BytesIO(data))
    paragraphs = document.paragraphs

    assert paragraphs[0].text == "Title"
    assert paragraphs[0].style.name == "Heading 1"

    assert paragraphs[1].text == "Normal Bold"
    assert paragraphs[1].runs[1].bold is True
    assert paragraphs[1].runs[0].bold is None

    assert [p.text for p in paragraphs[2:4]] == ["Alpha", "Beta"]
    assert paragraphs[2].style.name == "List Bullet"
    assert paragraphs[4].style.name == "List Number"
    assert paragraphs[5].style.name == "Quote"


def test_export_empty_state_is_valid_docx():
    data = processor.export_to_word(None)
    assert data[:2] == b"PK"
    assert len(DocxDocument(io.BytesIO(data)).paragraphs) == 1


# ---------------------------------------------------------------------------
# Metrics and validation
# ---------------------------------------------------------------------------

def test_counts_and_mime_types():
    assert processor.count_words("  one two\nthree\t four ") == 4
    assert processor.estimate_page_count("word " * 251) == 2
    assert processor.estimate_page_count("") == 0
    assert processor.get_mime_type_from_name("Contract.DOCX") == MIME_TYPES["docx"]
    assert processor.get_mime_type_from_name("README") == DEFAULT_MIME_TYPE


def test_validate_file_size():
    result = processor.validate_file("big.pdf", 100 * 1024 * 1024, "application/pdf")
    assert not result.valid
    assert result.reason == "size"
    assert result.error == "File size 100.0MB exceeds maximum allowed size of 90.0MB"


def test_validate_file_type():
    result = processor.validate_file("setup.exe", 10, "application/x-msdownload")
    assert not result.valid
    assert result.reason == "type"
    assert result.error.startswith("File type application/x-msdownload is not supported. Allowed types: ")


def test_validate_file_octet_stream_falls_back_to_extension():
    assert processor.validate_file("contract.docx", 10, "application/octet-stream").valid
    assert processor.validate_file("contract.pdf", 10, None).valid
    assert not processor.validate_file("archive.zip", 10, "application/octet-stream").valid


# ---------------------------------------------------------------------------
# Contract metadata
# ---------------------------------------------------------------------------

CONTRACT_TEXT = """SOFTWARE LICENSE AGREEMENT
This agreement is made between Acme Corp and Beta LLC, for software.
Client: Gamma Inc
Effective Date: January 15, 2024
Expiration Date: upon termination
"Licensed Software" means the program. the Licensor grants rights.
Only the Licensor may audit. We trust the Licensor.
"""


def test_extract_contract_metadata():
    metadata = processor.extract_contract_metadata(CONTRACT_TEXT)
    assert metadata.parties == ["Acme Corp", "Gamma Inc"]
    assert metadata.effective_date == "2024-01-15"
    assert metadata.expiration_date == "upon termination"
    assert metadata.contract_type == "license agreement"
    assert metadata.key_terms[0] == "Licensed Software"
    assert "Licensor" in metadata.key_terms


def test_extract_contract_metadata_empty_text():
    metadata = processor.extract_contract_metadata("")
    assert metadata.parties == []
    assert metadata.effective_date is None
    assert metadata.expiration_date is None
    assert metadata.contract_type is None
    assert metadata.key_terms == []


def test_key_terms_are_capped():
    text = " ".join(f'"Term{i}" means item {i}.' for i in range(30))
    assert len(processor.extract_contract_metadata(text).key_terms) == 20
