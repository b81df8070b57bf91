from __future__ import annotations

import io
import zipfile

import pytest

from src.backend.utils.exceptions import TemplateRenderError
from src.backend.utils.word_render import (
    extract_docx_html,
    find_placeholders,
    html_to_docx,
    render_docx,
)

W_NS = 'xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'


def make_docx(body: str) -> bytes:
    document = f'<?xml version="1.0" encoding="UTF-8"?><w:document {W_NS}><w:body>{body}</w:body></w:document>'
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
        zf.writestr("word/document.xml", document)
    return buf.getvalue()


def document_xml(data: bytes) -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return zf.read("word/document.xml").decode("utf-8")


# placeholder split over three runs, the first one bold
SPLIT = (
    "<w:p>"
    "<w:r><w:t>Dear </w:t></w:r>"
    "<w:r><w:rPr><w:b/></w:rPr><w:t>##cust</w:t></w:r>"
    "<w:r><w:t>omer_name#</w:t></w:r>"
    "<w:r><w:t>#, welcome</w:t></w:r>"
    "</w:p>"
)


def test_find_placeholders_across_runs():
    data = make_docx(SPLIT + "<w:p><w:r><w:t>##branch## ##customer_name##</w:t></w:r></w:p>")
    assert find_placeholders(data) == ["customer_name", "branch"]


def test_render_replaces_split_placeholder_in_first_run():
    out = render_docx(make_docx(SPLIT), {"customer_name": "R & K"}.get)
    xml = document_xml(out)
    assert "##" not in xml
    assert "<w:b/></w:rPr><w:t xml:space=\"preserve\">R &amp; K</w:t>" in xml
    assert "welcome" in xml


def test_unresolved_placeholder_is_left_as_written():
    out = render_docx(make_docx("<w:p><w:r><w:t>##unknown##</w:t></w:r></w:p>"), lambda name: None)
    assert "##unknown##" in document_xml(out)


def test_multiline_value_becomes_line_breaks():
    out = render_docx(make_docx("<w:p><w:r><w:t>##addr##</w:t></w:r></w:p>"), {"addr": "Line 1\nLine 2"}.get)
    assert "<w:br/>" in document_xml(out)


def test_render_is_reproducible():
    data = make_docx(SPLIT)
    assert render_docx(data, {"customer_name": "A"}.get) == render_docx(data, {"customer_name": "A"}.get)


def test_invalid_package_is_rejected():
    with pytest.raises(TemplateRenderError):
        find_placeholders(b"not a zip")
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("other.xml", "<x/>")
    with pytest.raises(TemplateRenderError):
        render_docx(buf.getvalue(), lambda name: None)


def test_extract_html_keeps_basic_formatting():
    data = make_docx(
        "<w:p><w:r><w:rPr><w:b/></w:rPr><w:t>Bold</w:t></w:r><w:r><w:t> plain</w:t></w:r></w:p><w:p/>"
    )
    html = extract_docx_html(data)
    assert "<p><strong>Bold</strong> plain</p>" in html
    assert "<p><br/></p>" in html


def test_html_to_docx_produces_a_word_package():
    out = html_to_docx("<p>Hello <b>World</b></p><p style='text-align:center'>Sign</p>")
    with zipfile.ZipFile(io.BytesIO(out)) as zf:
        names = zf.namelist()
    assert "word/document.xml" in names
    xml = document_xml(out)
    assert "Hello" in xml
    assert "<w:b/>" in xml
    assert '<w:jc w:val="center"/>' in xml
