from __future__ import annotations

from src.backend.utils.pdf_render import html_to_pdf

LETTER = """
<h2 style="text-align:center">Authority Letter</h2>
<p>To whom it may concern,</p>
<p>We authorise <b>Ravi Kumar</b> to collect documents on behalf of <i>Main Branch</i>.</p>
<ul><li>Cheque book</li><li>Passbook</li></ul>
<table><tr><td>Amount</td><td>1,50,000</td></tr></table>
<hr/>
<p>Regards</p>
"""


def test_pdf_has_header():
    assert html_to_pdf(LETTER).startswith(b"%PDF")


def test_pdf_is_deterministic():
    assert html_to_pdf(LETTER, "Letter 1") == html_to_pdf(LETTER, "Letter 1")


def test_empty_content_still_renders():
    assert html_to_pdf("").startswith(b"%PDF")


def test_special_characters_survive():
    assert html_to_pdf("<p>A &amp; B &lt; C</p>").startswith(b"%PDF")
