# src/backend/utils/pdf_render.py
from __future__ import annotations

import io
import logging
from typing import List

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from src.backend.utils.exceptions import TemplateRenderError
from src.backend.utils.html_blocks import Block, html_to_blocks

logger = logging.getLogger(__name__)

_ALIGNMENTS = {"left": TA_LEFT, "right": TA_RIGHT, "center": TA_CENTER, "justify": TA_JUSTIFY}


def _styles() -> dict:
    base = getSampleStyleSheet()
    body = ParagraphStyle("LetterBody", parent=base["Normal"], fontName="Helvetica", fontSize=11, leading=15, spaceAfter=6)
    styles = {
        "body": body,
        "bullet": ParagraphStyle("LetterBullet", parent=body, leftIndent=12, bulletIndent=2),
    }
    sizes = {"h1": 18, "h2": 16, "h3": 14, "h4": 12, "h5": 11, "h6": 10}
    for name, size in sizes.items():
        styles[name] = ParagraphStyle(
            f"Letter{name.upper()}",
            parent=body,
            fontName="Helvetica-Bold",
            fontSize=size,
            leading=size + 4,
            spaceBefore=6,
            spaceAfter=8,
        )
    return styles


def _paragraph(block: Block, styles: dict) -> Paragraph:
    style = styles.get(block.style, styles["body"])
    if block.align != "left":
        style = ParagraphStyle(f"{style.name}-{block.align}", parent=style, alignment=_ALIGNMENTS.get(block.align, TA_LEFT))
    if block.style == "bullet":
        return Paragraph(block.markup, style, bulletText="•")
    return Paragraph(block.markup, style)


def _table(block: Block, styles: dict) -> Table:
    width = max(len(r) for r in block.rows)
    data = [[Paragraph(c, styles["body"]) for c in r] + [""] * (width - len(r)) for r in block.rows]
    table = Table(data, hAlign="LEFT")
    table.setStyle(
        TableStyle([
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ])
    )
    return table


def html_to_pdf(content: str, title: str = "Authority Letter") -> bytes:
    """
    Render letter HTML to an A4 PDF.
    Invariant mode pins the creation date and document id, so equal input gives equal bytes.
    """
    styles = _styles()
    story: List = []
    for block in html_to_blocks(content):
        if block.kind == "para":
            story.append(_paragraph(block, styles))
        elif block.kind == "table":
            story.append(_table(block, styles))
        elif block.kind == "hr":
            story.append(HRFlowable(width="100%", thickness=0.5, color=colors.grey, spaceBefore=4, spaceAfter=4))
    if not story:
        story.append(Spacer(1, 1))

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        title=title,
        author="",
        invariant=1,
    )
    try:
        doc.build(story)
    except ValueError as e:
        # malformed paragraph markup
        logger.exception("PDF rendering failed: %s", e)
        raise TemplateRenderError("Could not render the letter as PDF")
    return buf.getvalue()
