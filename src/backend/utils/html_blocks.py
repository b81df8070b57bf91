# src/backend/utils/html_blocks.py
"""
Flatten letter HTML into a small block model shared by the PDF and DOCX
renderers. Inline markup is kept as reportlab paragraph markup
(<b>, <i>, <u>, <br/>), which both renderers understand.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import List, Optional, Tuple

_INLINE = {"b": "b", "strong": "b", "i": "i", "em": "i", "u": "u", "ins": "u"}
_BLOCK = {
    "p", "div", "li", "blockquote", "center", "section", "article",
    "header", "footer", "address", "pre", "h1", "h2", "h3", "h4", "h5", "h6",
}
_SKIP = {"style", "script", "head", "title"}
_WS = re.compile(r"\s+")
_ALIGN = re.compile(r"text-align\s*:\s*(left|right|center|justify)", re.I)


@dataclass
class Block:
    kind: str                       # "para" | "table" | "hr"
    style: str = "body"             # body | h1..h6 | bullet
    align: str = "left"
    markup: str = ""
    rows: List[List[str]] = field(default_factory=list)


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _align_of(tag: str, attrs: List[Tuple[str, Optional[str]]]) -> Optional[str]:
    if tag == "center":
        return "center"
    for k, v in attrs:
        if k == "align" and v:
            return v.lower()
        if k == "style" and v:
            m = _ALIGN.search(v)
            if m:
                return m.group(1).lower()
    return None


class _Parser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.blocks: List[Block] = []
        self.buf: List[str] = []
        self.inline: List[str] = []
        self.style_stack: List[Tuple[str, str]] = [("body", "left")]
        self.skip = 0
        self.pre = 0
        self.table: Optional[List[List[str]]] = None
        self.cell: Optional[List[str]] = None

    # -- helpers ------------------------------------------------------
    def _target(self) -> List[str]:
        return self.cell if self.cell is not None else self.buf

    def _flush(self) -> None:
        if self.cell is not None:
            return
        closing = "".join(f"</{t}>" for t in reversed(self.inline))
        markup = ("".join(self.buf) + closing).strip()
        self.buf = ["".join(f"<{t}>" for t in self.inline)]
        if _strip_tags(markup).strip():
            style, align = self.style_stack[-1]
            self.blocks.append(Block(kind="para", style=style, align=align, markup=_tidy(markup)))

    # -- parser callbacks --------------------------------------------
    def handle_starttag(self, tag, attrs):
        tag = tag.lower()
        if tag in _SKIP:
            self.skip += 1
            return
        if self.skip:
            return
        if tag in _INLINE:
            t = _INLINE[tag]
            self.inline.append(t)
            self._target().append(f"<{t}>")
        elif tag == "br":
            self._target().append("<br/>")
        elif tag == "hr":
            self._flush()
            self.blocks.append(Block(kind="hr"))
        elif tag == "table":
            self._flush()
            self.table = []
        elif tag == "tr" and self.table is not None:
            self.table.append([])
        elif tag in ("td", "th") and self.table is not None:
            if not self.table:
                self.table.append([])
            self.cell = ["".join(f"<{t}>" for t in self.inline)]
            if tag == "th":
                self.cell.append("<b>")
        elif tag in _BLOCK:
            if self.cell is not None and _strip_tags("".join(self.cell)).strip():
                self.cell.append("<br/>")
            self._flush()
            if tag == "pre":
                self.pre += 1
            parent_style, parent_align = self.style_stack[-1]
            style = tag if tag.startswith("h") and len(tag) == 2 else ("bullet" if tag == "li" else parent_style)
            self.style_stack.append((style, _align_of(tag, attrs) or parent_align))

    def handle_startendtag(self, tag, attrs):
        self.handle_starttag(tag, attrs)
        if tag.lower() not in ("br", "hr"):
            self.handle_endtag(tag)

    def handle_endtag(self, tag):
        tag = tag.lower()
        if tag in _SKIP:
            self.skip = max(0, self.skip - 1)
            return
        if self.skip:
            return
        if tag in _INLINE:
            t = _INLINE[tag]
            if t in self.inline:
                # close everything opened after it, then reopen those
                idx = len(self.inline) - 1 - self.inline[::-1].index(t)
                above = self.inline[idx + 1:]
                target = self._target()
                target.append("".join(f"</{x}>" for x in reversed(above)) + f"</{t}>")
                target.append("".join(f"<{x}>" for x in above))
                del self.inline[idx]
        elif tag in ("td", "th") and self.cell is not None and self.table is not None:
            if tag == "th":
                self.cell.append("</b>")
            closing = "".join(f"</{t}>" for t in reversed(self.inline))
            self.table[-1].append(_tidy(("".join(self.cell) + closing).strip()))
            self.cell = None
        elif tag == "table" and self.table is not None:
            rows = [r for r in self.table if r]
            if rows:
                self.blocks.append(Block(kind="table", rows=rows))
            self.table = None
        elif tag in _BLOCK:
            self._flush()
            if tag == "pre":
                self.pre = max(0, self.pre - 1)
            if len(self.style_stack) > 1:
                self.style_stack.pop()

    def handle_data(self, data):
        if self.skip:
            return
        if not self.pre:
            data = _WS.sub(" ", data)
            if self.table is not None and self.cell is None:
                return
        self._target().append(_escape(data).replace("\n", "<br/>") if self.pre else _escape(data))

    def close(self):
        super().close()
        self._flush()


def _strip_tags(markup: str) -> str:
    return re.sub(r"<[^>]+>", "", markup)


def _tidy(markup: str) -> str:
    # drop empty inline pairs left behind by flushing
    prev = None
    while prev != markup:
        prev = markup
        markup = re.sub(r"<(b|i|u)>\s*</\1>", "", markup)
    return markup.strip()


def html_to_blocks(content: str) -> List[Block]:
    parser = _Parser()
    parser.feed(content or "")
    parser.close()
    return parser.blocks


def markup_to_text(markup: str) -> str:
    """Reportlab markup back to plain text (for DOCX fallback and logs)."""
    text = markup.replace("<br/>", "\n")
    text = _strip_tags(text)
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")
