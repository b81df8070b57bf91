# src/backend/utils/word_render.py
"""
Placeholder substitution inside .docx packages, done directly on the
WordprocessingML parts so run formatting around the placeholders survives.
"""
from __future__ import annotations

import io
import re
import zipfile
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from xml.sax.saxutils import escape as xml_escape, unescape as xml_unescape

from src.backend.utils.exceptions import TemplateRenderError
from src.backend.utils.html_blocks import html_to_blocks, markup_to_text
from src.backend.utils.placeholders import PLACEHOLDER_RE

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_PART_RE = re.compile(r"^word/(document|header\d*|footer\d*|footnotes|endnotes)\.xml$")
_PARA_RE = re.compile(r"<w:p[ >].*?</w:p>|<w:p/>", re.S)
_TEXT_RE = re.compile(r"(<w:t(?:\s[^>]*)?>)(.*?)(</w:t>)", re.S)
_BOLD_RE = re.compile(r"<w:b(?:\s+w:val=\"(?:1|true|on)\")?\s*/>")
_ITALIC_RE = re.compile(r"<w:i(?:\s+w:val=\"(?:1|true|on)\")?\s*/>")
_UNDERLINE_RE = re.compile(r"<w:u\s+w:val=\"(?!none)[^\"]+\"\s*/>")
_RUN_RE = re.compile(r"<w:r[ >].*?</w:r>", re.S)

# fixed entry timestamp keeps the archive reproducible
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

Lookup = Callable[[str], Optional[str]]


def _open(data: bytes) -> zipfile.ZipFile:
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile:
        raise TemplateRenderError("Word template is not a valid .docx file")
    if "word/document.xml" not in zf.namelist():
        raise TemplateRenderError("Word template is missing word/document.xml")
    return zf


def _paragraph_texts(paragraph: str) -> List[Tuple[int, int, str]]:
    """(start, end, unescaped text) of every <w:t> body in a paragraph."""
    return [(m.start(2), m.end(2), xml_unescape(m.group(2))) for m in _TEXT_RE.finditer(paragraph)]


def find_placeholders(data: bytes) -> List[str]:
    """Placeholder names in a .docx, in document order."""
    names: Dict[str, None] = {}
    with _open(data) as zf:
        for name in sorted(n for n in zf.namelist() if _PART_RE.match(n)):
            xml = zf.read(name).decode("utf-8")
            for para in _PARA_RE.findall(xml):
                full = "".join(t for _, _, t in _paragraph_texts(para))
                for m in PLACEHOLDER_RE.finditer(full):
                    if m.group(1).strip():
                        names.setdefault(m.group(1).strip(), None)
    return list(names)


def _escape_value(value: str) -> str:
    # newlines become soft breaks inside the same run
    return '</w:t><w:br/><w:t xml:space="preserve">'.join(xml_escape(v) for v in value.split("\n"))


def _substitute_paragraph(paragraph: str, lookup: Lookup) -> str:
    texts = _paragraph_texts(paragraph)
    if not texts:
        return paragraph
    full = "".join(t for _, _, t in texts)
    matches = [m for m in PLACEHOLDER_RE.finditer(full) if m.group(1).strip()]
    if not matches:
        return paragraph

    # owner[i] = index of the <w:t> holding character i
    owner: List[int] = []
    for idx, (_, _, t) in enumerate(texts):
        owner.extend([idx] * len(t))

    pieces: List[List[str]] = [[] for _ in texts]
    pos = 0
    for m in matches:
        for i in range(pos, m.start()):
            pieces[owner[i]].append(xml_escape(full[i]))
        rep = lookup(m.group(1).strip())
        if rep is None:
            for i in range(m.start(), m.end()):
                pieces[owner[i]].append(xml_escape(full[i]))
        else:
            # the whole replacement lands in the run where the placeholder starts
            pieces[owner[m.start()]].append(_escape_value(rep))
        pos = m.end()
    for i in range(pos, len(full)):
        pieces[owner[i]].append(xml_escape(full[i]))

    out: List[str] = []
    cursor = 0
    for (start, end, _), piece in zip(texts, pieces):
        out.append(paragraph[cursor:start])
        out.append("".join(piece))
        cursor = end
    out.append(paragraph[cursor:])
    rebuilt = "".join(out)
    # runs whose text now has edge spaces need xml:space="preserve"
    return re.sub(r"<w:t>", '<w:t xml:space="preserve">', rebuilt)


def substitute_part(xml: str, lookup: Lookup) -> str:
    return _PARA_RE.sub(lambda m: _substitute_paragraph(m.group(0), lookup), xml)


def _write_zip(entries: Iterable[Tuple[zipfile.ZipInfo, bytes]]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as out:
        for info, payload in entries:
            zi = zipfile.ZipInfo(info.filename, date_time=_ZIP_EPOCH)
            zi.compress_type = zipfile.ZIP_DEFLATED
            zi.external_attr = info.external_attr
            out.writestr(zi, payload)
    return buf.getvalue()


def render_docx(data: bytes, lookup: Lookup) -> bytes:
    """Return a new .docx with every resolvable placeholder replaced."""
    with _open(data) as zf:
        entries = []
        for info in zf.infolist():
            payload = zf.read(info.filename)
            if _PART_RE.match(info.filename):
                xml = payload.decode("utf-8")
                payload = substitute_part(xml, lookup).encode("utf-8")
            entries.append((info, payload))
    return _write_zip(entries)


# ---------------------------------------------------------------------
# .docx -> simple HTML (template import)
# ---------------------------------------------------------------------
def _run_to_html(run: str) -> str:
    text = "".join(xml_unescape(m.group(2)) for m in _TEXT_RE.finditer(run))
    if "<w:br" in run:
        text += "\n"
    if not text:
        return ""
    html_text = xml_escape(text).replace("\n", "<br/>")
    if _UNDERLINE_RE.search(run):
        html_text = f"<u>{html_text}</u>"
    if _ITALIC_RE.search(run):
        html_text = f"<em>{html_text}</em>"
    if _BOLD_RE.search(run):
        html_text = f"<strong>{html_text}</strong>"
    return html_text


def extract_docx_html(data: bytes) -> str:
    with _open(data) as zf:
        xml = zf.read("word/document.xml").decode("utf-8")
    paras: List[str] = []
    for para in _PARA_RE.findall(xml):
        inner = "".join(_run_to_html(r) for r in _RUN_RE.findall(para))
        paras.append(f"<p>{inner}</p>" if inner else "<p><br/></p>")
    return "\n".join(paras)


# ---------------------------------------------------------------------
# HTML -> minimal .docx (templates without a Word file)
# ---------------------------------------------------------------------
_CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    "</Types>"
)
_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)
_INLINE_TAG = re.compile(r"(</?[biu]>|<br/>)")


def _markup_runs(markup: str) -> str:
    bold = italic = underline = False
    runs: List[str] = []
    for part in _INLINE_TAG.split(markup):
        if not part:
            continue
        if part in ("<b>", "</b>"):
            bold = part == "<b>"
        elif part in ("<i>", "</i>"):
            italic = part == "<i>"
        elif part in ("<u>", "</u>"):
            underline = part == "<u>"
        elif part == "<br/>":
            runs.append("<w:r><w:br/></w:r>")
        else:
            props = "".join([
                "<w:b/>" if bold else "",
                "<w:i/>" if italic else "",
                '<w:u w:val="single"/>' if underline else "",
            ])
            rpr = f"<w:rPr>{props}</w:rPr>" if props else ""
            text = xml_escape(markup_to_text(part))
            runs.append(f'<w:r>{rpr}<w:t xml:space="preserve">{text}</w:t></w:r>')
    return "".join(runs)


def html_to_docx(content: str) -> bytes:
    body: List[str] = []
    for block in html_to_blocks(content):
        if block.kind == "para":
            jc = f'<w:jc w:val="{"both" if block.align == "justify" else block.align}"/>' if block.align != "left" else ""
            ppr = f"<w:pPr>{jc}</w:pPr>" if jc else ""
            markup = f"<b>{block.markup}</b>" if block.style.startswith("h") else block.markup
            runs = _markup_runs(markup)
            body.append(f"<w:p>{ppr}{runs}</w:p>")
        elif block.kind == "table":
            for row in block.rows:
                body.append(f"<w:p>{_markup_runs(' | '.join(row))}</w:p>")
        elif block.kind == "hr":
            body.append("<w:p/>")
    document = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{''.join(body)}<w:sectPr/></w:body></w:document>"
    )
    entries: List[Tuple[zipfile.ZipInfo, bytes]] = [
        (zipfile.ZipInfo("[Content_Types].xml"), _CONTENT_TYPES.encode("utf-8")),
        (zipfile.ZipInfo("_rels/.rels"), _RELS.encode("utf-8")),
        (zipfile.ZipInfo("word/document.xml"), document.encode("utf-8")),
    ]
    return _write_zip(entries)
