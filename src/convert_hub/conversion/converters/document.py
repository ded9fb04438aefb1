"""Rich-text documents through a normalized intermediate representation.

Every reader produces a :class:`NormalizedDocument` (headings and
paragraphs made of bold/italic text runs) and every writer serializes one.
Plain-text output drops all formatting.
"""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Callable, Mapping, Optional

import docx
from jinja2 import Environment
from markdown_it import MarkdownIt
from odf import teletype
from odf import text as odf_text
from odf.element import Element
from odf.opendocument import OpenDocumentText, load as load_odf
from odf.style import Style, TextProperties
from striprtf.striprtf import rtf_to_text

from ..compression import CompressionSettings
from ..engine import Engine
from ..errors import (
    ConversionFailure,
    UnsupportedFormatError,
    UnsupportedTargetError,
)
from ..models import ProgressReporter
from ..registry import FormatGroup
from .base import FormatConverter


@dataclass(frozen=True)
class TextRun:
    text: str
    bold: bool = False
    italic: bool = False


@dataclass(frozen=True)
class Block:
    """A paragraph, or a heading when ``heading_level`` is 1..6."""

    runs: tuple[TextRun, ...]
    heading_level: int = 0

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)


@dataclass(frozen=True)
class NormalizedDocument:
    blocks: tuple[Block, ...] = ()

    @property
    def title(self) -> str:
        for block in self.blocks:
            if block.heading_level and block.text.strip():
                return block.text.strip()
        return "Document"


class _BlockBuilder:
    """Accumulate runs and close them into blocks."""

    def __init__(self) -> None:
        self.blocks: list[Block] = []
        self._runs: list[TextRun] = []
        self._level = 0

    def start(self, level: int = 0) -> None:
        self.flush()
        self._level = level

    def add(
        self, text: str, *, bold: bool = False, italic: bool = False
    ) -> None:
        if not text:
            return
        previous = self._runs[-1] if self._runs else None
        if previous and (previous.bold, previous.italic) == (bold, italic):
            self._runs[-1] = TextRun(previous.text + text, bold, italic)
        else:
            self._runs.append(TextRun(text, bold, italic))

    def flush(self) -> None:
        runs = tuple(self._runs)
        self._runs = []
        level, self._level = self._level, 0
        if "".join(run.text for run in runs).strip():
            self.blocks.append(
                Block(runs=_strip_runs(runs), heading_level=level)
            )

    def build(self) -> NormalizedDocument:
        self.flush()
        return NormalizedDocument(blocks=tuple(self.blocks))


def _strip_runs(runs: tuple[TextRun, ...]) -> tuple[TextRun, ...]:
    items = list(runs)
    items[0] = TextRun(items[0].text.lstrip(), items[0].bold, items[0].italic)
    items[-1] = TextRun(
        items[-1].text.rstrip(), items[-1].bold, items[-1].italic
    )
    return tuple(run for run in items if run.text)


def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


# ------------- Readers -------------


def read_plain_text(data: bytes) -> NormalizedDocument:
    return _plain_text_document(_decode_text(data))


def _plain_text_document(text: str) -> NormalizedDocument:
    builder = _BlockBuilder()
    for line in text.splitlines():
        builder.start()
        builder.add(line)
    return builder.build()


def read_markdown(data: bytes) -> NormalizedDocument:
    tokens = MarkdownIt("commonmark").parse(_decode_text(data))
    builder = _BlockBuilder()
    for token in tokens:
        if token.type == "heading_open":
            builder.start(int(token.tag[1:]))
        elif token.type == "paragraph_open":
            builder.start()
        elif token.type in ("heading_close", "paragraph_close"):
            builder.flush()
        elif token.type in ("fence", "code_block"):
            for line in token.content.splitlines():
                builder.start()
                builder.add(line)
            builder.flush()
        elif token.type == "inline":
            bold = italic = False
            for child in token.children or ():
                if child.type == "strong_open":
                    bold = True
                elif child.type == "strong_close":
                    bold = False
                elif child.type == "em_open":
                    italic = True
                elif child.type == "em_close":
                    italic = False
                elif child.type in ("text", "code_inline"):
                    builder.add(child.content, bold=bold, italic=italic)
                elif child.type in ("softbreak", "hardbreak"):
                    builder.add(" ", bold=bold, italic=italic)
    return builder.build()


class _HtmlReader(HTMLParser):
    _BLOCK_TAGS = frozenset(
        {"p", "div", "li", "blockquote", "pre", "tr", "section", "article"}
    )
    _CELL_TAGS = frozenset({"td", "th"})
    _HEADINGS = {f"h{level}": level for level in range(1, 7)}
    _SKIPPED = frozenset({"script", "style", "head", "title"})

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.builder = _BlockBuilder()
        self._bold = 0
        self._italic = 0
        self._skip = 0

    def handle_starttag(self, tag, attrs):  # noqa: D401
        if tag in self._SKIPPED:
            self._skip += 1
        elif tag in self._HEADINGS:
            self.builder.start(self._HEADINGS[tag])
        elif tag in self._BLOCK_TAGS or tag == "br":
            self.builder.start()
        elif tag in ("b", "strong"):
            self._bold += 1
        elif tag in ("i", "em"):
            self._italic += 1

    def handle_endtag(self, tag):  # noqa: D401
        if tag in self._SKIPPED:
            self._skip = max(0, self._skip - 1)
        elif tag in self._HEADINGS or tag in self._BLOCK_TAGS:
            self.builder.flush()
        elif tag in self._CELL_TAGS:
            self.builder.add("\t")
        elif tag in ("b", "strong"):
            self._bold = max(0, self._bold - 1)
        elif tag in ("i", "em"):
            self._italic = max(0, self._italic - 1)

    def handle_data(self, data):  # noqa: D401
        if self._skip:
            return
        collapsed = " ".join(data.split())
        if not collapsed:
            return
        if data[:1].isspace():
            collapsed = " " + collapsed
        if data[-1:].isspace():
            collapsed += " "
        self.builder.add(
            collapsed, bold=bool(self._bold), italic=bool(self._italic)
        )


def read_html(data: bytes) -> NormalizedDocument:
    reader = _HtmlReader()
    reader.feed(_decode_text(data))
    reader.close()
    return reader.builder.build()


def read_docx(data: bytes) -> NormalizedDocument:
    document = docx.Document(io.BytesIO(data))
    builder = _BlockBuilder()
    for paragraph in document.paragraphs:
        style_name = paragraph.style.name if paragraph.style is not None else ""
        builder.start(_heading_level_from_style(style_name))
        for run in paragraph.runs:
            builder.add(run.text, bold=bool(run.bold), italic=bool(run.italic))
    return builder.build()


def _heading_level_from_style(style_name: str) -> int:
    if style_name == "Title":
        return 1
    if style_name.startswith("Heading"):
        suffix = style_name[len("Heading"):].strip()
        if suffix.isdigit():
            return max(1, min(6, int(suffix)))
    return 0


def read_odt(data: bytes) -> NormalizedDocument:
    document = load_odf(io.BytesIO(data))
    builder = _BlockBuilder()
    _walk_odf(document.text, builder)
    return builder.build()


def _walk_odf(node: Element, builder: _BlockBuilder) -> None:
    for child in node.childNodes:
        if child.nodeType != child.ELEMENT_NODE:
            continue
        local_name = child.qname[1]
        if local_name == "h":
            level = child.getAttribute("outlinelevel") or "1"
            builder.start(max(1, min(6, int(level))))
            builder.add(teletype.extractText(child))
            builder.flush()
        elif local_name == "p":
            builder.start()
            builder.add(teletype.extractText(child))
            builder.flush()
        else:
            _walk_odf(child, builder)


def read_rtf(data: bytes) -> NormalizedDocument:
    return _plain_text_document(
        rtf_to_text(data.decode("latin-1"), errors="ignore")
    )


def read_doc(data: bytes) -> NormalizedDocument:
    if data.lstrip().startswith(b"{\\rtf"):
        return read_rtf(data)
    raise ConversionFailure(
        "Legacy binary .doc files cannot be read; save the file as .docx or "
        ".rtf first."
    )


# ------------- Writers -------------


def write_plain_text(document: NormalizedDocument) -> bytes:
    body = "\n\n".join(block.text for block in document.blocks)
    return (body + "\n" if body else "").encode("utf-8")


def write_markdown(document: NormalizedDocument) -> bytes:
    lines: list[str] = []
    for block in document.blocks:
        text = "".join(_markdown_run(run) for run in block.runs)
        if block.heading_level:
            text = "#" * block.heading_level + " " + text
        lines.append(text)
    body = "\n\n".join(lines)
    return (body + "\n" if body else "").encode("utf-8")


def _markdown_run(run: TextRun) -> str:
    text = run.text
    for char in ("\\", "`", "*", "_"):
        text = text.replace(char, "\\" + char)
    if run.bold and run.italic:
        return f"***{text}***"
    if run.bold:
        return f"**{text}**"
    if run.italic:
        return f"*{text}*"
    return text


_HTML_TEMPLATE = Environment(autoescape=True).from_string(
    """{% macro inline(run) -%}
{%- if run.bold %}<strong>{% endif -%}
{%- if run.italic %}<em>{% endif -%}
{{ run.text }}
{%- if run.italic %}</em>{% endif -%}
{%- if run.bold %}</strong>{% endif -%}
{%- endmacro -%}
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
</head>
<body>
{% for tag, runs in blocks -%}
<{{ tag }}>{% for run in runs %}{{ inline(run) }}{% endfor %}</{{ tag }}>
{% endfor -%}
</body>
</html>
"""
)


def write_html(document: NormalizedDocument) -> bytes:
    blocks = [
        (_html_tag(block.heading_level), block.runs)
        for block in document.blocks
    ]
    rendered = _HTML_TEMPLATE.render(title=document.title, blocks=blocks)
    return rendered.encode("utf-8")


def _html_tag(heading_level: int) -> str:
    return f"h{min(heading_level, 6)}" if heading_level else "p"


def write_docx(document: NormalizedDocument) -> bytes:
    output = docx.Document()
    for block in document.blocks:
        if block.heading_level:
            paragraph = output.add_heading(level=block.heading_level)
        else:
            paragraph = output.add_paragraph()
        for run in block.runs:
            added = paragraph.add_run(run.text)
            added.bold = run.bold or None
            added.italic = run.italic or None
    buffer = io.BytesIO()
    output.save(buffer)
    return buffer.getvalue()


def write_odt(document: NormalizedDocument) -> bytes:
    output = OpenDocumentText()
    styles = _odf_run_styles(output)
    for block in document.blocks:
        if block.heading_level:
            element = odf_text.H(outlinelevel=block.heading_level)
        else:
            element = odf_text.P()
        for run in block.runs:
            style = styles.get((run.bold, run.italic))
            if style is None:
                teletype.addTextToElement(element, run.text)
                continue
            span = odf_text.Span(stylename=style)
            teletype.addTextToElement(span, run.text)
            element.addElement(span)
        output.text.addElement(element)
    buffer = io.BytesIO()
    output.write(buffer)
    return buffer.getvalue()


def _odf_run_styles(output: OpenDocumentText) -> dict[tuple[bool, bool], Style]:
    styles: dict[tuple[bool, bool], Style] = {}
    for key, name, props in (
        ((True, False), "Bold", {"fontweight": "bold"}),
        ((False, True), "Italic", {"fontstyle": "italic"}),
        (
            (True, True),
            "BoldItalic",
            {"fontweight": "bold", "fontstyle": "italic"},
        ),
    ):
        style = Style(name=name, family="text")
        style.addElement(TextProperties(**props))
        output.automaticstyles.addElement(style)
        styles[key] = style
    return styles


_RTF_HEADING_SIZES = {1: 36, 2: 32, 3: 28}


def write_rtf(document: NormalizedDocument) -> bytes:
    parts = ["{\\rtf1\\ansi\\deff0{\\fonttbl{\\f0 Helvetica;}}\\f0\\fs24"]
    for block in document.blocks:
        body = "".join(_rtf_run(run) for run in block.runs)
        if block.heading_level:
            size = _RTF_HEADING_SIZES.get(block.heading_level, 26)
            parts.append(f"\\pard\\b\\fs{size} {body}\\b0\\fs24\\par")
        else:
            parts.append(f"\\pard {body}\\par")
    parts.append("}")
    return "\n".join(parts).encode("ascii")


def _rtf_run(run: TextRun) -> str:
    text = _rtf_escape(run.text)
    if run.bold:
        text = "{\\b " + text + "}"
    if run.italic:
        text = "{\\i " + text + "}"
    return text


def _rtf_escape(text: str) -> str:
    pieces: list[str] = []
    for char in text:
        if char in "\\{}":
            pieces.append("\\" + char)
        elif char == "\n":
            pieces.append("\\line ")
        elif ord(char) < 128:
            pieces.append(char)
        else:
            encoded = char.encode("utf-16-le")
            for index in range(0, len(encoded), 2):
                unit = int.from_bytes(encoded[index:index + 2], "little")
                signed = unit - 0x10000 if unit > 0x7FFF else unit
                pieces.append(f"\\u{signed}?")
    return "".join(pieces)


Reader = Callable[[bytes], NormalizedDocument]
Writer = Callable[[NormalizedDocument], bytes]

READERS: Mapping[str, Reader] = {
    ".doc": read_doc,
    ".docx": read_docx,
    ".odt": read_odt,
    ".rtf": read_rtf,
    ".txt": read_plain_text,
    ".md": read_markdown,
    ".html": read_html,
}

# Word opens RTF content saved under .doc, which keeps .doc writable
# without a binary Word encoder.
WRITERS: Mapping[str, Writer] = {
    ".doc": write_rtf,
    ".docx": write_docx,
    ".odt": write_odt,
    ".rtf": write_rtf,
    ".txt": write_plain_text,
    ".md": write_markdown,
    ".html": write_html,
}


def convert_document(
    data: bytes, source_format: str, target_format: str
) -> bytes:
    reader = READERS.get(source_format)
    if reader is None:
        raise UnsupportedFormatError(
            f"No document reader for '{source_format}'."
        )
    writer = WRITERS.get(target_format)
    if writer is None:
        raise UnsupportedTargetError(
            f"Documents cannot be converted to '{target_format}'."
        )
    return writer(reader(data))


class DocumentConverter(FormatConverter):
    groups = frozenset({FormatGroup.DOCUMENT})

    async def convert(
        self,
        data: bytes,
        source_format: str,
        target_format: str,
        settings: CompressionSettings,
        *,
        engine: Optional[Engine] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> bytes:
        return await asyncio.to_thread(
            convert_document, data, source_format, target_format
        )


__all__ = [
    "Block",
    "DocumentConverter",
    "NormalizedDocument",
    "READERS",
    "TextRun",
    "WRITERS",
    "convert_document",
]
