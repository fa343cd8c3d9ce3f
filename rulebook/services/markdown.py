"""Markdown to HTML conversion for rule and parameter descriptions.

Raw HTML in the source is never trusted: every special character is escaped
before the supported Markdown subset is turned into tags.

Supported syntax:
    ``code``            inline code
    *text*              strong
    [label](http://..)  link
    * item              unordered list item
    = Title / == Title  headings
    ```                 fenced code block
"""

import html
import re
from typing import Optional

_CODE_SPAN = re.compile(r"``(.+?)``")
_STRONG = re.compile(r"(?<![\w*])\*(?=\S)([^*\n]+?)(?<=\S)\*(?![\w*])")
_LINK = re.compile(r"\[([^\]\n]+)\]\((https?://[^\s)]+)\)")
_HEADING = re.compile(r"^(={1,2})\s+(.+?)\s*$")
_LIST_ITEM = re.compile(r"^\s*\*\s+(.*)$")
_FENCE = "```"


def _format_inline(text: str) -> str:
    # Code spans are emitted verbatim, formatting only applies between them
    parts: list[str] = []
    last = 0
    for match in _CODE_SPAN.finditer(text):
        parts.append(_format_plain(text[last:match.start()]))
        parts.append(f"<code>{match.group(1)}</code>")
        last = match.end()
    parts.append(_format_plain(text[last:]))
    return "".join(parts)


def _strong(text: str) -> str:
    return _STRONG.sub(r"<strong>\1</strong>", text)


def _format_plain(text: str) -> str:
    # Link targets are never formatted
    parts: list[str] = []
    last = 0
    for match in _LINK.finditer(text):
        parts.append(_strong(text[last:match.start()]))
        parts.append(f'<a href="{match.group(2)}" target="_blank">{_strong(match.group(1))}</a>')
        last = match.end()
    parts.append(_strong(text[last:]))
    return "".join(parts)


def to_html(markdown: Optional[str]) -> str:
    """Convert Markdown to HTML, escaping any HTML the source contains."""
    if not markdown:
        return ""

    lines = html.escape(markdown, quote=True).replace("\r\n", "\n").split("\n")

    blocks: list[tuple[str, str]] = []  # (kind, html) with kind "text" or "block"
    list_items: list[str] = []
    code_lines: Optional[list[str]] = None

    def flush_list() -> None:
        if list_items:
            items = "".join(f"<li>{item}</li>" for item in list_items)
            blocks.append(("block", f"<ul>{items}</ul>"))
            list_items.clear()

    for line in lines:
        if code_lines is not None:
            if line.strip() == _FENCE:
                blocks.append(("block", "<pre>" + "\n".join(code_lines) + "</pre>"))
                code_lines = None
            else:
                code_lines.append(line)
            continue

        if line.strip() == _FENCE:
            flush_list()
            code_lines = []
            continue

        item = _LIST_ITEM.match(line)
        if item:
            list_items.append(_format_inline(item.group(1)))
            continue
        flush_list()

        heading = _HEADING.match(line)
        if heading:
            level = len(heading.group(1)) + 1
            blocks.append(("block", f"<h{level}>{_format_inline(heading.group(2))}</h{level}>"))
            continue

        blocks.append(("text", _format_inline(line)))

    flush_list()
    if code_lines is not None:
        # Unterminated fence: keep the content as a code block
        blocks.append(("block", "<pre>" + "\n".join(code_lines) + "</pre>"))

    out: list[str] = []
    previous_kind = None
    for kind, fragment in blocks:
        if kind == "text" and previous_kind == "text":
            out.append("<br/>")
        out.append(fragment)
        previous_kind = kind
    return "".join(out)
