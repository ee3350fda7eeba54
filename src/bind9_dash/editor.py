"""Insert, replace and remove brace blocks in configuration text.

Every function is pure: text in, text out. Block offsets must come from a
scan of the exact text being edited.
"""

from __future__ import annotations

import re

from .models import ConfigBlock

INDENT = "    "


def normalize_blank_lines(text: str) -> str:
    """Collapse runs of blank lines and keep exactly one trailing newline."""
    collapsed = re.sub(r"\n{3,}", "\n\n", text)
    collapsed = re.sub(r"\A(?:[ \t]*\n)+", "", collapsed)
    collapsed = collapsed.rstrip()
    return f"{collapsed}\n" if collapsed else ""


def _line_start(text: str, index: int) -> int:
    """Return the offset of the first character of the line holding ``index``."""
    return text.rfind("\n", 0, index) + 1


def _indentation(line: str) -> str:
    """Return the leading whitespace of ``line``."""
    return line[: len(line) - len(line.lstrip(" \t"))]


def _indent_block(block_text: str, indent: str) -> str:
    """Indent every non-empty line of ``block_text``."""
    lines = block_text.strip("\n").splitlines()
    return "\n".join(f"{indent}{line}" if line.strip() else "" for line in lines)


def remove_block(text: str, block: ConfigBlock) -> str:
    """Excise ``block`` and normalise the surrounding blank lines."""
    start = block.start
    line_start = _line_start(text, start)
    if not text[line_start:start].strip():
        start = line_start
    end = block.end
    last_newline = text.rfind("\n", block.close_brace, end)
    if last_newline != -1:
        # keep the indentation of whatever follows
        end = last_newline + 1
    before, after = text[:start], text[end:]
    if after.lstrip(" \t").startswith("}"):
        before = before.rstrip("\n") + "\n"
    return normalize_blank_lines(before + after)


def _container_indent(text: str, container: ConfigBlock) -> str:
    """Return the indentation used for statements inside ``container``."""
    header_line_start = _line_start(text, container.start)
    header_indent = _indentation(text[header_line_start : container.start])
    inner = text[container.open_brace + 1 : container.close_brace]
    # the first piece shares the header line
    lines = [line for line in inner.split("\n")[1:] if line.strip()]
    if lines:
        return _indentation(lines[-1])
    return header_indent + INDENT


def insert_into(text: str, container: ConfigBlock, block_text: str) -> str:
    """Insert ``block_text`` on its own line just before the container's close."""
    indent = _container_indent(text, container)
    indented = _indent_block(block_text, indent)
    close = container.close_brace
    close_line_start = _line_start(text, close)
    if close_line_start > container.open_brace and not text[close_line_start:close].strip():
        return f"{text[:close_line_start]}{indented}\n{text[close_line_start:]}"
    header_indent = _indentation(text[_line_start(text, container.start) : container.start])
    before = text[:close].rstrip(" \t")
    return f"{before}\n{indented}\n{header_indent}{text[close:]}"


def insert_top_level(text: str, block_text: str) -> str:
    """Append ``block_text`` at the end of the document."""
    body = text.rstrip()
    block = block_text.strip("\n")
    if not body:
        return f"{block}\n"
    return f"{body}\n\n{block}\n"


def insert_before(text: str, offset: int, block_text: str) -> str:
    """Insert ``block_text`` as its own paragraph at the line holding ``offset``."""
    position = _line_start(text, offset)
    block = block_text.strip("\n")
    return f"{text[:position]}{block}\n\n{text[position:]}"


def replace_body(text: str, block: ConfigBlock, body: str) -> str:
    """Splice a new interior between the block's braces."""
    return f"{text[: block.open_brace + 1]}{body}{text[block.close_brace :]}"


def replace_block(text: str, block: ConfigBlock, block_text: str) -> str:
    """Replace the whole block, including its own ``;``, with ``block_text``.

    Whitespace following the block is kept; continuation lines of the new
    block are indented like the original header line.
    """
    header_indent = _indentation(text[_line_start(text, block.start) : block.start])
    lines = block_text.strip("\n").splitlines()
    rebuilt = "\n".join([lines[0], *(f"{header_indent}{line}" if line.strip() else "" for line in lines[1:])])
    end = block.close_brace + 1
    semicolon = re.compile(r"[ \t]*;").match(text, end)
    if semicolon:
        end = semicolon.end()
    return f"{text[: block.start]}{rebuilt}{text[end:]}"
