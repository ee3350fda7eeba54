"""Locate named brace blocks inside BIND configuration text."""

from __future__ import annotations

import bisect
import re
from typing import Iterator

from .models import ConfigBlock, MalformedDocumentError, NotFoundError

_TRAILER = re.compile(r"[\s;]*")


def _header_pattern(kind: str, name: str | None = None) -> re.Pattern[str]:
    """Return a pattern for ``kind "name"`` with a case-insensitive keyword."""
    quoted = re.escape(name) if name is not None else r'[^"]+'
    return re.compile(rf'(?<![\w-])(?i:{re.escape(kind)})\s+"(?P<name>{quoted})"')


def _statement_pattern(keyword: str) -> re.Pattern[str]:
    """Return a pattern for an unnamed braced statement such as ``masters {``."""
    return re.compile(rf"(?<![\w-])(?i:{re.escape(keyword)})(?=[\s{{])")


def _skip_string(text: str, index: int) -> int:
    """Return the index just past the quoted string starting at ``index``."""
    i = index + 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i + 1
        i += 1
    return -1


def _skip_comment(text: str, index: int) -> int:
    """Return the index past a comment at ``index``, or ``index`` if there is none."""
    if text.startswith("/*", index):
        close = text.find("*/", index + 2)
        return -1 if close == -1 else close + 2
    if text[index] == "#" or text.startswith("//", index):
        newline = text.find("\n", index)
        return len(text) if newline == -1 else newline + 1
    return index


def _ignored_spans(text: str) -> list[tuple[int, int]]:
    """Return (start, end) spans of comments and quoted strings."""
    spans: list[tuple[int, int]] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '"':
            end = _skip_string(text, i)
            end = len(text) if end == -1 else end
            spans.append((i, end))
            i = end
            continue
        if ch in "/#":
            end = _skip_comment(text, i)
            end = len(text) if end == -1 else end
            if end != i:
                spans.append((i, end))
                i = end
                continue
        i += 1
    return spans


def _inside(spans: list[tuple[int, int]], position: int) -> bool:
    """Return True if ``position`` falls inside one of ``spans``."""
    index = bisect.bisect_right(spans, (position, float("inf"))) - 1
    return index >= 0 and spans[index][0] <= position < spans[index][1]


def _find_open_brace(text: str, index: int, limit: int) -> int:
    """Return the first ``{`` at or after ``index`` outside strings and comments."""
    i = index
    while i < limit:
        ch = text[i]
        if ch == '"':
            i = _skip_string(text, i)
            if i == -1:
                return -1
            continue
        if ch in "/#":
            end = _skip_comment(text, i)
            if end == -1:
                return -1
            if end != i:
                i = end
                continue
        if ch == "{":
            return i
        if ch == ";":
            return -1
        i += 1
    return -1


def match_close(text: str, open_brace: int, limit: int | None = None) -> int:
    """Return the index of the ``}`` matching the ``{`` at ``open_brace``.

    Braces inside quoted strings and comments are ignored. Returns -1 when the
    depth never returns to zero before ``limit``.
    """
    limit = len(text) if limit is None else limit
    depth = 0
    i = open_brace
    while i < limit:
        ch = text[i]
        if ch == '"':
            i = _skip_string(text, i)
            if i == -1:
                return -1
            continue
        if ch in "/#":
            end = _skip_comment(text, i)
            if end == -1:
                return -1
            if end != i:
                i = end
                continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def _build_block(
    text: str,
    kind: str,
    name: str,
    start: int,
    header_end: int,
    limit: int,
) -> ConfigBlock | None:
    """Complete a block whose header spans ``start``..``header_end``."""
    open_brace = _find_open_brace(text, header_end, limit)
    if open_brace == -1:
        return None
    close_brace = match_close(text, open_brace, limit)
    if close_brace == -1:
        return None
    trailer = _TRAILER.match(text, close_brace + 1, limit)
    end = trailer.end() if trailer else close_brace + 1
    return ConfigBlock(
        kind=kind,
        name=name,
        start=start,
        open_brace=open_brace,
        close_brace=close_brace,
        end=end,
        body=text[open_brace + 1 : close_brace],
    )


def _headers(
    text: str,
    pattern: re.Pattern[str],
    start: int,
    limit: int,
) -> Iterator[re.Match[str]]:
    """Yield header matches that are not inside comments or strings."""
    spans = _ignored_spans(text)
    position = start
    while True:
        match = pattern.search(text, position, limit)
        if not match:
            return
        position = match.end()
        if _inside(spans, match.start()):
            continue
        yield match


def find_block(
    text: str,
    kind: str,
    name: str,
    start: int = 0,
    end: int | None = None,
) -> ConfigBlock | None:
    """Return the first ``kind "name" { ... };`` block, or None.

    None is also returned when the header exists but its braces never close;
    callers must not edit a document in that case.
    """
    limit = len(text) if end is None else end
    pattern = _header_pattern(kind, name)
    for match in _headers(text, pattern, start, limit):
        return _build_block(text, kind.lower(), name, match.start(), match.end(), limit)
    return None


def require_block(
    text: str,
    kind: str,
    name: str,
    start: int = 0,
    end: int | None = None,
) -> ConfigBlock:
    """Return a block or raise NotFoundError / MalformedDocumentError."""
    block = find_block(text, kind, name, start, end)
    if block is not None:
        return block
    limit = len(text) if end is None else end
    if any(True for _ in _headers(text, _header_pattern(kind, name), start, limit)):
        raise MalformedDocumentError(f'Unbalanced braces in {kind} "{name}".')
    raise NotFoundError(f'{kind} "{name}" not found.')


def iter_blocks(
    text: str,
    kind: str,
    start: int = 0,
    end: int | None = None,
) -> Iterator[ConfigBlock]:
    """Yield every block of ``kind`` in document order.

    Scanning resumes after each matched block, so blocks nested inside a
    match are not yielded separately.
    """
    limit = len(text) if end is None else end
    pattern = _header_pattern(kind)
    spans = _ignored_spans(text)
    position = start
    while True:
        match = pattern.search(text, position, limit)
        if not match:
            return
        if _inside(spans, match.start()):
            position = match.end()
            continue
        block = _build_block(text, kind.lower(), match.group("name"), match.start(), match.end(), limit)
        if block is None:
            raise MalformedDocumentError(f'Unbalanced braces in {kind} "{match.group("name")}".')
        yield block
        position = block.end


def find_statement(
    text: str,
    keyword: str,
    start: int = 0,
    end: int | None = None,
) -> ConfigBlock | None:
    """Return an unnamed braced statement such as ``match-clients { ... };``."""
    limit = len(text) if end is None else end
    for match in _headers(text, _statement_pattern(keyword), start, limit):
        block = _build_block(text, keyword.lower(), "", match.start(), match.end(), limit)
        if block is not None:
            return block
    return None


def mask_blocks(text: str, kind: str) -> str:
    """Return ``text`` with every ``kind`` block blanked out.

    The result has the same length and line structure, so offsets found in
    it are valid in the original text.
    """
    pieces: list[str] = []
    position = 0
    for block in iter_blocks(text, kind):
        pieces.append(text[position : block.start])
        pieces.append(re.sub(r"[^\n]", " ", text[block.start : block.end]))
        position = block.end
    pieces.append(text[position:])
    return "".join(pieces)
