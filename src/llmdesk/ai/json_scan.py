"""Narrow, textual reader for the JSON fragments emitted by agent CLIs.

This is deliberately *not* a JSON parser. Agents wrap their answers in banner
text, forget to escape things, or echo the schema back at us, so the replies
are scanned with a handful of small primitives instead:

* :func:`find_field_value_start` locates ``"<field>"`` followed by ``:`` with a
  plain substring search. Lookups are not structural: an earlier occurrence of
  the same literal (for example inside another string value) wins.
* :func:`read_string_literal` decodes one JSON string literal. ``\\uXXXX``
  escapes are decoded only up to U+00FF; higher code points and malformed
  escapes become :data:`UNICODE_PLACEHOLDER`. Surrogate pairs are not joined.
* :func:`match_closing` finds the bracket closing an object or array,
  skipping over string literals.
"""

from __future__ import annotations

__all__ = [
    "UNICODE_PLACEHOLDER",
    "skip_ws",
    "read_string_literal",
    "read_int",
    "match_closing",
    "find_field_value_start",
    "extract_string_field",
    "extract_span",
]

UNICODE_PLACEHOLDER = "?"
_WHITESPACE = " \t\n\r\f\v"
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_SIMPLE_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def skip_ws(text: str, pos: int) -> int:
    """Return the first index at or after ``pos`` that is not whitespace."""

    length = len(text)
    while pos < length and text[pos] in _WHITESPACE:
        pos += 1
    return pos


def read_string_literal(text: str, pos: int) -> tuple[str, int] | None:
    """Decode the string literal starting at ``pos`` (leading whitespace allowed).

    Returns the decoded value and the index just past the closing quote, or
    ``None`` when ``pos`` does not start a string or the literal is unterminated.
    """

    pos = skip_ws(text, pos)
    length = len(text)
    if pos >= length or text[pos] != '"':
        return None
    pos += 1
    parts: list[str] = []
    while pos < length:
        ch = text[pos]
        pos += 1
        if ch == '"':
            return "".join(parts), pos
        if ch != "\\":
            parts.append(ch)
            continue
        if pos >= length:
            break
        esc = text[pos]
        pos += 1
        if esc == "u":
            digits = text[pos : pos + 4]
            if len(digits) == 4 and all(d in _HEX_DIGITS for d in digits):
                code = int(digits, 16)
                parts.append(chr(code) if code <= 0xFF else UNICODE_PLACEHOLDER)
                pos += 4
            else:
                parts.append(UNICODE_PLACEHOLDER)
            continue
        parts.append(_SIMPLE_ESCAPES.get(esc, esc))
    return None


def read_int(text: str, pos: int) -> tuple[int, int] | None:
    """Read a base-10 integer (optional sign) at ``pos``, ``strtol`` style."""

    pos = skip_ws(text, pos)
    end = pos
    length = len(text)
    if end < length and text[end] in "+-":
        end += 1
    digits_start = end
    while end < length and text[end].isdigit() and text[end].isascii():
        end += 1
    if end == digits_start:
        return None
    return int(text[pos:end], 10), end


def match_closing(text: str, pos: int, open_ch: str, close_ch: str) -> int | None:
    """Return the index of the bracket that closes the one at ``pos``."""

    length = len(text)
    if pos >= length or text[pos] != open_ch:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(pos, length):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return index
    return None


def find_field_value_start(text: str, field: str) -> int | None:
    """Return the index of the value following the first ``"field":`` occurrence."""

    if not text or not field:
        return None
    needle = f'"{field}"'
    start = text.find(needle)
    while start != -1:
        after = skip_ws(text, start + len(needle))
        if after < len(text) and text[after] == ":":
            return skip_ws(text, after + 1)
        start = text.find(needle, start + 1)
    return None


def extract_string_field(text: str, field: str) -> str | None:
    """Decode the string value of ``field``; ``None`` when absent or not a string."""

    start = find_field_value_start(text, field)
    if start is None:
        return None
    literal = read_string_literal(text, start)
    if literal is None:
        return None
    return literal[0]


def extract_span(text: str, field: str, open_ch: str, close_ch: str) -> tuple[int, int] | None:
    """Return the inclusive ``(start, end)`` bracket span of ``field``'s value."""

    start = find_field_value_start(text, field)
    if start is None or start >= len(text) or text[start] != open_ch:
        return None
    end = match_closing(text, start, open_ch, close_ch)
    if end is None:
        return None
    return start, end
