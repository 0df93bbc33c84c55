"""Balanced-bracket scanning over untrusted script/markup text.

Only bracket balance is tracked; nothing is parsed. String literals are
skipped so that a ``}`` inside ``"..."`` does not close the block.
"""

from __future__ import annotations

_PAIRS = {"{": "}", "[": "]"}
_QUOTES = frozenset("\"'`")


def find_balanced_end(text: str, start: int, *, skip_strings: bool = True) -> int | None:
    """Return the index one past the bracket that closes ``text[start]``.

    ``text[start]`` must be ``{`` or ``[``. Returns ``None`` when the text
    ends before the block is closed.
    """
    opener = text[start]
    closer = _PAIRS.get(opener)
    if closer is None:
        raise ValueError(f"expected '{{' or '[' at index {start}, got {opener!r}")

    depth = 0
    quote: str | None = None
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if quote is not None:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif skip_strings and ch in _QUOTES:
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return None


def slice_balanced(text: str, start: int, *, skip_strings: bool = True) -> str | None:
    """Return the balanced block starting at ``text[start]``, or ``None``."""
    end = find_balanced_end(text, start, skip_strings=skip_strings)
    if end is None:
        return None
    return text[start:end]
