"""Normalize loosely-quoted JavaScript literals into strict JSON.

Player scripts declare data as JS literals (unquoted keys, single quotes,
hex keys, trailing commas, comments). ``js_to_json`` rewrites such a
fragment in one tokenizer pass so ``json.loads`` can read it.
"""

from __future__ import annotations

import re

_COMMENT_RE = r"/\*(?:(?!\*/).)*?\*/|//[^\n]*\n"
_SKIP_RE = rf"\s*(?:{_COMMENT_RE})?\s*"

_INTEGER_TABLE: tuple[tuple[int, re.Pattern[str]], ...] = (
    (16, re.compile(rf"^(0[xX][0-9a-fA-F]+){_SKIP_RE}:?$", re.DOTALL)),
    (8, re.compile(rf"^(0+[0-7]+){_SKIP_RE}:?$", re.DOTALL)),
)

_TOKEN_RE = re.compile(
    rf"""
    "(?:[^"\\]*(?:\\\\|\\['"nurtbfx/\n]))*[^"\\]*"      # double-quoted string
    |'(?:[^'\\]*(?:\\\\|\\['"nurtbfx/\n]))*[^'\\]*'     # single-quoted string
    |{_COMMENT_RE}
    |,(?={_SKIP_RE}[\]}}])                               # trailing comma
    |void\s0
    |(?:(?<![0-9])[eE]|[a-df-zA-DF-Z_$])[.a-zA-Z_$0-9]*  # bare identifier
    |\b(?:0[xX][0-9a-fA-F]+|0+[0-7]+)(?:{_SKIP_RE}:)?    # hex/octal, maybe a key
    |[0-9]+(?={_SKIP_RE}:)                               # decimal key
    """,
    re.VERBOSE | re.DOTALL,
)

_STRING_ESCAPE_RE = re.compile(r"\\.|\"", re.DOTALL)
_STRING_ESCAPES = {
    '"': '\\"',
    "\\'": "'",
    "\\\n": "",
    "\\x": "\\u00",
}
_VOID_RE = re.compile(r"void\s0")


def _fix_string(body: str) -> str:
    return _STRING_ESCAPE_RE.sub(
        lambda m: _STRING_ESCAPES.get(m.group(0), m.group(0)), body
    )


def _fix_token(match: re.Match[str]) -> str:
    v = match.group(0)
    if v in ("true", "false", "null"):
        return v
    if v == "undefined" or _VOID_RE.fullmatch(v):
        return "null"
    if v.startswith(("/*", "//")) or v == ",":
        return ""

    if v[0] in ("'", '"'):
        v = _fix_string(v[1:-1])
    else:
        for base, pattern in _INTEGER_TABLE:
            im = pattern.match(v)
            if im:
                i = int(im.group(1), base)
                return f'"{i}":' if v.endswith(":") else str(i)

    return f'"{v}"'


def js_to_json(code: str) -> str:
    """Rewrite a loose JS literal as strict JSON text.

    Strings are re-quoted with double quotes, comments and trailing commas
    dropped, bare identifiers quoted, hex/octal integers converted to
    decimal, ``void 0``/``undefined`` mapped to ``null``. Anything else
    passes through unchanged, so strict JSON input is returned as-is.
    """
    return _TOKEN_RE.sub(_fix_token, code)
