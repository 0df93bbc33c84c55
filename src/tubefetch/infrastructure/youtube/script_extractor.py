"""Slice the signature and n-parameter decoders out of the player script.

The player script is several megabytes of obfuscated JavaScript. Running
it whole would need a browser environment, so instead the two small
routines that transform ``s`` and ``n`` are located by pattern and cut
out together with the globals they reference. The result is a
self-contained fragment that a bare script runtime can load.

Patterns are tied to the host's current script shape. When the host
reshuffles its obfuscator these raise ``PatternNotFoundError`` and need
an update; retrying does not help.
"""

from __future__ import annotations

import json
import re

import structlog

from tubefetch.domain.entities.media import DecoderFunction, DecoderKind
from tubefetch.domain.exceptions import PatternNotFoundError

from .loose_json import js_to_json
from .scanning import slice_balanced

log = structlog.get_logger(__name__)

_IDENT = r"[a-zA-Z0-9_$]"

# Xy=function(a){a=a.split("");Ab.cd(a,3);...;return a.join("")}
_SIGNATURE_FUNCTION_RE = re.compile(
    rf"(?<![a-zA-Z0-9_$])(?P<name>{_IDENT}{{1,4}})=function\((?P<arg>{_IDENT}+)\)\{{"
    rf"(?P=arg)=(?P=arg)\.split\(\"\"\);"
    rf"(?P<body>(?P<helper>{_IDENT}+)\..*?return (?P=arg)\.join\(\"\"\))\}}"
)

# First helper call inside the signature function body: Ab.cd(
_HELPER_CALL_RE = re.compile(
    r"(?<![a-zA-Z0-9_$])(?P<object>[a-zA-Z_$][a-zA-Z0-9_$]*)\.(?P<method>[a-zA-Z_$][a-zA-Z0-9_$]*)\("
)

# .get("n"))&&(b=Xy[0](b)  or  .get("n"))&&(b=Xy(b)
_N_CALL_SITE_RES: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\.get\(\"n\"\)\)&&\([a-zA-Z0-9_$]+=(?P<nfunc>[a-zA-Z0-9_$]+)"
        r"(?:\[(?P<index>\d+)\])?\([a-zA-Z0-9_$]+\)"
    ),
    re.compile(
        r"\.get\(String\.fromCharCode\(110\)\)\)&&\([a-zA-Z0-9_$]+=(?P<nfunc>[a-zA-Z0-9_$]+)"
        r"(?:\[(?P<index>\d+)\])?\([a-zA-Z0-9_$]+\)"
    ),
)

# Early-return guard that references globals living outside the fragment:
# ;if(typeof Xy==="undefined")return a;
_TYPEOF_GUARD_RE = re.compile(
    r";\s*if\s*\(\s*typeof\s+[a-zA-Z0-9_$]+\s*===?\s*"
    r"(?:\"undefined\"|'undefined'|[a-zA-Z0-9_$]+\[\d+\])\s*\)\s*return\s+[a-zA-Z0-9_$]+;"
)

# /s/player/3bb1f723/player_ias.vflset/en_US/base.js
_PLAYER_PATH_RE = re.compile(
    r"(?P<path>(?:/s)?/player/(?P<version>[a-zA-Z0-9_\-]+)(?:/[^\"'\s]*?)?\.js)"
)


def find_player_script_path(markup: str) -> tuple[str, str] | None:
    """Return ``(path, version)`` of the player script referenced by *markup*."""
    match = _PLAYER_PATH_RE.search(markup)
    if match is None:
        return None
    return match.group("path"), match.group("version")


def script_version(path: str) -> str:
    """Derive the script-version id from a player script path."""
    match = _PLAYER_PATH_RE.search(path)
    if match is None:
        raise ValueError(f"not a player script path: {path!r}")
    return match.group("version")


def _extract_object_literal(js: str, name: str) -> str:
    """Return ``var <name>={...};`` sliced out of *js* by brace counting."""
    declaration = f"var {name}={{"
    start = js.find(declaration)
    if start < 0:
        raise PatternNotFoundError(
            f"helper object {name!r} not declared in player script",
            pattern="signature_helper_object",
        )
    brace = start + len(declaration) - 1
    body = slice_balanced(js, brace)
    if body is None:
        raise PatternNotFoundError(
            f"helper object {name!r} is not closed",
            pattern="signature_helper_object",
        )
    return f"var {name}={body};"


def extract_signature_decoder(js: str) -> DecoderFunction:
    """Extract the signature-cipher decoder and its helper object.

    Returns a fragment declaring both the entry-point function and the
    helper object literal it calls into.
    """
    match = _SIGNATURE_FUNCTION_RE.search(js)
    if match is None:
        raise PatternNotFoundError(
            "signature decoder function not found in player script",
            pattern="signature_function",
        )

    name = match.group("name")
    helper_call = _HELPER_CALL_RE.search(match.group("body"))
    if helper_call is None:
        raise PatternNotFoundError(
            "signature decoder does not call a helper object",
            pattern="signature_helper_call",
        )
    helper = helper_call.group("object")

    script = f"var {match.group(0)};{_extract_object_literal(js, helper)}"
    log.debug("signature_decoder_extracted", entry_point=name, helper=helper)
    return DecoderFunction(script=script, entry_point=name, kind=DecoderKind.SIGNATURE)


def _resolve_array_entry(js: str, array_name: str, index: int) -> str:
    """Read ``var <array_name>=[...]`` as JSON and return element *index*."""
    declaration = re.search(rf"var {re.escape(array_name)}\s*=\s*\[", js)
    if declaration is None:
        raise PatternNotFoundError(
            f"n decoder array {array_name!r} not declared",
            pattern="n_function_array",
        )
    literal = slice_balanced(js, declaration.end() - 1)
    if literal is None:
        raise PatternNotFoundError(
            f"n decoder array {array_name!r} is not closed",
            pattern="n_function_array",
        )

    try:
        names = json.loads(js_to_json(literal))
    except json.JSONDecodeError as e:
        raise PatternNotFoundError(
            f"n decoder array {array_name!r} is not a plain literal: {e}",
            pattern="n_function_array",
        ) from e

    if not isinstance(names, list) or not 0 <= index < len(names):
        raise PatternNotFoundError(
            f"n decoder array {array_name!r} has no entry {index}",
            pattern="n_function_array",
        )
    return str(names[index])


def extract_n_decoder(js: str) -> DecoderFunction:
    """Extract the n-parameter (throttling) decoder function."""
    call_site = None
    for pattern in _N_CALL_SITE_RES:
        call_site = pattern.search(js)
        if call_site is not None:
            break
    if call_site is None:
        raise PatternNotFoundError(
            "n decoder call site not found in player script",
            pattern="n_call_site",
        )

    name = call_site.group("nfunc")
    index = call_site.group("index")
    if index is not None:
        name = _resolve_array_entry(js, name, int(index))

    function_re = re.compile(
        rf"(?<![a-zA-Z0-9_$]){re.escape(name)}=function\((?P<args>[^)]*)\)\{{"
        rf"(?P<body>.*?return [a-zA-Z0-9_$]+\.join\(\"\"\))\}}",
        re.DOTALL,
    )
    definition = function_re.search(js)
    if definition is None:
        raise PatternNotFoundError(
            f"n decoder function {name!r} not found",
            pattern="n_function",
        )

    # Leading ";" lets the guard match as the body's first statement too.
    body = _TYPEOF_GUARD_RE.sub(";", ";" + definition.group("body"), count=1)[1:]
    script = f"var {name}=function({definition.group('args')}){{{body}}};"
    log.debug("n_decoder_extracted", entry_point=name, size=len(script))
    return DecoderFunction(script=script, entry_point=name, kind=DecoderKind.N_SIGNATURE)


def extract_decoder(js: str, kind: DecoderKind) -> DecoderFunction:
    if kind is DecoderKind.SIGNATURE:
        return extract_signature_decoder(js)
    return extract_n_decoder(js)
