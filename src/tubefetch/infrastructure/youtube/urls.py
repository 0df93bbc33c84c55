"""Query-string helpers that keep unrelated parameters byte-exact.

``urllib.parse`` round-trips (parse_qsl + urlencode) re-encode values and
can reorder keys; signed media URLs reject that, so edits here touch only
the one segment they target.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, unquote

from tubefetch.domain.exceptions import DecodeError

DEFAULT_SIGNATURE_PARAM = "signature"


@dataclass(frozen=True)
class SignatureCipher:
    """Decoded pieces of a ``signatureCipher`` value."""

    url: str
    signature: str
    param: str = DEFAULT_SIGNATURE_PARAM


def _pairs(query: str) -> list[tuple[str, str]]:
    pairs = []
    for segment in query.split("&"):
        if not segment:
            continue
        key, _, value = segment.partition("=")
        pairs.append((key, value))
    return pairs


def parse_cipher(cipher: str, *, itag: int | None = None) -> SignatureCipher:
    """Parse ``url=...&sp=...&s=...`` into a :class:`SignatureCipher`.

    Keys are matched literally, values are percent-decoded. ``sp`` defaults
    to ``signature``.
    """
    values: dict[str, str] = {}
    for key, value in _pairs(cipher):
        values.setdefault(key, unquote(value))

    url = values.get("url")
    signature = values.get("s")
    if not url:
        raise DecodeError("signature cipher has no url", itag=itag)
    if signature is None:
        raise DecodeError("signature cipher has no s value", itag=itag)
    return SignatureCipher(
        url=url,
        signature=signature,
        param=values.get("sp") or DEFAULT_SIGNATURE_PARAM,
    )


def append_query_param(url: str, key: str, value: str) -> str:
    """Append ``key=value`` (value percent-encoded) to *url*."""
    base, sep, fragment = url.partition("#")
    joiner = "&" if "?" in base else "?"
    if base.endswith(("?", "&")):
        joiner = ""
    appended = f"{base}{joiner}{key}={quote(value, safe='')}"
    return f"{appended}{sep}{fragment}"


def get_query_param(url: str, key: str) -> str | None:
    """Return the percent-decoded value of the first *key* in *url*'s query.

    A bare ``key`` segment without ``=`` carries no value and is skipped,
    matching :func:`replace_query_param`.
    """
    _, _, query = url.partition("?")
    query = query.partition("#")[0]
    for segment in query.split("&"):
        k, eq, value = segment.partition("=")
        if k == key and eq:
            return unquote(value)
    return None


def replace_query_param(url: str, key: str, value: str) -> str:
    """Replace the value of the first *key* segment, leaving every other byte alone.

    Raises ``KeyError`` when *key* is not in the query.
    """
    base, sep, rest = url.partition("?")
    if not sep:
        raise KeyError(key)
    query, hash_sep, fragment = rest.partition("#")

    segments = query.split("&")
    for i, segment in enumerate(segments):
        k, eq, _ = segment.partition("=")
        if k == key and eq:
            segments[i] = f"{k}={quote(value, safe='')}"
            break
    else:
        raise KeyError(key)
    return f"{base}?{'&'.join(segments)}{hash_sep}{fragment}"
