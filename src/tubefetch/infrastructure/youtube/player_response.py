"""Typed view of the player-response payload embedded in the watch page.

Only the handful of fields the resolver needs are modelled. Everything
else the host sends is kept as pydantic extras so that a strict mode can
report it.
"""

from __future__ import annotations

from typing import Iterator, Optional

from bs4 import BeautifulSoup
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from tubefetch.domain.exceptions import ParseError

from .scanning import slice_balanced

_PAYLOAD_MARKER = "streamingData"


class _PayloadModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class FormatEntry(_PayloadModel):
    """One entry of ``formats`` / ``adaptiveFormats``."""

    itag: int
    url: Optional[str] = None
    signature_cipher: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("signatureCipher", "cipher", "signature_cipher"),
    )
    content_length: int = Field(
        default=0,
        validation_alias=AliasChoices("contentLength", "content_length"),
    )


class StreamingData(_PayloadModel):
    formats: list[FormatEntry] = Field(default_factory=list)
    adaptive_formats: list[FormatEntry] = Field(
        default_factory=list,
        validation_alias=AliasChoices("adaptiveFormats", "adaptive_formats"),
    )


class VideoDetails(_PayloadModel):
    video_id: str = Field(validation_alias=AliasChoices("videoId", "video_id"))
    title: str = ""


class PlayerResponse(_PayloadModel):
    video_details: VideoDetails = Field(
        validation_alias=AliasChoices("videoDetails", "video_details")
    )
    streaming_data: StreamingData = Field(
        validation_alias=AliasChoices("streamingData", "streaming_data")
    )

    def entries(self) -> list[FormatEntry]:
        """Adaptive entries first, then combined ones."""
        return [*self.streaming_data.adaptive_formats, *self.streaming_data.formats]


def _unknown_fields(model: BaseModel, prefix: str = "") -> Iterator[str]:
    for name in model.model_extra or {}:
        yield f"{prefix}{name}"
    for name in type(model).model_fields:
        value = getattr(model, name)
        if isinstance(value, BaseModel):
            yield from _unknown_fields(value, f"{prefix}{name}.")
        elif isinstance(value, list):
            for i, item in enumerate(value):
                if isinstance(item, BaseModel):
                    yield from _unknown_fields(item, f"{prefix}{name}[{i}].")


def find_player_response_json(markup: str) -> str:
    """Return the JSON object text of the first script that carries stream data.

    The object is sliced from the first ``{`` of the script body with a
    string-aware brace scan, so trailing statements like ``;var meta=...``
    are not included.
    """
    soup = BeautifulSoup(markup, "html.parser")
    for script in soup.find_all("script"):
        body = script.string or script.get_text()
        if _PAYLOAD_MARKER not in body:
            continue
        start = body.find("{")
        if start < 0:
            raise ParseError("player response script has no object literal")
        payload = slice_balanced(body, start)
        if payload is None:
            raise ParseError("player response object is not closed")
        return payload
    raise ParseError("no script with a player response found in page markup")


def parse_player_response(
    payload: str, *, ignore_unknown_fields: bool = True
) -> PlayerResponse:
    """Deserialize the payload text into :class:`PlayerResponse`.

    Raises ``ParseError`` on malformed JSON, missing required sections, or
    (when *ignore_unknown_fields* is false) on any field not modelled here.
    """
    try:
        response = PlayerResponse.model_validate_json(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "<root>"
        raise ParseError(
            f"player response is invalid at {location}: {first['msg']}"
        ) from e

    if not ignore_unknown_fields:
        unknown = list(_unknown_fields(response))
        if unknown:
            raise ParseError(
                f"player response has unknown fields: {', '.join(unknown[:5])}"
                + (f" (+{len(unknown) - 5} more)" if len(unknown) > 5 else "")
            )
    return response
