"""Port for the sandboxed script runtime that runs extracted decoders."""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

from tubefetch.domain.entities.media import DecoderFunction


@runtime_checkable
class ScriptEvaluatorPort(Protocol):
    """Loads decoder fragments into an isolated context and calls them.

    One instance serves one resolution; it must not be shared between
    resolutions of different videos. Implementations raise
    ``EvaluationError`` on any script-level fault.
    """

    async def compile(self, decoder: DecoderFunction) -> Any:
        """Load *decoder* and return an opaque handle for :meth:`invoke`."""
        ...

    async def invoke(self, compiled: Any, arg: str) -> str:
        """Call the decoder's entry point with *arg* and return its string result."""
        ...

    def close(self) -> None: ...


ScriptEvaluatorFactory = Callable[[], ScriptEvaluatorPort]
