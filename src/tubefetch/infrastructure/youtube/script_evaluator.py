"""Sandboxed JavaScript evaluation of extracted decoder fragments (dukpy).

The embedded interpreter has no file, network or process APIs of its
own. dukpy installs host shims at construction (``process.env`` with the
host environment, ``console``, and a ``require`` loader reached through
``call_python``). ``_SandboxInterpreter`` never installs them and exports
no Python functions, so ``call_python`` can resolve nothing.

An interpreter context is not safe for concurrent use, so each evaluator owns
one context and one worker thread; every call is serialized through it.
"""

from __future__ import annotations

import asyncio
import hashlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import dukpy
import structlog

from tubefetch.domain.entities.media import DecoderFunction, DecoderKind
from tubefetch.domain.exceptions import EvaluationError

log = structlog.get_logger(__name__)

T = TypeVar("T")


class _SandboxInterpreter(dukpy.JSInterpreter):
    """JSInterpreter without the host runtime shims or Python exports."""

    def _init_process(self) -> None:
        pass

    def _init_console(self) -> None:
        pass

    def _init_require(self) -> None:
        pass

    def export_function(self, name: str, func: Callable[..., Any]) -> None:
        raise EvaluationError(f"sandboxed interpreter cannot export {name!r}")

    def _check_exported_function_exists(self, func: bytes) -> bool:
        return False

    def _call_python(self, func: bytes, json_args: bytes) -> bytes:
        raise EvaluationError("sandboxed script tried to call into Python")


@dataclass(frozen=True)
class CompiledDecoder:
    """Handle to a decoder loaded into a specific evaluator context."""

    entry_point: str
    kind: DecoderKind
    evaluator_id: int


class DukpyScriptEvaluator:
    """One isolated interpreter context serving a single resolution.

    Loading the same fragment twice is a no-op. Close the evaluator when
    the resolution is done so no globals survive into the next video.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="tubefetch-js"
        )
        self._interpreter: _SandboxInterpreter | None = None
        self._loaded: set[str] = set()
        self._closed = False

    def __enter__(self) -> "DukpyScriptEvaluator":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        if self._closed:
            raise EvaluationError("script evaluator is closed")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _context(self) -> _SandboxInterpreter:
        if self._interpreter is None:
            self._interpreter = _SandboxInterpreter()
        return self._interpreter

    def _compile_sync(self, decoder: DecoderFunction) -> CompiledDecoder:
        ctx = self._context()
        digest = hashlib.sha1(decoder.script.encode("utf-8")).hexdigest()
        if digest not in self._loaded:
            try:
                ctx.evaljs(decoder.script)
            except dukpy.JSRuntimeError as e:
                raise EvaluationError(
                    f"loading {decoder.kind.value} decoder failed: {e}"
                ) from e
            self._loaded.add(digest)

        try:
            is_function = ctx.evaljs(
                "typeof this[dukpy.name] === 'function'", name=decoder.entry_point
            )
        except dukpy.JSRuntimeError as e:
            raise EvaluationError(f"probing entry point failed: {e}") from e
        if not is_function:
            raise EvaluationError(
                f"entry point {decoder.entry_point!r} is not a function after loading"
            )
        return CompiledDecoder(
            entry_point=decoder.entry_point,
            kind=decoder.kind,
            evaluator_id=id(self),
        )

    def _invoke_sync(self, compiled: CompiledDecoder, arg: str) -> str:
        if compiled.evaluator_id != id(self):
            raise EvaluationError("decoder was compiled by a different evaluator")
        try:
            result = self._context().evaljs(
                "this[dukpy.name](dukpy.arg)", name=compiled.entry_point, arg=arg
            )
        except dukpy.JSRuntimeError as e:
            raise EvaluationError(
                f"{compiled.kind.value} decoder {compiled.entry_point!r} raised: {e}"
            ) from e
        if not isinstance(result, str):
            raise EvaluationError(
                f"{compiled.kind.value} decoder returned {type(result).__name__}, "
                "expected a string"
            )
        return result

    async def compile(self, decoder: DecoderFunction) -> CompiledDecoder:
        return await self._run(self._compile_sync, decoder)

    async def invoke(self, compiled: CompiledDecoder, arg: str) -> str:
        return await self._run(self._invoke_sync, compiled, arg)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._interpreter = None
        self._loaded.clear()
        log.debug("script_evaluator_closed")
