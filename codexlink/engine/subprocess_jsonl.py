"""Run a CLI and iterate over the JSON objects it prints, one per line.

``JsonlProcessStream`` is an async iterator: each ``__anext__``
returns the next JSON object, raises ``StopAsyncIteration`` when
the process exits cleanly, or raises one of the ``Process*Error``
exceptions on failure, timeout or abort. The process starts lazily
on the first pull.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Callable, Mapping
from typing import Any

from .errors import ProcessAbortedError, ProcessFailedError, ProcessTimeoutError

logger = logging.getLogger(__name__)

_STDERR_TAIL_BYTES = 4000
_TERMINATE_GRACE_SECONDS = 5.0

SpawnFn = Callable[..., AsyncIterator[dict[str, Any]]]


async def read_line_unbounded(stream: asyncio.StreamReader) -> bytes:
    """Read a full line from *stream* with no size limit.

    Unlike ``StreamReader.readline()``, this never raises
    ``LimitOverrunError``; a single Codex event (e.g. a command with
    a large aggregated output) can exceed the default 64 KiB limit.
    """
    chunks: list[bytes] = []
    while True:
        try:
            chunks.append(await stream.readuntil(b"\n"))
            return b"".join(chunks)
        except asyncio.LimitOverrunError as exc:
            chunks.append(await stream.read(exc.consumed))
        except asyncio.IncompleteReadError as exc:
            # EOF before newline; return whatever is left.
            chunks.append(exc.partial)
            return b"".join(chunks)


class JsonlProcessStream:
    """Lazy, order-preserving stream of JSON objects from a subprocess."""

    def __init__(
        self,
        command: str,
        args: list[str],
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout_ms: int = 30000,
        abort_event: asyncio.Event | None = None,
    ) -> None:
        self.command = command
        self.args = list(args)
        self.cwd = cwd
        self.env = dict(env or {})
        self.timeout_ms = timeout_ms
        self.abort_event = abort_event
        self._proc: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._stderr_tail = bytearray()
        self._deadline: float | None = None
        self._closed = False

    def __aiter__(self) -> JsonlProcessStream:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._closed:
            raise StopAsyncIteration
        if self._proc is None:
            await self._start()

        while True:
            line = await self._next_line()
            if not line:
                await self._finish()
                raise StopAsyncIteration
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                obj = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON line from %s: %.200s", self.command, text)
                continue
            if isinstance(obj, dict):
                return obj
            logger.debug("Skipping non-object JSON from %s", self.command)

    async def _start(self) -> None:
        loop = asyncio.get_running_loop()
        if self.abort_event is not None and self.abort_event.is_set():
            self._closed = True
            raise ProcessAbortedError(self.command)
        try:
            # create_subprocess_exec passes args as an array; no shell.
            self._proc = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
                env={**os.environ, **self.env},
            )
        except OSError as exc:
            self._closed = True
            raise ProcessFailedError(self.command, None, str(exc)) from exc

        self._deadline = loop.time() + self.timeout_ms / 1000.0
        self._stderr_task = asyncio.create_task(self._drain_stderr())
        logger.info(
            "Started %s (pid=%d, timeout=%dms)", self.command, self._proc.pid, self.timeout_ms,
        )

    async def _drain_stderr(self) -> None:
        assert self._proc is not None and self._proc.stderr is not None
        while True:
            chunk = await self._proc.stderr.read(4096)
            if not chunk:
                return
            self._stderr_tail.extend(chunk)
            del self._stderr_tail[:-_STDERR_TAIL_BYTES]

    async def _next_line(self) -> bytes:
        assert self._proc is not None and self._proc.stdout is not None
        loop = asyncio.get_running_loop()
        remaining = (self._deadline or loop.time()) - loop.time()
        if remaining <= 0:
            await self.aclose()
            raise ProcessTimeoutError(self.command, self.timeout_ms)

        read_task = asyncio.ensure_future(read_line_unbounded(self._proc.stdout))
        waiters: set[asyncio.Future[Any]] = {read_task}
        abort_task: asyncio.Future[Any] | None = None
        if self.abort_event is not None:
            abort_task = asyncio.ensure_future(self.abort_event.wait())
            waiters.add(abort_task)

        done, _ = await asyncio.wait(
            waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED,
        )
        if abort_task is not None and abort_task not in done:
            abort_task.cancel()
        if read_task in done:
            return read_task.result()

        read_task.cancel()
        await self.aclose()
        if abort_task is not None and abort_task in done:
            logger.info("Abort requested; stopped %s", self.command)
            raise ProcessAbortedError(self.command)
        raise ProcessTimeoutError(self.command, self.timeout_ms)

    async def _finish(self) -> None:
        assert self._proc is not None
        returncode = await self._proc.wait()
        if self._stderr_task is not None:
            await self._stderr_task
        self._closed = True
        if returncode != 0:
            stderr = self._stderr_tail.decode("utf-8", errors="replace")
            raise ProcessFailedError(self.command, returncode, stderr)
        logger.debug("%s exited cleanly", self.command)

    async def aclose(self) -> None:
        """Terminate the process if it is still running."""
        self._closed = True
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_SECONDS)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
            logger.info("Stopped %s (pid=%d)", self.command, proc.pid)
        except ProcessLookupError:
            pass
        finally:
            if self._stderr_task is not None and not self._stderr_task.done():
                self._stderr_task.cancel()


def spawn_jsonl_process(
    *,
    command: str,
    args: list[str],
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout_ms: int = 30000,
    abort_event: asyncio.Event | None = None,
) -> JsonlProcessStream:
    """Default spawn collaborator used by ``CodexProvider``."""
    return JsonlProcessStream(
        command,
        args,
        cwd=cwd,
        env=env,
        timeout_ms=timeout_ms,
        abort_event=abort_event,
    )
