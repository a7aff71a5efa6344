"""Process runner used by command steps.

A runner turns ``submit(executable, arguments, working_directory,
environment)`` into a stream of output chunks followed by exactly one exit
event. Standard output and standard error are merged into one text stream.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Protocol, Sequence, Tuple, Union

from .errors import ProcessLaunchError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class OutputChunk:
    data: str


@dataclass(frozen=True)
class ProcessExit:
    exit_code: int


ProcessEvent = Union[OutputChunk, ProcessExit]


class ProcessRunner(Protocol):
    """Contract between the executor and whatever actually spawns processes."""

    def submit(
        self,
        executable: str,
        arguments: Sequence[str],
        working_directory: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[ProcessEvent]:
        """Start the process and stream its output and final status."""


class AsyncioProcessRunner:
    """Spawn local processes with :mod:`asyncio.subprocess`."""

    def __init__(self, inherit_environment: bool = True) -> None:
        self._inherit_environment = inherit_environment

    async def submit(
        self,
        executable: str,
        arguments: Sequence[str],
        working_directory: Optional[str] = None,
        environment: Optional[Dict[str, str]] = None,
    ) -> AsyncIterator[ProcessEvent]:
        env = dict(os.environ) if self._inherit_environment else {}
        env.update(environment or {})

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *arguments,
                cwd=working_directory,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ProcessLaunchError(f"Could not start '{executable}': {exc}") from exc

        logger.debug(f"Started process {process.pid}: {executable} {list(arguments)}")
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await process.stdout.read(READ_CHUNK_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    yield OutputChunk(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                yield OutputChunk(tail)
            exit_code = await process.wait()
            yield ProcessExit(exit_code)
        finally:
            if process.returncode is None:
                logger.warning(f"Killing unfinished process {process.pid}")
                process.kill()
                await process.wait()


async def collect_output(events: AsyncIterator[ProcessEvent]) -> Tuple[str, int]:
    """Concatenate every output chunk and return it with the exit status."""
    parts = []
    exit_code: Optional[int] = None
    try:
        async for event in events:
            if isinstance(event, OutputChunk):
                parts.append(event.data)
            elif isinstance(event, ProcessExit):
                exit_code = event.exit_code
                break
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()
    if exit_code is None:
        raise ProcessLaunchError("Process output ended without an exit status")
    return "".join(parts), exit_code
