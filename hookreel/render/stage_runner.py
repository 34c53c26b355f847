"""Render stage runner.

Runs one FFmpeg invocation (one pipeline stage) as a subprocess. The runner
knows nothing about the pipeline; callers describe each stage as a
``StageInvocation``.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass

from hookreel.config import get_settings
from hookreel.exceptions import SpawnFailure, StageFailure, StageTimeout

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


@dataclass(frozen=True)
class StageInvocation:
    """Data description of one stage: binary, arguments and declared output."""

    stage: str
    args: tuple[str, ...]
    output_path: str
    binary: str = "ffmpeg"

    @property
    def command(self) -> list[str]:
        return [self.binary, *self.args]


@dataclass(frozen=True)
class StageResult:
    stage: str
    output_path: str
    elapsed_s: float


class StderrTail:
    """Keeps only the last ``limit`` bytes written to it."""

    def __init__(self, limit: int):
        self.limit = limit
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> None:
        self._buffer.extend(chunk)
        overflow = len(self._buffer) - self.limit
        if overflow > 0:
            del self._buffer[:overflow]

    def getvalue(self) -> bytes:
        return bytes(self._buffer)


class StageRunner:
    """Executes stage invocations with a bounded stderr tail and a deadline."""

    def __init__(
        self,
        timeout_s: float | None = None,
        stderr_tail_bytes: int | None = None,
    ):
        settings = get_settings()
        if timeout_s is None:
            timeout_s = settings.stage_timeout_s
        self.timeout_s = timeout_s if timeout_s and timeout_s > 0 else None
        self.stderr_tail_bytes = stderr_tail_bytes or settings.stage_stderr_tail_bytes

    async def run(self, invocation: StageInvocation) -> StageResult:
        """Run one stage.

        Raises:
            SpawnFailure: The binary could not be started.
            StageTimeout: The deadline passed; the process was killed.
            StageFailure: Nonzero exit, or the declared output was not written.
        """
        cmd = invocation.command
        logger.debug(f"[STAGE {invocation.stage}] {' '.join(cmd)}")
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnFailure(
                f"Could not start {invocation.binary} for {invocation.stage} stage: {e}",
                binary=invocation.binary,
            ) from e

        tail = StderrTail(self.stderr_tail_bytes)
        try:
            await asyncio.wait_for(
                asyncio.gather(self._drain(proc.stderr, tail), proc.wait()),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"[STAGE {invocation.stage}] timed out after {self.timeout_s}s: "
                f"{tail.getvalue().decode('utf-8', errors='replace')}"
            )
            raise StageTimeout(
                f"{invocation.stage} stage timed out after {self.timeout_s}s",
                stage=invocation.stage,
                stderr_tail=tail.getvalue(),
            )
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        elapsed = time.monotonic() - started
        stderr_tail = tail.getvalue()

        if proc.returncode != 0:
            stderr_text = stderr_tail.decode("utf-8", errors="replace")
            logger.error(f"[STAGE {invocation.stage}] exit {proc.returncode}: {stderr_text}")
            raise StageFailure(
                f"{invocation.stage} stage exited with code {proc.returncode}: "
                f"{_last_line(stderr_text)}",
                stage=invocation.stage,
                exit_code=proc.returncode,
                stderr_tail=stderr_tail,
            )

        if not os.path.exists(invocation.output_path):
            raise StageFailure(
                f"{invocation.stage} stage produced no output at {invocation.output_path}",
                stage=invocation.stage,
                exit_code=proc.returncode,
                stderr_tail=stderr_tail,
            )

        logger.info(f"[STAGE {invocation.stage}] done in {elapsed:.1f}s")
        return StageResult(invocation.stage, invocation.output_path, elapsed)

    @staticmethod
    async def _drain(stream: asyncio.StreamReader | None, tail: StderrTail) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            tail.feed(chunk)


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else "no diagnostic output"
