"""External tool resolution and subprocess execution."""
import asyncio
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from postprod.config import Settings, settings
from postprod.errors import PipelineCancelledError, ToolExecutionError, ToolNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInvocation:
    """One external process call."""
    binary_name: str
    args: List[str] = field(default_factory=list)
    working_dir: Optional[Path] = None
    preferred_path: Optional[Path] = None  # Bundled binary, used when present
    fallback_command: Optional[str] = None  # Looked up on PATH otherwise


@dataclass
class ToolResult:
    """Completed process output."""
    returncode: int
    stdout: str
    stderr: str


def executable_name(command: str) -> str:
    """Return the on-disk file name for a command on the current OS."""
    name = Path(command).name
    if os.name == "nt" and not name.lower().endswith(".exe"):
        return f"{name}.exe"
    return name


def stderr_tail(stderr: str, lines: int) -> str:
    return "\n".join(stderr.strip().splitlines()[-lines:])


class ToolResolver:
    """Finds the executable for an invocation: bundled binary first, then PATH."""

    def resolve(self, invocation: ToolInvocation) -> str:
        """
        Resolve the executable path for an invocation.

        Raises:
            ToolNotFoundError: If neither the bundled binary nor the fallback exists
        """
        preferred = invocation.preferred_path
        if preferred is not None and preferred.is_file():
            return str(preferred)

        command = invocation.fallback_command or invocation.binary_name
        found = shutil.which(command)
        if found:
            return found

        searched = [p for p in (preferred, command) if p is not None]
        raise ToolNotFoundError(invocation.binary_name, searched)


class ToolInvoker:
    """
    Runs external tools as blocking steps of a pipeline run.

    A run is aborted when the cancel event is set or the per-invocation
    timeout elapses; the subprocess is then killed and reaped before
    PipelineCancelledError is raised.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        resolver: Optional[ToolResolver] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ):
        self.config = config or settings
        self.resolver = resolver or ToolResolver()
        self.cancel_event = cancel_event
        self.timeout = timeout if timeout is not None else self.config.tool_timeout_seconds

    def invocation(
        self,
        name: str,
        args: Sequence[str | Path],
        working_dir: Optional[Path] = None,
    ) -> ToolInvocation:
        """Build an invocation for a configured tool (ffmpeg, ffprobe, realesrgan, rife)."""
        command = self.config.tool_command(name)
        return ToolInvocation(
            binary_name=name,
            args=[str(a) for a in args],
            working_dir=working_dir,
            preferred_path=self.config.bin_dir / executable_name(command),
            fallback_command=command,
        )

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelledError("Pipeline cancelled")

    async def run(self, invocation: ToolInvocation) -> ToolResult:
        """
        Run a tool to completion.

        Returns:
            ToolResult with decoded stdout/stderr

        Raises:
            ToolNotFoundError: If the binary cannot be resolved (nothing is spawned)
            ToolExecutionError: If the tool exits with a non-zero status
            PipelineCancelledError: If cancelled or timed out
        """
        self.check_cancelled()
        executable = self.resolver.resolve(invocation)
        cmd = [executable, *invocation.args]
        logger.debug(f"Running {invocation.binary_name}: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(invocation.working_dir) if invocation.working_dir else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(invocation.binary_name, [executable]) from e
        except OSError as e:
            raise ToolExecutionError(invocation.binary_name, None, str(e)) from e

        communicate = asyncio.ensure_future(proc.communicate())
        waiters = {communicate}
        cancel_wait = None
        if self.cancel_event is not None:
            cancel_wait = asyncio.ensure_future(self.cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await self._kill(proc, communicate, invocation.binary_name)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if communicate not in done:
            await self._kill(proc, communicate, invocation.binary_name)
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise PipelineCancelledError(f"{invocation.binary_name} cancelled")
            raise PipelineCancelledError(
                f"{invocation.binary_name} timed out after {self.timeout}s"
            )

        stdout_b, stderr_b = communicate.result()
        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            tail = stderr_tail(stderr, self.config.stderr_tail_lines)
            logger.error(f"{invocation.binary_name} failed with code {proc.returncode}:\n{tail}")
            raise ToolExecutionError(invocation.binary_name, proc.returncode, tail)

        return ToolResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)

    async def _kill(self, proc, communicate: asyncio.Future, binary_name: str) -> None:
        """Kill a running process and wait (bounded) for it to be reaped."""
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        done, _ = await asyncio.wait({communicate}, timeout=self.config.kill_grace_seconds)
        if communicate not in done:
            communicate.cancel()
            logger.warning(f"{binary_name} (pid {proc.pid}) did not exit after kill")
        else:
            logger.info(f"Killed {binary_name} (pid {proc.pid})")
