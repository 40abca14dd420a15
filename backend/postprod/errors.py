"""Error types raised by the post-processing pipeline."""
from pathlib import Path
from typing import Optional, Sequence


class PipelineError(Exception):
    """Base class for pipeline failures."""
    stage: Optional[str] = None
    retryable: bool = False


class FetchError(PipelineError):
    """A remote input could not be downloaded or written."""
    stage = "fetch"
    retryable = True

    def __init__(self, ref: str, reason: str):
        self.ref = ref
        self.reason = reason
        super().__init__(f"Failed to fetch {ref}: {reason}")


class WorkspaceError(PipelineError):
    """The job's working directory could not be set up."""
    stage = "setup"

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        super().__init__(f"Cannot set up job {job_id}: {reason}")


class ToolNotFoundError(PipelineError):
    """A required external binary is missing."""

    def __init__(self, binary_name: str, searched: Sequence[str | Path] = ()):
        self.binary_name = binary_name
        self.searched = [str(s) for s in searched]
        where = f" (looked for: {', '.join(self.searched)})" if self.searched else ""
        super().__init__(f"{binary_name} not found{where}")


class ToolExecutionError(PipelineError):
    """An external tool exited with a non-zero status."""

    def __init__(self, binary_name: str, exit_code: Optional[int], stderr_tail: str = ""):
        self.binary_name = binary_name
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        message = f"{binary_name} exited with code {exit_code}"
        if stderr_tail:
            message += f": {stderr_tail.strip().splitlines()[-1]}"
        super().__init__(message)


class StageError(PipelineError):
    """A pipeline stage failed. Carries the underlying tool's exit code and stderr tail."""
    label = "Processing"

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr_tail: Optional[str] = None,
    ):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(message)


class StabilizationError(StageError):
    stage = "stabilize"
    label = "Stabilization"


class UpscaleError(StageError):
    stage = "upscale"
    label = "Upscaling"


class InterpolationError(StageError):
    stage = "interpolate"
    label = "Frame interpolation"


class FinalizeError(StageError):
    stage = "finalize"
    label = "Finalization"


class PipelineCancelledError(PipelineError):
    """The caller cancelled the run or a tool exceeded its time limit."""

    def __init__(self, message: str = "Pipeline cancelled", stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


def is_retryable(exc: BaseException) -> bool:
    """Only transient download failures are worth retrying."""
    return isinstance(exc, PipelineError) and exc.retryable


def describe_failure(exc: BaseException) -> str:
    """Human-readable failure reason for the job scheduler."""
    if isinstance(exc, PipelineCancelledError):
        where = f" during {exc.stage}" if exc.stage else ""
        return f"Cancelled{where}"
    if isinstance(exc, FetchError):
        return f"Could not download input: {exc.ref}"
    if isinstance(exc, ToolNotFoundError):
        return f"Missing required tool: {exc.binary_name}"
    if isinstance(exc, StageError):
        return f"{exc.label} failed: {exc}"
    if isinstance(exc, PipelineError):
        return str(exc)
    return f"Unexpected error: {exc}"
