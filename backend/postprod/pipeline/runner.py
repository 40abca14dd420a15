"""Pipeline runner.

Resolves inputs, runs the planned stages in order and hands back the
finalized video.
"""
import asyncio
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from postprod.config import Settings, settings
from postprod.errors import PipelineCancelledError, PipelineError, WorkspaceError
from postprod.pipeline.context import StageContext
from postprod.pipeline.stages import plan_stages
from postprod.schemas import PipelineRequest
from postprod.utils.fetch import MediaFetcher
from postprod.utils.tools import ToolInvoker
from postprod.workspace import WorkingSet

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], Awaitable[None]]


async def run_pipeline(
    request: PipelineRequest,
    *,
    job_id: Optional[str] = None,
    config: Optional[Settings] = None,
    invoker: Optional[ToolInvoker] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timeout: Optional[float] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> Path:
    """
    Run the post-processing pipeline for one request.

    Args:
        request: The job description
        job_id: Names the job's working directory and output file (random if omitted)
        config: Settings override (module settings by default)
        invoker: Tool invoker override; its own cancel event/timeout are used
        http_client: HTTP client used for remote inputs
        cancel_event: Set to abort the run; the running tool is killed
        timeout: Per-invocation time limit in seconds
        progress_callback: Optional async callback(percent, message)

    Returns:
        Path of the finalized video in the output directory. The caller owns it.

    Raises:
        FetchError: A remote input could not be downloaded
        StabilizationError, UpscaleError, InterpolationError, FinalizeError:
            The named stage failed
        PipelineCancelledError: The run was cancelled or a tool timed out
    """
    config = config or settings
    job_id = job_id or uuid.uuid4().hex
    invoker = invoker or ToolInvoker(config=config, cancel_event=cancel_event, timeout=timeout)
    stages = plan_stages(request)

    async def report_progress(pct: float, msg: str):
        if progress_callback:
            await progress_callback(pct, msg)
        logger.info(f"[{job_id}] [{pct:.0f}%] {msg}")

    try:
        working_set = WorkingSet.create(config.work_dir, job_id)
    except FileExistsError as e:
        logger.error(f"[{job_id}] Working directory already exists: {e.filename}")
        raise WorkspaceError(job_id, "job id already in use") from e
    except OSError as e:
        raise WorkspaceError(job_id, str(e)) from e

    current_stage = "fetch"

    try:
        await report_progress(0, "Resolving inputs...")
        fetcher = MediaFetcher(
            working_set, client=http_client, config=config, cancel_event=invoker.cancel_event
        )
        media = await fetcher.resolve_request(request)

        ctx = StageContext(working_set=working_set, invoker=invoker, media=media, config=config)
        current = media.video
        step = 90 / len(stages)

        for index, stage in enumerate(stages):
            current_stage = stage.name
            invoker.check_cancelled()
            await report_progress(5 + index * step, f"{stage.label}...")

            produced = await stage.run(current, request, ctx)
            if produced != current:
                # Downloaded inputs and earlier intermediates are no longer needed
                working_set.release(current)
            current = produced

        current_stage = "output"
        final_path = working_set.promote(current, config.output_dir)
        await report_progress(100, f"Pipeline complete: {final_path.name}")
        return final_path

    except PipelineCancelledError as e:
        if e.stage is None:
            e.stage = current_stage
        logger.warning(f"[{job_id}] Cancelled during {current_stage}: {e}")
        raise
    except PipelineError as e:
        logger.error(f"[{job_id}] Failed during {current_stage}: {e}")
        raise
    except asyncio.CancelledError:
        logger.warning(f"[{job_id}] Task cancelled during {current_stage}")
        raise
    finally:
        working_set.destroy()
