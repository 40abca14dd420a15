"""Stage definitions and fixed execution order."""
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List

from postprod.pipeline.context import StageContext
from postprod.pipeline.finalize import finalize
from postprod.pipeline.interpolate import interpolate
from postprod.pipeline.stabilize import stabilize
from postprod.pipeline.upscale import upscale
from postprod.schemas import PipelineRequest

StageFunc = Callable[[Path, PipelineRequest, StageContext], Awaitable[Path]]


@dataclass(frozen=True)
class Stage:
    """One step of the pipeline: consumes the previous output path, returns a new one."""
    name: str
    label: str
    run: StageFunc
    enabled: Callable[[PipelineRequest], bool]


STABILIZE = Stage("stabilize", "Stabilizing video", stabilize, lambda r: r.stabilize)
UPSCALE = Stage("upscale", "Upscaling video", upscale, lambda r: r.upscale)
INTERPOLATE = Stage("interpolate", "Interpolating frames", interpolate, lambda r: r.interpolate)
FINALIZE = Stage("finalize", "Finalizing audio and subtitles", finalize, lambda r: r.has_finalize_assets)

STAGE_ORDER: List[Stage] = [STABILIZE, UPSCALE, INTERPOLATE, FINALIZE]


def plan_stages(request: PipelineRequest) -> List[Stage]:
    """
    Select the stages to run for a request, in execution order.

    When nothing is enabled, finalize still runs as a stream-copy remux so
    the caller always receives a new file it owns.
    """
    planned = [stage for stage in STAGE_ORDER if stage.enabled(request)]
    return planned or [FINALIZE]
