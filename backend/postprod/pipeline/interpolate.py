"""Frame interpolation with RIFE (ncnn-vulkan)."""
from fractions import Fraction
from pathlib import Path

from postprod.errors import InterpolationError
from postprod.pipeline.context import StageContext
from postprod.pipeline.frames import run_frame_tool
from postprod.utils.tools import ToolInvocation, ToolInvoker


def build_interpolate_invocation(
    invoker: ToolInvoker, frames_in: Path, frames_out: Path
) -> ToolInvocation:
    args = [
        "-i", str(frames_in.resolve()),
        "-o", str(frames_out.resolve()),
    ]
    if invoker.config.rife_model:
        args += ["-m", invoker.config.rife_model]
    return invoker.invocation("rife", args)


def multiplied_rate(source_rate: Fraction, frames_in: int, frames_out: int) -> Fraction:
    """
    Scale the source rate by the factor the tool actually produced.

    Keeps the output duration equal to the source duration, so the
    re-muxed audio stays in sync.
    """
    return source_rate * Fraction(frames_out, frames_in)


async def interpolate(input_path: Path, request, ctx: StageContext) -> Path:
    """
    Synthesize intermediate frames and reassemble at the multiplied frame rate.

    Raises:
        InterpolationError: If the tool is missing, fails, or produces no frames
    """
    return await run_frame_tool(
        input_path,
        ctx,
        name="interpolated",
        build_invocation=lambda src, dst: build_interpolate_invocation(ctx.invoker, src, dst),
        output_rate=multiplied_rate,
        error_cls=InterpolationError,
    )
