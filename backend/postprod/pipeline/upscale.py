"""AI upscaling with Real-ESRGAN (ncnn-vulkan)."""
from fractions import Fraction
from pathlib import Path

from postprod.errors import UpscaleError
from postprod.pipeline.context import StageContext
from postprod.pipeline.frames import run_frame_tool
from postprod.utils.tools import ToolInvocation, ToolInvoker


def build_upscale_invocation(
    invoker: ToolInvoker, frames_in: Path, frames_out: Path
) -> ToolInvocation:
    config = invoker.config
    args = [
        "-i", str(frames_in.resolve()),
        "-o", str(frames_out.resolve()),
        "-n", config.realesrgan_model,
        "-s", str(config.realesrgan_scale),
        "-f", "png",
    ]
    if config.realesrgan_gpu is not None:
        args += ["-g", str(config.realesrgan_gpu)]
    return invoker.invocation("realesrgan", args)


def keep_source_rate(source_rate: Fraction, frames_in: int, frames_out: int) -> Fraction:
    """Upscaling changes resolution, not timing."""
    return source_rate


async def upscale(input_path: Path, request, ctx: StageContext) -> Path:
    """
    Upscale every frame of the video and reassemble at the source frame rate.

    Raises:
        UpscaleError: If the tool is missing, fails, or produces no frames
    """
    return await run_frame_tool(
        input_path,
        ctx,
        name="upscaled",
        build_invocation=lambda src, dst: build_upscale_invocation(ctx.invoker, src, dst),
        output_rate=keep_source_rate,
        error_cls=UpscaleError,
    )
