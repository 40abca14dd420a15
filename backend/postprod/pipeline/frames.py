"""Extract -> external frame tool -> reassemble, shared by upscaling and interpolation."""
import logging
from fractions import Fraction
from pathlib import Path
from typing import Callable, Type

from postprod.errors import StageError
from postprod.pipeline.context import StageContext, stage_errors
from postprod.utils.ffmpeg import extract_frames, get_video_info, reassemble_frames, sequence_frames
from postprod.utils.tools import ToolInvocation

logger = logging.getLogger(__name__)

# (input_frames_dir, output_frames_dir) -> invocation
BuildInvocation = Callable[[Path, Path], ToolInvocation]
# (source_rate, frames_in, frames_out) -> output rate
OutputRate = Callable[[Fraction, int, int], Fraction]


async def run_frame_tool(
    input_path: Path,
    ctx: StageContext,
    *,
    name: str,
    build_invocation: BuildInvocation,
    output_rate: OutputRate,
    error_cls: Type[StageError],
) -> Path:
    """
    Run an image-sequence tool over every frame of a video.

    Both frame directories are removed when this returns or raises.

    Args:
        input_path: Video to process
        ctx: Stage context
        name: Short stage name used for artifact naming
        build_invocation: Builds the tool call for the in/out frame directories
        output_rate: Computes the reassembly frame rate
        error_cls: Stage error raised on any failure

    Returns:
        Path to the reassembled video
    """
    ws = ctx.working_set
    invoker = ctx.invoker
    output_path = ws.new_file(name, ".mp4")

    try:
        with stage_errors(error_cls):
            info = await get_video_info(invoker, input_path)
            logger.info(
                f"{name}: source {info.width}x{info.height} @ {float(info.frame_rate):.3f} fps"
            )

            with ws.scratch_dir(f"{name}_frames_in") as frames_in, \
                    ws.scratch_dir(f"{name}_frames_out") as frames_out:
                frames_in_count = await extract_frames(invoker, input_path, frames_in)
                if frames_in_count == 0:
                    raise error_cls(f"No frames could be extracted from {Path(input_path).name}")

                await invoker.run(build_invocation(frames_in, frames_out))

                frames_out_count = sequence_frames(frames_out)
                if frames_out_count == 0:
                    raise error_cls(f"{name} tool produced no frames")

                rate = output_rate(info.frame_rate, frames_in_count, frames_out_count)
                logger.info(
                    f"{name}: {frames_in_count} -> {frames_out_count} frames, "
                    f"reassembling at {float(rate):.3f} fps"
                )
                await reassemble_frames(
                    invoker, frames_out, output_path, rate, audio_source=input_path
                )
    except BaseException:
        ws.release(output_path)
        raise

    return output_path
