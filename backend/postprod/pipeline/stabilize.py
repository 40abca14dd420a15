"""Two-pass vid.stab stabilization."""
import logging
from pathlib import Path

from postprod.errors import StabilizationError
from postprod.pipeline.context import StageContext, stage_errors

logger = logging.getLogger(__name__)


def build_detect_args(input_path: Path, transform_name: str, config) -> list[str]:
    """Pass 1: analyze camera motion into a transform file, no video output."""
    return [
        "-y",
        "-i", str(Path(input_path).resolve()),
        "-vf", (
            f"vidstabdetect=stepsize={config.stabilize_stepsize}"
            f":shakiness={config.stabilize_shakiness}"
            f":accuracy={config.stabilize_accuracy}"
            f":result={transform_name}"
        ),
        "-f", "null",
        "-",
    ]


def build_transform_args(input_path: Path, transform_name: str, output_path: Path, config) -> list[str]:
    """Pass 2: re-render with smoothed motion at constant quality."""
    return [
        "-y",
        "-i", str(Path(input_path).resolve()),
        "-vf", (
            f"vidstabtransform=input={transform_name}"
            f":zoom={config.stabilize_zoom}"
            f":smoothing={config.stabilize_smoothing}"
        ),
        "-map", "0:v:0",
        "-map", "0:a?",
        "-c:v", config.export_video_codec,
        "-preset", config.stabilize_preset,
        "-crf", str(config.stabilize_crf),
        "-c:a", "copy",
        str(output_path.resolve()),
    ]


async def stabilize(input_path: Path, request, ctx: StageContext) -> Path:
    """
    Stabilize a video with vidstabdetect + vidstabtransform.

    The transform file is removed after pass 2 whatever the outcome, and
    pass 2 never runs when pass 1 failed.

    Raises:
        StabilizationError: If either pass fails
    """
    ws = ctx.working_set
    invoker = ctx.invoker
    transform_path = ws.new_file("stabilize_transform", ".trf")
    output_path = ws.new_file("stabilized", ".mp4")
    # Filter arguments are relative to the job directory to avoid path escaping
    transform_name = ws.relative(transform_path)

    try:
        with stage_errors(StabilizationError):
            logger.info(f"Stabilize pass 1/2 (detect): {input_path}")
            await invoker.run(invoker.invocation(
                "ffmpeg",
                build_detect_args(input_path, transform_name, ctx.config),
                working_dir=ws.root,
            ))

            logger.info("Stabilize pass 2/2 (transform)")
            await invoker.run(invoker.invocation(
                "ffmpeg",
                build_transform_args(input_path, transform_name, output_path, ctx.config),
                working_dir=ws.root,
            ))
    except BaseException:
        ws.release(output_path)
        raise
    finally:
        ws.release(transform_path)

    return output_path
