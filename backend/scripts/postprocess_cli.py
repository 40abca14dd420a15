#!/usr/bin/env python3
"""
CLI tool to run the post-processing pipeline on a single video.

Usage:
    python scripts/postprocess_cli.py <input> [--stabilize] [--upscale] [--interpolate]
        [--voiceover <path|url>] [--music <path|url>] [--subtitles <file.srt>]
        [--overlay "TEXT@START-END"] [--job-id <id>] [--timeout <seconds>]

Example:
    python scripts/postprocess_cli.py clip.mp4 --upscale --music bg.mp3 --overlay "Hi@0-2"
"""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError

from postprod.errors import PipelineCancelledError, PipelineError, describe_failure
from postprod.pipeline import run_pipeline
from postprod.schemas import PipelineRequest, TimedSegment


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


def parse_overlay(value: str) -> TimedSegment:
    """Parse "TEXT@START-END" (seconds) into a segment."""
    text, sep, span = value.rpartition("@")
    start, dash, end = span.partition("-")
    if not sep or not dash:
        raise argparse.ArgumentTypeError(f"Overlay must look like TEXT@START-END: {value!r}")
    try:
        return TimedSegment(text=text, start=float(start), end=float(end))
    except (ValueError, ValidationError) as e:
        raise argparse.ArgumentTypeError(f"Invalid overlay {value!r}: {e}")


async def process(request: PipelineRequest, job_id: str = None, timeout: float = None) -> Path:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass  # Windows event loops; Ctrl-C raises KeyboardInterrupt instead

    async def progress_callback(pct, msg):
        logger.info(f"[{pct:.0f}%] {msg}")

    return await run_pipeline(
        request,
        job_id=job_id,
        cancel_event=cancel_event,
        timeout=timeout,
        progress_callback=progress_callback,
    )


def main():
    parser = argparse.ArgumentParser(
        description="Enhance a video and add voiceover, music and burned-in subtitles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input_video", help="Path or HTTP(S) URL of the base video")
    parser.add_argument("--stabilize", action="store_true", help="Two-pass stabilization")
    parser.add_argument("--upscale", action="store_true", help="Real-ESRGAN upscaling")
    parser.add_argument("--interpolate", action="store_true", help="RIFE frame interpolation")
    parser.add_argument("--voiceover", default=None, help="Voiceover audio path or URL")
    parser.add_argument("--music", default=None, help="Background music path or URL")
    parser.add_argument(
        "--subtitles",
        type=Path,
        default=None,
        help="SRT file whose content is burned into the video",
    )
    parser.add_argument(
        "--overlay",
        type=parse_overlay,
        action="append",
        default=None,
        help="Timed text overlay TEXT@START-END, repeatable",
    )
    parser.add_argument("--job-id", default=None, help="Job id (names the output file)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-tool time limit in seconds",
    )

    args = parser.parse_args()

    try:
        request = PipelineRequest(
            input_video=args.input_video,
            stabilize=args.stabilize,
            upscale=args.upscale,
            interpolate=args.interpolate,
            voiceover=args.voiceover,
            music=args.music,
            subtitles=args.subtitles.read_text(encoding="utf-8") if args.subtitles else None,
            overlays=args.overlay,
        )
    except (OSError, ValidationError) as e:
        logger.error(f"Invalid request: {e}")
        sys.exit(2)

    try:
        output = asyncio.run(process(request, job_id=args.job_id, timeout=args.timeout))
    except PipelineError as e:
        logger.error(describe_failure(e))
        sys.exit(130 if isinstance(e, PipelineCancelledError) else 1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)

    print(output)


if __name__ == "__main__":
    main()
