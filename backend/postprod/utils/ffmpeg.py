"""FFmpeg and ffprobe utilities."""
import json
import logging
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Optional

from postprod.errors import PipelineError
from postprod.utils.tools import ToolInvoker

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%08d.png"


@dataclass
class VideoInfo:
    """Video metadata container."""
    duration: float
    width: int
    height: int
    frame_rate: Fraction
    video_codec: str
    audio_codec: Optional[str]
    format_name: str

    @property
    def fps(self) -> float:
        return float(self.frame_rate)

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None


class FFmpegError(PipelineError):
    """FFmpeg related error."""
    pass


def parse_frame_rate(value: Optional[str], default: float = 30.0) -> Fraction:
    """
    Parse an ffprobe rate such as "30000/1001" or "25".

    Falls back to `default` for missing or degenerate values ("0/0").
    """
    fallback = Fraction(default).limit_denominator(1001)
    if not value:
        return fallback
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            if int(den) == 0:
                return fallback
            rate = Fraction(int(num), int(den))
        else:
            rate = Fraction(value).limit_denominator(1001)
    except (ValueError, ZeroDivisionError):
        return fallback
    return rate if rate > 0 else fallback


def format_frame_rate(rate: Fraction) -> str:
    """Format a frame rate for ffmpeg's -framerate option."""
    if rate.denominator == 1:
        return str(rate.numerator)
    return f"{rate.numerator}/{rate.denominator}"


def list_frames(frames_dir: Path) -> list[Path]:
    return sorted(p for p in Path(frames_dir).iterdir() if p.suffix.lower() == ".png")


def sequence_frames(frames_dir: Path) -> int:
    """
    Rename the PNG frames in a directory to a contiguous frame_%08d.png sequence.

    Tools name their outputs differently (Real-ESRGAN keeps input names, RIFE
    numbers from 00000001.png); reassembly needs one pattern.

    Returns:
        Number of frames in the directory
    """
    frames = list_frames(frames_dir)
    for index, frame in enumerate(frames, start=1):
        target = frame.with_name(FRAME_PATTERN % index)
        if frame != target:
            frame.rename(target)
    return len(frames)


async def get_video_info(invoker: ToolInvoker, video_path: str | Path) -> VideoInfo:
    """
    Get video metadata using ffprobe.

    Args:
        invoker: Tool invoker used to run ffprobe
        video_path: Path to video file

    Returns:
        VideoInfo with video metadata

    Raises:
        FFmpegError: If the output cannot be parsed or has no video stream
    """
    video_path = Path(video_path)
    if not video_path.exists():
        raise FFmpegError(f"Video file not found: {video_path}")

    result = await invoker.run(invoker.invocation("ffprobe", [
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(video_path.resolve()),
    ]))

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise FFmpegError(f"Failed to parse ffprobe output: {e}")

    video_stream = None
    audio_stream = None
    for stream in data.get("streams", []):
        if stream.get("codec_type") == "video" and video_stream is None:
            video_stream = stream
        elif stream.get("codec_type") == "audio" and audio_stream is None:
            audio_stream = stream

    if not video_stream:
        raise FFmpegError(f"No video stream found in {video_path}")

    frame_rate = parse_frame_rate(
        video_stream.get("r_frame_rate") or video_stream.get("avg_frame_rate"),
        default=invoker.config.default_frame_rate,
    )

    fmt = data.get("format", {})
    duration = float(fmt.get("duration") or video_stream.get("duration") or 0)

    return VideoInfo(
        duration=duration,
        width=int(video_stream.get("width", 0)),
        height=int(video_stream.get("height", 0)),
        frame_rate=frame_rate,
        video_codec=video_stream.get("codec_name", "unknown"),
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
        format_name=fmt.get("format_name", "unknown"),
    )


async def extract_frames(invoker: ToolInvoker, video_path: Path, frames_dir: Path) -> int:
    """
    Extract every frame of a video as numbered PNG stills.

    Returns:
        Number of frames written
    """
    frames_dir.mkdir(parents=True, exist_ok=True)
    await invoker.run(invoker.invocation("ffmpeg", [
        "-y",
        "-i", str(Path(video_path).resolve()),
        "-map", "0:v:0",
        "-fps_mode", "passthrough",
        str(frames_dir.resolve() / FRAME_PATTERN),
    ]))
    count = len(list_frames(frames_dir))
    logger.info(f"Extracted {count} frames from {Path(video_path).name}")
    return count


async def reassemble_frames(
    invoker: ToolInvoker,
    frames_dir: Path,
    output_path: Path,
    frame_rate: Fraction,
    audio_source: Optional[Path] = None,
) -> Path:
    """
    Encode a frame_%08d.png sequence into an H.264 video.

    Args:
        invoker: Tool invoker used to run ffmpeg
        frames_dir: Directory holding the sequenced frames
        output_path: Path for output file
        frame_rate: Playback rate of the frame sequence
        audio_source: Optional video whose audio track (if any) is muxed back in

    Returns:
        Path to the encoded video
    """
    config = invoker.config
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = [
        "-y",
        "-framerate", format_frame_rate(frame_rate),
        "-start_number", "1",
        "-i", str(frames_dir.resolve() / FRAME_PATTERN),
    ]
    if audio_source is not None:
        cmd += ["-i", str(Path(audio_source).resolve())]
    cmd += ["-map", "0:v:0"]
    if audio_source is not None:
        cmd += ["-map", "1:a?", "-c:a", config.export_audio_codec, "-b:a", config.export_audio_bitrate]
    cmd += [
        "-c:v", config.export_video_codec,
        "-pix_fmt", "yuv420p",
        "-crf", str(config.reassemble_crf),
        "-movflags", "+faststart",
        str(output_path.resolve()),
    ]

    await invoker.run(invoker.invocation("ffmpeg", cmd))
    return output_path
