"""SRT subtitle generation, parsing and burn-in filter helpers."""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from postprod.schemas import TimedSegment

_TIMESTAMP_RE = re.compile(r"^(\d+):([0-5]\d):([0-5]\d),(\d{3})$")
_BLOCK_SPLIT_RE = re.compile(r"\n[ \t]*\n")


def format_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    if seconds < 0:
        raise ValueError(f"Negative timestamp: {seconds}")
    total_ms = int(round(seconds * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def parse_timestamp(value: str) -> float:
    """Parse an SRT timestamp back into seconds."""
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid SRT timestamp: {value!r}")
    hours, minutes, secs, millis = (int(g) for g in match.groups())
    return (hours * 3_600_000 + minutes * 60_000 + secs * 1000 + millis) / 1000


def build_srt(segments: Iterable[TimedSegment]) -> str:
    """
    Render segments as an SRT document.

    Segments are ordered by start (then end) time and numbered from 1.
    Each block is terminated by a blank line, including the last one.
    """
    ordered = sorted(segments, key=lambda seg: (seg.start, seg.end))
    blocks = []
    for index, seg in enumerate(ordered, start=1):
        blocks.append(
            f"{index}\n"
            f"{format_timestamp(seg.start)} --> {format_timestamp(seg.end)}\n"
            f"{seg.text}\n\n"
        )
    return "".join(blocks)


def parse_srt(content: str) -> List[TimedSegment]:
    """
    Parse SRT content into timed segments.

    Accepts CRLF line endings and blocks without an index line.

    Raises:
        ValueError: If a block has no valid timing line or no text
    """
    content = content.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff").strip()
    if not content:
        return []

    segments = []
    for block in _BLOCK_SPLIT_RE.split(content):
        if not block.strip():
            continue
        lines = block.strip("\n").split("\n")
        if len(lines) >= 2 and lines[0].strip().isdigit() and "-->" in lines[1]:
            lines = lines[1:]
        if "-->" not in lines[0]:
            raise ValueError(f"SRT block has no timing line: {block!r}")

        start_text, _, end_text = lines[0].partition("-->")
        # Drop positional settings after the end time (e.g. "X1:...")
        end_text = end_text.strip().split(" ")[0]
        segments.append(
            TimedSegment(
                text="\n".join(lines[1:]),
                start=parse_timestamp(start_text),
                end=parse_timestamp(end_text),
            )
        )
    return segments


def write_srt(segments: Iterable[TimedSegment], path: Path) -> Path:
    """Write segments to an SRT file (UTF-8, LF line endings)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(build_srt(segments))
    return path


@dataclass(frozen=True)
class SubtitleStyle:
    """ASS style overrides applied when burning subtitles in."""
    font_name: str = "Arial"
    font_size: int = 24
    primary_colour: str = "&H00FFFFFF"
    outline_colour: str = "&H00000000"
    border_style: int = 1
    outline: int = 1
    shadow: int = 0
    margin_v: int = 20

    @classmethod
    def from_settings(cls, config) -> "SubtitleStyle":
        return cls(
            font_name=config.subtitle_font_name,
            font_size=config.subtitle_font_size,
            primary_colour=config.subtitle_primary_colour,
            outline_colour=config.subtitle_outline_colour,
            border_style=config.subtitle_border_style,
            outline=config.subtitle_outline,
            shadow=config.subtitle_shadow,
            margin_v=config.subtitle_margin_v,
        )

    def force_style(self) -> str:
        return ",".join([
            f"FontName={self.font_name}",
            f"FontSize={self.font_size}",
            f"PrimaryColour={self.primary_colour}",
            f"OutlineColour={self.outline_colour}",
            f"BorderStyle={self.border_style}",
            f"Outline={self.outline}",
            f"Shadow={self.shadow}",
            f"MarginV={self.margin_v}",
        ])


def escape_filter_path(path: str) -> str:
    """Escape a file path for use inside a quoted ffmpeg filter argument."""
    escaped = path.replace("\\", "/").replace(":", "\\:")
    return escaped.replace("'", "'\\''")


def build_subtitle_filter(srt_path: str | Path, style: SubtitleStyle) -> str:
    """Build the ffmpeg `subtitles` filter that burns an SRT file into the frames."""
    return (
        f"subtitles='{escape_filter_path(str(srt_path))}'"
        f":force_style='{style.force_style()}'"
    )
