"""Pydantic schemas for pipeline requests."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class TimedSegment(BaseModel):
    """A piece of text shown between start and end (seconds)."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    text: str
    start: float = Field(..., ge=0, description="Start time in seconds")
    end: float = Field(..., ge=0, description="End time in seconds")

    @field_validator("text")
    @classmethod
    def _normalize_text(cls, value: str) -> str:
        # Blank lines would terminate an SRT block early
        lines = [line.rstrip() for line in value.strip().splitlines()]
        text = "\n".join(line for line in lines if line)
        if not text:
            raise ValueError("text must not be empty")
        return text

    @model_validator(mode="after")
    def _check_order(self) -> "TimedSegment":
        # SRT timestamps have millisecond resolution
        if round(self.start * 1000) >= round(self.end * 1000):
            raise ValueError(
                f"start ({self.start}) must be at least 1ms before end ({self.end})"
            )
        return self

    @property
    def duration(self) -> float:
        return self.end - self.start


class PipelineRequest(BaseModel):
    """One post-processing job."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    input_video: str = Field(..., description="Local path or HTTP(S) URL of the base video")
    stabilize: bool = False
    upscale: bool = False
    interpolate: bool = False
    voiceover: Optional[str] = Field(None, description="Voiceover audio path or URL")
    music: Optional[str] = Field(None, description="Background music path or URL")
    subtitles: Optional[List[TimedSegment]] = Field(
        None, description="Timed subtitle segments, or SRT document content"
    )
    overlays: Optional[List[TimedSegment]] = Field(None, description="Timed text overlays")

    @field_validator("input_video")
    @classmethod
    def _require_input(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("input_video must not be empty")
        return value

    @field_validator("voiceover", "music")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("subtitles", mode="before")
    @classmethod
    def _parse_subtitle_document(cls, value):
        if isinstance(value, str):
            from postprod.utils.subtitles import parse_srt
            return parse_srt(value) if value.strip() else None
        return value

    @property
    def caption_segments(self) -> List[TimedSegment]:
        """Subtitles and overlays together; both are burned in the same way."""
        return [*(self.subtitles or []), *(self.overlays or [])]

    @property
    def has_finalize_assets(self) -> bool:
        return bool(self.voiceover or self.music or self.caption_segments)
