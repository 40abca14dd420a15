"""Pipeline configuration."""
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="POSTPROD_",
        extra="ignore",
    )

    # App settings
    app_name: str = "PostProd"
    debug: bool = False

    # Directories
    work_dir: Path = Path("./data/work")  # One subdirectory per job
    output_dir: Path = Path("./data/output")  # Finalized videos handed to the caller
    bin_dir: Path = Path("./bin")  # Bundled tool binaries, checked before PATH

    # External tools (bare command names resolved via PATH)
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    realesrgan_path: str = "realesrgan-ncnn-vulkan"
    rife_path: str = "rife-ncnn-vulkan"

    # Subprocess handling
    tool_timeout_seconds: Optional[float] = None  # None = no limit
    kill_grace_seconds: float = 5.0
    stderr_tail_lines: int = 20

    # Downloads
    download_timeout_seconds: float = 120.0
    download_chunk_size: int = 1024 * 1024

    # Stabilization (vid.stab)
    stabilize_stepsize: int = 32
    stabilize_shakiness: int = 10
    stabilize_accuracy: int = 15
    stabilize_smoothing: int = 10
    stabilize_zoom: int = 0
    stabilize_preset: str = "medium"
    stabilize_crf: int = 23

    # Upscaling (Real-ESRGAN)
    realesrgan_model: str = "realesrgan-x4plus"
    realesrgan_scale: int = 4
    realesrgan_gpu: Optional[int] = None

    # Interpolation (RIFE)
    rife_model: Optional[str] = None  # Tool default when unset

    # Frame reassembly
    default_frame_rate: float = 30.0  # Used only when ffprobe reports no rate
    reassemble_crf: int = 23

    # Export settings
    export_video_codec: str = "libx264"
    export_video_preset: str = "fast"
    export_video_crf: int = 23
    export_audio_codec: str = "aac"
    export_audio_bitrate: str = "192k"

    # Audio mix
    voiceover_volume: float = 1.0
    music_volume: float = 0.2

    # Burned-in subtitle style
    subtitle_font_name: str = "Arial"
    subtitle_font_size: int = 24
    subtitle_primary_colour: str = "&H00FFFFFF"
    subtitle_outline_colour: str = "&H00000000"
    subtitle_border_style: int = 1
    subtitle_outline: int = 1
    subtitle_shadow: int = 0
    subtitle_margin_v: int = 20

    @model_validator(mode="after")
    def _check_mix_weights(self) -> "Settings":
        if self.music_volume < 0:
            raise ValueError("music_volume must be >= 0")
        if self.music_volume >= self.voiceover_volume:
            raise ValueError("music_volume must be lower than voiceover_volume")
        return self

    def tool_command(self, name: str) -> str:
        """Return the configured command for a known tool name."""
        commands = {
            "ffmpeg": self.ffmpeg_path,
            "ffprobe": self.ffprobe_path,
            "realesrgan": self.realesrgan_path,
            "rife": self.rife_path,
        }
        try:
            return commands[name]
        except KeyError:
            raise ValueError(f"Unknown tool: {name}") from None


settings = Settings()

# Ensure directories exist
settings.work_dir.mkdir(parents=True, exist_ok=True)
settings.output_dir.mkdir(parents=True, exist_ok=True)
