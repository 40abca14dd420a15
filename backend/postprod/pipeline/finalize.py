"""Final mux: audio replacement/mixing and subtitle burn-in."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from postprod.errors import FinalizeError
from postprod.pipeline.context import StageContext, stage_errors
from postprod.utils.subtitles import SubtitleStyle, build_subtitle_filter, write_srt

logger = logging.getLogger(__name__)


@dataclass
class AudioPlan:
    """How the output audio track is produced."""
    map_spec: str  # -map argument
    filters: List[str]  # filter_complex chains, may be empty
    reencode: bool  # False = original track copied as-is


def build_audio_plan(
    has_voiceover: bool,
    has_music: bool,
    voiceover_volume: float,
    music_volume: float,
) -> AudioPlan:
    """
    Decide the audio mapping.

    Input 0 is the video; voiceover (if any) is input 1; music is the next input.
    """
    if has_voiceover and has_music:
        if music_volume >= voiceover_volume:
            raise ValueError("Background music must be quieter than the voiceover")
        return AudioPlan(
            map_spec="[aout]",
            filters=[
                f"[1:a]volume={voiceover_volume}[vo]",
                f"[2:a]volume={music_volume}[bg]",
                "[vo][bg]amix=inputs=2:duration=longest[aout]",
            ],
            reencode=True,
        )
    if has_voiceover or has_music:
        # Sole track replaces whatever audio the video had
        return AudioPlan(map_spec="1:a:0", filters=[], reencode=True)
    return AudioPlan(map_spec="0:a?", filters=[], reencode=False)


def build_finalize_args(
    video_path: Path,
    output_path: Path,
    config,
    voiceover: Optional[Path] = None,
    music: Optional[Path] = None,
    subtitle_file: Optional[str] = None,
) -> List[str]:
    """
    Build the ffmpeg arguments for the final mux.

    With no voiceover, music or subtitles the streams are copied unchanged.

    Args:
        video_path: Video from the previous stage
        output_path: Final output path
        config: Settings (encode options, volumes, subtitle style)
        voiceover: Optional voiceover audio
        music: Optional background music
        subtitle_file: SRT path as seen from the ffmpeg working directory
    """
    args = ["-y", "-i", str(Path(video_path).resolve())]
    for audio in (voiceover, music):
        if audio is not None:
            args += ["-i", str(Path(audio).resolve())]

    audio = build_audio_plan(
        voiceover is not None, music is not None,
        config.voiceover_volume, config.music_volume,
    )
    filters = list(audio.filters)
    video_map = "0:v:0"
    if subtitle_file:
        style = SubtitleStyle.from_settings(config)
        filters.append(f"[0:v]{build_subtitle_filter(subtitle_file, style)}[vout]")
        video_map = "[vout]"

    if filters:
        args += ["-filter_complex", ";".join(filters)]
    args += ["-map", video_map, "-map", audio.map_spec]

    if not audio.reencode and not subtitle_file:
        args += ["-c", "copy"]
    else:
        args += [
            "-c:v", config.export_video_codec,
            "-preset", config.export_video_preset,
            "-crf", str(config.export_video_crf),
            "-pix_fmt", "yuv420p",
        ]
        if audio.reencode:
            args += ["-c:a", config.export_audio_codec, "-b:a", config.export_audio_bitrate]
        else:
            args += ["-c:a", "copy"]

    args += ["-movflags", "+faststart", str(Path(output_path).resolve())]
    return args


async def finalize(input_path: Path, request, ctx: StageContext) -> Path:
    """
    Produce the deliverable: mux voiceover/music and burn in subtitles.

    Subtitles and overlays are written to one SRT document inside the job
    directory; burned-in text cannot be turned off afterwards.

    Raises:
        FinalizeError: If ffmpeg fails; the partial output is discarded
    """
    ws = ctx.working_set
    output_path = ws.new_file("final", ".mp4")
    srt_path = None

    try:
        with stage_errors(FinalizeError):
            segments = request.caption_segments
            if segments:
                srt_path = write_srt(segments, ws.new_file("subtitles", ".srt"))
                logger.info(f"Burning in {len(segments)} subtitle segments")

            if ctx.media.voiceover or ctx.media.music:
                logger.info(
                    f"Audio: voiceover={'yes' if ctx.media.voiceover else 'no'}, "
                    f"music={'yes' if ctx.media.music else 'no'}"
                )
            elif not segments:
                logger.info("No audio or subtitle assets, remuxing unchanged")

            args = build_finalize_args(
                input_path,
                output_path,
                ctx.config,
                voiceover=ctx.media.voiceover,
                music=ctx.media.music,
                subtitle_file=ws.relative(srt_path) if srt_path else None,
            )
            await ctx.invoker.run(
                ctx.invoker.invocation("ffmpeg", args, working_dir=ws.root)
            )
    except BaseException:
        ws.release(output_path)
        raise
    finally:
        ws.release(srt_path)

    return output_path
