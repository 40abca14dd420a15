"""Tests for ffmpeg helpers and the per-stage command builders."""
from fractions import Fraction

import pytest

from conftest import FakeInvoker, arg_after
from postprod.pipeline.interpolate import build_interpolate_invocation, multiplied_rate
from postprod.pipeline.stabilize import build_detect_args, build_transform_args
from postprod.pipeline.upscale import build_upscale_invocation, keep_source_rate
from postprod.utils.ffmpeg import (
    FFmpegError,
    format_frame_rate,
    get_video_info,
    list_frames,
    parse_frame_rate,
    reassemble_frames,
    sequence_frames,
)


@pytest.mark.parametrize("value,expected", [
    ("30/1", Fraction(30)),
    ("30000/1001", Fraction(30000, 1001)),
    ("25", Fraction(25)),
    ("29.97", Fraction(2997, 100).limit_denominator(1001)),
    ("0/0", Fraction(30)),
    ("", Fraction(30)),
    (None, Fraction(30)),
    ("abc", Fraction(30)),
])
def test_parse_frame_rate(value, expected):
    assert parse_frame_rate(value, default=30.0) == expected


def test_format_frame_rate():
    assert format_frame_rate(Fraction(24)) == "24"
    assert format_frame_rate(Fraction(60000, 1001)) == "60000/1001"


def test_multiplied_rate_follows_frame_counts():
    assert multiplied_rate(Fraction(24), 3, 6) == 48
    assert multiplied_rate(Fraction(30000, 1001), 10, 20) == Fraction(60000, 1001)
    assert keep_source_rate(Fraction(25), 3, 3) == 25


def test_sequence_frames_renames_rife_output(tmp_path):
    for name in ["00000002.png", "00000001.png", "00000003.png", "notes.txt"]:
        (tmp_path / name).write_bytes(name.encode())

    assert sequence_frames(tmp_path) == 3
    assert [p.name for p in list_frames(tmp_path)] == [
        "frame_00000001.png", "frame_00000002.png", "frame_00000003.png",
    ]
    assert (tmp_path / "frame_00000001.png").read_bytes() == b"00000001.png"


class TestVideoInfo:

    @pytest.mark.asyncio
    async def test_probe(self, config, input_video):
        invoker = FakeInvoker(config, frame_rate="60000/1001")
        info = await get_video_info(invoker, input_video)
        assert info.frame_rate == Fraction(60000, 1001)
        assert info.fps == pytest.approx(59.94, abs=0.01)
        assert (info.width, info.height) == (640, 360)
        assert info.has_audio
        assert info.duration == 2.0
        assert invoker.binaries == ["ffprobe"]

    @pytest.mark.asyncio
    async def test_degenerate_rate_uses_default(self, config, input_video):
        config.default_frame_rate = 25
        info = await get_video_info(FakeInvoker(config, frame_rate="0/0"), input_video)
        assert info.frame_rate == 25

    @pytest.mark.asyncio
    async def test_missing_file(self, config, tmp_path):
        invoker = FakeInvoker(config)
        with pytest.raises(FFmpegError):
            await get_video_info(invoker, tmp_path / "nope.mp4")
        assert invoker.calls == []


class TestCommandBuilders:

    def test_stabilize_passes(self, config, tmp_path):
        detect = " ".join(build_detect_args(tmp_path / "in.mp4", "t.trf", config))
        assert "vidstabdetect=stepsize=32:shakiness=10:accuracy=15:result=t.trf" in detect
        assert detect.endswith("-f null -")

        transform = build_transform_args(tmp_path / "in.mp4", "t.trf", tmp_path / "out.mp4", config)
        assert arg_after(transform, "-vf") == "vidstabtransform=input=t.trf:zoom=0:smoothing=10"
        assert arg_after(transform, "-preset") == "medium"
        assert arg_after(transform, "-crf") == "23"
        assert arg_after(transform, "-c:a") == "copy"

    def test_upscale_invocation(self, config, tmp_path):
        invocation = build_upscale_invocation(FakeInvoker(config), tmp_path / "a", tmp_path / "b")
        assert invocation.binary_name == "realesrgan"
        assert arg_after(invocation.args, "-n") == "realesrgan-x4plus"
        assert arg_after(invocation.args, "-s") == "4"
        assert "-g" not in invocation.args

        config.realesrgan_gpu = 1
        invocation = build_upscale_invocation(FakeInvoker(config), tmp_path / "a", tmp_path / "b")
        assert arg_after(invocation.args, "-g") == "1"

    def test_interpolate_invocation(self, config, tmp_path):
        invocation = build_interpolate_invocation(FakeInvoker(config), tmp_path / "a", tmp_path / "b")
        assert invocation.binary_name == "rife"
        assert arg_after(invocation.args, "-o") == str((tmp_path / "b").resolve())
        assert "-m" not in invocation.args

    @pytest.mark.asyncio
    async def test_reassemble_keeps_source_audio(self, config, tmp_path, input_video):
        invoker = FakeInvoker(config)
        await reassemble_frames(invoker, tmp_path, tmp_path / "out.mp4", Fraction(48), input_video)

        args = invoker.calls[0].args
        assert arg_after(args, "-framerate") == "48"
        assert "1:a?" in args
        assert arg_after(args, "-pix_fmt") == "yuv420p"
