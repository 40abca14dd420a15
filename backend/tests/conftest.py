"""Shared fixtures: isolated settings and a fake tool invoker."""
import json
import re
import shutil
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from postprod.config import Settings
from postprod.errors import ToolExecutionError, ToolNotFoundError
from postprod.utils.ffmpeg import FRAME_PATTERN
from postprod.utils.tools import ToolInvocation, ToolInvoker, ToolResult


def arg_after(args: List[str], flag: str) -> str:
    """Value following a flag in an argument list."""
    return args[args.index(flag) + 1]


class FakeInvoker(ToolInvoker):
    """
    Records every invocation and fakes the tools' effects on disk.

    - ffprobe reports one video stream at `frame_rate` (plus AAC audio)
    - ffmpeg frame extraction writes `frame_count` PNGs
    - Real-ESRGAN copies frames; RIFE writes twice as many, numbered like RIFE
    - any other ffmpeg call writes its output file
    """

    def __init__(
        self,
        config: Settings,
        frame_count: int = 3,
        frame_rate: str = "24/1",
        fail: Optional[Callable[[ToolInvocation], bool]] = None,
        missing: tuple = (),
        slow_tools: tuple = (),
        **kwargs,
    ):
        super().__init__(config=config, **kwargs)
        self.frame_count = frame_count
        self.frame_rate = frame_rate
        self.fail = fail
        self.missing = set(missing)
        self.slow_tools = set(slow_tools)
        self.calls: List[ToolInvocation] = []
        self.srt_contents: List[str] = []

    @property
    def binaries(self) -> List[str]:
        return [call.binary_name for call in self.calls]

    def ffmpeg_calls(self, marker: str) -> List[ToolInvocation]:
        return [c for c in self.calls if c.binary_name == "ffmpeg" and marker in " ".join(c.args)]

    async def run(self, invocation: ToolInvocation) -> ToolResult:
        self.check_cancelled()
        if invocation.binary_name in self.missing:
            raise ToolNotFoundError(invocation.binary_name, [invocation.fallback_command])
        self.calls.append(invocation)
        if self.fail and self.fail(invocation):
            raise ToolExecutionError(invocation.binary_name, 1, "Conversion failed!")
        if invocation.binary_name in self.slow_tools:
            # Real process that only ends when killed
            return await super().run(ToolInvocation(
                binary_name=invocation.binary_name,
                args=["-c", "import time; time.sleep(30)"],
                preferred_path=Path(sys.executable),
            ))
        handler = getattr(self, f"_fake_{invocation.binary_name}")
        return handler(invocation)

    def _fake_ffprobe(self, invocation: ToolInvocation) -> ToolResult:
        data = {
            "streams": [
                {"codec_type": "video", "codec_name": "h264", "width": 640, "height": 360,
                 "r_frame_rate": self.frame_rate},
                {"codec_type": "audio", "codec_name": "aac"},
            ],
            "format": {"duration": "2.0", "format_name": "mov,mp4,m4a,3gp,3g2,mj2"},
        }
        return ToolResult(0, json.dumps(data), "")

    def _fake_ffmpeg(self, invocation: ToolInvocation) -> ToolResult:
        args = invocation.args
        output = args[-1]
        joined = " ".join(args)

        if "vidstabdetect" in joined:
            result_name = re.search(r"result=([^:\s]+)", joined).group(1)
            (invocation.working_dir / result_name).write_text("transforms")
            return ToolResult(0, "", "")

        if output.endswith(FRAME_PATTERN):
            frames_dir = Path(output).parent
            for i in range(1, self.frame_count + 1):
                (frames_dir / (FRAME_PATTERN % i)).write_bytes(b"png")
            return ToolResult(0, "", "")

        match = re.search(r"subtitles='([^']+)'", joined)
        if match:
            self.srt_contents.append(
                (invocation.working_dir / match.group(1)).read_text(encoding="utf-8")
            )
        Path(output).write_bytes(b"fake video")
        return ToolResult(0, "", "")

    def _fake_realesrgan(self, invocation: ToolInvocation) -> ToolResult:
        src = Path(arg_after(invocation.args, "-i"))
        dst = Path(arg_after(invocation.args, "-o"))
        for frame in src.glob("*.png"):
            shutil.copy(frame, dst / frame.name)
        return ToolResult(0, "", "")

    def _fake_rife(self, invocation: ToolInvocation) -> ToolResult:
        src = Path(arg_after(invocation.args, "-i"))
        dst = Path(arg_after(invocation.args, "-o"))
        count = len(list(src.glob("*.png")))
        for i in range(1, count * 2 + 1):
            (dst / f"{i:08d}.png").write_bytes(b"png")
        return ToolResult(0, "", "")


@pytest.fixture
def config(tmp_path):
    """Settings pointing at a throwaway directory tree."""
    return Settings(
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "output",
        bin_dir=tmp_path / "bin",
        kill_grace_seconds=2.0,
    )


@pytest.fixture
def input_video(tmp_path):
    path = tmp_path / "in.mp4"
    path.write_bytes(b"source video")
    return path
