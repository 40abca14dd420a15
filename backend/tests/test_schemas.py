"""Tests for request validation."""
import pytest
from pydantic import ValidationError

from postprod.schemas import PipelineRequest, TimedSegment


class TestTimedSegment:

    def test_text_normalized(self):
        seg = TimedSegment(text="  first  \n\n second \n", start=0, end=1)
        assert seg.text == "first\nsecond"
        assert seg.duration == 1

    @pytest.mark.parametrize("start,end", [(2, 2), (3, 1)])
    def test_start_before_end(self, start, end):
        with pytest.raises(ValidationError):
            TimedSegment(text="x", start=start, end=end)

    def test_sub_millisecond_span_rejected(self):
        with pytest.raises(ValidationError):
            TimedSegment(text="blink", start=1.0001, end=1.0004)

    @pytest.mark.parametrize("start,end", [(0, float("inf")), (float("nan"), 1), (0, float("nan"))])
    def test_non_finite_times_rejected(self, start, end):
        with pytest.raises(ValidationError):
            TimedSegment(text="forever", start=start, end=end)

    def test_non_finite_times_rejected_in_request(self):
        with pytest.raises(ValidationError):
            PipelineRequest(
                input_video="clip.mp4",
                subtitles=[{"text": "forever", "start": 0, "end": float("inf")}],
            )

    def test_negative_start(self):
        with pytest.raises(ValidationError):
            TimedSegment(text="x", start=-1, end=1)

    def test_empty_text(self):
        with pytest.raises(ValidationError):
            TimedSegment(text=" \n ", start=0, end=1)

    def test_frozen(self):
        seg = TimedSegment(text="x", start=0, end=1)
        with pytest.raises(ValidationError):
            seg.start = 0.5


class TestPipelineRequest:

    def test_defaults(self):
        request = PipelineRequest(input_video="clip.mp4")
        assert not (request.stabilize or request.upscale or request.interpolate)
        assert request.caption_segments == []
        assert not request.has_finalize_assets

    def test_camel_case_payload(self):
        request = PipelineRequest.model_validate({
            "inputVideo": "https://example.com/clip.mp4",
            "upscale": True,
            "voiceover": "vo.mp3",
        })
        assert request.input_video == "https://example.com/clip.mp4"
        assert request.upscale
        assert request.has_finalize_assets

    def test_snake_case_accepted(self):
        assert PipelineRequest(input_video=" clip.mp4 ").input_video == "clip.mp4"

    def test_empty_input_rejected(self):
        with pytest.raises(ValidationError):
            PipelineRequest(input_video="   ")

    def test_blank_audio_is_absent(self):
        request = PipelineRequest(input_video="clip.mp4", voiceover="", music="  ")
        assert request.voiceover is None
        assert request.music is None
        assert not request.has_finalize_assets

    def test_subtitles_from_srt_document(self):
        request = PipelineRequest(
            input_video="clip.mp4",
            subtitles="1\n00:00:00,500 --> 00:00:02,000\nHello\n",
        )
        assert request.subtitles == [TimedSegment(text="Hello", start=0.5, end=2.0)]

    def test_blank_srt_document(self):
        assert PipelineRequest(input_video="clip.mp4", subtitles=" ").subtitles is None

    def test_malformed_srt_document(self):
        with pytest.raises(ValidationError):
            PipelineRequest(input_video="clip.mp4", subtitles="not an srt file")

    def test_caption_segments_include_overlays(self):
        request = PipelineRequest(
            input_video="clip.mp4",
            subtitles=[{"text": "sub", "start": 0, "end": 1}],
            overlays=[{"text": "overlay", "start": 1, "end": 2}],
        )
        assert [s.text for s in request.caption_segments] == ["sub", "overlay"]
        assert request.has_finalize_assets

    def test_frozen(self):
        request = PipelineRequest(input_video="clip.mp4")
        with pytest.raises(ValidationError):
            request.upscale = True
