# Post-processing pipeline
"""
Post-processing pipeline: turns a base video into the finished deliverable.

Stages, in fixed order (each optional):
1. Stabilize: two-pass vid.stab motion smoothing
2. Upscale: Real-ESRGAN over extracted frames
3. Interpolate: RIFE over extracted frames
4. Finalize: voiceover/music mux and subtitle burn-in

Each stage takes the previous stage's output path and returns a new one;
all intermediates live in a per-job working directory that is removed when
the run ends.
"""

from .runner import run_pipeline
from .stages import STAGE_ORDER, Stage, plan_stages

__all__ = ["run_pipeline", "STAGE_ORDER", "Stage", "plan_stages"]
