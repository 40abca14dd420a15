"""Shared state handed to every stage of a run."""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Type

from postprod.config import Settings
from postprod.errors import PipelineCancelledError, PipelineError, StageError
from postprod.utils.fetch import ResolvedMedia
from postprod.utils.tools import ToolInvoker
from postprod.workspace import WorkingSet


@dataclass
class StageContext:
    """Resources for one run. Stages carry no state between each other beyond file paths."""
    working_set: WorkingSet
    invoker: ToolInvoker
    media: ResolvedMedia
    config: Settings


@contextmanager
def stage_errors(error_cls: Type[StageError]) -> Iterator[None]:
    """
    Convert tool, probe and filesystem failures into the stage's error type.

    Stage errors and cancellation pass through untouched; the original
    failure is chained as the cause.
    """
    try:
        yield
    except (StageError, PipelineCancelledError):
        raise
    except (PipelineError, OSError) as e:
        raise error_cls(
            str(e),
            exit_code=getattr(e, "exit_code", None),
            stderr_tail=getattr(e, "stderr_tail", None),
        ) from e
