"""Per-job working directory and intermediate artifact tracking."""
import logging
import shutil
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)


class WorkingSet:
    """
    Filesystem artifacts owned by one pipeline run.

    Everything lives under `<base_dir>/<job_id>/`. Members are released as
    soon as they are no longer needed and the whole directory is removed
    when the run ends; only a promoted final output survives.
    """

    def __init__(self, root: Path, job_id: str):
        self.root = root
        self.job_id = job_id
        self._members: List[Path] = []

    @classmethod
    def create(cls, base_dir: Path, job_id: Optional[str] = None) -> "WorkingSet":
        job_id = job_id or uuid.uuid4().hex
        root = (Path(base_dir) / job_id).resolve()
        root.mkdir(parents=True, exist_ok=False)
        logger.debug(f"Created working directory {root}")
        return cls(root, job_id)

    @property
    def members(self) -> List[Path]:
        return list(self._members)

    def _unique_name(self, prefix: str, suffix: str = "") -> Path:
        return self.root / f"{prefix}_{uuid.uuid4().hex[:8]}{suffix}"

    def new_file(self, prefix: str, suffix: str) -> Path:
        """Reserve a fresh file path (the file itself is not created)."""
        path = self._unique_name(prefix, suffix)
        self._members.append(path)
        return path

    def new_dir(self, prefix: str) -> Path:
        """Create a fresh, empty directory."""
        path = self._unique_name(prefix)
        path.mkdir()
        self._members.append(path)
        return path

    @contextmanager
    def scratch_dir(self, prefix: str) -> Iterator[Path]:
        """A directory that is released when the block exits, however it exits."""
        path = self.new_dir(prefix)
        try:
            yield path
        finally:
            self.release(path)

    def owns(self, path: Optional[Path]) -> bool:
        if path is None:
            return False
        path = Path(path).resolve()
        return path == self.root or self.root in path.parents

    def relative(self, path: Path) -> str:
        """Path relative to the job directory, for tools run with it as cwd."""
        return Path(path).resolve().relative_to(self.root).as_posix()

    def release(self, *paths: Optional[Path]) -> None:
        """Delete members that are no longer needed. Paths outside the job directory are ignored."""
        for path in paths:
            if path is None or not self.owns(path):
                continue
            path = Path(path).resolve()
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            elif path.exists():
                path.unlink()
            self._members = [m for m in self._members if m.resolve() != path]

    def promote(self, path: Path, output_dir: Path, suffix: Optional[str] = None) -> Path:
        """
        Move the final artifact out of the job directory.

        Files that are not owned by the job (e.g. a caller's local input) are
        copied instead of moved.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / f"{self.job_id}{suffix or Path(path).suffix or '.mp4'}"
        if self.owns(path):
            shutil.move(str(path), target)
            self._members = [m for m in self._members if m.resolve() != Path(path).resolve()]
        else:
            shutil.copy2(path, target)
        return target.resolve()

    def destroy(self) -> None:
        """Remove the job directory and everything left in it."""
        if self.root.exists():
            shutil.rmtree(self.root, ignore_errors=True)
            logger.debug(f"Removed working directory {self.root}")
        self._members.clear()
