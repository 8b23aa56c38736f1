"""Per-batch scratch directory for intermediate media files."""

import logging
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class BatchWorkspace:
    """A temporary directory owned by one assembly batch.

    Use as an async context manager. The directory and everything in it is
    removed on exit, whether the batch succeeded or not.

    Example:
        async with BatchWorkspace(root=work_dir) as workspace:
            path = workspace.path_for(0, "raw", ".mp4")
    """

    def __init__(self, root: Path | None = None, prefix: str = "moviegen_batch_"):
        self.root = Path(root) if root else None
        self.prefix = prefix
        self._path: Path | None = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Workspace is not open")
        return self._path

    @property
    def is_open(self) -> bool:
        return self._path is not None

    def open(self) -> Path:
        if self._path is None:
            if self.root:
                self.root.mkdir(parents=True, exist_ok=True)
            self._path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.root))
            logger.debug(f"Opened workspace {self._path}")
        return self._path

    def path_for(self, index: int, stage: str, suffix: str) -> Path:
        """Path for one scene's intermediate file, e.g. ``scene_002_raw.mp4``."""
        return self.path / f"scene_{index:03d}_{stage}{suffix}"

    def file(self, name: str) -> Path:
        return self.path / name

    def cleanup(self) -> None:
        """Remove the workspace directory. Failures are logged, not raised."""
        if self._path is None:
            return
        path, self._path = self._path, None
        try:
            shutil.rmtree(path)
            logger.debug(f"Removed workspace {path}")
        except OSError as e:
            logger.warning(f"Failed to remove workspace {path}: {e}")

    async def __aenter__(self) -> "BatchWorkspace":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
