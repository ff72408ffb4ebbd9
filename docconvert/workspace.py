"""
Scoped temporary directory holding the intermediate files of one run.
"""

import logging
import shutil
import signal
import sys
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "doc-convert-"


def _terminate(signum, frame):
    """Turn SIGTERM into SystemExit so the workspace is still released."""
    logger.info(f"Received signal {signum}, cleaning up...")
    sys.exit(128 + signum)


class PipelineWorkspace:
    """Temporary directory removed on every exit path.

    Usage:
        with PipelineWorkspace() as workspace:
            extractor.extract(..., workspace.path, ...)
    """

    def __init__(self, parent: Path | None = None) -> None:
        """Initialize the workspace.

        Args:
            parent: Directory to create the workspace in (system temp dir if None)
        """
        self.parent = parent
        self._path: Path | None = None
        self._original_sigterm = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("Workspace is not active")
        return self._path

    @property
    def active(self) -> bool:
        return self._path is not None

    def __enter__(self) -> "PipelineWorkspace":
        self._path = Path(tempfile.mkdtemp(
            prefix=WORKSPACE_PREFIX,
            dir=str(self.parent) if self.parent else None,
        ))
        logger.debug(f"Created workspace {self._path}")
        self._install_signal_handler()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self.release()
        finally:
            self._restore_signal_handler()

    def release(self) -> None:
        """Remove the workspace directory and everything in it."""
        if self._path is None:
            return
        path, self._path = self._path, None
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Removed workspace {path}")

    def files(self) -> list[Path]:
        """All files currently in the workspace, for diagnostics."""
        return sorted(p for p in self.path.rglob("*") if p.is_file())

    def find(self, extension: str) -> Path | None:
        """First file (sorted) with the given extension, searched recursively."""
        suffix = "." + extension.lstrip(".")
        for candidate in self.files():
            if candidate.suffix.lower() == suffix:
                return candidate
        return None

    def write_text(self, name: str, content: str) -> Path:
        """Write an auxiliary file into the workspace."""
        target = self.path / name
        target.write_text(content, encoding="utf-8")
        return target

    def _install_signal_handler(self) -> None:
        try:
            self._original_sigterm = signal.signal(signal.SIGTERM, _terminate)
        except (ValueError, OSError):
            # Signal handling may fail in some contexts (e.g., non-main thread)
            self._original_sigterm = None

    def _restore_signal_handler(self) -> None:
        if self._original_sigterm is None:
            return
        try:
            signal.signal(signal.SIGTERM, self._original_sigterm)
        except (ValueError, OSError):
            pass
        self._original_sigterm = None
