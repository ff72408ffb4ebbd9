"""
Extraction engine wrapper for Marker.

Marker lives in its own virtualenv (see DOC_CONVERT_VENV) and is driven
through its ``marker_single`` command.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Protocol

from .config import marker_venv_path
from .errors import ExtractionError

logger = logging.getLogger(__name__)

MARKER_COMMAND = "marker_single"

INSTALL_HINT = (
    "Set DOC_CONVERT_VENV to your marker-pdf venv path, or install:\n"
    "  python3 -m venv ~/marker-env\n"
    "  source ~/marker-env/bin/activate\n"
    "  pip install marker-pdf pypandoc"
)


class Extractor(Protocol):
    """Turns a source document into an intermediate markup file."""

    def extract(
        self,
        input_path: Path,
        output_dir: Path,
        output_format: str,
        force_ocr: bool = False,
        use_llm: bool = False,
    ) -> None:
        """Write one ``markdown`` or ``html`` file into output_dir.

        Raises:
            ExtractionError: engine missing or failed
        """
        ...


class MarkerExtractor:
    """Runs marker_single from its virtualenv."""

    def __init__(self, venv_path: Path | None = None) -> None:
        """Initialize the extractor.

        Args:
            venv_path: Marker virtualenv. Defaults to DOC_CONVERT_VENV or ~/marker-env.
        """
        self.venv_path = Path(venv_path) if venv_path else marker_venv_path()

    @property
    def bin_dir(self) -> Path:
        return self.venv_path / "bin"

    @property
    def executable(self) -> Path:
        return self.bin_dir / MARKER_COMMAND

    def check_installed(self) -> None:
        """Fail early when the engine is missing."""
        if not self.venv_path.is_dir():
            raise ExtractionError(
                f"Marker virtualenv not found at {self.venv_path}\n{INSTALL_HINT}"
            )
        if not self.executable.exists():
            raise ExtractionError(
                f"{MARKER_COMMAND} not found in {self.bin_dir}\n{INSTALL_HINT}"
            )

    def build_command(
        self,
        input_path: Path,
        output_dir: Path,
        output_format: str,
        force_ocr: bool = False,
        use_llm: bool = False,
    ) -> list[str]:
        cmd = [
            str(self.executable),
            str(input_path),
            "--output_dir", str(output_dir),
            "--output_format", output_format,
        ]
        if force_ocr:
            cmd.append("--force_ocr")
        if use_llm:
            cmd.append("--use_llm")
        return cmd

    def _environment(self) -> dict[str, str]:
        """Environment equivalent to activating the virtualenv."""
        env = dict(os.environ)
        env["VIRTUAL_ENV"] = str(self.venv_path)
        env["PATH"] = os.pathsep.join([str(self.bin_dir), env.get("PATH", "")])
        env.pop("PYTHONHOME", None)
        return env

    def extract(
        self,
        input_path: Path,
        output_dir: Path,
        output_format: str,
        force_ocr: bool = False,
        use_llm: bool = False,
    ) -> None:
        self.check_installed()

        cmd = self.build_command(input_path, output_dir, output_format, force_ocr, use_llm)
        logger.debug(f"Marker command: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                env=self._environment(),
            )
        except OSError as e:
            raise ExtractionError(f"Could not start {MARKER_COMMAND}: {e}") from e

        if process.stdout:
            with process.stdout:
                for line in process.stdout:
                    line = line.rstrip()
                    if line:
                        logger.info(f"marker: {line}")

        returncode = process.wait()
        if returncode != 0:
            raise ExtractionError(f"{MARKER_COMMAND} exited with status {returncode}")
