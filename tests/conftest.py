"""Shared fixtures and engine fakes for the test suite.

None of the tests run Marker, Argos or Pandoc; the fakes below stand in
for them through the same methods the pipeline calls.
"""

import io
from pathlib import Path

import pytest

from docconvert.config import OutputFormat, ResolvedOptions
from docconvert.errors import ConversionError, ExtractionError
from docconvert.progress import StageReporter

SAMPLE_MARKDOWN = "# Quantum Computing\n\n**Qubits** are the *basic* unit of `quantum` information.\n"


class FakeExtractor:
    """Writes a fixed document the way Marker does: <dir>/<stem>/<stem>.<ext>."""

    def __init__(self, content: str = SAMPLE_MARKDOWN, fail: bool = False, write: bool = True, raises=None):
        self.content = content
        self.fail = fail
        self.write = write
        self.raises = raises
        self.calls: list[dict] = []

    def extract(self, input_path, output_dir, output_format, force_ocr=False, use_llm=False):
        self.calls.append({
            "input_path": Path(input_path),
            "output_dir": Path(output_dir),
            "output_format": output_format,
            "force_ocr": force_ocr,
            "use_llm": use_llm,
        })
        if self.raises is not None:
            raise self.raises
        stem = Path(input_path).stem
        target_dir = Path(output_dir) / stem
        target_dir.mkdir(parents=True, exist_ok=True)
        (target_dir / f"{stem}_meta.json").write_text("{}", encoding="utf-8")
        if self.fail:
            raise ExtractionError("marker_single exited with status 1")
        if self.write:
            ext = "html" if output_format == "html" else "md"
            (target_dir / f"{stem}.{ext}").write_text(self.content, encoding="utf-8")

    @property
    def workspace(self) -> Path:
        return self.calls[-1]["output_dir"]


class FakeTranslator:
    """Knows a fixed set of language pairs and upper-cases the text."""

    def __init__(self, pairs=(("ru", "en"), ("es", "en"), ("fr", "en"))):
        self.pairs = set(pairs)
        self.translated: list[tuple[str, str]] = []

    def has_language_pair(self, source, target):
        return (source, target) in self.pairs

    def translate(self, text, source, target):
        self.translated.append((source, target))
        return text.upper()


class FakeConverter:
    """Records calls and writes a stub output, or fails."""

    def __init__(self, name: str = "fake", fail: bool = False):
        self.name = name
        self.fail = fail
        self.calls: list[tuple] = []

    def convert(self, source, to_format, output_path, extra_args):
        self.calls.append((Path(source), to_format, Path(output_path), list(extra_args)))
        if self.fail:
            raise ConversionError(f"{self.name} failed")
        Path(output_path).write_bytes(b"converted:" + Path(source).read_bytes())


def no_metadata_reader(path, max_pages):
    return {}, []


@pytest.fixture
def sample_input(tmp_path: Path) -> Path:
    """A stand-in source document (content is never parsed by the fakes)."""
    path = tmp_path / "quantum_computing-notes.pdf"
    path.write_bytes(b"%PDF-1.4 fake")
    return path


@pytest.fixture
def reporter() -> StageReporter:
    return StageReporter(total=3, stream=io.StringIO())


@pytest.fixture
def make_options(sample_input: Path, tmp_path: Path):
    """Build ResolvedOptions for the sample input with overrides."""

    def _make(output_format: OutputFormat = OutputFormat.MARKDOWN, **overrides) -> ResolvedOptions:
        values = dict(
            input_path=sample_input,
            output_path=tmp_path / "out" / f"result.{output_format.extension}",
            output_format=output_format,
        )
        values.update(overrides)
        return ResolvedOptions(**values)

    return _make
