"""
Final-format conversion of the intermediate document.

Trivial cases are handled here directly (same-format copy, plain text);
everything else goes through Pandoc.
"""

import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

from .config import OutputFormat
from .errors import ConversionError
from .metadata import DocumentMetadata

logger = logging.getLogger(__name__)

EPUB_STYLESHEET_NAME = "epub-style.css"

EPUB_STYLESHEET = """\
body { font-family: Georgia, serif; line-height: 1.6; }
h1 { margin-top: 2em; text-align: center; }
h2 { margin-top: 1.5em; }
p { text-indent: 1.5em; margin: 0.3em 0; }
"""

_HEADING_MARKER = re.compile(r"^#+[ \t]*", re.MULTILINE)
_INLINE_MARKUP = re.compile(r"\*\*|\*|`")


class Converter(Protocol):
    """Converts a markdown file to another format with Pandoc semantics."""

    name: str

    def convert(self, source: Path, to_format: str, output_path: Path, extra_args: list[str]) -> None:
        """Write output_path.

        Raises:
            ConversionError: conversion failed
        """
        ...


class PypandocConverter:
    """Converts through the pypandoc bindings."""

    name = "pypandoc"

    def convert(self, source: Path, to_format: str, output_path: Path, extra_args: list[str]) -> None:
        import pypandoc

        try:
            pypandoc.ensure_pandoc_installed()
            pypandoc.convert_file(
                str(source),
                to_format,
                format="markdown",
                outputfile=str(output_path),
                extra_args=extra_args,
            )
        except (RuntimeError, OSError) as e:
            raise ConversionError(f"pypandoc failed: {e}") from e


class PandocBinaryConverter:
    """Converts by running the pandoc executable directly."""

    name = "pandoc"

    def __init__(self, executable: str = "pandoc") -> None:
        self.executable = executable

    def convert(self, source: Path, to_format: str, output_path: Path, extra_args: list[str]) -> None:
        exe = shutil.which(self.executable)
        if not exe:
            raise ConversionError(f"{self.executable} not found on PATH")

        cmd = [
            exe, str(source),
            "-f", "markdown",
            "-t", to_format,
            "-o", str(output_path),
            *extra_args,
        ]
        logger.debug(f"Pandoc command: {' '.join(cmd)}")
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise ConversionError(f"pandoc exited with status {result.returncode}: {detail[-2000:]}")


def markdown_to_text(markdown_text: str) -> str:
    """Lossy markdown to plain text.

    Leading heading markers become a blank line; bold, italic and
    inline-code delimiters are dropped. Not a markdown parser.
    """
    text = _HEADING_MARKER.sub("\n", markdown_text)
    return _INLINE_MARKUP.sub("", text)


def pandoc_args(
    output_format: OutputFormat,
    metadata: DocumentMetadata,
    stylesheet: Path | None = None,
) -> list[str]:
    """Extra Pandoc arguments: metadata, plus ToC and styling for EPUB."""
    args = []
    if metadata.title:
        args += ["--metadata", f"title={metadata.title}"]
    if metadata.author:
        args += ["--metadata", f"author={metadata.author}"]
    if output_format is OutputFormat.EPUB:
        args += ["--split-level=1", "--toc", "--toc-depth=2"]
        if stylesheet:
            args.append(f"--css={stylesheet}")
    return args


def convert_document(
    intermediate: Path,
    output_format: OutputFormat,
    output_path: Path,
    metadata: DocumentMetadata,
    converters: list[Converter],
    stylesheet: Path | None = None,
) -> str:
    """Produce the final output file.

    Args:
        intermediate: Extracted (and possibly translated) document
        output_format: Requested format
        output_path: Destination file
        metadata: Title/author for the converter
        converters: Primary converter followed by its fallback
        stylesheet: CSS file for EPUB output

    Returns:
        Short description of how the file was produced

    Raises:
        ConversionError: every converter failed
    """
    intermediate = Path(intermediate)
    output_path = Path(output_path)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if intermediate.suffix.lstrip(".").lower() == output_format.extension:
            shutil.copyfile(intermediate, output_path)
            return f"copied ({output_format.value} already)"

        if output_format is OutputFormat.TEXT:
            text = intermediate.read_text(encoding="utf-8")
            output_path.write_text(markdown_to_text(text), encoding="utf-8")
            return "plain text"
    except (OSError, UnicodeError) as e:
        raise ConversionError(f"Could not write {output_path}: {e}") from e

    if not converters:
        raise ConversionError("No converter configured")

    args = pandoc_args(output_format, metadata, stylesheet)
    last_error: ConversionError | None = None
    for converter in converters:
        try:
            converter.convert(intermediate, output_format.pandoc_format, output_path, args)
            return converter.name
        except ConversionError as e:
            last_error = e
            logger.warning(f"{converter.name} conversion failed: {e}")

    raise last_error
