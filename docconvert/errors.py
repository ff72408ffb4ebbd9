"""
Exceptions raised by the conversion pipeline.
"""

from pathlib import Path


class DocConvertError(Exception):
    """Base class for every fatal pipeline error."""


class ConfigurationError(DocConvertError):
    """Bad input path or unrecognized option value. Raised before any stage runs."""


class ExtractionError(DocConvertError):
    """The extraction engine is missing, failed, or produced no output."""

    def __init__(self, message: str, workspace_files: list[Path] | None = None) -> None:
        super().__init__(message)
        self.workspace_files = list(workspace_files or [])

    def __str__(self) -> str:
        message = super().__str__()
        if not self.workspace_files:
            return message
        listing = "\n".join(f"  {p}" for p in self.workspace_files)
        return f"{message}\nContents of temp dir:\n{listing}"


class TranslationError(DocConvertError):
    """No language pair is available for the requested translation."""


class ConversionError(DocConvertError):
    """The format converter failed."""
