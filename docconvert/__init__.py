"""
doc-convert - Convert documents between formats with local OCR

A thin pipeline around three external tools:
1. Detecting title/author for the output document
2. Extracting text with Marker (GPU OCR)
3. Optionally translating with Argos Translate
4. Converting to the final format with Pandoc
"""

__version__ = "1.0.0"
__author__ = "doc-convert"

from .config import OutputFormat, ResolvedOptions, load_settings, resolve_options
from .errors import (
    ConfigurationError,
    ConversionError,
    DocConvertError,
    ExtractionError,
    TranslationError,
)
from .pipeline import DocumentPipeline, PipelineResult

__all__ = [
    "DocumentPipeline",
    "PipelineResult",
    "OutputFormat",
    "ResolvedOptions",
    "load_settings",
    "resolve_options",
    "DocConvertError",
    "ConfigurationError",
    "ExtractionError",
    "TranslationError",
    "ConversionError",
]
