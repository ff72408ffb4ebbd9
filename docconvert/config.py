"""
Configuration for the conversion pipeline.

Options are resolved once at startup from three layers, highest first:
command-line flags, the persisted settings file, built-in defaults.
"""

import logging
import os
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TRANSLATE_TO = "en"
DEFAULT_FORMAT = "md"

VENV_ENV_VAR = "DOC_CONVERT_VENV"

SETTINGS_TEMPLATE = """\
# doc-convert settings
# Edit these to change defaults.

# Default target language for --translate (ISO 639-1 code)
# Common: en, ru, es, fr, de, zh, ja, ko
DEFAULT_TRANSLATE_TO="en"

# Default output format (md, epub, html, txt, docx)
DEFAULT_FORMAT="md"
"""


class OutputFormat(Enum):
    """Final output formats."""

    MARKDOWN = "md"
    EPUB = "epub"
    HTML = "html"
    TEXT = "txt"
    DOCX = "docx"

    @classmethod
    def parse(cls, value: str) -> "OutputFormat":
        """Parse a format token, accepting the long aliases."""
        token = (value or "").strip().lower()
        token = _FORMAT_ALIASES.get(token, token)
        try:
            return cls(token)
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise ConfigurationError(f"Unknown format: {value} (valid: {valid})") from None

    @property
    def extension(self) -> str:
        return self.value

    @property
    def intermediate(self) -> str:
        """Format the extraction engine is asked to produce."""
        return "html" if self is OutputFormat.HTML else "markdown"

    @property
    def intermediate_extension(self) -> str:
        return "html" if self.intermediate == "html" else "md"

    @property
    def pandoc_format(self) -> str:
        return {
            OutputFormat.MARKDOWN: "markdown",
            OutputFormat.EPUB: "epub",
            OutputFormat.HTML: "html",
            OutputFormat.TEXT: "plain",
            OutputFormat.DOCX: "docx",
        }[self]


_FORMAT_ALIASES = {"markdown": "md", "text": "txt"}


@dataclass(frozen=True)
class Settings:
    """Persisted user defaults.

    Attributes:
        translate_to: Target language used by --translate
        format: Output format used when -f is not given
    """

    translate_to: str = DEFAULT_TRANSLATE_TO
    format: str = DEFAULT_FORMAT


@dataclass(frozen=True)
class ResolvedOptions:
    """Options for a single conversion, fixed before the pipeline starts.

    Attributes:
        input_path: Document to convert
        output_path: Where the final file is written
        output_format: Requested output format
        translate: Whether the translation stage runs
        translate_to: ISO 639-1 target language
        force_ocr: Force OCR on every page
        use_llm: Ask the extraction engine for higher accuracy
        title: Title supplied by the user, if any
        author: Author supplied by the user, if any
    """

    input_path: Path
    output_path: Path
    output_format: OutputFormat
    translate: bool = False
    translate_to: str = DEFAULT_TRANSLATE_TO
    force_ocr: bool = False
    use_llm: bool = False
    title: str | None = None
    author: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.output_format, OutputFormat):
            raise ConfigurationError(f"Unknown format: {self.output_format}")
        if self.translate and not self.translate_to:
            raise ConfigurationError("Translation requested without a target language")


def settings_path() -> Path:
    """Location of the persisted settings file."""
    return Path.home() / ".config" / "doc-convert" / "settings.conf"


def marker_venv_path() -> Path:
    """Virtualenv holding the extraction engine."""
    override = os.environ.get(VENV_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / "marker-env"


def load_settings(path: Path | None = None) -> Settings:
    """Load the settings file, falling back to defaults when it is absent.

    The file holds shell-style ``KEY="value"`` lines; comments and unknown
    keys are ignored.
    """
    path = path or settings_path()
    if not path.is_file():
        return Settings()

    values: dict[str, str] = {}
    for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        try:
            parts = shlex.split(value, comments=True)
        except ValueError as e:
            raise ConfigurationError(f"{path}:{lineno}: cannot parse value for {key}: {e}") from e
        values[key] = parts[0] if parts else ""

    known = {"DEFAULT_TRANSLATE_TO", "DEFAULT_FORMAT"}
    for key in values.keys() - known:
        logger.debug(f"Ignoring unknown setting {key} in {path}")

    return Settings(
        translate_to=values.get("DEFAULT_TRANSLATE_TO") or DEFAULT_TRANSLATE_TO,
        format=values.get("DEFAULT_FORMAT") or DEFAULT_FORMAT,
    )


def ensure_settings_file(path: Path | None = None) -> tuple[Path, bool]:
    """Create the settings file with defaults if needed.

    Returns:
        Tuple of (path, created)
    """
    path = path or settings_path()
    if path.exists():
        return path, False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SETTINGS_TEMPLATE, encoding="utf-8")
    logger.debug(f"Created settings file {path}")
    return path, True


def default_output_path(input_path: Path, output_format: OutputFormat) -> Path:
    """Output next to the input, named after it, with the format's extension."""
    input_path = Path(input_path).resolve()
    return input_path.parent / f"{input_path.stem}.{output_format.extension}"


def resolve_options(
    input_path: str | Path | None,
    settings: Settings | None = None,
    *,
    format: str | None = None,
    translate: bool = False,
    translate_to: str | None = None,
    output: str | Path | None = None,
    force_ocr: bool = False,
    use_llm: bool = False,
    title: str | None = None,
    author: str | None = None,
) -> ResolvedOptions:
    """Merge flags over settings over defaults into a ResolvedOptions.

    Raises:
        ConfigurationError: input missing or unreadable, or unknown format
    """
    settings = settings or Settings()

    if not input_path:
        raise ConfigurationError("No input file specified")
    path = Path(input_path).expanduser()
    if not path.is_file():
        raise ConfigurationError(f"File not found: {path}")
    if not os.access(path, os.R_OK):
        raise ConfigurationError(f"File is not readable: {path}")

    output_format = OutputFormat.parse(format or settings.format)

    if translate_to:
        translate = True
    target = translate_to or settings.translate_to

    output_path = Path(output).expanduser() if output else default_output_path(path, output_format)

    return ResolvedOptions(
        input_path=path,
        output_path=output_path,
        output_format=output_format,
        translate=translate,
        translate_to=target,
        force_ocr=force_ocr,
        use_llm=use_llm,
        title=title or None,
        author=author or None,
    )
