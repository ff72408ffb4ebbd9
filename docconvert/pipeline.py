"""
Main pipeline orchestration for document conversion.

The pipeline is an explicit state machine:

    Init -> MetadataResolved -> Extracted -> [Translated] -> Converted -> Done

with ``Failed`` reachable from any non-terminal state. ``transition`` and
``next_action`` are pure; ``DocumentPipeline`` performs the actions and
feeds their outcomes back as events.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from .config import OutputFormat, ResolvedOptions
from .converter import (
    EPUB_STYLESHEET,
    EPUB_STYLESHEET_NAME,
    Converter,
    PandocBinaryConverter,
    PypandocConverter,
    convert_document,
)
from .errors import DocConvertError, ExtractionError
from .extractor import Extractor, MarkerExtractor
from .metadata import DocumentMetadata, MetadataReader, infer_metadata, read_pdf_metadata
from .progress import StageReporter, format_size
from .translator import (
    ArgosTranslator,
    LanguageDetector,
    TranslationOutcome,
    Translator,
    detect_language,
    translate_document,
)
from .workspace import PipelineWorkspace

logger = logging.getLogger(__name__)


# States

@dataclass(frozen=True)
class Init:
    pass


@dataclass(frozen=True)
class MetadataResolved:
    metadata: DocumentMetadata


@dataclass(frozen=True)
class Extracted:
    metadata: DocumentMetadata
    intermediate: Path


@dataclass(frozen=True)
class Translated:
    metadata: DocumentMetadata
    intermediate: Path
    translation: TranslationOutcome


@dataclass(frozen=True)
class Converted:
    metadata: DocumentMetadata
    output_path: Path
    method: str
    translation: TranslationOutcome | None = None


@dataclass(frozen=True)
class Done:
    metadata: DocumentMetadata
    output_path: Path
    method: str
    translation: TranslationOutcome | None = None


@dataclass(frozen=True)
class Failed:
    """Terminal failure. ``stage`` names the action that failed."""

    stage: str
    error: DocConvertError
    metadata: DocumentMetadata | None = None


PipelineState = Union[Init, MetadataResolved, Extracted, Translated, Converted, Done, Failed]

TERMINAL_STATES = (Done, Failed)


# Events

@dataclass(frozen=True)
class MetadataReady:
    metadata: DocumentMetadata


@dataclass(frozen=True)
class ExtractionDone:
    intermediate: Path


@dataclass(frozen=True)
class TranslationDone:
    translation: TranslationOutcome


@dataclass(frozen=True)
class ConversionDone:
    output_path: Path
    method: str


@dataclass(frozen=True)
class WorkspaceReleased:
    pass


@dataclass(frozen=True)
class StageFailed:
    stage: str
    error: DocConvertError


PipelineEvent = Union[
    MetadataReady, ExtractionDone, TranslationDone, ConversionDone, WorkspaceReleased, StageFailed
]


class Action(Enum):
    """Work the orchestrator performs to leave a state."""

    METADATA = "metadata"
    EXTRACT = "extract"
    TRANSLATE = "translate"
    CONVERT = "convert"
    RELEASE = "release"


def next_action(state: PipelineState, options: ResolvedOptions) -> Action | None:
    """The action that leads out of state, or None for terminal states."""
    if isinstance(state, Init):
        return Action.METADATA
    if isinstance(state, MetadataResolved):
        return Action.EXTRACT
    if isinstance(state, Extracted):
        return Action.TRANSLATE if options.translate else Action.CONVERT
    if isinstance(state, Translated):
        return Action.CONVERT
    if isinstance(state, Converted):
        return Action.RELEASE
    return None


def transition(state: PipelineState, event: PipelineEvent) -> PipelineState:
    """Apply event to state. Only forward moves are allowed.

    Raises:
        ValueError: event is not valid in state
    """
    if isinstance(state, TERMINAL_STATES):
        raise ValueError(f"{type(state).__name__} is terminal, got {type(event).__name__}")

    if isinstance(event, StageFailed):
        return Failed(
            stage=event.stage,
            error=event.error,
            metadata=getattr(state, "metadata", None),
        )

    if isinstance(state, Init) and isinstance(event, MetadataReady):
        return MetadataResolved(metadata=event.metadata)

    if isinstance(state, MetadataResolved) and isinstance(event, ExtractionDone):
        return Extracted(metadata=state.metadata, intermediate=event.intermediate)

    if isinstance(state, Extracted) and isinstance(event, TranslationDone):
        return Translated(
            metadata=state.metadata,
            intermediate=state.intermediate,
            translation=event.translation,
        )

    if isinstance(state, (Extracted, Translated)) and isinstance(event, ConversionDone):
        return Converted(
            metadata=state.metadata,
            output_path=event.output_path,
            method=event.method,
            translation=getattr(state, "translation", None),
        )

    if isinstance(state, Converted) and isinstance(event, WorkspaceReleased):
        return Done(
            metadata=state.metadata,
            output_path=state.output_path,
            method=state.method,
            translation=state.translation,
        )

    raise ValueError(f"Invalid event {type(event).__name__} in state {type(state).__name__}")


@dataclass
class PipelineResult:
    """Result of running the pipeline."""

    success: bool
    state: PipelineState
    output_path: Path | None
    metadata: DocumentMetadata | None
    translation: TranslationOutcome | None
    error: DocConvertError | None
    message: str
    elapsed: float = 0.0


class DocumentPipeline:
    """Runs one document through extraction, translation and conversion.

    Usage:
        options = resolve_options("paper.pdf", load_settings(), format="epub")
        result = DocumentPipeline(options).run()

    The external engines can be swapped for any object with the same
    methods, which is how the tests run without OCR or Pandoc.
    """

    def __init__(
        self,
        options: ResolvedOptions,
        extractor: Extractor | None = None,
        translator: Translator | None = None,
        detector: LanguageDetector = detect_language,
        converters: list[Converter] | None = None,
        metadata_reader: MetadataReader = read_pdf_metadata,
        reporter: StageReporter | None = None,
        workspace_dir: Path | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            options: Resolved options for this run
            extractor: Extraction engine (Marker by default)
            translator: Translation engine (Argos by default)
            detector: Language detector (langdetect by default)
            converters: Primary converter then its single fallback
            metadata_reader: Reads embedded metadata and page text
            reporter: Stage output (stderr by default)
            workspace_dir: Parent for the temporary workspace
        """
        self.options = options
        self.extractor = extractor or MarkerExtractor()
        self.translator = translator or ArgosTranslator()
        self.detector = detector
        self.converters = converters if converters is not None else [
            PypandocConverter(),
            PandocBinaryConverter(),
        ]
        self.metadata_reader = metadata_reader
        self.reporter = reporter or StageReporter(total=3)
        self.workspace_dir = workspace_dir
        self.state: PipelineState = Init()
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Ensure logging is configured.

        Only sets up a basic config if no handlers are configured,
        allowing the CLI to control logging setup.
        """
        if not logging.root.handlers:
            logging.basicConfig(
                level=logging.INFO,
                format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )

    def run(self) -> PipelineResult:
        """Run the complete pipeline.

        Interrupts propagate; the workspace is removed either way.

        Returns:
            PipelineResult with output path and status
        """
        start_time = time.time()
        self.state = Init()

        actions = {
            Action.METADATA: self._resolve_metadata,
            Action.EXTRACT: self._extract,
            Action.TRANSLATE: self._translate,
            Action.CONVERT: self._convert,
        }

        with PipelineWorkspace(self.workspace_dir) as workspace:
            while True:
                action = next_action(self.state, self.options)
                if action is None or action is Action.RELEASE:
                    break
                try:
                    event = actions[action](workspace)
                except DocConvertError as e:
                    logger.debug(f"{action.value} failed", exc_info=True)
                    event = StageFailed(action.value, e)
                self.state = transition(self.state, event)

        if isinstance(self.state, Converted):
            self.state = transition(self.state, WorkspaceReleased())

        return self._result(time.time() - start_time)

    def _result(self, elapsed: float) -> PipelineResult:
        state = self.state
        if isinstance(state, Done):
            return PipelineResult(
                success=True,
                state=state,
                output_path=state.output_path,
                metadata=state.metadata,
                translation=state.translation,
                error=None,
                message=f"Converted {self.options.input_path.name} to {self.options.output_format.value}",
                elapsed=elapsed,
            )
        if isinstance(state, Failed):
            return PipelineResult(
                success=False,
                state=state,
                output_path=None,
                metadata=state.metadata,
                translation=None,
                error=state.error,
                message=str(state.error),
                elapsed=elapsed,
            )
        raise RuntimeError(f"Pipeline stopped in non-terminal state {type(state).__name__}")

    def _resolve_metadata(self, workspace: PipelineWorkspace) -> MetadataReady:
        options = self.options
        if options.title and options.author:
            return MetadataReady(DocumentMetadata(title=options.title, author=options.author))

        self.reporter.step(0, "Detecting metadata...")
        metadata = infer_metadata(
            options.input_path,
            title=options.title,
            author=options.author,
            reader=self.metadata_reader,
        )
        if metadata.title:
            self.reporter.detail(f"Title:  {metadata.title}")
        if metadata.author:
            self.reporter.detail(f"Author: {metadata.author}")
        return MetadataReady(metadata)

    def _extract(self, workspace: PipelineWorkspace) -> ExtractionDone:
        options = self.options
        fmt = options.output_format
        self.reporter.step(1, "Extracting text...")

        try:
            self.extractor.extract(
                options.input_path,
                workspace.path,
                fmt.intermediate,
                force_ocr=options.force_ocr,
                use_llm=options.use_llm,
            )
        except ExtractionError as e:
            if not e.workspace_files:
                e.workspace_files = workspace.files()
            raise

        intermediate = workspace.find(fmt.intermediate_extension)
        if intermediate is None:
            raise ExtractionError("Extraction produced no output", workspace.files())

        size = intermediate.stat().st_size
        self.reporter.done(f"Extracted {size} bytes of text")
        return ExtractionDone(intermediate)

    def _translate(self, workspace: PipelineWorkspace) -> TranslationDone:
        state = self.state
        target = self.options.translate_to
        self.reporter.step(2, f"Detecting language and translating → {target}...")

        translation = translate_document(
            state.intermediate,
            target,
            self.translator,
            self.detector,
        )
        self.reporter.done(f"Translation: {translation.description}")
        return TranslationDone(translation)

    def _convert(self, workspace: PipelineWorkspace) -> ConversionDone:
        options = self.options
        state = self.state
        fmt = options.output_format

        if not options.translate:
            self.reporter.step(2, "No translation requested, skipping")
        self.reporter.step(3, f"Converting to {fmt.value}...")

        stylesheet = None
        if fmt is OutputFormat.EPUB:
            stylesheet = workspace.write_text(EPUB_STYLESHEET_NAME, EPUB_STYLESHEET)

        method = convert_document(
            state.intermediate,
            fmt,
            options.output_path,
            state.metadata,
            self.converters,
            stylesheet=stylesheet,
        )
        size = format_size(options.output_path.stat().st_size)
        self.reporter.done(f"{options.output_path} ({size}, {method})")
        return ConversionDone(options.output_path, method)
