"""Tests for pipeline states and orchestration."""

import hashlib
from pathlib import Path
from urllib.error import URLError

import pytest
from docconvert.config import OutputFormat
from docconvert.errors import ConversionError, ExtractionError, TranslationError
from docconvert.metadata import DocumentMetadata
from docconvert.pipeline import (
    Action,
    ConversionDone,
    Converted,
    DocumentPipeline,
    Done,
    Extracted,
    ExtractionDone,
    Failed,
    Init,
    MetadataReady,
    MetadataResolved,
    StageFailed,
    Translated,
    TranslationDone,
    WorkspaceReleased,
    next_action,
    transition,
)
from docconvert.translator import TranslationOutcome

from conftest import (
    SAMPLE_MARKDOWN,
    FakeConverter,
    FakeExtractor,
    FakeTranslator,
    no_metadata_reader,
)

META = DocumentMetadata(title="T", author="A")


def build(options, reporter, **overrides):
    """DocumentPipeline wired to fakes."""
    kwargs = dict(
        extractor=FakeExtractor(),
        translator=FakeTranslator(),
        detector=lambda text: "ru",
        converters=[FakeConverter("primary"), FakeConverter("fallback")],
        metadata_reader=no_metadata_reader,
        reporter=reporter,
    )
    kwargs.update(overrides)
    return DocumentPipeline(options, **kwargs)


class TestTransition:
    """Tests for the pure transition function."""

    def test_happy_path_without_translation(self, tmp_path):
        """States should advance strictly forward."""
        state = transition(Init(), MetadataReady(META))
        assert isinstance(state, MetadataResolved)
        state = transition(state, ExtractionDone(tmp_path / "doc.md"))
        assert isinstance(state, Extracted)
        state = transition(state, ConversionDone(tmp_path / "out.epub", "primary"))
        assert isinstance(state, Converted)
        assert state.translation is None
        state = transition(state, WorkspaceReleased())
        assert state == Done(META, tmp_path / "out.epub", "primary", None)

    def test_translation_carried_forward(self, tmp_path):
        """Translation outcome should survive to Done."""
        outcome = TranslationOutcome("ru", "en", False)
        state = Extracted(META, tmp_path / "doc.md")
        state = transition(state, TranslationDone(outcome))
        assert isinstance(state, Translated)
        state = transition(state, ConversionDone(tmp_path / "o.md", "copied"))
        assert state.translation == outcome

    @pytest.mark.parametrize("state", [
        Init(),
        MetadataResolved(META),
        Extracted(META, Path("x.md")),
        Translated(META, Path("x.md"), TranslationOutcome("ru", "en", False)),
        Converted(META, Path("o.md"), "copied"),
    ])
    def test_failure_from_any_non_terminal(self, state):
        """Every non-terminal state may fail."""
        error = ExtractionError("boom")
        failed = transition(state, StageFailed("extract", error))
        assert isinstance(failed, Failed)
        assert failed.error is error
        assert failed.stage == "extract"

    def test_failed_keeps_metadata(self):
        """Metadata resolved before the failure should be kept."""
        failed = transition(MetadataResolved(META), StageFailed("extract", ExtractionError("x")))
        assert failed.metadata == META

    @pytest.mark.parametrize("terminal", [
        Done(META, Path("o.md"), "copied"),
        Failed("extract", ExtractionError("x")),
    ])
    def test_terminal_states_accept_nothing(self, terminal):
        """Done and Failed are final."""
        with pytest.raises(ValueError):
            transition(terminal, WorkspaceReleased())
        with pytest.raises(ValueError):
            transition(terminal, StageFailed("convert", ConversionError("x")))

    def test_backward_event_rejected(self, tmp_path):
        """Events out of order should be rejected."""
        with pytest.raises(ValueError):
            transition(Extracted(META, tmp_path / "d.md"), MetadataReady(META))
        with pytest.raises(ValueError):
            transition(Init(), ConversionDone(tmp_path / "o", "x"))
        with pytest.raises(ValueError):
            transition(Translated(META, tmp_path / "d", TranslationOutcome("ru", "en", False)),
                       TranslationDone(TranslationOutcome("ru", "en", False)))


class TestNextAction:
    """Tests for action selection."""

    def test_sequence_with_translation(self, make_options, tmp_path):
        """Translation should be scheduled only when requested."""
        on = make_options(translate=True)
        off = make_options()
        extracted = Extracted(META, tmp_path / "d.md")
        assert next_action(Init(), on) is Action.METADATA
        assert next_action(MetadataResolved(META), on) is Action.EXTRACT
        assert next_action(extracted, on) is Action.TRANSLATE
        assert next_action(extracted, off) is Action.CONVERT
        assert next_action(Converted(META, tmp_path / "o", "x"), on) is Action.RELEASE

    def test_terminal_has_no_action(self, make_options, tmp_path):
        """Nothing follows Done or Failed."""
        options = make_options()
        assert next_action(Done(META, tmp_path / "o", "x"), options) is None
        assert next_action(Failed("extract", ExtractionError("x")), options) is None


class TestDocumentPipeline:
    """Tests for running the pipeline against fakes."""

    def test_markdown_is_byte_copy(self, make_options, reporter):
        """Markdown output should equal the extracted file exactly."""
        options = make_options(OutputFormat.MARKDOWN)
        pipeline = build(options, reporter)
        result = pipeline.run()
        assert result.success
        assert isinstance(result.state, Done)
        expected = hashlib.sha256(SAMPLE_MARKDOWN.encode("utf-8")).hexdigest()
        assert hashlib.sha256(options.output_path.read_bytes()).hexdigest() == expected
        assert pipeline.converters[0].calls == []

    def test_workspace_removed_on_success(self, make_options, reporter):
        """The workspace should be gone after a successful run."""
        extractor = FakeExtractor()
        build(make_options(), reporter, extractor=extractor).run()
        assert not extractor.workspace.exists()

    def test_extractor_arguments(self, make_options, reporter, sample_input):
        """Extraction flags and intermediate format should be passed through."""
        extractor = FakeExtractor(content="<p>x</p>")
        build(make_options(OutputFormat.HTML, force_ocr=True, use_llm=True), reporter,
              extractor=extractor).run()
        call = extractor.calls[0]
        assert call["input_path"] == sample_input
        assert call["output_format"] == "html"
        assert call["force_ocr"] and call["use_llm"]

    def test_epub_uses_converter_with_stylesheet(self, make_options, reporter):
        """EPUB should go to Pandoc with metadata, ToC and CSS."""
        options = make_options(OutputFormat.EPUB, title="Given Title", author="Given Author")
        pipeline = build(options, reporter)
        result = pipeline.run()
        assert result.success
        source, to_format, output, args = pipeline.converters[0].calls[0]
        assert to_format == "epub"
        assert output == options.output_path
        assert "title=Given Title" in args
        assert "author=Given Author" in args
        assert "--toc" in args
        assert any(a.startswith("--css=") and a.endswith("epub-style.css") for a in args)

    def test_converter_fallback(self, make_options, reporter):
        """A failing primary converter should fall back once."""
        converters = [FakeConverter("primary", fail=True), FakeConverter("fallback")]
        result = build(make_options(OutputFormat.DOCX), reporter, converters=converters).run()
        assert result.success
        assert result.state.method == "fallback"

    def test_converter_failure(self, make_options, reporter):
        """Both converters failing should end in Failed(convert)."""
        options = make_options(OutputFormat.DOCX)
        converters = [FakeConverter("primary", fail=True), FakeConverter("fallback", fail=True)]
        extractor = FakeExtractor()
        result = build(options, reporter, converters=converters, extractor=extractor).run()
        assert not result.success
        assert isinstance(result.error, ConversionError)
        assert result.state.stage == "convert"
        assert not extractor.workspace.exists()

    def test_text_output(self, make_options, reporter):
        """Plain text should be produced without a converter."""
        options = make_options(OutputFormat.TEXT)
        result = build(options, reporter).run()
        assert result.success
        text = options.output_path.read_text(encoding="utf-8")
        assert text.startswith("\nQuantum Computing")
        assert "*" not in text and "`" not in text

    def test_metadata_inferred_from_filename(self, make_options, reporter):
        """Without user values or document text the filename is the title."""
        result = build(make_options(), reporter).run()
        assert result.metadata == DocumentMetadata(title="quantum computing notes")

    def test_metadata_inferred_from_pages(self, make_options, reporter):
        """Page text should provide title and author."""
        def reader(path, max_pages):
            return {}, ["Quantum Computing\nby Jane Doe\n..."]

        result = build(make_options(), reporter, metadata_reader=reader).run()
        assert result.metadata == DocumentMetadata(title="Quantum Computing", author="Jane Doe")


class TestExtractionFailures:
    """Tests for fatal extraction errors."""

    def test_engine_failure(self, make_options, reporter):
        """A failing engine should fail the run without creating output."""
        options = make_options(OutputFormat.EPUB)
        extractor = FakeExtractor(fail=True)
        pipeline = build(options, reporter, extractor=extractor)
        result = pipeline.run()
        assert not result.success
        assert isinstance(result.error, ExtractionError)
        assert result.state.stage == "extract"
        assert not options.output_path.exists()
        assert pipeline.converters[0].calls == []
        assert not extractor.workspace.exists()

    def test_failure_lists_workspace(self, make_options, reporter):
        """The error should carry the workspace contents."""
        result = build(make_options(), reporter, extractor=FakeExtractor(fail=True)).run()
        names = [p.name for p in result.error.workspace_files]
        assert names == ["quantum_computing-notes_meta.json"]
        assert "Contents of temp dir" in str(result.error)

    def test_no_output_file(self, make_options, reporter):
        """An engine that writes nothing recognisable is an extraction error."""
        options = make_options()
        result = build(options, reporter, extractor=FakeExtractor(write=False)).run()
        assert isinstance(result.error, ExtractionError)
        assert "no output" in result.message
        assert not options.output_path.exists()

    def test_interrupt_removes_workspace(self, make_options, reporter):
        """KeyboardInterrupt should propagate after cleanup."""
        extractor = FakeExtractor(raises=KeyboardInterrupt())
        with pytest.raises(KeyboardInterrupt):
            build(make_options(), reporter, extractor=extractor).run()
        assert not extractor.workspace.exists()

    def test_sigterm_exit_removes_workspace(self, make_options, reporter):
        """SystemExit (as raised for SIGTERM) should propagate after cleanup."""
        extractor = FakeExtractor(raises=SystemExit(143))
        with pytest.raises(SystemExit):
            build(make_options(), reporter, extractor=extractor).run()
        assert not extractor.workspace.exists()


class TestTranslationStage:
    """Tests for the optional translation stage."""

    def test_translates_before_conversion(self, make_options, reporter):
        """Translated text should reach the output."""
        options = make_options(translate=True, translate_to="en")
        translator = FakeTranslator()
        result = build(options, reporter, translator=translator).run()
        assert result.success
        assert result.translation == TranslationOutcome("ru", "en", False)
        assert options.output_path.read_text(encoding="utf-8") == SAMPLE_MARKDOWN.upper()

    def test_same_language_no_op(self, make_options, reporter):
        """Same source and target should leave the document unchanged."""
        options = make_options(translate=True, translate_to="en")
        translator = FakeTranslator()
        result = build(options, reporter, translator=translator, detector=lambda text: "en").run()
        assert result.success
        assert result.translation.skipped
        assert translator.translated == []
        assert options.output_path.read_text(encoding="utf-8") == SAMPLE_MARKDOWN

    def test_missing_pair_fails(self, make_options, reporter):
        """No language pair should fail the run with TranslationError."""
        options = make_options(translate=True, translate_to="en")
        extractor = FakeExtractor()
        result = build(options, reporter, translator=FakeTranslator(pairs=()), extractor=extractor).run()
        assert not result.success
        assert isinstance(result.error, TranslationError)
        assert result.state.stage == "translate"
        assert not options.output_path.exists()
        assert not extractor.workspace.exists()

    def test_not_requested_skips(self, make_options, reporter):
        """Translation should not run unless requested."""
        translator = FakeTranslator()
        result = build(make_options(), reporter, translator=translator).run()
        assert result.translation is None
        assert translator.translated == []

    def test_engine_error_becomes_failed_state(self, make_options, reporter):
        """Errors raised inside the translation engine should not escape run()."""
        class OfflineTranslator(FakeTranslator):
            def translate(self, text, source, target):
                raise URLError("offline")

        options = make_options(translate=True, translate_to="en")
        extractor = FakeExtractor()
        result = build(options, reporter, translator=OfflineTranslator(), extractor=extractor).run()
        assert not result.success
        assert isinstance(result.error, TranslationError)
        assert result.state.stage == "translate"
        assert not extractor.workspace.exists()
