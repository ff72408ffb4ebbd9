#!/usr/bin/env python3
"""
Command-line interface for doc-convert.

Usage:
    doc-convert paper.pdf                         # PDF -> Markdown
    doc-convert book.pdf -f epub                  # PDF -> EPUB (auto-detects title/author)
    doc-convert book.pdf -f epub --ocr            # Scanned book -> EPUB
    doc-convert russian-paper.pdf --translate     # Russian PDF -> English markdown
    doc-convert article.pdf -f epub --translate   # Auto-detect -> English EPUB
    doc-convert slides.pptx -f md                 # PowerPoint -> Markdown

Environment:
    DOC_CONVERT_VENV    Path to marker-pdf virtualenv (default: ~/marker-env)

Settings: ~/.config/doc-convert/settings.conf
    Edit to change the default target language and output format.
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import (
    OutputFormat,
    Settings,
    ensure_settings_file,
    load_settings,
    resolve_options,
    settings_path,
)
from .errors import DocConvertError

logger = logging.getLogger(__name__)

FORMAT_CHOICES = ", ".join(f.value for f in OutputFormat)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    if not verbose:
        for name in ("argostranslate", "stanza", "urllib3", "pypandoc"):
            logging.getLogger(name).setLevel(logging.WARNING)


def cmd_config(path: Path | None = None) -> int:
    """Show the settings file, creating it with defaults first if needed."""
    path, created = ensure_settings_file(path or settings_path())
    if created:
        print("No config file yet. Creating with defaults...")
        print(f"Created: {path}")
    else:
        print(f"Config file: {path}")
    print()
    print(path.read_text(encoding="utf-8"))
    print(f"Edit with: nano {path}")
    return 0


def cmd_convert(args: argparse.Namespace, settings: Settings) -> int:
    """Run the full pipeline."""
    from .pipeline import DocumentPipeline
    from .progress import format_size, format_time

    try:
        options = resolve_options(
            args.input,
            settings,
            format=args.format,
            translate=args.translate,
            translate_to=args.translate_to,
            output=args.output,
            force_ocr=args.ocr,
            use_llm=args.llm,
            title=args.title,
            author=args.author,
        )
    except DocConvertError as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 1

    result = DocumentPipeline(options).run()

    if not result.success:
        print(f"\n✗ Failed: {result.message}", file=sys.stderr)
        return 1

    size = format_size(result.output_path.stat().st_size)
    print(f"\n✓ Done! {result.output_path} ({size}, {format_time(result.elapsed)})")
    print(f"  Format: {options.output_format.value}")
    if result.metadata and result.metadata.title:
        print(f"  Title: {result.metadata.title}")
    if result.metadata and result.metadata.author:
        print(f"  Author: {result.metadata.author}")
    if options.translate:
        print(f"  Translated → {options.translate_to}")
    return 0


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doc-convert",
        description="Convert documents with GPU-powered OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("input", nargs="?", help="Input document")
    parser.add_argument(
        "-f", "--format",
        help=f"Output format: {FORMAT_CHOICES} (default: {settings.format})",
    )
    parser.add_argument(
        "--translate", action="store_true",
        help=f"Auto-detect language and translate to {settings.translate_to}",
    )
    parser.add_argument(
        "--translate-to", metavar="LANG",
        help=f"Set target language (default: {settings.translate_to})",
    )
    parser.add_argument("-o", "--output", help="Output file path (default: auto-named next to input)")
    parser.add_argument("--ocr", action="store_true", help="Force OCR on all pages (for scanned PDFs)")
    parser.add_argument("--llm", action="store_true", help="Use LLM for higher accuracy (slower)")
    parser.add_argument("--title", help="Set document title (auto-detected if not set)")
    parser.add_argument("--author", help="Set author name (auto-detected if not set)")
    parser.add_argument("--config", action="store_true", help="Show/edit settings (target language, default format)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    # A broken settings file must not block --help or --config
    settings_error = None
    try:
        settings = load_settings()
    except DocConvertError as e:
        settings_error = e
        settings = Settings()

    parser = build_parser(settings)
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.config:
        return cmd_config()

    if settings_error is not None:
        print(f"✗ Error: {settings_error}", file=sys.stderr)
        return 1

    if not args.input:
        print("✗ Error: No input file specified", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    try:
        return cmd_convert(args, settings)
    except KeyboardInterrupt:
        print("\n✗ Interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
