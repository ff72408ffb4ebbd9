"""
Language detection and translation of the intermediate document.

Detection uses langdetect; translation uses Argos Translate, which runs
locally and installs language packs on demand.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from .errors import TranslationError

logger = logging.getLogger(__name__)

DETECTION_SAMPLE_CHARS = 5000

# Source languages probed, in order, when detection is unavailable
CANDIDATE_SOURCES = ("ru", "es", "fr", "de", "zh", "ja", "ko", "pt", "it")

LanguageDetector = Callable[[str], str | None]


class Translator(Protocol):
    """Machine translation between language codes."""

    def has_language_pair(self, source: str, target: str) -> bool:
        """Whether a package for source->target is installed or installable."""
        ...

    def translate(self, text: str, source: str, target: str) -> str:
        ...


def detect_language(text: str) -> str | None:
    """Detect the language of text, or None if it cannot be determined."""
    from langdetect import DetectorFactory, detect
    from langdetect.lang_detect_exception import LangDetectException

    # Stable results across runs
    DetectorFactory.seed = 0
    try:
        code = detect(text)
    except LangDetectException as e:
        logger.warning(f"Language detection failed: {e}")
        return None
    # Argos packs use bare codes ("zh", not "zh-cn")
    return code.split("-")[0]


class ArgosTranslator:
    """Argos Translate backend.

    The package index is refreshed once per instance; missing language
    packs are downloaded and installed before translating.
    """

    def __init__(self, update_index: bool = True) -> None:
        self.update_index = update_index
        self._available = None

    def _available_packages(self) -> list:
        import argostranslate.package

        if self._available is None:
            if self.update_index:
                try:
                    argostranslate.package.update_package_index()
                except Exception as e:
                    logger.warning(f"Could not refresh translation package index: {e}")
            self._available = argostranslate.package.get_available_packages()
        return self._available

    def _find_package(self, source: str, target: str):
        return next(
            (p for p in self._available_packages() if p.from_code == source and p.to_code == target),
            None,
        )

    def has_language_pair(self, source: str, target: str) -> bool:
        return self._find_package(source, target) is not None

    def _ensure_installed(self, source: str, target: str) -> None:
        import argostranslate.package

        installed = argostranslate.package.get_installed_packages()
        if any(p.from_code == source and p.to_code == target for p in installed):
            return

        package = self._find_package(source, target)
        if package is None:
            raise TranslationError(f"No translation package available for {source}→{target}")

        logger.info(f"Installing {source}→{target} language pack...")
        try:
            argostranslate.package.install_from_path(package.download())
        except Exception as e:
            raise TranslationError(f"Could not install {source}→{target} language pack: {e}") from e

    def translate(self, text: str, source: str, target: str) -> str:
        import argostranslate.translate

        self._ensure_installed(source, target)
        try:
            return argostranslate.translate.translate(text, source, target)
        except Exception as e:
            raise TranslationError(f"Translation {source}→{target} failed: {e}") from e


@dataclass(frozen=True)
class TranslationOutcome:
    """What the translation stage did."""

    source: str | None
    target: str
    skipped: bool

    @property
    def description(self) -> str:
        if self.skipped:
            return f"already in {self.target}, skipped"
        return f"{self.source}→{self.target}"


def choose_source_language(
    text: str,
    target: str,
    translator: Translator,
    detector: LanguageDetector = detect_language,
) -> str | None:
    """Pick the source language for text.

    Returns:
        The source code, or None when it equals the target (nothing to do)

    Raises:
        TranslationError: no language pair is available
    """
    source = detector(text[:DETECTION_SAMPLE_CHARS])
    if source:
        logger.info(f"Detected language: {source}")
        if source == target:
            return None
        if not translator.has_language_pair(source, target):
            raise TranslationError(f"No translation package available for {source}→{target}")
        return source

    logger.warning("Language detection unavailable, probing common source languages...")
    for candidate in CANDIDATE_SOURCES:
        if candidate == target:
            continue
        if translator.has_language_pair(candidate, target):
            logger.info(f"Trying {candidate}→{target}...")
            return candidate

    raise TranslationError(
        f"No translation package available for {'/'.join(CANDIDATE_SOURCES)}→{target}"
    )


def translate_document(
    path: Path,
    target: str,
    translator: Translator,
    detector: LanguageDetector = detect_language,
) -> TranslationOutcome:
    """Translate the file at path in place.

    The file is left untouched when it is already in the target language.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeError) as e:
        raise TranslationError(f"Could not read {path.name}: {e}") from e

    source = choose_source_language(text, target, translator, detector)
    if source is None:
        logger.info(f"Document is already in {target}, skipping translation.")
        return TranslationOutcome(source=target, target=target, skipped=True)

    logger.info(f"Translating {source}→{target}...")
    try:
        translated = translator.translate(text, source, target)
    except OSError as e:
        # Network failures while fetching language packs
        raise TranslationError(f"Translation {source}→{target} failed: {e}") from e

    try:
        path.write_text(translated, encoding="utf-8")
    except (OSError, UnicodeError) as e:
        raise TranslationError(f"Could not write {path.name}: {e}") from e
    return TranslationOutcome(source=source, target=target, skipped=False)
