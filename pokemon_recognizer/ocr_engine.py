"""
OCR Engine für die Texterkennung auf Pokémon Karten
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

import cv2
import numpy as np
import pytesseract

from . import config
from .errors import EngineInitFailed, RecognitionFailed
from .models import ImageRegion, RegionKind

logger = logging.getLogger(__name__)

_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_ACCENTS = "àâäéèêëïîôùûüÿçœæÀÂÄÉÈÊËÏÎÔÙÛÜŸÇŒÆ"
_DIGITS = "0123456789"
_GENDER = "♂♀"

NAME_WHITELIST = _LETTERS + _ACCENTS + " " + _GENDER + "-'"
NUMBER_WHITELIST = _DIGITS + "/ "
FULL_TEXT_WHITELIST = _LETTERS + _DIGITS + _ACCENTS + "/- " + _GENDER


def to_rgb(image: np.ndarray) -> np.ndarray:
    """OpenCV-Bilder sind BGR(A), Tesseract liest RGB(A)"""
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    return image


class SegmentationMode(IntEnum):
    """Tesseract Page Segmentation Modes (--psm)"""
    SINGLE_BLOCK = 6
    SINGLE_LINE = 7
    SPARSE_TEXT = 11


@dataclass(frozen=True)
class OCROptions:
    whitelist: str
    segmentation: SegmentationMode = SegmentationMode.SPARSE_TEXT

    def to_config(self) -> str:
        return (
            f'--oem 3 --psm {int(self.segmentation)} '
            f'-c tessedit_char_whitelist="{self.whitelist}"'
        )


NAME_OPTIONS = OCROptions(NAME_WHITELIST)
NUMBER_OPTIONS = OCROptions(NUMBER_WHITELIST)
FULL_TEXT_OPTIONS = OCROptions(FULL_TEXT_WHITELIST)

REGION_OPTIONS = {
    RegionKind.NAME: NAME_OPTIONS,
    RegionKind.NUMBER: NUMBER_OPTIONS,
}


class OCREngine:
    """
    Wiederverwendbarer Tesseract-Worker

    Whitelist und Segmentierung sind Zustand des Workers; Aufrufe werden
    über eine Sperre serialisiert, damit Konfiguration und Erkennung
    zweier Regionen nie ineinander laufen.
    """

    def __init__(self, tesseract_path: Optional[str] = config.TESSERACT_CMD,
                 lang: str = config.OCR_LANG,
                 timeout: Optional[float] = config.OCR_TIMEOUT):
        """
        Initialisiert die OCR Engine

        Args:
            tesseract_path: Optionaler Pfad zur Tesseract-Executable
            lang: Tesseract-Sprachdaten (Standard: fra)
            timeout: Sekunden pro Erkennung, None = unbegrenzt

        Raises:
            EngineInitFailed: Tesseract oder Sprachdaten fehlen
        """
        if tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = tesseract_path

        try:
            version = pytesseract.get_tesseract_version()
            languages = pytesseract.get_languages(config="")
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as e:
            logger.error("Tesseract nicht verfügbar: %s", e)
            raise EngineInitFailed() from e

        if lang not in languages:
            logger.error("Sprachdaten '%s' fehlen (vorhanden: %s)", lang, languages)
            raise EngineInitFailed(f"Tesseract-Sprachdaten '{lang}' sind nicht installiert.")

        self.lang = lang
        self.timeout = timeout
        self._options = FULL_TEXT_OPTIONS
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ocr")
        self._disposed = False

        logger.info("Tesseract %s bereit (Sprache %s)", version, lang)

    @property
    def options(self) -> OCROptions:
        return self._options

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def configure(self, options: OCROptions) -> None:
        with self._lock:
            self._ensure_alive()
            self._options = options

    def recognize(self, region: Union[ImageRegion, np.ndarray],
                  options: Optional[OCROptions] = None) -> str:
        """
        Erkennt den Text einer Region

        Mit options werden Konfiguration und Erkennung atomar ausgeführt.

        Args:
            region: Bildregion oder Rohbild
            options: Optionale Konfiguration für diesen Aufruf

        Returns:
            Roher erkannter Text

        Raises:
            RecognitionFailed: Tesseract-Aufruf fehlgeschlagen
        """
        buffer = region.buffer if isinstance(region, ImageRegion) else region
        buffer = to_rgb(np.ascontiguousarray(buffer))

        with self._lock:
            if options is not None:
                self.configure(options)
            self._ensure_alive()
            try:
                text = pytesseract.image_to_string(
                    buffer,
                    lang=self.lang,
                    config=self._options.to_config(),
                    timeout=self.timeout or 0,
                )
            except (pytesseract.TesseractError, RuntimeError, OSError) as e:
                logger.error("Tesseract-Fehler: %s", e)
                raise RecognitionFailed() from e

        logger.debug("OCR Rohtext (%d Zeichen): %r", len(text), text)
        return text

    def recognize_async(self, region: Union[ImageRegion, np.ndarray],
                        options: Optional[OCROptions] = None) -> "Future[str]":
        """Wie recognize, läuft aber im Worker-Thread"""
        self._ensure_alive()
        try:
            return self._executor.submit(self.recognize, region, options)
        except RuntimeError as e:
            raise RecognitionFailed("Die Texterkennung wurde bereits beendet.") from e

    def dispose(self) -> None:
        """Beendet den Worker; ausstehende Erkennungen werden verworfen"""
        if self._disposed:
            return
        self._disposed = True
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("OCR Engine freigegeben")

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise RecognitionFailed("Die Texterkennung wurde bereits beendet.")

    def __enter__(self) -> "OCREngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
