"""
Haupterkennungsmodul: steuert eine Erkennungssitzung

Ablauf: Bild aufnehmen/laden -> Regionen -> OCR -> Textauswertung ->
Katalogabgleich. Jeder Schritt ist ein Übergang der Zustandsmaschine
in transition(); Fehler führen immer in einen definierten Zustand.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from . import config
from .card_matcher import CardMatcher
from .errors import (
    DeviceUnavailable,
    EngineInitFailed,
    InvalidImageFormat,
    MatchQueryFailed,
    RecognitionFailed,
)
from .image_processor import ImageProcessor
from .image_source import ImageSource
from .models import (
    CandidateCard,
    CaptureMode,
    CardSummary,
    ImageRegion,
    RasterImage,
    RecognitionResult,
    RecognizedText,
)
from .ocr_engine import FULL_TEXT_OPTIONS, REGION_OPTIONS, OCREngine
from .text_parser import parse_full_image, parse_regions, prefill_name

logger = logging.getLogger(__name__)


class SessionStage(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    RECOGNIZING_REGIONS = "recognizing_regions"
    RECOGNIZING_FULL_IMAGE = "recognizing_full_image"
    MATCHING = "matching"
    RESULT = "result"
    MANUAL_FALLBACK = "manual_fallback"


class SessionEvent(Enum):
    START_CAPTURE = "start_capture"
    CAPTURE_FAILED = "capture_failed"
    IMAGE_ACQUIRED = "image_acquired"
    REGIONS_UNAVAILABLE = "regions_unavailable"
    GUESS_FOUND = "guess_found"
    GUESS_MISSING = "guess_missing"
    RECOGNITION_FAILED = "recognition_failed"
    MATCH_COMPLETED = "match_completed"
    MANUAL_SEARCH = "manual_search"
    REQUEST_MANUAL = "request_manual"
    RESET = "reset"


class InvalidTransition(ValueError):
    """Ereignis ist im aktuellen Zustand nicht erlaubt"""


_S = SessionStage
_E = SessionEvent

TRANSITIONS: Dict[Tuple[SessionStage, SessionEvent], SessionStage] = {
    (_S.IDLE, _E.START_CAPTURE): _S.CAPTURING,
    (_S.IDLE, _E.MANUAL_SEARCH): _S.MATCHING,
    (_S.IDLE, _E.REQUEST_MANUAL): _S.MANUAL_FALLBACK,
    (_S.CAPTURING, _E.IMAGE_ACQUIRED): _S.RECOGNIZING_REGIONS,
    (_S.CAPTURING, _E.CAPTURE_FAILED): _S.IDLE,
    (_S.CAPTURING, _E.REQUEST_MANUAL): _S.MANUAL_FALLBACK,
    (_S.RECOGNIZING_REGIONS, _E.REGIONS_UNAVAILABLE): _S.RECOGNIZING_FULL_IMAGE,
    (_S.RECOGNIZING_REGIONS, _E.GUESS_FOUND): _S.MATCHING,
    (_S.RECOGNIZING_REGIONS, _E.GUESS_MISSING): _S.MANUAL_FALLBACK,
    (_S.RECOGNIZING_REGIONS, _E.RECOGNITION_FAILED): _S.MANUAL_FALLBACK,
    (_S.RECOGNIZING_FULL_IMAGE, _E.GUESS_FOUND): _S.MATCHING,
    (_S.RECOGNIZING_FULL_IMAGE, _E.GUESS_MISSING): _S.MANUAL_FALLBACK,
    (_S.RECOGNIZING_FULL_IMAGE, _E.RECOGNITION_FAILED): _S.MANUAL_FALLBACK,
    (_S.MATCHING, _E.MATCH_COMPLETED): _S.RESULT,
    (_S.RESULT, _E.REQUEST_MANUAL): _S.MANUAL_FALLBACK,
    (_S.MANUAL_FALLBACK, _E.MANUAL_SEARCH): _S.MATCHING,
    (_S.MANUAL_FALLBACK, _E.REQUEST_MANUAL): _S.MANUAL_FALLBACK,
}


def transition(stage: SessionStage, event: SessionEvent) -> SessionStage:
    """
    Nächster Zustand für (Zustand, Ereignis)

    RESET führt aus jedem Zustand nach IDLE.

    Raises:
        InvalidTransition: Ereignis im Zustand nicht definiert
    """
    if event is SessionEvent.RESET:
        return SessionStage.IDLE
    try:
        return TRANSITIONS[(stage, event)]
    except KeyError:
        raise InvalidTransition(f"{event.value} ist in {stage.value} nicht erlaubt") from None


@dataclass
class RecognitionSession:
    """Veränderlicher Zustand einer geöffneten Erkennung"""
    stage: SessionStage = SessionStage.IDLE
    mode: CaptureMode = CaptureMode.UPLOAD
    last_result: Optional[RecognitionResult] = None
    candidates: List[CandidateCard] = field(default_factory=list)
    manual_name: str = ""
    error: Optional[str] = None
    dirty: bool = False

    def to_dict(self) -> Dict:
        return {
            "stage": self.stage.value,
            "mode": self.mode.value,
            "result": self.last_result.to_dict() if self.last_result else None,
            "candidates": [c.to_dict() for c in self.candidates],
            "manual_name": self.manual_name,
            "error": self.error,
        }


class PokemonCardRecognizer:
    """
    Hauptklasse für die Pokémon Kartenerkennung

    Hält die OCR Engine (einmal pro Sitzung erzeugt, über Wiederholungen
    hinweg genutzt) und die Kamera, die beim Schließen immer freigegeben
    wird.
    """

    def __init__(self, matcher: Optional[CardMatcher] = None,
                 processor: Optional[ImageProcessor] = None,
                 source: Optional[ImageSource] = None,
                 engine_factory: Optional[Callable[[], OCREngine]] = None,
                 tesseract_path: Optional[str] = config.TESSERACT_CMD):
        """
        Initialisiert den Erkenner

        Args:
            matcher: Kandidatenabgleich (Standard: TCGdex)
            processor: Regionsextraktion
            source: Bildquelle
            engine_factory: Erzeugt die OCR Engine beim ersten Bedarf
            tesseract_path: Optionaler Pfad zur Tesseract-Executable
        """
        self.matcher = matcher or CardMatcher()
        self.processor = processor or ImageProcessor()
        self.source = source or ImageSource()
        self._engine_factory = engine_factory or (lambda: OCREngine(tesseract_path))
        self._engine: Optional[OCREngine] = None
        self._engine_error: Optional[EngineInitFailed] = None

        self._session = RecognitionSession()
        self._generation = 0
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="match")
        self._pending_match: Optional[Future] = None
        self._closed = False

    @property
    def session(self) -> RecognitionSession:
        return self._session

    @property
    def stage(self) -> SessionStage:
        return self._session.stage

    # ------------------------------------------------------------------
    # Zustandsverwaltung
    # ------------------------------------------------------------------

    def _advance(self, event: SessionEvent) -> SessionStage:
        with self._lock:
            previous = self._session.stage
            self._session.stage = transition(previous, event)
            logger.info("Sitzung: %s --%s--> %s",
                        previous.value, event.value, self._session.stage.value)
            return self._session.stage

    def reset(self) -> RecognitionSession:
        """Zurück nach IDLE; laufende Suchen werden verworfen, die Engine bleibt"""
        with self._lock:
            self._generation += 1
            if self._pending_match is not None:
                self._pending_match.cancel()
                self._pending_match = None
            self._session.last_result = None
            self._session.candidates = []
            self._session.manual_name = ""
            self._session.error = None
            self._session.dirty = True
            self._advance(SessionEvent.RESET)
        return self._session

    def _ensure_ready_for_capture(self) -> None:
        if self._closed:
            raise RuntimeError("Erkennungssitzung ist bereits geschlossen")
        if self._session.stage not in (SessionStage.IDLE, SessionStage.CAPTURING):
            self.reset()
        if self._session.stage is SessionStage.IDLE:
            self._advance(SessionEvent.START_CAPTURE)

    def set_mode(self, mode: CaptureMode) -> RecognitionSession:
        """
        Wechselt zwischen Upload und Foto

        Der alte Stream wird vollständig beendet, bevor im Fotomodus ein
        neuer geöffnet wird.
        """
        self.reset()
        self.source.stop_capture()
        self._session.mode = mode
        if mode is CaptureMode.PHOTO:
            self.start_camera()
        return self._session

    # ------------------------------------------------------------------
    # Bildquelle
    # ------------------------------------------------------------------

    def start_camera(self) -> bool:
        """
        Öffnet die Kamera

        Returns:
            True wenn die Kamera läuft, sonst False (Sitzung bleibt IDLE)
        """
        self._ensure_ready_for_capture()
        try:
            self.source.start_capture()
        except DeviceUnavailable as e:
            logger.error("Kamera nicht verfügbar: %s", e)
            self._session.error = e.user_message
            self._advance(SessionEvent.CAPTURE_FAILED)
            return False
        return True

    def capture(self, wait: bool = True) -> RecognitionSession:
        """Nimmt ein Bild der laufenden Kamera auf und erkennt es"""
        if self.source.active_stream is None and not self.start_camera():
            return self._session
        self._ensure_ready_for_capture()

        try:
            image = self.source.capture_frame()
        except DeviceUnavailable as e:
            logger.error("Aufnahme fehlgeschlagen: %s", e)
            self._session.error = e.user_message
            self._advance(SessionEvent.CAPTURE_FAILED)
            self.source.stop_capture()
            return self._session

        return self.recognize_image(image, wait=wait)

    def recognize_file(self, data: bytes, wait: bool = True) -> RecognitionSession:
        """
        Erkennt eine hochgeladene Bilddatei

        Args:
            data: Dateiinhalt
            wait: Auf den Katalogabgleich warten

        Returns:
            Sitzung (ungültige Dateien: IDLE mit Fehlermeldung)
        """
        self._ensure_ready_for_capture()
        try:
            image = self.source.load_from_file(data)
        except InvalidImageFormat as e:
            self._session.error = e.user_message
            self._advance(SessionEvent.CAPTURE_FAILED)
            return self._session

        return self.recognize_image(image, wait=wait)

    # ------------------------------------------------------------------
    # Erkennung
    # ------------------------------------------------------------------

    def _get_engine(self) -> OCREngine:
        # Ein Startfehler gilt bis zum nächsten Recognizer
        if self._engine_error is not None:
            raise EngineInitFailed(self._engine_error.user_message)
        if self._engine is None or self._engine.is_disposed:
            try:
                self._engine = self._engine_factory()
            except EngineInitFailed as e:
                self._engine_error = e
                raise
        return self._engine

    def recognize_image(self, image: RasterImage, wait: bool = True) -> RecognitionSession:
        """
        Erkennt eine Karte aus einem Rasterbild

        Regionspfad: Name und Nummer nacheinander mit eigener Konfiguration.
        Ohne verwertbare Regionen wird das ganze Bild ausgewertet.

        Args:
            image: Aufgenommenes oder geladenes Bild
            wait: Auf den Katalogabgleich warten

        Returns:
            Sitzung im Zustand RESULT, MATCHING (wait=False) oder MANUAL_FALLBACK

        Raises:
            EngineInitFailed: OCR Engine nicht startbar (Sitzung unbrauchbar)
        """
        self._ensure_ready_for_capture()
        self._session.dirty = False
        self._advance(SessionEvent.IMAGE_ACQUIRED)

        try:
            engine = self._get_engine()
        except EngineInitFailed as e:
            logger.error("OCR Engine konnte nicht gestartet werden: %s", e)
            self.reset()
            self._session.error = e.user_message
            raise

        try:
            regions = self.processor.extract_regions(image)
            if regions is None:
                logger.warning("Regionsextraktion fehlgeschlagen, verwende ganzes Bild")
                self._advance(SessionEvent.REGIONS_UNAVAILABLE)
                result = self._recognize_full_image(engine, image)
            else:
                name_text = self._read_region(engine, regions.name_region)
                number_text = self._read_region(engine, regions.number_region)
                result = parse_regions(name_text.raw_text, number_text.raw_text)
        except RecognitionFailed as e:
            logger.exception("Texterkennung fehlgeschlagen")
            self._session.last_result = RecognitionResult(guess=None, raw_text="", confidence=0)
            self._session.error = e.user_message
            self._advance(SessionEvent.RECOGNITION_FAILED)
            return self._session

        self._session.last_result = result
        if result.guess is None:
            self._session.manual_name = prefill_name(result.raw_text)
            logger.warning("Keine verwertbare Vermutung, manuelle Eingabe nötig")
            self._advance(SessionEvent.GUESS_MISSING)
            return self._session

        logger.info("Vermutung: %s %s (Konfidenz %d%%)",
                    result.guess.name, result.guess.number_label, result.confidence)
        self._advance(SessionEvent.GUESS_FOUND)
        self._start_match(result.guess.name, result.guess.card_number, wait)
        return self._session

    @staticmethod
    def _read_region(engine: OCREngine, region: ImageRegion) -> RecognizedText:
        text = engine.recognize(region, REGION_OPTIONS[region.kind])
        logger.debug("OCR %s: %r", region.kind.value, text)
        return RecognizedText(region=region.kind, raw_text=text)

    @staticmethod
    def _recognize_full_image(engine: OCREngine, image: RasterImage) -> RecognitionResult:
        if image is None or image.size == 0:
            return parse_full_image("")
        return parse_full_image(engine.recognize(image, FULL_TEXT_OPTIONS))

    # ------------------------------------------------------------------
    # Katalogabgleich
    # ------------------------------------------------------------------

    def manual_search(self, name: str, number: str, wait: bool = True) -> RecognitionSession:
        """
        Suche aus der manuellen Eingabe

        Args:
            name: Kartenname
            number: "25" oder "25/102"
            wait: Auf das Ergebnis warten

        Returns:
            Sitzung; bei fehlender Eingabe unverändert mit Fehlermeldung
        """
        name = (name or "").strip()
        card_number = (number or "").strip().split("/")[0].strip()
        if not name or not card_number:
            self._session.error = "Bitte Name und Nummer der Karte eingeben."
            return self._session

        if self._session.stage not in (SessionStage.IDLE, SessionStage.MANUAL_FALLBACK):
            self.reset()
        self._session.error = None
        self._advance(SessionEvent.MANUAL_SEARCH)
        self._start_match(name, card_number, wait)
        return self._session

    def request_manual(self) -> RecognitionSession:
        """Wechselt auf Wunsch des Nutzers in die manuelle Eingabe"""
        if self._session.stage not in (SessionStage.IDLE, SessionStage.CAPTURING,
                                       SessionStage.RESULT, SessionStage.MANUAL_FALLBACK):
            self.reset()
        self._advance(SessionEvent.REQUEST_MANUAL)
        return self._session

    def _start_match(self, name: str, number: str, wait: bool) -> None:
        with self._lock:
            generation = self._generation
            future = self._executor.submit(self._run_match, generation, name, number)
            self._pending_match = future
        if wait:
            future.result()

    def _run_match(self, generation: int, name: str, number: str) -> Optional[List[CandidateCard]]:
        error = None
        try:
            candidates = self.matcher.find_candidates(name, number)
        except MatchQueryFailed as e:
            logger.error("Kartensuche fehlgeschlagen: %s", e)
            candidates = []
            error = e.user_message

        with self._lock:
            if generation != self._generation:
                logger.info("Veraltetes Suchergebnis verworfen (%s %s)", name, number)
                return None
            self._session.candidates = candidates
            self._session.error = error
            self._pending_match = None
            self._advance(SessionEvent.MATCH_COMPLETED)
        return candidates

    def wait_for_match(self, timeout: Optional[float] = None) -> RecognitionSession:
        future = self._pending_match
        if future is not None and not future.cancelled():
            future.result(timeout=timeout)
        return self._session

    # ------------------------------------------------------------------
    # Lebenszyklus
    # ------------------------------------------------------------------

    def accept(self, candidate: CandidateCard) -> CardSummary:
        """Übernimmt einen Kandidaten und schließt die Sitzung"""
        logger.info("Karte übernommen: %s (%s)", candidate.card.name, candidate.card.id)
        self.close()
        return candidate.card

    def close(self) -> None:
        """Gibt Kamera, OCR Engine und Suchthreads frei (mehrfach aufrufbar)"""
        if self._closed:
            return
        try:
            self.reset()
        finally:
            self._closed = True
            try:
                self.source.close()
            finally:
                if self._engine is not None:
                    self._engine.dispose()
                    self._engine = None
                self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "PokemonCardRecognizer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
