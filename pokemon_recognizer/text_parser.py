"""
Textauswertung: OCR-Rohtext -> Name, Sammlernummer, Konfidenz

Alle Funktionen sind rein und arbeiten nur auf Strings.
"""

import logging
import re
from typing import Optional

from .models import ParsedCardGuess, RecognitionResult

logger = logging.getLogger(__name__)

# Störwörter aus Stufen-, KP- und Attackenzeilen (Kleinschreibung)
EXCLUDED_WORDS = frozenset({
    "niveau", "évolution", "evolution", "de", "pv", "hp", "ev", "lv",
    "talent", "attaque", "level", "stade", "ability", "attack",
})

MIN_NAME_TOKEN = 3
MIN_NAME_LENGTH = 2

_NON_LETTER = re.compile(r"[^\w\s]|[\d_]")

_NUMBER_PATTERNS = (
    re.compile(r"(\d{1,3})\s*/\s*(\d{1,3})", re.ASCII),   # Standard: 144/132
    re.compile(r"(\d{1,3})\s*[/|]\s*(\d{1,3})", re.ASCII),  # Pipe statt Slash
)
_PROMO_PATTERN = re.compile(r"\b(\d{1,3})\b", re.ASCII)
_DIGIT_RUN = re.compile(r"\d{1,3}", re.ASCII)

_FULL_TEXT_NOISE = re.compile(r"[^\w\s/-]")
_FULL_NUMBER_PATTERNS = (
    re.compile(r"(\d+)\s*/\s*(\d+)", re.ASCII),
    re.compile(r"(\d{1,3})\s*[/|]\s*(\d{1,3})", re.ASCII),
)
_STANDALONE_DIGITS = re.compile(r"\d+", re.ASCII)


def filter_name(raw_text: str) -> str:
    """
    Liefert das längste plausible Wort als Kartennamen

    Nicht-Buchstaben werden entfernt, Wörter unter 3 Zeichen und Störwörter
    verworfen. Im Namensband ist der Kartenname fast immer das längste Wort.

    Args:
        raw_text: OCR-Text der Namensregion

    Returns:
        Namensvermutung oder leerer String
    """
    words = _NON_LETTER.sub(" ", raw_text or "").split()
    candidates = [
        word for word in words
        if len(word) >= MIN_NAME_TOKEN and word.lower() not in EXCLUDED_WORDS
    ]

    longest = ""
    for word in candidates:
        if len(word) > len(longest):
            longest = word

    logger.debug("Namensfilter: %s -> %r", candidates, longest)
    return longest


def filter_number(raw_text: str) -> Optional[str]:
    """
    Extrahiert die Sammlernummer

    Reihenfolge: NNN/NNN, NNN|NNN, einzelne Promo-Nummer, die letzten
    beiden Ziffernfolgen als Paar, zuletzt die erste Ziffernfolge allein.

    Args:
        raw_text: OCR-Text der Nummernregion

    Returns:
        "nummer/gesamt", "nummer" oder None ohne Ziffern
    """
    raw_text = raw_text or ""

    for pattern in _NUMBER_PATTERNS:
        match = pattern.search(raw_text)
        if match:
            result = f"{match.group(1)}/{match.group(2)}"
            logger.debug("Standardnummer gefunden: %s", result)
            return result

    match = _PROMO_PATTERN.search(raw_text)
    if match:
        logger.debug("Promo-Nummer gefunden: %s", match.group(1))
        return match.group(1)

    numbers = _DIGIT_RUN.findall(raw_text)
    if len(numbers) >= 2:
        result = f"{numbers[-2]}/{numbers[-1]}"
        logger.debug("Nummer aus Ziffernfolgen zusammengesetzt: %s", result)
        return result
    if numbers:
        logger.debug("Erste Ziffernfolge als Promo-Nummer: %s", numbers[0])
        return numbers[0]

    logger.debug("Keine Nummer in %r", raw_text)
    return None


def clean_ocr_text(text: str) -> str:
    """Entfernt Störzeichen und normalisiert Leerraum, Zeilen bleiben erhalten"""
    text = re.sub(r"[|_~`]", "", text or "")
    lines = (re.sub(r"[ \t\f\v\r]+", " ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def parse_full_text(raw_text: str) -> Optional[ParsedCardGuess]:
    """
    Wertet den OCR-Text der ganzen Karte aus

    Die Nummer ist das erste Muster "a/b" (ersatzweise die letzten beiden
    Ziffernfolgen), der Name die letzte nicht-leere Zeile davor.

    Args:
        raw_text: OCR-Text des ganzen Bildes

    Returns:
        Vermutung oder None
    """
    if not raw_text or not raw_text.strip():
        logger.debug("Leerer OCR-Text")
        return None

    cleaned = _FULL_TEXT_NOISE.sub(" ", raw_text)
    cleaned = "\n".join(re.sub(r"[^\S\n]+", " ", line).strip() for line in cleaned.split("\n"))

    card_number = set_total = None
    number_start = None
    for pattern in _FULL_NUMBER_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            card_number, set_total = match.group(1), match.group(2)
            number_start = match.start()
            break

    if number_start is None:
        runs = list(_STANDALONE_DIGITS.finditer(cleaned))
        if len(runs) < 2:
            logger.debug("Kein Nummernmuster gefunden")
            return None
        card_number, set_total = runs[-2].group(), runs[-1].group()
        number_start = runs[-2].start()
        logger.debug("Alternatives Nummernmuster: %s/%s", card_number, set_total)

    lines = [line.strip() for line in cleaned[:number_start].split("\n") if line.strip()]
    name = lines[-1] if lines else ""

    if len(name) < MIN_NAME_LENGTH:
        logger.debug("Name zu kurz oder leer: %r", name)
        return None

    return ParsedCardGuess(name=name, card_number=card_number, set_total=set_total)


def build_guess(name: str, number: Optional[str]) -> Optional[ParsedCardGuess]:
    """
    Baut die Vermutung aus gefiltertem Namen und gefilterter Nummer

    Promo-Karten ohne Gesamtzahl erhalten die eigene Nummer als Gesamtzahl.
    """
    if not name or not number:
        return None

    parts = number.split("/")
    card_number = parts[0]
    set_total = parts[1] if len(parts) > 1 and parts[1] else card_number
    if not card_number or len(name) < MIN_NAME_LENGTH:
        return None

    return ParsedCardGuess(
        name=name[0].upper() + name[1:],
        card_number=card_number,
        set_total=set_total,
    )


def calculate_confidence(guess: Optional[ParsedCardGuess]) -> int:
    """
    Heuristischer Vollständigkeitsscore (0-100), keine Wahrscheinlichkeit

    +40 ab 3 Zeichen Name, +20 ab 5 Zeichen, +40 wenn 0 < nummer <= gesamt.
    """
    if guess is None:
        return 0

    confidence = 0
    if len(guess.name) >= 3:
        confidence += 40
    if len(guess.name) >= 5:
        confidence += 20

    try:
        card_num = int(guess.card_number)
        set_num = int(guess.set_total)
    except ValueError:
        card_num = set_num = 0

    if 0 < card_num <= set_num:
        confidence += 40

    return min(confidence, 100)


def prefill_name(raw_text: str) -> str:
    # Erstes Wort mit mehr als 2 Zeichen für die manuelle Eingabe
    for word in (raw_text or "").split():
        if len(word) > 2:
            return word
    return ""


def parse_regions(name_text: str, number_text: str) -> RecognitionResult:
    """Ergebnis des Regionspfads aus den beiden Rohtexten"""
    name = filter_name(name_text)
    number = filter_number(number_text)
    guess = build_guess(name, number)
    if guess is None:
        logger.warning("Unvollständige Informationen: Name=%r, Nummer=%r", name, number)

    return RecognitionResult(
        guess=guess,
        raw_text=f"{name_text}\n{number_text}",
        confidence=calculate_confidence(guess),
    )


def parse_full_image(text: str) -> RecognitionResult:
    """Ergebnis des Ganzbildpfads"""
    cleaned = clean_ocr_text(text)
    guess = parse_full_text(cleaned)
    return RecognitionResult(
        guess=guess,
        raw_text=cleaned,
        confidence=calculate_confidence(guess),
    )
