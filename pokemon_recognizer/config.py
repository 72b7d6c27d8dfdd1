"""
Zentrale Konfiguration für die Pokémon Kartenerkennung

Alle Werte können über Umgebungsvariablen (oder eine .env Datei im
Arbeitsverzeichnis) überschrieben werden.
"""

import os
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Gesetzte Umgebungsvariablen haben Vorrang vor der .env Datei
load_dotenv(Path.cwd() / ".env")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.environ.get(name)
    return float(value) if value else default


# ============================================
# Katalog (TCGdex)
# ============================================
TCGDEX_BASE = (
    os.environ.get("TCGDEX_BASE")
    or os.environ.get("TCGDEX_BASE_URL")
    or "https://api.tcgdex.net/v2"
)
CARD_LANG = os.environ.get("CARD_LANG", "fr")
FALLBACK_LANG = "en"
SEARCH_LIMIT = _env_int("SEARCH_LIMIT", 50)
CARD_BACK_URL = "https://images.pokemontcg.io/swsh1/back.png"

REQUEST_TIMEOUT = 10
RATE_LIMIT_DELAY = 0.1  # 100ms zwischen Requests
USER_AGENT = "PokemonCardRecognizer/1.0"

# ============================================
# Kandidaten-Bewertung
# ============================================
MAX_CANDIDATES = 5
MIN_MATCH_SCORE = 40    # Score muss strikt größer sein
NUMBER_MATCH_BONUS = 50
NAME_EXACT_BONUS = 50
NAME_CONTAINS_BONUS = 30
NAME_CONTAINED_BONUS = 20

# ============================================
# OCR (Tesseract)
# ============================================
TESSERACT_CMD = os.environ.get("TESSERACT_CMD") or None
OCR_LANG = os.environ.get("OCR_LANG", "fra")
OCR_TIMEOUT = _env_float("OCR_TIMEOUT", None)  # None = unbegrenzt

# ============================================
# Kamera
# ============================================
CAMERA_INDEX = _env_int("CAMERA_INDEX", 0)
CAMERA_WIDTH = _env_int("CAMERA_WIDTH", 1280)
CAMERA_HEIGHT = _env_int("CAMERA_HEIGHT", 720)
CAMERA_FACING_MODE = "environment"

# ============================================
# Regionen & Kontrast
# ============================================
NAME_BAND: Tuple[float, float] = (0.0, 0.25)
NUMBER_BAND: Tuple[float, float] = (0.75, 1.0)
CONTRAST_FACTOR = 1.5
CONTRAST_PIVOT = 128
