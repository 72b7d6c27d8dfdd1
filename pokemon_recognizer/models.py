"""
Datenmodell der Erkennungspipeline
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

# Rasterbild im OpenCV-Format: (H, W, 3) BGR oder (H, W, 4) BGRA, uint8
RasterImage = np.ndarray


class RegionKind(Enum):
    NAME = "name"
    NUMBER = "number"


class CaptureMode(Enum):
    UPLOAD = "upload"
    PHOTO = "photo"


@dataclass(frozen=True)
class ImageRegion:
    kind: RegionKind
    buffer: RasterImage


@dataclass(frozen=True)
class CardRegions:
    """Namens- und Nummernregion einer Aufnahme, immer paarweise"""
    name_region: ImageRegion
    number_region: ImageRegion


@dataclass(frozen=True)
class RecognizedText:
    region: RegionKind
    raw_text: str


@dataclass(frozen=True)
class ParsedCardGuess:
    """
    Strukturierte Vermutung aus dem OCR-Text

    card_number und set_total sind nicht-leere Ziffernfolgen,
    name hat mindestens 2 Zeichen.
    """
    name: str
    card_number: str
    set_total: str

    def __post_init__(self):
        if len(self.name) < 2:
            raise ValueError(f"Name zu kurz: {self.name!r}")
        if not (self.card_number.isdigit() and self.set_total.isdigit()):
            raise ValueError(
                f"Ungültige Nummer: {self.card_number!r}/{self.set_total!r}"
            )

    @property
    def number_label(self) -> str:
        return f"{self.card_number}/{self.set_total}"

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "card_number": self.card_number,
            "set_total": self.set_total,
        }


@dataclass(frozen=True)
class RecognitionResult:
    guess: Optional[ParsedCardGuess]
    raw_text: str
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guess": self.guess.to_dict() if self.guess else None,
            "raw_text": self.raw_text,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CardSummary:
    """Katalogeintrag, wie ihn die Kartensuche liefert"""
    id: str
    name: str
    local_id: str
    set_name: Optional[str] = None
    rarity: Optional[str] = None
    image_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "local_id": self.local_id,
            "set_name": self.set_name,
            "rarity": self.rarity,
            "image_url": self.image_url,
        }


@dataclass(frozen=True)
class CandidateCard:
    card: CardSummary
    match_score: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.card.to_dict()
        data["match_score"] = self.match_score
        return data
