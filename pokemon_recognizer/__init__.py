"""
Pokémon Card Recognition Package
"""

from .recognizer import PokemonCardRecognizer, RecognitionSession, SessionStage
from .tcgdex_api import TCGdexAPI
from .image_processor import ImageProcessor
from .image_source import ImageSource
from .ocr_engine import OCREngine
from .card_matcher import CardMatcher

__version__ = "1.0.0"
__all__ = [
    "PokemonCardRecognizer",
    "RecognitionSession",
    "SessionStage",
    "TCGdexAPI",
    "ImageProcessor",
    "ImageSource",
    "OCREngine",
    "CardMatcher"
]
