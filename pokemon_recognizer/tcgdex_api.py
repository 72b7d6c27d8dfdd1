"""
TCGdex API Client für Pokémon Karteninformationen
"""

import logging
import re
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from . import config
from .errors import MatchQueryFailed
from .models import CardSummary

logger = logging.getLogger(__name__)

_TRAILING_NUMBER = re.compile(r"^(.*\S)\s+\d+(?:/\d+)?$")


class TCGdexAPI:
    """Client für die TCGdex Kartendatenbank"""

    def __init__(self, base_url: str = config.TCGDEX_BASE,
                 lang: str = config.CARD_LANG,
                 fallback_lang: Optional[str] = config.FALLBACK_LANG):
        self.base_url = base_url.rstrip("/")
        self.lang = lang
        self.fallback_lang = fallback_lang
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": config.USER_AGENT,
            "Accept": "application/json"
        })
        self._last_request_time = 0.0
        self._rate_limit_delay = config.RATE_LIMIT_DELAY

    def _rate_limit(self):
        elapsed = time.time() - self._last_request_time
        if elapsed < self._rate_limit_delay:
            time.sleep(self._rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    def _get(self, endpoint: str, params: Optional[Dict] = None) -> Optional[Any]:
        """
        Führt einen GET-Request durch

        Returns:
            JSON-Antwort oder None bei 404

        Raises:
            MatchQueryFailed: Netzwerk- oder Serverfehler
        """
        self._rate_limit()
        url = f"{self.base_url}{endpoint}"
        logger.info("TCGdex Anfrage: %s %s", url, params or "")
        try:
            response = self.session.get(url, params=params, timeout=config.REQUEST_TIMEOUT)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("TCGdex Fehler: %s", e)
            raise MatchQueryFailed() from e

    def search_cards(self, query: str, limit: int = config.SEARCH_LIMIT,
                     lang: Optional[str] = None) -> List[CardSummary]:
        """
        Sucht Karten per Freitext

        Liefert die Sprache keine Treffer, wird die Suche ohne angehängte
        Nummer und danach im Fallback-Katalog (Englisch) wiederholt.

        Args:
            query: Suchtext, z.B. "Pikachu 58"
            limit: Maximale Anzahl Ergebnisse
            lang: Katalogsprache (Standard: fr)

        Returns:
            Liste von Karten in Katalogreihenfolge
        """
        query = (query or "").strip()
        if not query:
            return []

        lang = lang or self.lang
        languages = [lang]
        if self.fallback_lang and self.fallback_lang != lang:
            languages.append(self.fallback_lang)

        for current_lang in languages:
            for variant in self._query_variants(query):
                cards = self._search(variant, current_lang)
                if cards:
                    if current_lang != lang:
                        logger.warning("Fallback %s für: %s", current_lang, query)
                    return cards[:limit]

        return []

    def _search(self, name: str, lang: str) -> List[CardSummary]:
        data = self._get(f"/{lang}/cards", {"name": name})
        if not isinstance(data, list):
            return []
        return [self.to_summary(card) for card in data if isinstance(card, dict)]

    @staticmethod
    def _query_variants(query: str) -> List[str]:
        variants = [query]
        match = _TRAILING_NUMBER.match(query)
        if match:
            variants.append(match.group(1))
        return variants

    def get_card(self, card_id: str, lang: Optional[str] = None) -> Optional[CardSummary]:
        """
        Holt eine einzelne Karte

        Args:
            card_id: TCGdex-ID (z.B. "base1-58")
            lang: Katalogsprache

        Returns:
            Kartendaten oder None
        """
        lang = lang or self.lang
        data = self._get(f"/{lang}/cards/{quote(card_id)}")
        if data is None and self.fallback_lang and lang != self.fallback_lang:
            logger.warning("Fallback %s für Karte: %s", self.fallback_lang, card_id)
            data = self._get(f"/{self.fallback_lang}/cards/{quote(card_id)}")
        return self.to_summary(data) if isinstance(data, dict) else None

    @classmethod
    def to_summary(cls, card: Dict) -> CardSummary:
        set_info = card.get("set") or {}
        return CardSummary(
            id=str(card.get("id", "")),
            name=card.get("name") or "",
            local_id=str(card.get("localId") or ""),
            set_name=set_info.get("name") if isinstance(set_info, dict) else None,
            rarity=card.get("rarity"),
            image_url=cls.get_card_image_url(card),
            raw=card,
        )

    @staticmethod
    def get_card_image_url(card: Dict, quality: str = "high", extension: str = "png") -> str:
        """
        Extrahiert die Bild-URL aus Kartendaten

        TCGdex liefert Basis-URLs ohne Endung; ohne Bild wird die
        Kartenrückseite verwendet.
        """
        image = card.get("image") or (card.get("images") or {}).get("small") or ""

        if image and "assets.tcgdex.net" in image \
                and not re.search(r"\.(webp|png|jpg|jpeg)$", image, re.IGNORECASE):
            image = f"{image}/{quality}.{extension}"

        return image or config.CARD_BACK_URL
