"""
Kartenabgleich: Katalogsuche und Bewertung der Kandidaten
"""

import logging
from typing import Iterable, List, Optional

from . import config
from .errors import MatchQueryFailed
from .models import CandidateCard, CardSummary, ParsedCardGuess
from .tcgdex_api import TCGdexAPI

logger = logging.getLogger(__name__)


def score_candidate(card: CardSummary, name: str, number: str) -> int:
    """
    Bewertet einen Katalogeintrag gegen Name und Nummer

    Nummern- und Namensbonus sind unabhängig; beim Namen zählt nur die
    stärkste zutreffende Stufe (exakt > enthält > enthalten).

    Args:
        card: Katalogeintrag
        name: Vermuteter Name
        number: Vermutete Sammlernummer (ohne Gesamtzahl)

    Returns:
        Score (0 - 100)
    """
    score = 0

    local_id = card.local_id or ""
    if local_id == number or local_id.startswith(f"{number}/"):
        score += config.NUMBER_MATCH_BONUS

    card_name = card.name.lower()
    search_name = name.lower()

    if card_name == search_name:
        score += config.NAME_EXACT_BONUS
    elif search_name in card_name:
        score += config.NAME_CONTAINS_BONUS
    elif card_name in search_name:
        score += config.NAME_CONTAINED_BONUS

    return score


def rank_candidates(cards: Iterable[CardSummary], name: str, number: str,
                    min_score: int = config.MIN_MATCH_SCORE,
                    max_candidates: int = config.MAX_CANDIDATES) -> List[CandidateCard]:
    """
    Bewertet, filtert (Score > min_score) und sortiert Kandidaten

    Gleichstand behält die Katalogreihenfolge (stabile Sortierung).
    """
    scored = []
    for card in cards:
        match_score = score_candidate(card, name, number)
        if match_score > min_score:
            scored.append(CandidateCard(card=card, match_score=match_score))
        else:
            logger.debug("Score zu niedrig (%d) für %s (%s)", match_score, card.name, card.local_id)

    ranked = sorted(scored, key=lambda c: c.match_score, reverse=True)
    return ranked[:max_candidates]


class CardMatcher:
    """Sucht Kandidaten im Katalog und ordnet sie nach Übereinstimmung"""

    def __init__(self, api: Optional[TCGdexAPI] = None,
                 limit: int = config.SEARCH_LIMIT,
                 lang: Optional[str] = None,
                 min_score: int = config.MIN_MATCH_SCORE,
                 max_candidates: int = config.MAX_CANDIDATES):
        self.api = api or TCGdexAPI()
        self.limit = limit
        self.lang = lang
        self.min_score = min_score
        self.max_candidates = max_candidates

    def find_candidates(self, name: str, number: str) -> List[CandidateCard]:
        """
        Eine Katalogabfrage "<name> <nummer>" plus Bewertung

        Raises:
            MatchQueryFailed: Katalog nicht erreichbar
        """
        query = f"{name} {number}"
        cards = self.api.search_cards(query, limit=self.limit, lang=self.lang)
        logger.info("%d Karten gefunden für '%s'", len(cards), query)

        ranked = rank_candidates(cards, name, number, self.min_score, self.max_candidates)
        logger.info(
            "%d Kandidaten nach Filterung: %s",
            len(ranked), [(c.card.name, c.match_score) for c in ranked],
        )
        return ranked

    def match(self, guess: ParsedCardGuess) -> List[CandidateCard]:
        """
        Rangliste für eine Vermutung; Katalogfehler ergeben eine leere Liste

        Args:
            guess: Vermutung aus der Texterkennung

        Returns:
            Höchstens fünf Kandidaten, bester zuerst
        """
        try:
            return self.find_candidates(guess.name, guess.card_number)
        except MatchQueryFailed as e:
            logger.error("Kartensuche fehlgeschlagen: %s", e)
            return []

    def manual_search(self, name: str, number: str) -> List[CandidateCard]:
        """
        Suche aus manueller Eingabe, Nummer als "25" oder "25/102"

        Raises:
            ValueError: Name oder Nummer fehlt
            MatchQueryFailed: Katalog nicht erreichbar
        """
        name = (name or "").strip()
        card_number = (number or "").strip().split("/")[0].strip()
        if not name or not card_number:
            raise ValueError("Name und Nummer müssen angegeben werden")
        return self.find_candidates(name, card_number)
