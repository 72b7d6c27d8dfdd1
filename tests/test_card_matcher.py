import unittest

from pokemon_recognizer.card_matcher import CardMatcher, rank_candidates, score_candidate
from pokemon_recognizer.errors import MatchQueryFailed
from pokemon_recognizer.models import CardSummary, ParsedCardGuess


def card(name: str, local_id: str, card_id: str = None) -> CardSummary:
    return CardSummary(id=card_id or f"{name}-{local_id}", name=name, local_id=local_id)


class FakeCatalog:
    def __init__(self, cards=None, error: Exception = None):
        self.cards = cards or []
        self.error = error
        self.queries = []

    def search_cards(self, query, limit=50, lang=None):
        self.queries.append((query, limit, lang))
        if self.error:
            raise self.error
        return list(self.cards)


class TestScoring(unittest.TestCase):
    def test_exact_name_and_number(self) -> None:
        self.assertEqual(score_candidate(card("Pikachu", "58"), "Pikachu", "58"), 100)
        self.assertEqual(score_candidate(card("PIKACHU", "58"), "pikachu", "58"), 100)

    def test_number_with_slash_prefix(self) -> None:
        self.assertEqual(score_candidate(card("Pikachu", "58/102"), "Pikachu", "58"), 100)
        self.assertEqual(score_candidate(card("Raichu", "580"), "Pikachu", "58"), 0)

    def test_name_tiers(self) -> None:
        self.assertEqual(score_candidate(card("Pikachu de Sacha", "1"), "Pikachu", "58"), 30)
        self.assertEqual(score_candidate(card("Pikachu", "1"), "Pikachu V", "58"), 20)
        self.assertEqual(score_candidate(card("Pikachu V", "58"), "Pikachu", "58"), 80)

    def test_number_only(self) -> None:
        self.assertEqual(score_candidate(card("Raichu", "58"), "Pikachu", "58"), 50)


class TestRanking(unittest.TestCase):
    def test_threshold_is_strictly_greater_than_40(self) -> None:
        ranked = rank_candidates(
            [card("Pikachu de Sacha", "1"), card("Raichu", "58")], "Pikachu", "58")
        self.assertEqual([(c.card.name, c.match_score) for c in ranked], [("Raichu", 50)])

    def test_sorted_descending_with_stable_ties(self) -> None:
        cards = [
            card("Raichu", "58", "a"),
            card("Pikachu", "58", "b"),
            card("Pikachu V", "58", "c"),
            card("Pikachu", "58", "d"),
        ]
        ranked = rank_candidates(cards, "Pikachu", "58")
        self.assertEqual([c.card.id for c in ranked], ["b", "d", "c", "a"])
        self.assertEqual([c.match_score for c in ranked], [100, 100, 80, 50])

    def test_at_most_five(self) -> None:
        cards = [card("Pikachu", "58", str(i)) for i in range(8)]
        ranked = rank_candidates(cards, "Pikachu", "58")
        self.assertEqual([c.card.id for c in ranked], ["0", "1", "2", "3", "4"])


class TestCardMatcher(unittest.TestCase):
    def test_single_query_with_name_and_number(self) -> None:
        catalog = FakeCatalog([
            card("Dracaufeu ex", "6"),
            card("Dracaufeu", "4"),
            card("Salamèche", "46"),
        ])
        matcher = CardMatcher(api=catalog, limit=50, lang="fr")

        ranked = matcher.match(ParsedCardGuess("Dracaufeu", "4", "102"))

        self.assertEqual(catalog.queries, [("Dracaufeu 4", 50, "fr")])
        self.assertEqual(ranked[0].card.name, "Dracaufeu")
        self.assertEqual(ranked[0].match_score, 100)
        self.assertEqual(len(ranked), 1)

    def test_match_is_restartable(self) -> None:
        catalog = FakeCatalog([card("Pikachu", "58")])
        matcher = CardMatcher(api=catalog)
        first = matcher.match(ParsedCardGuess("Pikachu", "58", "102"))
        second = matcher.match(ParsedCardGuess("Pikachu", "58", "102"))
        self.assertEqual(first, second)
        self.assertEqual(len(catalog.queries), 2)

    def test_query_failure_returns_empty_list(self) -> None:
        matcher = CardMatcher(api=FakeCatalog(error=MatchQueryFailed()))
        self.assertEqual(matcher.match(ParsedCardGuess("Pikachu", "58", "102")), [])

    def test_find_candidates_propagates_failure(self) -> None:
        matcher = CardMatcher(api=FakeCatalog(error=MatchQueryFailed()))
        with self.assertRaises(MatchQueryFailed):
            matcher.find_candidates("Pikachu", "58")

    def test_manual_search_uses_number_before_slash(self) -> None:
        catalog = FakeCatalog([card("Pikachu", "25")])
        matcher = CardMatcher(api=catalog)
        ranked = matcher.manual_search(" Pikachu ", "25/102")
        self.assertEqual(catalog.queries[0][0], "Pikachu 25")
        self.assertEqual(ranked[0].match_score, 100)

    def test_manual_search_requires_both_fields(self) -> None:
        matcher = CardMatcher(api=FakeCatalog())
        with self.assertRaises(ValueError):
            matcher.manual_search("", "25")
        with self.assertRaises(ValueError):
            matcher.manual_search("Pikachu", " /102")


if __name__ == "__main__":
    unittest.main()
