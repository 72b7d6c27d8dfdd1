import importlib
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pokemon_recognizer import config


class TestEnvFile(unittest.TestCase):
    def setUp(self) -> None:
        # Nach dem Test wieder mit der echten Umgebung laden
        self.addCleanup(importlib.reload, config)

        env = mock.patch.dict(os.environ)
        env.start()
        self.addCleanup(env.stop)
        for name in ("TCGDEX_BASE", "TCGDEX_BASE_URL", "CARD_LANG", "SEARCH_LIMIT"):
            os.environ.pop(name, None)

        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.addCleanup(os.chdir, os.getcwd())
        os.chdir(tmp.name)
        self.env_file = Path(tmp.name) / ".env"

    def load(self, content: str):
        self.env_file.write_text(content, encoding="utf-8")
        return importlib.reload(config)

    def test_quoted_values_are_unquoted(self) -> None:
        cfg = self.load('TCGDEX_BASE="https://example.org/v2"\nCARD_LANG=\'en\'\n')
        self.assertEqual(cfg.TCGDEX_BASE, "https://example.org/v2")
        self.assertEqual(cfg.CARD_LANG, "en")

    def test_export_prefix(self) -> None:
        cfg = self.load("export SEARCH_LIMIT=20\n")
        self.assertEqual(cfg.SEARCH_LIMIT, 20)

    def test_environment_wins_over_file(self) -> None:
        os.environ["CARD_LANG"] = "de"
        cfg = self.load("CARD_LANG=en\n")
        self.assertEqual(cfg.CARD_LANG, "de")

    def test_defaults_without_file(self) -> None:
        cfg = importlib.reload(config)
        self.assertEqual(cfg.TCGDEX_BASE, "https://api.tcgdex.net/v2")
        self.assertEqual(cfg.CARD_LANG, "fr")
        self.assertEqual(cfg.SEARCH_LIMIT, 50)


if __name__ == "__main__":
    unittest.main()
