import threading
import time
import unittest
from unittest import mock

import numpy as np
import pytesseract

from pokemon_recognizer import ocr_engine
from pokemon_recognizer.errors import EngineInitFailed, RecognitionFailed
from pokemon_recognizer.models import ImageRegion, RegionKind
from pokemon_recognizer.ocr_engine import (
    FULL_TEXT_OPTIONS,
    NAME_OPTIONS,
    NAME_WHITELIST,
    NUMBER_OPTIONS,
    NUMBER_WHITELIST,
    OCREngine,
    OCROptions,
    SegmentationMode,
)


class _TesseractPatch:
    """Ersetzt die pytesseract-Aufrufe für einen Test"""

    def __init__(self, test: unittest.TestCase, languages=("eng", "fra")):
        patches = {
            "get_tesseract_version": mock.patch.object(
                ocr_engine.pytesseract, "get_tesseract_version", return_value="5.3.0"),
            "get_languages": mock.patch.object(
                ocr_engine.pytesseract, "get_languages", return_value=list(languages)),
            "image_to_string": mock.patch.object(
                ocr_engine.pytesseract, "image_to_string", return_value="Pikachu"),
        }
        for name, patcher in patches.items():
            setattr(self, name, patcher.start())
            test.addCleanup(patcher.stop)


class TestOCROptions(unittest.TestCase):
    def test_config_string(self) -> None:
        options = OCROptions("0123456789/ ")
        self.assertEqual(
            options.to_config(),
            '--oem 3 --psm 11 -c tessedit_char_whitelist="0123456789/ "',
        )

    def test_region_whitelists(self) -> None:
        for char in "AzéÉœ -'♂♀":
            self.assertIn(char, NAME_WHITELIST)
        self.assertNotIn("1", NAME_WHITELIST)
        self.assertEqual(NUMBER_WHITELIST, "0123456789/ ")
        self.assertEqual(NAME_OPTIONS.segmentation, SegmentationMode.SPARSE_TEXT)
        self.assertEqual(NUMBER_OPTIONS.segmentation, SegmentationMode.SPARSE_TEXT)


class TestEngineLifecycle(unittest.TestCase):
    def test_missing_tesseract(self) -> None:
        tess = _TesseractPatch(self)
        tess.get_tesseract_version.side_effect = pytesseract.TesseractNotFoundError()
        with self.assertRaises(EngineInitFailed):
            OCREngine()

    def test_missing_language_data(self) -> None:
        _TesseractPatch(self, languages=("eng",))
        with self.assertRaises(EngineInitFailed):
            OCREngine(lang="fra")

    def test_dispose_is_idempotent(self) -> None:
        _TesseractPatch(self)
        engine = OCREngine()
        engine.dispose()
        engine.dispose()
        self.assertTrue(engine.is_disposed)
        with self.assertRaises(RecognitionFailed):
            engine.recognize(np.zeros((4, 4, 3), dtype=np.uint8))
        with self.assertRaises(RecognitionFailed):
            engine.recognize_async(np.zeros((4, 4, 3), dtype=np.uint8))

    def test_context_manager_disposes(self) -> None:
        _TesseractPatch(self)
        with OCREngine() as engine:
            self.assertFalse(engine.is_disposed)
        self.assertTrue(engine.is_disposed)


class TestRecognize(unittest.TestCase):
    def setUp(self) -> None:
        self.tess = _TesseractPatch(self)
        self.engine = OCREngine(lang="fra", timeout=None)
        self.addCleanup(self.engine.dispose)
        self.region = ImageRegion(RegionKind.NAME, np.zeros((10, 40, 3), dtype=np.uint8))

    def test_region_is_passed_with_current_configuration(self) -> None:
        self.engine.configure(NUMBER_OPTIONS)
        text = self.engine.recognize(self.region)

        self.assertEqual(text, "Pikachu")
        args, kwargs = self.tess.image_to_string.call_args
        np.testing.assert_array_equal(args[0], self.region.buffer)
        self.assertEqual(kwargs["lang"], "fra")
        self.assertEqual(kwargs["config"], NUMBER_OPTIONS.to_config())
        self.assertEqual(kwargs["timeout"], 0)

    def test_bgr_buffer_is_passed_as_rgb(self) -> None:
        bgr = np.zeros((10, 40, 3), dtype=np.uint8)
        bgr[..., 0] = 255  # blau in OpenCV-Reihenfolge
        self.engine.recognize(ImageRegion(RegionKind.NAME, bgr))

        passed = self.tess.image_to_string.call_args[0][0]
        self.assertTrue((passed[..., 0] == 0).all())
        self.assertTrue((passed[..., 2] == 255).all())
        self.assertEqual(bgr[0, 0, 0], 255)

    def test_bgra_buffer_keeps_alpha(self) -> None:
        bgra = np.zeros((10, 40, 4), dtype=np.uint8)
        bgra[..., 0] = 200
        bgra[..., 3] = 77
        self.engine.recognize(bgra)

        passed = self.tess.image_to_string.call_args[0][0]
        self.assertTrue((passed[..., 2] == 200).all())
        self.assertTrue((passed[..., 3] == 77).all())

    def test_grayscale_buffer_is_unchanged(self) -> None:
        gray = np.full((10, 40), 90, dtype=np.uint8)
        self.engine.recognize(gray)
        self.assertIs(self.tess.image_to_string.call_args[0][0], gray)

    def test_options_per_call_replace_configuration(self) -> None:
        self.engine.recognize(self.region, NAME_OPTIONS)
        self.assertEqual(self.engine.options, NAME_OPTIONS)
        self.assertIn("--psm 11", self.tess.image_to_string.call_args[1]["config"])

    def test_default_configuration_is_full_text(self) -> None:
        self.assertEqual(self.engine.options, FULL_TEXT_OPTIONS)

    def test_tesseract_error_becomes_recognition_failed(self) -> None:
        self.tess.image_to_string.side_effect = RuntimeError("Tesseract process timeout")
        with self.assertRaises(RecognitionFailed):
            self.engine.recognize(self.region)

    def test_recognize_async(self) -> None:
        future = self.engine.recognize_async(self.region, NAME_OPTIONS)
        self.assertEqual(future.result(timeout=5), "Pikachu")

    def test_calls_are_serialized(self) -> None:
        active = []
        overlaps = []
        seen = []
        guard = threading.Lock()

        def fake_image_to_string(image, lang, config, timeout):
            with guard:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(config)
            time.sleep(0.01)
            seen.append(config)
            with guard:
                active.pop()
            return config

        self.tess.image_to_string.side_effect = fake_image_to_string
        results = {}

        def worker(options, key):
            for i in range(5):
                results[(key, i)] = self.engine.recognize(self.region, options)

        threads = [
            threading.Thread(target=worker, args=(NAME_OPTIONS, "name")),
            threading.Thread(target=worker, args=(NUMBER_OPTIONS, "number")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(overlaps, [])
        self.assertEqual(len(seen), 10)
        for (key, _), config in results.items():
            expected = NAME_OPTIONS if key == "name" else NUMBER_OPTIONS
            self.assertEqual(config, expected.to_config())


if __name__ == "__main__":
    unittest.main()
