"""
Bildverarbeitungsmodul: Regionen für Namen und Sammlernummer
"""

import logging
from typing import Optional, Tuple

import numpy as np

from . import config
from .models import CardRegions, ImageRegion, RasterImage, RegionKind

logger = logging.getLogger(__name__)


class ImageProcessor:
    """Schneidet Namens- und Nummernband aus und verstärkt den Kontrast"""

    def __init__(self,
                 name_band: Tuple[float, float] = config.NAME_BAND,
                 number_band: Tuple[float, float] = config.NUMBER_BAND,
                 contrast_factor: float = config.CONTRAST_FACTOR,
                 contrast_pivot: int = config.CONTRAST_PIVOT):
        self.name_band = name_band
        self.number_band = number_band
        self.contrast_factor = contrast_factor
        self.contrast_pivot = contrast_pivot

    def extract_regions(self, image: RasterImage) -> Optional[CardRegions]:
        """
        Extrahiert Namens- und Nummernregion einer Karte

        Die Karte füllt das Bild ungefähr aufrecht aus: der Name steht im
        oberen Viertel, die Sammlernummer im unteren Viertel.

        Args:
            image: Kartenbild (BGR oder BGRA)

        Returns:
            Beide Regionen oder None, wenn das Bild nicht verwertbar ist
        """
        try:
            if image is None or image.ndim < 2:
                logger.warning("Ungültiges Bild für Regionsextraktion")
                return None

            height, width = image.shape[:2]
            if height == 0 or width == 0:
                logger.warning("Bild ohne Pixel (%dx%d)", width, height)
                return None

            name_band = self._crop_band(image, self.name_band)
            number_band = self._crop_band(image, self.number_band)
            if name_band.shape[0] == 0 or number_band.shape[0] == 0:
                logger.warning("Bild zu klein für Regionen (Höhe %d)", height)
                return None

            regions = CardRegions(
                name_region=ImageRegion(RegionKind.NAME, self.enhance_contrast(name_band)),
                number_region=ImageRegion(RegionKind.NUMBER, self.enhance_contrast(number_band)),
            )
        except (ValueError, TypeError) as e:
            logger.error("Regionsextraktion fehlgeschlagen: %s", e)
            return None

        logger.debug(
            "Regionen extrahiert: Name %d Zeilen, Nummer %d Zeilen",
            name_band.shape[0], number_band.shape[0],
        )
        return regions

    @staticmethod
    def _crop_band(image: RasterImage, band: Tuple[float, float]) -> np.ndarray:
        # Volle Breite, Zeilen [start*h, end*h)
        height = image.shape[0]
        top = int(height * band[0])
        bottom = int(height * band[1])
        return image[top:bottom, :]

    def enhance_contrast(self, region: np.ndarray) -> RasterImage:
        """
        Lineare Kontrastspreizung um Mittelgrau

        out = clamp(0, 255, (in - 128) * 1.5 + 128) für R, G, B.
        Alpha bleibt unverändert, es wird nicht binarisiert.

        Args:
            region: Bildausschnitt

        Returns:
            Neues, kontrastverstärktes Bild
        """
        out = np.array(region, dtype=np.uint8, copy=True)

        if out.ndim == 2:
            channels = out
        else:
            channels = out[..., :3]

        stretched = (channels.astype(np.float32) - self.contrast_pivot) \
            * self.contrast_factor + self.contrast_pivot
        channels[...] = np.clip(np.rint(stretched), 0, 255).astype(np.uint8)

        out.flags.writeable = False
        return out
