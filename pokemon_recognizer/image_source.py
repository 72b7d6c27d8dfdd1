"""
Bildquelle: Kameraaufnahme oder hochgeladene Datei
"""

import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from . import config
from .errors import DeviceUnavailable, InvalidImageFormat
from .models import RasterImage

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {"JPEG", "PNG", "WEBP", "BMP", "GIF", "TIFF"}


@dataclass(frozen=True)
class CaptureConfig:
    """
    Kameraanforderung

    OpenCV kennt keine Ausrichtung; die Rückkamera wird über
    device_index ausgewählt.
    """
    device_index: int = config.CAMERA_INDEX
    facing_mode: str = config.CAMERA_FACING_MODE
    ideal_width: int = config.CAMERA_WIDTH
    ideal_height: int = config.CAMERA_HEIGHT


class CameraStream:
    """Handle auf einen geöffneten Kamerastream"""

    def __init__(self, capture: "cv2.VideoCapture", capture_config: CaptureConfig):
        self._capture = capture
        self.config = capture_config

    @property
    def is_active(self) -> bool:
        return self._capture is not None

    def read(self) -> RasterImage:
        if self._capture is None:
            raise DeviceUnavailable("Kamerastream ist bereits beendet.")
        ret, frame = self._capture.read()
        if not ret or frame is None:
            raise DeviceUnavailable("Kein Bild von der Kamera erhalten.")
        return _freeze(frame)

    def stop(self) -> None:
        """Gibt die Kamera frei (mehrfacher Aufruf erlaubt)"""
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Kamera %s freigegeben", self.config.device_index)

    def __enter__(self) -> "CameraStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


class ImageSource:
    """Liefert Rasterbilder aus Kamera oder Datei; höchstens ein aktiver Stream"""

    def __init__(self, capture_config: Optional[CaptureConfig] = None):
        self.capture_config = capture_config or CaptureConfig()
        self._stream: Optional[CameraStream] = None

    @property
    def active_stream(self) -> Optional[CameraStream]:
        if self._stream is not None and self._stream.is_active:
            return self._stream
        return None

    def start_capture(self, capture_config: Optional[CaptureConfig] = None) -> CameraStream:
        """
        Öffnet die Kamera

        Ein bereits laufender Stream wird vorher vollständig beendet.

        Args:
            capture_config: Optionale Kameraanforderung

        Returns:
            Stream-Handle

        Raises:
            DeviceUnavailable: Kamera fehlt oder Zugriff verweigert
        """
        self.stop_capture()
        cfg = capture_config or self.capture_config

        try:
            capture = cv2.VideoCapture(cfg.device_index)
        except cv2.error as e:
            logger.error("Kamera %s nicht verfügbar: %s", cfg.device_index, e)
            raise DeviceUnavailable() from e

        if not capture.isOpened():
            capture.release()
            logger.error("Kamera %s konnte nicht geöffnet werden", cfg.device_index)
            raise DeviceUnavailable()

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, cfg.ideal_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, cfg.ideal_height)

        self._stream = CameraStream(capture, cfg)
        logger.info(
            "Kamera %s gestartet (%s, %dx%d)",
            cfg.device_index, cfg.facing_mode, cfg.ideal_width, cfg.ideal_height,
        )
        return self._stream

    def capture_frame(self, stream: Optional[CameraStream] = None) -> RasterImage:
        stream = stream or self.active_stream
        if stream is None:
            raise DeviceUnavailable("Keine aktive Kamera.")
        return stream.read()

    def stop_capture(self, stream: Optional[CameraStream] = None) -> None:
        if stream is not None and stream is not self._stream:
            stream.stop()
            return
        if self._stream is not None:
            self._stream.stop()
            self._stream = None

    @contextmanager
    def camera(self, capture_config: Optional[CaptureConfig] = None) -> Iterator[CameraStream]:
        """Kamera als Kontext: Freigabe auch im Fehlerfall"""
        stream = self.start_capture(capture_config)
        try:
            yield stream
        finally:
            self.stop_capture(stream)

    def load_from_file(self, data: bytes) -> RasterImage:
        """
        Lädt ein Bild aus hochgeladenen Bytes

        Args:
            data: Dateiinhalt

        Returns:
            OpenCV Bild (BGR)

        Raises:
            InvalidImageFormat: Kein unterstütztes Rasterformat
        """
        if not data:
            raise InvalidImageFormat("Die Datei ist leer.")

        try:
            with Image.open(io.BytesIO(data)) as probe:
                image_format = probe.format
                probe.verify()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            logger.warning("Upload abgelehnt: %s", e)
            raise InvalidImageFormat() from e

        if image_format not in SUPPORTED_FORMATS:
            logger.warning("Upload abgelehnt: Format %s", image_format)
            raise InvalidImageFormat()

        image = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            # Formate, die OpenCV nicht dekodiert (z.B. GIF), über PIL laden
            with Image.open(io.BytesIO(data)) as pil_image:
                image = cv2.cvtColor(np.array(pil_image.convert("RGB")), cv2.COLOR_RGB2BGR)

        logger.debug("Bild geladen: %s %dx%d", image_format, image.shape[1], image.shape[0])
        return _freeze(image)

    def load_image(self, path: Union[str, Path]) -> RasterImage:
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise InvalidImageFormat(f"Datei nicht lesbar: {path}") from e
        return self.load_from_file(data)

    def close(self) -> None:
        self.stop_capture()


def _freeze(image: np.ndarray) -> RasterImage:
    image.flags.writeable = False
    return image
