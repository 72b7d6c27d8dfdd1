"""
Fehlerarten der Erkennungspipeline
"""


class RecognitionError(Exception):
    """Basisklasse aller Pipeline-Fehler"""

    default_message = "Unbekannter Fehler bei der Kartenerkennung"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        return str(self)


class DeviceUnavailable(RecognitionError):
    default_message = (
        "Kamera konnte nicht geöffnet werden. "
        "Bitte Berechtigungen und Anschluss prüfen."
    )


class InvalidImageFormat(RecognitionError):
    default_message = "Die Datei ist kein unterstütztes Bildformat (JPG, PNG, WEBP)."


class EngineInitFailed(RecognitionError):
    default_message = "Texterkennung konnte nicht gestartet werden."


class RecognitionFailed(RecognitionError):
    default_message = "Fehler bei der Texterkennung der Karte."


class MatchQueryFailed(RecognitionError):
    default_message = "Kartensuche im Katalog fehlgeschlagen."
