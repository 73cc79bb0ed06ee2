class AutoZoomError(Exception):
    pass


class HostUnavailable(AutoZoomError):
    """Zoom- oder Tab-Abfrage beim Host fehlgeschlagen."""


class StorageFailure(AutoZoomError):
    """Lesen oder Schreiben im Key/Value-Store fehlgeschlagen."""


class MalformedMeasurement(AutoZoomError):
    """Messdaten der Seite sind unbrauchbar."""
