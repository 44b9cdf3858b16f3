from __future__ import annotations


class ScanError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ScanAlreadyActive(ScanError):
    def __init__(self, message: str = "A scan session is already active. Stop it before starting another."):
        super().__init__(message, status_code=409)


class HardwareScanError(ScanError):
    """Reported by the reader. Never stops the session on its own."""

    def __init__(self, message: str = "RFID reader error."):
        super().__init__(message, status_code=502)


class ScanUnavailableError(ScanError):
    def __init__(self, message: str = "RFID reader unavailable."):
        super().__init__(message, status_code=503)
