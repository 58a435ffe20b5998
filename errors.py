# ========================= errors.py =========================

class FormatError(ValueError):
    """Raised when a byte stream is not a Standard MIDI File we can decode."""


class ValidationError(ValueError):
    """Raised on caller misuse (bad event fields, bad speed)."""
