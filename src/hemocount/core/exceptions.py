"""Exception classes for the hemocount core module."""


class HemocountError(Exception):
    """Base exception for all hemocount errors."""


class InvalidInputError(HemocountError, ValueError):
    """Raised when an input is rejected at the pipeline boundary.

    Covers non-positive image dimensions, a non-positive pixels-per-micron
    calibration, malformed corner points, and out-of-range parameters.
    """

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        if message and field:
            msg = f"Invalid {field}: {message}"
        elif message:
            msg = message
        else:
            msg = "Invalid input"
        super().__init__(msg)
        self.field = field


class ConfigError(HemocountError):
    """Raised when a settings file is missing, unreadable, or malformed."""

    def __init__(self, path: str | None = None, reason: str | None = None) -> None:
        if path and reason:
            msg = f"Invalid settings file {path}: {reason}"
        elif path:
            msg = f"Invalid settings file: {path}"
        else:
            msg = reason or "Invalid settings"
        super().__init__(msg)
        self.path = path
        self.reason = reason


class ImageReadError(HemocountError):
    """Raised when an image file cannot be read into a pixel buffer."""

    def __init__(self, path: str | None = None, reason: str | None = None) -> None:
        msg = f"Could not read image: {path}" if path else "Could not read image"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.path = path
