"""Exceptions raised by the degradation pipeline and its job runners."""


class VHSDegraderError(Exception):
    """Base class; carries the name of the stage that failed."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"{self.stage}: {self.message}"
        return self.message


class InvalidSettingsError(VHSDegraderError):
    """Settings could not be built (bad JSON, wrong value types)."""


class UnknownPresetError(InvalidSettingsError):
    """No built-in preset has the requested name."""

    def __init__(self, name: str, known: tuple[str, ...] = ()):
        message = f"Unknown preset '{name}'"
        if known:
            message += f" (available: {', '.join(known)})"
        super().__init__(message, stage="settings")
        self.name = name


class SourceReadError(VHSDegraderError):
    """Input video is missing, unsupported, unreadable or corrupt."""


class SeekTimeoutError(VHSDegraderError):
    """A frame seek did not settle within the fallback window."""


class EncodeError(VHSDegraderError):
    """The encoder or the external video tool failed."""

    def __init__(self, message: str, stage: str | None = "encode", log: str = ""):
        super().__init__(message, stage=stage)
        self.log = log


class UnsupportedSettingError(VHSDegraderError):
    """A setting cannot be represented in the external tool's filter syntax."""


class JobCancelled(VHSDegraderError):
    """Raised inside a job when its cancel token is set."""
