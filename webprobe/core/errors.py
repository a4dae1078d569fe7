"""Exception types raised by the probe engine."""


class ProbeError(Exception):
    """Base class for all engine errors."""


class ConfigError(ProbeError):
    """Runtime configuration is missing or invalid."""


class SetupError(ProbeError):
    """Runtime state (accounts, tokens) could not be prepared."""


class TokenFormatError(ProbeError, ValueError):
    """A credential token does not have the expected segment layout."""


class TokenExtractionError(SetupError):
    """No supported login-response shape carried a token."""

    def __init__(self, label: str, status: int, tried, preview: str = ""):
        self.label = label
        self.status = status
        self.tried = list(tried)
        super().__init__(
            f"Unable to obtain token for {label}: status={status} "
            f"shapes tried={', '.join(self.tried)} body={preview}"
        )


class DriverError(ProbeError):
    """A browser action failed or timed out."""


class FlowCheckError(ProbeError):
    """A flow step ran but its post-condition did not hold."""
