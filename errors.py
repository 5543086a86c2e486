class MetricsViewerError(Exception):
    """Base class for all viewer errors."""


class FetchError(MetricsViewerError):
    """Raw text for a source could not be retrieved."""

    def __init__(self, locator, status=None, reason=None):
        self.locator = str(locator)
        self.status = status
        self.reason = reason
        detail = f"HTTP {status}" if status is not None else (reason or "unreachable")
        super().__init__(f"Failed to fetch {self.locator}: {detail}")


class ParseError(MetricsViewerError):
    """Source text is not a delimited table at all (bad rows are dropped silently)."""


class PreconditionNotMet(MetricsViewerError):
    """A render was requested before its series finished loading."""


class ConfigError(MetricsViewerError):
    """Chart configuration document is malformed."""
