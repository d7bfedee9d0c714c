"""Error taxonomy.

Only ``ConfigurationError`` and ``ValidationError`` abort a report run on
their own. ``UpstreamError`` and ``SelectorError`` raised by the clients are
absorbed per fetch by the pipeline and surface as data-availability gaps.
"""


class TownlensError(Exception):
    """Base class. ``hints`` are short remediation lines shown by the CLI."""

    def __init__(self, message: str, hints: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.hints = list(hints or [])


class ConfigurationError(TownlensError):
    """Catalog or settings are inconsistent. Fatal at startup."""

    def __init__(self, message: str, problems: list[str] | None = None, hints: list[str] | None = None):
        super().__init__(message, hints)
        self.problems = list(problems or [])


class ValidationError(TownlensError):
    """Caller input rejected before any fetch is issued."""


class NotFoundError(TownlensError):
    """Unknown catalog name or municipality code."""


class UpstreamError(TownlensError):
    """A statistics provider call failed."""

    def __init__(
        self,
        message: str,
        *,
        source: str = "",
        retryable: bool = False,
        status_code: int | None = None,
        hints: list[str] | None = None,
    ):
        super().__init__(message, hints)
        self.source = source
        self.retryable = retryable
        self.status_code = status_code


class SelectorError(TownlensError):
    """The response did not contain the configured selector path."""


class PartialDataError(TownlensError):
    """One or more requested categories had no data for any municipality."""

    def __init__(self, categories, result=None):
        labels = ", ".join(str(c.value) if hasattr(c, "value") else str(c) for c in categories)
        super().__init__(f"No data for categories: {labels}")
        self.categories = list(categories)
        self.result = result
