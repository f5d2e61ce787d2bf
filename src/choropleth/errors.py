"""Exception taxonomy for the choropleth pipeline."""

from __future__ import annotations


class ChoroplethError(Exception):
    """Base class for all pipeline errors."""


class UnknownDatasetError(ChoroplethError, LookupError):
    """Raised when a catalog lookup names a dataset that is not registered."""

    def __init__(self, name: str, known: tuple[str, ...] = ()) -> None:
        self.name = name
        self.known = known
        detail = f" (known: {', '.join(known)})" if known else ""
        super().__init__(f"Unknown boundary dataset '{name}'{detail}")


class MalformedOrderError(ChoroplethError, ValueError):
    """Raised when points inside one group are not in increasing sequence order."""


class InconsistentGroupError(ChoroplethError, ValueError):
    """Raised when one group spans several regions or is not contiguous."""


class RecordParseError(ChoroplethError, ValueError):
    """Raised for one attribute line that matched the schema but failed normalization."""

    def __init__(self, message: str, *, line_number: int | None = None, line: str = "") -> None:
        self.line_number = line_number
        self.line = line
        prefix = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{prefix}{message}")


class DuplicateKeyError(ChoroplethError, ValueError):
    """Raised when several attribute records normalize to the same join key."""

    def __init__(self, key: str, line_numbers: tuple[int | None, ...] = ()) -> None:
        self.key = key
        self.line_numbers = line_numbers
        lines = ", ".join(str(n) for n in line_numbers if n is not None)
        detail = f" (lines {lines})" if lines else ""
        super().__init__(f"Duplicate attribute key '{key}'{detail}")


class MetricUndefinedError(ChoroplethError, ValueError):
    """Raised when a derived metric cannot be computed for one ring."""


class DomainError(ChoroplethError, ValueError):
    """Raised when a value lies outside the valid domain of a scale transform."""

    def __init__(self, value: float, message: str) -> None:
        self.value = value
        super().__init__(message)
