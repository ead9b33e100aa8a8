from __future__ import annotations

from typing import Optional


class MackerelExporterError(Exception):
    """Base class for every error raised by the exporter."""
    pass


class ConfigurationError(MackerelExporterError):
    """
    Raised while building a pipeline from invalid options
    (missing API key in push mode, quantile out of range, ...).
    """
    pass


class NameMismatchError(MackerelExporterError):
    """A naming hint is inconsistent with the metric name it should describe."""

    def __init__(self, name: str, pattern: str):
        self.name = name
        self.pattern = pattern
        super().__init__(f"mismatched metric names: {name!r} does not fit {pattern!r}")


class UnroutableEntityError(MackerelExporterError):
    """The resource carries neither a host identity nor a service name."""

    def __init__(self, attributes: Optional[dict] = None):
        self.attributes = dict(attributes or {})
        super().__init__("resource has neither a custom identifier nor a service name")


class QuantileError(MackerelExporterError):
    """A quantile cannot be computed from the given distribution."""
    pass


class MackerelAPIError(MackerelExporterError):
    """
    Raised by backend clients when a call fails, either in transport
    (status_code is None) or with an HTTP error status.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message if status_code is None else f"HTTP {status_code}: {message}")
