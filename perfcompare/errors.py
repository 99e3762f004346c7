"""Exceptions raised by scenario execution and analysis."""


class PerfCompareError(Exception):
    """Base class for perf-compare errors."""


class ConfigurationError(PerfCompareError):
    """Raised when a scenario, step, or configuration file is malformed."""


class AutomationError(PerfCompareError):
    """Raised when the browser session fails to carry out an operation."""


class AutomationTimeoutError(AutomationError):
    """Raised when an element, navigation, or response is not observed in time."""


class EmptyInputError(PerfCompareError, ValueError):
    """Raised when statistics are requested over zero values."""
