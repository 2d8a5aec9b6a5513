"""
Error taxonomy for the volume/pressure search.

Every failure raised below the bisection controller is a SearchError with
an ErrorCategory; the controller turns it into a FAILED outcome without
retrying the trial.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of errors in the search."""
    PRECONDITION = "precondition"
    SIMULATOR_EXECUTION = "simulator_execution"
    MISSING_OUTPUT = "missing_output"
    NO_DATA = "no_data"
    NON_MONOTONIC = "non_monotonic"
    CONFIGURATION = "configuration"


class SearchError(Exception):
    """Base class for all errors that abort a search."""

    category: ErrorCategory = ErrorCategory.PRECONDITION

    def __init__(self, message: str, volume: Optional[float] = None):
        super().__init__(message)
        self.message = message
        self.volume = volume


class PreconditionError(SearchError):
    """Missing reference structure or staged dependency; never retried."""
    category = ErrorCategory.PRECONDITION


class SimulatorExecutionError(SearchError):
    """Simulator exited with a nonzero status."""
    category = ErrorCategory.SIMULATOR_EXECUTION

    def __init__(self, message: str, exit_code: int, volume: Optional[float] = None):
        super().__init__(message, volume=volume)
        self.exit_code = exit_code


class MissingOutputError(SearchError):
    """Output artifacts never appeared within the poll budget."""
    category = ErrorCategory.MISSING_OUTPUT


class NoDataAvailableError(SearchError):
    """Artifacts exist but hold no parsable pressure records."""
    category = ErrorCategory.NO_DATA


class NonMonotonicError(SearchError):
    """Observed pressures contradict the monotonic pressure-volume assumption."""
    category = ErrorCategory.NON_MONOTONIC


class ConfigurationError(SearchError, ValueError):
    """Invalid configuration values or search parameters."""
    category = ErrorCategory.CONFIGURATION


def describe_exit_code(exit_code: int) -> str:
    """Classify a simulator exit code into a short human description."""
    if exit_code == 0:
        return "Simulator completed successfully"
    if exit_code in (1, 2):
        return f"Simulator execution failed with exit code {exit_code}"
    if exit_code in (124, 125, 126, 127):
        # timeout(1), launcher failure, not executable, not found
        return f"System error: exit code {exit_code}"
    if exit_code == 137:
        return "Process killed (likely out of memory)"
    if exit_code == 139:
        return "Segmentation fault in simulator"
    if exit_code < 0:
        return f"Simulator terminated by signal {-exit_code}"
    return f"Unknown error with exit code {exit_code}"
