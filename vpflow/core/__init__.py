"""
Core modules for configuration, search state, trial execution and results.
"""

from .configuration import (
    SearchConfiguration, ConfigurationLoader, SystemConfig, MDConfig,
    BisectionConfig, RoundingConfig, OutputConfig, SimulatorConfig,
)
from .errors import (
    ErrorCategory, SearchError, PreconditionError, SimulatorExecutionError,
    MissingOutputError, NoDataAvailableError, NonMonotonicError, ConfigurationError,
)
from .models import TrialResult, SearchOutcome, SearchStatus, ConvergenceReason, SearchRecord

__all__ = [
    "SearchConfiguration",
    "ConfigurationLoader",
    "SystemConfig",
    "MDConfig",
    "BisectionConfig",
    "RoundingConfig",
    "OutputConfig",
    "SimulatorConfig",
    "ErrorCategory",
    "SearchError",
    "PreconditionError",
    "SimulatorExecutionError",
    "MissingOutputError",
    "NoDataAvailableError",
    "NonMonotonicError",
    "ConfigurationError",
    "TrialResult",
    "SearchOutcome",
    "SearchStatus",
    "ConvergenceReason",
    "SearchRecord",
]
