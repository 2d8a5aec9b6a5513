"""
Pydantic models for trial results, search outcomes and the search.json record.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
import math


class SearchStatus(str, Enum):
    SEARCHING = "searching"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class ConvergenceReason(str, Enum):
    TOLERANCE = "tolerance"
    WIDTH = "width"


# CLI completion signals per outcome
EXIT_CONVERGED = 0
EXIT_FAILED = 1
EXIT_CONVERGED_BY_WIDTH = 3
EXIT_EXHAUSTED = 4


class TrialResult(BaseModel):
    """One simulate-and-measure cycle; None marks an unavailable value."""
    model_config = ConfigDict(frozen=True)

    volume: float
    pressure: Optional[float] = None
    temperature: Optional[float] = None
    iteration: int = 0

    @field_validator("pressure", "temperature")
    @classmethod
    def finite_or_none(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            raise ValueError("value must be finite or None")
        return v

    @property
    def pressure_available(self) -> bool:
        return self.pressure is not None


class Anomaly(BaseModel):
    """Pair of trials whose pressures contradict the monotonic assumption."""
    model_config = ConfigDict(frozen=True)

    smaller_volume: float
    larger_volume: float
    pressure_at_smaller: float
    pressure_at_larger: float


class FailureInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    message: str
    volume: Optional[float] = None
    exit_code: Optional[int] = None


class SearchOutcome(BaseModel):
    """Final, immutable result of a search."""
    model_config = ConfigDict(frozen=True)

    status: SearchStatus
    reason: Optional[ConvergenceReason] = None
    final_volume: Optional[float] = None
    history: Tuple[TrialResult, ...] = ()
    trials: int = 0
    anomalies: Tuple[Anomaly, ...] = ()
    failure: Optional[FailureInfo] = None

    @model_validator(mode="after")
    def check_status(self) -> "SearchOutcome":
        if self.status == SearchStatus.SEARCHING:
            raise ValueError("an outcome must have a terminal status")
        if self.status == SearchStatus.CONVERGED and self.reason is None:
            raise ValueError("converged outcomes must state a reason")
        if self.status != SearchStatus.CONVERGED and self.reason is not None:
            raise ValueError("only converged outcomes carry a reason")
        if self.status == SearchStatus.FAILED and self.failure is None:
            raise ValueError("failed outcomes must carry failure info")
        return self

    @computed_field
    @property
    def converged(self) -> bool:
        return self.status == SearchStatus.CONVERGED

    @property
    def exit_code(self) -> int:
        if self.status == SearchStatus.FAILED:
            return EXIT_FAILED
        if self.status == SearchStatus.EXHAUSTED:
            return EXIT_EXHAUSTED
        if self.reason == ConvergenceReason.WIDTH:
            return EXIT_CONVERGED_BY_WIDTH
        return EXIT_CONVERGED

    @property
    def label(self) -> str:
        if self.status == SearchStatus.CONVERGED:
            return f"converged ({self.reason.value})"
        return self.status.value


# ----- search.json record -----

class SearchMeta(BaseModel):
    temperature: int
    target_pressure: float
    expected_volume: float
    lower_bound: float
    upper_bound: float
    tolerance: float
    convergence_width: float
    max_iterations: int
    csv_file: str
    work_dir: str
    created_at: float
    last_update: float

    @model_validator(mode="after")
    def check_bounds(self) -> "SearchMeta":
        if self.lower_bound > self.upper_bound:
            raise ValueError("lower_bound must be <= upper_bound")
        if self.last_update < self.created_at:
            raise ValueError("last_update must be >= created_at")
        return self


class SearchRecord(BaseModel):
    meta: SearchMeta
    schema_version: int = 1
    units: Dict[str, str] = Field(default_factory=lambda: {"pressure": "kB", "volume": "A^3", "temperature": "K"})
    trials: List[TrialResult] = Field(default_factory=list)
    outcome: Optional[SearchOutcome] = None
