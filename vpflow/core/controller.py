"""
Bisection controller: searches the volume that yields a target pressure.

Design goals:
- Own the search state (bounds, iteration) and decide every candidate volume
- Delegate each trial to the TrialRunner; never retry a failed trial
- Return an explicit SearchOutcome that tells tolerance convergence, width
  convergence, an exhausted iteration budget and a hard failure apart

Pressure is assumed to decrease as volume increases: a pressure above the
target moves the lower bound up, otherwise the upper bound comes down.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from .configuration import RoundingConfig, SearchConfiguration, ROUNDING_MODES
from .errors import ConfigurationError, NonMonotonicError, SearchError
from .models import (
    Anomaly,
    ConvergenceReason,
    FailureInfo,
    SearchOutcome,
    SearchStatus,
    TrialResult,
)
from .template_engine import StructureProcessor

logger = logging.getLogger(__name__)


class VolumeRounding:
    """Rounds candidate volumes to the resolution the simulator supports."""

    def __init__(self, resolution: float = 1.0, mode: str = "half_even"):
        if resolution <= 0:
            raise ConfigurationError("rounding resolution must be positive")
        if mode not in ROUNDING_MODES:
            raise ConfigurationError(f"unknown rounding mode: {mode}")
        self.resolution = float(resolution)
        self.mode = mode

    @classmethod
    def from_config(cls, config: RoundingConfig) -> "VolumeRounding":
        return cls(resolution=config.resolution, mode=config.mode)

    def __call__(self, value: float) -> float:
        q = value / self.resolution
        if self.mode == "half_even":
            steps = round(q)
        elif self.mode == "half_up":
            steps = math.floor(q + 0.5)
        elif self.mode == "floor":
            steps = math.floor(q)
        else:
            steps = math.ceil(q)
        # strip float noise from steps * resolution (1234567 * 0.01)
        return float(round(steps * self.resolution, 10))


@dataclass
class SearchState:
    lower_bound: float
    upper_bound: float
    target_pressure: float
    tolerance: float
    max_iterations: int
    iteration: int = 1

    def __post_init__(self):
        self._check_bounds(self.lower_bound, self.upper_bound)

    @staticmethod
    def _check_bounds(lower: float, upper: float) -> None:
        if lower > upper:
            raise ConfigurationError(f"lower bound {lower} exceeds upper bound {upper}")

    @property
    def width(self) -> float:
        return self.upper_bound - self.lower_bound

    def midpoint(self, rounding: VolumeRounding) -> float:
        """Rounded midpoint, kept inside the current bounds."""
        mid = rounding((self.lower_bound + self.upper_bound) / 2.0)
        return min(max(mid, self.lower_bound), self.upper_bound)

    def narrow(self, candidate: float, pressure: float) -> None:
        if pressure > self.target_pressure:
            self._check_bounds(candidate, self.upper_bound)
            self.lower_bound = candidate
        else:
            self._check_bounds(self.lower_bound, candidate)
            self.upper_bound = candidate

    @property
    def exhausted(self) -> bool:
        return self.iteration > self.max_iterations


class BisectionController:
    """Drives repeated trials until convergence, exhaustion or failure.

    The runner must provide evaluate(volume, temperature, iteration) and a
    result_log whose entries form the search history.
    """

    def __init__(
        self,
        runner,
        temperature: int,
        target_pressure: float,
        lower_bound: float,
        upper_bound: float,
        tolerance: float = 5.0,
        max_iterations: int = 15,
        convergence_width: float = 5.0,
        rounding: Optional[VolumeRounding] = None,
        abort_on_non_monotonic: bool = False,
    ):
        if tolerance <= 0:
            raise ConfigurationError("tolerance must be positive")
        if max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        if convergence_width <= 0:
            raise ConfigurationError("convergence_width must be positive")
        self.runner = runner
        self.temperature = temperature
        self.convergence_width = float(convergence_width)
        self.rounding = rounding or VolumeRounding()
        self.abort_on_non_monotonic = abort_on_non_monotonic
        self.state = SearchState(
            lower_bound=float(lower_bound),
            upper_bound=float(upper_bound),
            target_pressure=float(target_pressure),
            tolerance=float(tolerance),
            max_iterations=int(max_iterations),
        )
        self.status = SearchStatus.SEARCHING
        self._outcome: Optional[SearchOutcome] = None
        self._reported_anomalies: Set[Tuple[float, float]] = set()

    @classmethod
    def from_config(
        cls,
        runner,
        config: SearchConfiguration,
        temperature: int,
        target_pressure: float,
        lower_bound: float,
        upper_bound: float,
    ) -> "BisectionController":
        s = config.search
        return cls(
            runner,
            temperature=temperature,
            target_pressure=target_pressure,
            lower_bound=lower_bound,
            upper_bound=upper_bound,
            tolerance=s.tolerance,
            max_iterations=s.max_iterations,
            convergence_width=s.convergence_width,
            rounding=VolumeRounding.from_config(s.rounding),
            abort_on_non_monotonic=s.abort_on_non_monotonic,
        )

    @property
    def outcome(self) -> Optional[SearchOutcome]:
        return self._outcome

    def next_candidate(self) -> float:
        return self.state.midpoint(self.rounding)

    def run(self) -> SearchOutcome:
        if self._outcome is not None:
            return self._outcome

        st = self.state
        logger.info(
            f"Starting binary search: range {st.lower_bound:g} - {st.upper_bound:g} A^3, "
            f"target {st.target_pressure:g} kB, tolerance {st.tolerance:g} kB"
        )

        while self.status == SearchStatus.SEARCHING and not st.exhausted:
            candidate = self.next_candidate()
            label = StructureProcessor.format_volume(candidate)
            logger.info(f"Iteration {st.iteration}: testing volume {label} A^3")

            try:
                trial = self.runner.evaluate(candidate, self.temperature, st.iteration)
                self._check_monotonic()
            except SearchError as e:
                logger.error(f"Search failed at volume {label} A^3: {e}")
                return self._finish(SearchStatus.FAILED, failure=e)

            diff = abs(trial.pressure - st.target_pressure)
            logger.info(f"Pressure difference from target: {diff:.2f} kB")
            if diff <= st.tolerance:
                logger.info(f"Found target pressure at {label} A^3")
                return self._finish(SearchStatus.CONVERGED, ConvergenceReason.TOLERANCE, candidate)

            if trial.pressure > st.target_pressure:
                logger.info("Pressure too high -> trying larger volume")
            else:
                logger.info("Pressure too low -> trying smaller volume")
            st.narrow(candidate, trial.pressure)
            logger.info(f"Current search range: {st.lower_bound:g} - {st.upper_bound:g} ({st.width:.2f} A^3)")

            if st.width <= self.convergence_width:
                logger.info(f"Range converged to within {self.convergence_width:g} A^3")
                return self._finish(SearchStatus.CONVERGED, ConvergenceReason.WIDTH, self.next_candidate())

            st.iteration += 1

        logger.warning("Maximum iterations reached")
        return self._finish(SearchStatus.EXHAUSTED, volume=self.next_candidate())

    def _check_monotonic(self) -> None:
        # anomalies() is ordered by volume, so new pairs can appear anywhere in it
        new = [
            a for a in self.runner.result_log.anomalies()
            if (a.smaller_volume, a.larger_volume) not in self._reported_anomalies
        ]
        for a in new:
            logger.warning(
                f"Non-monotonic pressure: {a.pressure_at_smaller:.2f} kB at {a.smaller_volume:g} A^3 "
                f"< {a.pressure_at_larger:.2f} kB at {a.larger_volume:g} A^3"
            )
            self._reported_anomalies.add((a.smaller_volume, a.larger_volume))
        if new and self.abort_on_non_monotonic:
            a = new[0]
            raise NonMonotonicError(
                f"pressure increases from {a.smaller_volume:g} to {a.larger_volume:g} A^3",
                volume=a.larger_volume,
            )

    def _finish(
        self,
        status: SearchStatus,
        reason: Optional[ConvergenceReason] = None,
        volume: Optional[float] = None,
        failure: Optional[SearchError] = None,
    ) -> SearchOutcome:
        self.status = status
        history: List[TrialResult] = list(self.runner.result_log.entries)
        anomalies: List[Anomaly] = self.runner.result_log.anomalies()
        info = None
        if failure is not None:
            info = FailureInfo(
                category=failure.category.value,
                message=failure.message,
                volume=failure.volume,
                exit_code=getattr(failure, "exit_code", None),
            )
        self._outcome = SearchOutcome(
            status=status,
            reason=reason,
            final_volume=volume,
            history=tuple(history),
            trials=len(history),
            anomalies=tuple(anomalies),
            failure=info,
        )
        return self._outcome
