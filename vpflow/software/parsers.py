"""
VASP MD output parsers for pressure and temperature.

Pressure comes from OUTCAR 'external pressure' records (kB), temperature
from OSZICAR 'T=' records (K). Both are averaged over all MD steps found.
A missing value is reported as None ("unavailable"), never as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional
import logging
import re
import time

from vpflow.core.errors import MissingOutputError

logger = logging.getLogger(__name__)

# '  external pressure =       12.34 kB  Pullay stress =        0.00 kB'
_PRESSURE_RE = re.compile(r"external\s+pressure\s*=\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[Ee][-+]?\d+)?)")
# '   1 T=  3012. E= -.4E+03 F= ...'
_TEMPERATURE_RE = re.compile(r"T=\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[Ee][-+]?\d+)?)")


def _read_text(path: Path) -> str:
    return Path(path).read_text(errors="ignore")


def _average(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def pressure_samples(text: str) -> List[float]:
    """All external pressure values in OUTCAR text, in order."""
    return [float(m.group(1)) for m in _PRESSURE_RE.finditer(text)]


def temperature_samples(text: str) -> List[float]:
    """First numeric token after every 'T=' marker in OSZICAR text."""
    samples = []
    for line in text.splitlines():
        m = _TEMPERATURE_RE.search(line)
        if m:
            samples.append(float(m.group(1)))
    return samples


def parse_pressure(text: str) -> Optional[float]:
    """Average external pressure in kB, or None when no record matched."""
    return _average(pressure_samples(text))


def parse_temperature(text: str) -> Optional[float]:
    """Average MD temperature in K, or None when no record matched."""
    return _average(temperature_samples(text))


@dataclass(frozen=True)
class ParsedAverages:
    pressure: Optional[float]
    temperature: Optional[float]

    @property
    def pressure_available(self) -> bool:
        return self.pressure is not None


class OutputParser:
    """Waits for simulator artifacts with a bounded poll, then averages them.

    The sleep function is injectable so callers (and tests) control how the
    wait between attempts is spent.
    """

    def __init__(
        self,
        max_attempts: int = 30,
        interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    def wait_for(self, paths: Iterable[Path]) -> None:
        """Block until every path exists or the attempt budget is spent."""
        paths = [Path(p) for p in paths]
        for attempt in range(self.max_attempts):
            missing = [p for p in paths if not p.exists()]
            if not missing:
                return
            logger.info(
                f"Waiting for output files {', '.join(p.name for p in missing)} "
                f"({attempt}/{self.max_attempts})"
            )
            self._sleep(self.interval)
        missing = [p for p in paths if not p.exists()]
        if missing:
            raise MissingOutputError(
                f"Output files not found after {self.max_attempts} attempts: "
                + ", ".join(str(p) for p in missing)
            )

    def parse(self, primary: Path, secondary: Path) -> ParsedAverages:
        """Average pressure from the primary artifact and temperature from the secondary."""
        self.wait_for([primary, secondary])
        pressure = parse_pressure(_read_text(primary))
        temperature = parse_temperature(_read_text(secondary))
        if pressure is None:
            logger.warning(f"No pressure data found in {primary}")
        if temperature is None:
            logger.warning(f"No temperature data found in {secondary}")
        return ParsedAverages(pressure=pressure, temperature=temperature)
