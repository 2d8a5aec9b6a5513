"""
Base interface for simulator backends consumed by the trial runner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional


@dataclass(frozen=True)
class SimulationArtifacts:
    """Raw output of one simulator run."""
    primary: Path                     # thermodynamic log with pressure samples
    secondary: Path                   # step log with temperature samples
    stdout: Optional[Path] = None
    inputs: Optional[Dict[str, Path]] = None   # staged inputs worth archiving

    def archive_sources(self) -> Dict[str, Path]:
        files = {self.primary.name: self.primary, self.secondary.name: self.secondary}
        for name, path in (self.inputs or {}).items():
            files[name] = path
        return files


@dataclass(frozen=True)
class SimulationRun:
    exit_code: int
    artifacts: SimulationArtifacts

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class SimulatorBackend(ABC):
    """Stages inputs and runs the external simulator in a working directory."""

    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)

    @abstractmethod
    def prepare_inputs(self, volume: float, temperature: int) -> None:
        """Write all inputs for this volume/temperature.

        Must be idempotent and rebuild the state from the pristine reference
        structure. Raises PreconditionError when a staged dependency is missing.
        """
        raise NotImplementedError

    @abstractmethod
    def run_simulator(self) -> SimulationRun:
        """Run the simulator to completion and report its exit status."""
        raise NotImplementedError

    @property
    def structure_file(self) -> Path:
        return self.work_dir / "POSCAR"

    @property
    def reference_file(self) -> Path:
        return self.work_dir / "POSCAR.original"
