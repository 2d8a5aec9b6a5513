from pathlib import Path
from typing import Callable, List, Optional

import pytest

from vpflow.core.controller import BisectionController, VolumeRounding
from vpflow.core.result_log import ResultLog
from vpflow.core.runner import TrialRunner
from vpflow.software.base import SimulationArtifacts, SimulationRun, SimulatorBackend
from vpflow.software.parsers import OutputParser

POSCAR = """Mg128
   1.00000000
    12.0000000000000000    0.0000000000000000    0.0000000000000000
     0.0000000000000000   12.0000000000000000    0.0000000000000000
     0.0000000000000000    0.0000000000000000   12.0000000000000000
 Mg
   128
Direct
"""


def outcar_text(pressures: List[float]) -> str:
    lines = []
    for p in pressures:
        lines.append("  in kB      10.00    10.00    10.00     0.00     0.00     0.00")
        lines.append(f"  external pressure = {p:11.2f} kB  Pullay stress =        0.00 kB")
        lines.append("")
    return "\n".join(lines)


def oszicar_text(temperatures: List[float]) -> str:
    return "\n".join(
        f"{i + 1:6d} T= {t:8.1f} E= -.40512345E+03 F= -.41234567E+03 E0= -.41234567E+03 EK= 0.12E+02 SP= 0.00E+00 SK= 0.00E+00"
        for i, t in enumerate(temperatures)
    )


class FakeBackend(SimulatorBackend):
    """Writes OUTCAR/OSZICAR from a pressure function instead of running VASP."""

    def __init__(
        self,
        work_dir: Path,
        pressure_fn: Callable[[float], float],
        exit_codes: Optional[List[int]] = None,
        write_pressure: bool = True,
        write_outputs: bool = True,
        temperature_noise: float = 10.0,
    ):
        super().__init__(work_dir)
        self.pressure_fn = pressure_fn
        self.exit_codes = list(exit_codes or [])
        self.write_pressure = write_pressure
        self.write_outputs = write_outputs
        self.temperature_noise = temperature_noise
        self.prepared: List[float] = []
        self._volume = None
        self._temperature = None

    def prepare_inputs(self, volume: float, temperature: int) -> None:
        (self.work_dir / "INCAR").write_text(f"TEBEG = {temperature}\n")
        self.prepared.append(volume)
        self._volume = volume
        self._temperature = temperature

    def run_simulator(self) -> SimulationRun:
        artifacts = SimulationArtifacts(
            primary=self.work_dir / "OUTCAR",
            secondary=self.work_dir / "OSZICAR",
            stdout=self.work_dir / "fake_output.log",
            inputs={"INCAR": self.work_dir / "INCAR"},
        )
        for name in ("OUTCAR", "OSZICAR"):
            (self.work_dir / name).unlink(missing_ok=True)
        code = self.exit_codes.pop(0) if self.exit_codes else 0
        artifacts.stdout.write_text(f"exit {code}\n")
        if code == 0 and self.write_outputs:
            p = self.pressure_fn(self._volume)
            # symmetric noise around p keeps the average exact
            pressures = [p - 1.0, p, p + 1.0] if self.write_pressure else []
            (self.work_dir / "OUTCAR").write_text(outcar_text(pressures))
            t = float(self._temperature)
            (self.work_dir / "OSZICAR").write_text(
                oszicar_text([t - self.temperature_noise, t + self.temperature_noise])
            )
        return SimulationRun(exit_code=code, artifacts=artifacts)


class NoSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def work_dir(tmp_path):
    (tmp_path / "POSCAR").write_text(POSCAR)
    (tmp_path / "POSCAR.original").write_text(POSCAR)
    return tmp_path


@pytest.fixture
def make_search(work_dir):
    """Build a controller wired to a FakeBackend through the real runner."""

    def _make(
        pressure_fn,
        lower=3200.0,
        upper=3800.0,
        target=50.0,
        tolerance=5.0,
        max_iterations=15,
        convergence_width=5.0,
        rounding=None,
        abort_on_non_monotonic=False,
        **backend_kwargs,
    ):
        backend = FakeBackend(work_dir, pressure_fn, **backend_kwargs)
        sleep = NoSleep()
        parser = OutputParser(max_attempts=3, interval=0.5, sleep=sleep)
        log = ResultLog(work_dir / "VP_3000_50.csv")
        runner = TrialRunner(backend, parser, log)
        controller = BisectionController(
            runner,
            temperature=3000,
            target_pressure=target,
            lower_bound=lower,
            upper_bound=upper,
            tolerance=tolerance,
            max_iterations=max_iterations,
            convergence_width=convergence_width,
            rounding=rounding or VolumeRounding(),
            abort_on_non_monotonic=abort_on_non_monotonic,
        )
        return controller, backend, log

    return _make
