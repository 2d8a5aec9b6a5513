"""
Trial runner: one full simulate-and-measure cycle at a candidate volume.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .errors import NoDataAvailableError, SimulatorExecutionError, describe_exit_code
from .models import TrialResult
from .result_log import ResultLog
from .template_engine import StructureProcessor
from vpflow.software.base import SimulatorBackend
from vpflow.software.parsers import OutputParser, ParsedAverages
from vpflow.utils.file_management import FileManager

logger = logging.getLogger(__name__)


def _fmt(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2f}"


class TrialRunner:
    """Runs trials through a simulator backend and records accepted results.

    Every failure is raised to the caller unchanged; nothing is retried.
    """

    def __init__(
        self,
        backend: SimulatorBackend,
        parser: OutputParser,
        result_log: ResultLog,
        archive_dir: Optional[Path] = None,
    ):
        self.backend = backend
        self.parser = parser
        self.result_log = result_log
        self.archive_dir = Path(archive_dir) if archive_dir else backend.work_dir

    def evaluate(self, volume: float, temperature: int, iteration: int = 0) -> TrialResult:
        label = StructureProcessor.format_volume(volume)
        logger.info(f"=== Evaluating volume: {label} A^3 ===")

        FileManager.restore_reference(self.backend.reference_file, self.backend.structure_file)
        self.backend.prepare_inputs(volume, temperature)

        run = self.backend.run_simulator()
        if not run.succeeded:
            detail = f" (see {run.artifacts.stdout})" if run.artifacts.stdout else ""
            raise SimulatorExecutionError(
                f"Simulator exited with code {run.exit_code} at volume {label} A^3: "
                f"{describe_exit_code(run.exit_code)}{detail}",
                exit_code=run.exit_code,
                volume=volume,
            )

        averages = self.parser.parse(run.artifacts.primary, run.artifacts.secondary)
        self._write_analysis_log(label, averages)
        if not averages.pressure_available:
            raise NoDataAvailableError(f"No pressure data available for volume {label} A^3", volume=volume)

        trial = TrialResult(
            volume=float(volume),
            pressure=averages.pressure,
            temperature=averages.temperature,
            iteration=iteration,
        )
        logger.info(f"Result: Pressure = {_fmt(trial.pressure)} kB, Temperature = {_fmt(trial.temperature)} K")

        FileManager.archive_labeled(run.artifacts.archive_sources(), self.archive_dir, f"{label}A3")
        self.result_log.append(trial)
        return trial

    def _write_analysis_log(self, label: str, averages: ParsedAverages) -> None:
        if not averages.pressure_available:
            return
        log_path = self.archive_dir / f"results_{label}A3.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a") as fh:
            fh.write(f"Pressure: {_fmt(averages.pressure)} kB, Temperature: {_fmt(averages.temperature)} K\n")
