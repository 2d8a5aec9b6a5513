"""
VASP backend: MD input staging and simulator launch.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import logging
from pathlib import Path
from typing import Dict, List, Optional

from .base import SimulatorBackend, SimulationArtifacts, SimulationRun
from vpflow.core.configuration import SearchConfiguration
from vpflow.core.errors import PreconditionError
from vpflow.core.template_engine import TemplateProcessor, StructureProcessor

logger = logging.getLogger(__name__)

OUTPUT_FILES = ("OUTCAR", "OSZICAR")


class VaspBackend(SimulatorBackend):
    def __init__(self, work_dir: Path, config: SearchConfiguration):
        super().__init__(work_dir)
        self.config = config
        self.template_proc = TemplateProcessor(config)
        self.struct_proc = StructureProcessor()
        self._volume: Optional[float] = None

    # ---------- staging ----------
    def prepare_inputs(self, volume: float, temperature: int) -> None:
        self.struct_proc.write_volume(self.reference_file, self.structure_file, volume)
        (self.work_dir / "INCAR").write_text(self.template_proc.incar_content(temperature))
        (self.work_dir / "KPOINTS").write_text(self.template_proc.kpoints_content())
        self._setup_potcar()
        self._volume = float(volume)
        logger.info(
            f"Prepared VASP inputs in {self.work_dir}: V={self.struct_proc.format_volume(volume)} A^3, T={temperature} K"
        )

    def _setup_potcar(self) -> Path:
        target = self.work_dir / "POTCAR"
        if target.exists():
            logger.debug("POTCAR already exists")
            return target
        source = self.config.simulator.potcar_path / self.config.system.element / "POTCAR"
        if not source.is_file():
            raise PreconditionError(f"POTCAR not found at {source}")
        try:
            shutil.copyfile(source, target)
        except OSError as e:
            raise PreconditionError(f"Cannot copy POTCAR from {source}: {e}") from e
        logger.info(f"POTCAR copied from {source}")
        return target

    # ---------- execution ----------
    def build_command(self) -> List[str]:
        cmd = self.config.simulator.command
        if isinstance(cmd, str):
            return shlex.split(cmd)
        return [str(c) for c in cmd]

    def _build_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.config.simulator.env)
        return env

    def run_simulator(self) -> SimulationRun:
        if self._volume is None:
            raise PreconditionError("prepare_inputs must be called before run_simulator")

        for name in OUTPUT_FILES:
            (self.work_dir / name).unlink(missing_ok=True)

        label = self.struct_proc.format_volume(self._volume)
        stdout_path = self.work_dir / f"vasp_output_{label}.log"
        cmd = self.build_command()
        logger.info(
            f"Running {' '.join(cmd)} ({self.config.md.steps} steps) in {self.work_dir}, output -> {stdout_path.name}"
        )
        with open(stdout_path, "w") as out:
            try:
                res = subprocess.run(
                    cmd,
                    cwd=str(self.work_dir),
                    env=self._build_env(),
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    check=False,
                )
                exit_code = res.returncode
            except FileNotFoundError as e:
                out.write(f"{e}\n")
                exit_code = 127
            except PermissionError as e:
                out.write(f"{e}\n")
                exit_code = 126

        artifacts = SimulationArtifacts(
            primary=self.work_dir / "OUTCAR",
            secondary=self.work_dir / "OSZICAR",
            stdout=stdout_path,
            inputs={"INCAR": self.work_dir / "INCAR"},
        )
        return SimulationRun(exit_code=exit_code, artifacts=artifacts)
