"""
Simulator backends and output parsers.

Provides a factory to obtain the backend for a simulator name.
"""

from pathlib import Path

from .base import SimulatorBackend, SimulationArtifacts, SimulationRun
from .vasp import VaspBackend
from .parsers import OutputParser, ParsedAverages, parse_pressure, parse_temperature


def get_backend(software: str, work_dir: Path, config) -> SimulatorBackend:
    s = software.lower()
    if s == "vasp":
        return VaspBackend(work_dir, config)
    raise ValueError(f"Unsupported software: {software}")


__all__ = [
    "SimulatorBackend",
    "SimulationArtifacts",
    "SimulationRun",
    "VaspBackend",
    "OutputParser",
    "ParsedAverages",
    "parse_pressure",
    "parse_temperature",
    "get_backend",
]
