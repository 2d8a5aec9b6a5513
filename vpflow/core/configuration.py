"""
Configuration management for the volume/pressure search.

This module loads an optional YAML file describing the simulated system,
the MD run parameters, the bisection settings and the simulator launch.
Every section falls back to defaults so the tool runs without a file.
"""

import yaml
import logging
import os
from pathlib import Path
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

ROUNDING_MODES = ("half_even", "half_up", "floor", "ceil")


@dataclass
class SystemConfig:
    """Simulated system."""
    element: str = "Mg"
    atoms: int = 128

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SystemConfig':
        return cls(
            element=str(data.get('element', cls.element)),
            atoms=int(data.get('atoms', cls.atoms)),
        )


@dataclass
class MDConfig:
    """Molecular dynamics run parameters written to INCAR/KPOINTS."""
    steps: int = 200
    nblock: int = 20
    potim: float = 2.0
    smass: float = 1.0
    kpoints: List[int] = field(default_factory=lambda: [1, 1, 1])
    incar_template: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MDConfig':
        kpoints = data.get('kpoints', [1, 1, 1])
        if isinstance(kpoints, str):
            kpoints = kpoints.split()
        return cls(
            steps=int(data.get('steps', cls.steps)),
            nblock=int(data.get('nblock', cls.nblock)),
            potim=float(data.get('potim', cls.potim)),
            smass=float(data.get('smass', cls.smass)),
            kpoints=[int(k) for k in kpoints],
            incar_template=data.get('incar_template'),
        )


@dataclass
class RoundingConfig:
    """Rounding policy for candidate volumes."""
    resolution: float = 1.0
    mode: str = "half_even"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundingConfig':
        return cls(
            resolution=float(data.get('resolution', cls.resolution)),
            mode=str(data.get('mode', cls.mode)),
        )


@dataclass
class BisectionConfig:
    """Bisection search settings."""
    tolerance: float = 5.0
    max_iterations: int = 15
    volume_range: float = 300.0
    convergence_width: float = 5.0
    abort_on_non_monotonic: bool = False
    rounding: RoundingConfig = field(default_factory=RoundingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BisectionConfig':
        return cls(
            tolerance=float(data.get('tolerance', cls.tolerance)),
            max_iterations=int(data.get('max_iterations', cls.max_iterations)),
            volume_range=float(data.get('volume_range', cls.volume_range)),
            convergence_width=float(data.get('convergence_width', cls.convergence_width)),
            abort_on_non_monotonic=bool(data.get('abort_on_non_monotonic', False)),
            rounding=RoundingConfig.from_dict(data.get('rounding') or {}),
        )


@dataclass
class OutputConfig:
    """Polling budget while waiting for simulator output."""
    poll_attempts: int = 30
    poll_interval: float = 2.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OutputConfig':
        return cls(
            poll_attempts=int(data.get('poll_attempts', cls.poll_attempts)),
            poll_interval=float(data.get('poll_interval', cls.poll_interval)),
        )


@dataclass
class SimulatorConfig:
    """Simulator launch settings."""
    command: Union[str, List[str]] = "srun vasp_std"
    env: Dict[str, str] = field(default_factory=dict)
    potcar_dir: str = "~/POTs"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulatorConfig':
        return cls(
            command=data.get('command', cls.command),
            env={str(k): str(v) for k, v in (data.get('env') or {}).items()},
            potcar_dir=str(data.get('potcar_dir', cls.potcar_dir)),
        )

    @property
    def potcar_path(self) -> Path:
        return Path(os.path.expanduser(self.potcar_dir))


@dataclass
class SearchConfiguration:
    """Complete search configuration."""
    system: SystemConfig = field(default_factory=SystemConfig)
    md: MDConfig = field(default_factory=MDConfig)
    search: BisectionConfig = field(default_factory=BisectionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchConfiguration':
        return cls(
            system=SystemConfig.from_dict(data.get('system') or {}),
            md=MDConfig.from_dict(data.get('md') or {}),
            search=BisectionConfig.from_dict(data.get('search') or {}),
            output=OutputConfig.from_dict(data.get('output') or {}),
            simulator=SimulatorConfig.from_dict(data.get('simulator') or {}),
        )

    def search_bounds(self, expected_volume: float) -> tuple:
        """Search interval centred on the expected volume."""
        half = self.search.volume_range
        lower = float(expected_volume) - half
        upper = float(expected_volume) + half
        if lower <= 0:
            raise ConfigurationError(
                f"Search range {lower:g} - {upper:g} has a non-positive lower bound; "
                f"increase the expected volume or reduce search.volume_range"
            )
        return lower, upper


class ConfigurationLoader:
    """YAML configuration file loader and validator."""

    SECTIONS = ('system', 'md', 'search', 'output', 'simulator')

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else None
        self.config_dir = self.config_path.parent if self.config_path else Path.cwd()

    def load_configuration(self) -> SearchConfiguration:
        """Load and validate configuration; defaults when no file is given."""
        if self.config_path is None:
            logger.info("No configuration file given; using defaults")
            raw_config: Dict[str, Any] = {}
        else:
            logger.info(f"Loading configuration from {self.config_path}")
            if not self.config_path.exists():
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            with open(self.config_path, 'r') as f:
                raw_config = yaml.safe_load(f) or {}

        self._validate_sections(raw_config)
        try:
            config = SearchConfiguration.from_dict(raw_config)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        if config.md.incar_template:
            config.md.incar_template = str(self.resolve_path(config.md.incar_template))

        self._validate_values(config)
        logger.info(
            f"Configuration loaded: {config.system.element} ({config.system.atoms} atoms), "
            f"tolerance={config.search.tolerance}, max_iterations={config.search.max_iterations}"
        )
        return config

    def resolve_path(self, file_name: str) -> Path:
        """Resolve a path relative to the configuration directory."""
        path = Path(os.path.expanduser(file_name))
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    def _validate_sections(self, config: Dict[str, Any]) -> None:
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        for key, value in config.items():
            if key not in self.SECTIONS:
                raise ConfigurationError(f"Unknown configuration section: {key}")
            if value is not None and not isinstance(value, dict):
                raise ConfigurationError(f"Section '{key}' must be a mapping")

    def _validate_values(self, config: SearchConfiguration) -> None:
        s = config.search
        if s.tolerance <= 0:
            raise ConfigurationError("search.tolerance must be positive")
        if s.max_iterations < 1:
            raise ConfigurationError("search.max_iterations must be at least 1")
        if s.volume_range <= 0:
            raise ConfigurationError("search.volume_range must be positive")
        if s.convergence_width <= 0:
            raise ConfigurationError("search.convergence_width must be positive")
        if s.rounding.resolution <= 0:
            raise ConfigurationError("search.rounding.resolution must be positive")
        if s.rounding.mode not in ROUNDING_MODES:
            raise ConfigurationError(
                f"search.rounding.mode must be one of {', '.join(ROUNDING_MODES)}, got '{s.rounding.mode}'"
            )
        if config.output.poll_attempts < 1:
            raise ConfigurationError("output.poll_attempts must be at least 1")
        if config.output.poll_interval < 0:
            raise ConfigurationError("output.poll_interval must not be negative")
        if len(config.md.kpoints) != 3:
            raise ConfigurationError("md.kpoints must have three entries")
        if config.system.atoms < 1:
            raise ConfigurationError("system.atoms must be positive")
        if not config.simulator.command:
            raise ConfigurationError("simulator.command must not be empty")
