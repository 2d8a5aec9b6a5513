"""
Template processing for VASP MD inputs.

Builds INCAR and KPOINTS content (from built-in templates or a user template
with {placeholder} substitution) and rewrites the POSCAR scale line so the
cell takes a requested volume.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .configuration import SearchConfiguration
from .errors import PreconditionError

logger = logging.getLogger(__name__)

BOLTZMANN_EV = 8.617e-5

DEFAULT_INCAR_TEMPLATE = """SYSTEM = {element}, {atoms} atoms
MAXMIX = 60; NPAR = 4; LCHARG = .FALSE.; LWAVE = .FALSE.; NWRITE = 0
IALGO = 48; ISYM = 0; IBRION = 0; NBLOCK = {nblock}; KBLOCK = 1
SMASS = {smass}; POTIM = {potim}; ISIF = 1
TEBEG = {temperature}; NSW = {steps}
"""

KPOINTS_TEMPLATE = """K-Points
0
Monkhorst Pack
{mesh}
0 0 0
"""


class TemplateProcessor:
    """
    INCAR/KPOINTS generator with parameter substitution.

    A configured INCAR template file replaces the built-in one; both see the
    same placeholders: element, atoms, temperature, electronic_temperature,
    steps, nblock, potim, smass.
    """

    def __init__(self, config: SearchConfiguration):
        self.config = config
        self._incar_template: Optional[str] = None

    def incar_content(self, temperature: int) -> str:
        substitutions = {
            "element": self.config.system.element,
            "atoms": self.config.system.atoms,
            "temperature": temperature,
            "electronic_temperature": f"{temperature * BOLTZMANN_EV:.6f}",
            "steps": self.config.md.steps,
            "nblock": self.config.md.nblock,
            "potim": self.config.md.potim,
            "smass": self.config.md.smass,
        }
        return self._substitute_parameters(self._load_incar_template(), substitutions)

    def kpoints_content(self) -> str:
        mesh = " ".join(str(k) for k in self.config.md.kpoints)
        return self._substitute_parameters(KPOINTS_TEMPLATE, {"mesh": mesh})

    def _load_incar_template(self) -> str:
        if self._incar_template is None:
            template_file = self.config.md.incar_template
            if template_file:
                template_path = Path(template_file)
                if not template_path.exists():
                    raise PreconditionError(f"INCAR template not found: {template_path}")
                self._incar_template = template_path.read_text()
            else:
                self._incar_template = DEFAULT_INCAR_TEMPLATE
        return self._incar_template

    def _substitute_parameters(self, content: str, substitutions: Dict[str, Any]) -> str:
        """Perform parameter substitutions in template content."""
        for key, value in substitutions.items():
            placeholder = f"{{{key}}}"
            content = content.replace(placeholder, str(value))

        return content


class StructureProcessor:
    """POSCAR handling: the scale line (line 2) holds -V to request volume V."""

    @staticmethod
    def format_volume(volume: float) -> str:
        """Volume label used in file names and the POSCAR scale line.

        Shortest round-tripping form, so the label always parses back to
        exactly the volume that was requested.
        """
        volume = float(volume)
        if volume.is_integer():
            return str(int(volume))
        return repr(volume)

    def set_volume(self, poscar_content: str, volume: float) -> str:
        """Return POSCAR content whose scale line requests the given volume."""
        if volume <= 0:
            raise ValueError(f"Volume must be positive, got {volume}")
        lines = poscar_content.split('\n')
        if len(lines) < 2:
            raise PreconditionError("Invalid POSCAR format: missing scale line")
        lines[1] = f"   -{self.format_volume(volume)}"
        return '\n'.join(lines)

    def write_volume(self, reference: Path, target: Path, volume: float) -> None:
        """Rebuild target from the pristine reference with the requested volume."""
        if not reference.exists():
            raise PreconditionError(f"Reference structure not found: {reference}")
        target.write_text(self.set_volume(reference.read_text(), volume))
        logger.debug(f"Volume set to {self.format_volume(volume)} A^3 in {target}")
