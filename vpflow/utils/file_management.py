"""
File management utilities for the search working directory.
"""

import shutil
import json
from pathlib import Path
from typing import Dict, Any
import logging

from vpflow.core.errors import PreconditionError

logger = logging.getLogger(__name__)


class FileManager:
    """Utilities for staging and archiving trial files."""

    @staticmethod
    def stage_reference(structure: Path, reference: Path) -> Path:
        """Save a pristine copy of the starting structure next to it.

        Any earlier reference is overwritten; only the scale line of the
        structure is ever rewritten, so a leftover POSCAR is still valid.
        """
        structure, reference = Path(structure), Path(reference)
        if not structure.exists():
            raise PreconditionError(f"{structure.name} file not found in {structure.parent}")
        shutil.copy2(structure, reference)
        logger.info(f"Saved reference structure {reference}")
        return reference

    @staticmethod
    def restore_reference(reference: Path, structure: Path) -> None:
        """Overwrite the working structure with the pristine reference."""
        reference, structure = Path(reference), Path(structure)
        if not reference.exists():
            raise PreconditionError(f"Original structure not found: {reference}")
        shutil.copyfile(reference, structure)

    @staticmethod
    def archive_labeled(files: Dict[str, Path], dest_dir: Path, label: str) -> Dict[str, Path]:
        """Copy each file to '<name>_<label>' in dest_dir; missing files are skipped."""
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        archived = {}
        for name, source in files.items():
            source = Path(source)
            if not source.is_file():
                logger.warning(f"Cannot archive {source}: file missing")
                continue
            target = dest_dir / f"{name}_{label}"
            shutil.copy2(source, target)
            archived[name] = target
        return archived

    @staticmethod
    def write_json_atomic(data: Dict[str, Any], file_path: Path) -> None:
        """Write JSON through a temporary file so readers never see a partial file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = file_path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        tmp.replace(file_path)
