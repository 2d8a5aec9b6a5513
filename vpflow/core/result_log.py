"""
Append-only record of tested volumes and their observed pressures.

The CSV (one row per accepted trial) is the tabular artifact of a search;
search.json is a full snapshot rewritten after every trial.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from .models import Anomaly, SearchMeta, SearchOutcome, SearchRecord, TrialResult
from .template_engine import StructureProcessor
from vpflow.utils.file_management import FileManager

logger = logging.getLogger(__name__)

CSV_HEADER = "Volume,Pressure"


def csv_filename(temperature: int, target_pressure: float) -> str:
    """VP_<temperature>_<target>.csv, e.g. VP_3000_50.csv."""
    return f"VP_{temperature}_{StructureProcessor.format_volume(target_pressure)}.csv"


class ResultLog:
    def __init__(self, csv_path: Path, record_path: Optional[Path] = None, meta: Optional[SearchMeta] = None):
        self.csv_path = Path(csv_path)
        self.record_path = Path(record_path) if record_path else None
        self.meta = meta
        self._entries: List[TrialResult] = []

        self.csv_path.parent.mkdir(parents=True, exist_ok=True)
        self.csv_path.write_text(CSV_HEADER + "\n")
        logger.info(f"Created CSV log file: {self.csv_path}")

    @property
    def entries(self) -> Tuple[TrialResult, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, trial: TrialResult) -> None:
        if not trial.pressure_available:
            raise ValueError("only trials with an available pressure are logged")
        self._entries.append(trial)
        volume = StructureProcessor.format_volume(trial.volume)
        with open(self.csv_path, "a") as fh:
            fh.write(f"{volume},{trial.pressure:.2f}\n")
        logger.info(f"Logged to CSV: Volume={volume}, Pressure={trial.pressure:.2f}")
        self.write_record()

    def anomalies(self) -> List[Anomaly]:
        """Adjacent (by volume) trials where pressure rises with volume."""
        if len(self._entries) < 2:
            return []
        vols = np.array([t.volume for t in self._entries], dtype=float)
        press = np.array([t.pressure for t in self._entries], dtype=float)
        order = np.argsort(vols, kind="stable")
        vols, press = vols[order], press[order]
        found = []
        for i in np.nonzero((np.diff(press) > 0) & (np.diff(vols) > 0))[0]:
            found.append(Anomaly(
                smaller_volume=float(vols[i]),
                larger_volume=float(vols[i + 1]),
                pressure_at_smaller=float(press[i]),
                pressure_at_larger=float(press[i + 1]),
            ))
        return found

    def write_record(self, outcome: Optional[SearchOutcome] = None) -> None:
        """Persist search.json (atomic) when a record path and meta are set."""
        if self.record_path is None or self.meta is None:
            return
        self.meta.last_update = time.time()
        record = SearchRecord(meta=self.meta, trials=list(self._entries), outcome=outcome)
        FileManager.write_json_atomic(record.model_dump(mode="json"), self.record_path)
