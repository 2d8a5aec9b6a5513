#!/usr/bin/env python3
"""
vpflow: search the volume that gives a target pressure at a temperature.

Usage:
  vpflow TEMPERATURE VOLUME PRESSURE     # e.g. vpflow 3000 3500 50

Runs VASP MD trials around VOLUME (A^3) and bisects until the average
pressure is within tolerance of PRESSURE (kB). Needs POSCAR in the work dir.

Exit status: 0 converged on tolerance, 3 converged on range width,
4 iteration budget spent, 1 failure, 2 usage error.
"""
from __future__ import annotations

import argparse
import math
import sys
import time
from pathlib import Path
from typing import List, Optional
import logging

from rich.console import Console
from rich.table import Table

from vpflow.core.configuration import ConfigurationLoader, SearchConfiguration
from vpflow.core.controller import BisectionController, SearchState, VolumeRounding
from vpflow.core.errors import SearchError
from vpflow.core.models import EXIT_FAILED, SearchMeta, SearchOutcome
from vpflow.core.result_log import ResultLog, csv_filename
from vpflow.core.runner import TrialRunner
from vpflow.core.template_engine import StructureProcessor
from vpflow.software import OutputParser, get_backend
from vpflow.utils.file_management import FileManager
from vpflow.utils.logging_config import setup_logging

DATA_DIR = "vpflow_data"

log = logging.getLogger("vpflow")


def non_negative_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got '{value}'")
    if n < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got '{value}'")
    return n


def finite_float(value: str) -> float:
    try:
        x = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got '{value}'")
    if not math.isfinite(x):
        raise argparse.ArgumentTypeError(f"expected a finite number, got '{value}'")
    return x


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vpflow",
        description="Bisection search for the volume that reaches a target pressure (VASP MD)",
        epilog="Example: vpflow 3000 3500 50  (50 kB at 3000 K around 3500 A^3)",
    )
    parser.add_argument("temperature", type=non_negative_int, help="Temperature in K")
    parser.add_argument("expected_volume", type=non_negative_int, help="Expected volume in A^3 (search centre)")
    parser.add_argument("target_pressure", type=finite_float, help="Target pressure in kB (may be negative)")
    parser.add_argument("--config", default=None, help="Search configuration YAML (defaults when omitted)")
    parser.add_argument("--work-dir", default=".", help="Directory holding POSCAR (default: current directory)")
    parser.add_argument("--software", default="vasp", choices=["vasp"], help="Simulator backend (default: vasp)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO")
    parser.add_argument("--dry-run", default=False, action="store_true",
                        help="Only stage inputs for the first candidate volume and exit")
    return parser


def print_banner(console: Console, config: SearchConfiguration, args: argparse.Namespace,
                 lower: float, upper: float) -> None:
    console.print("VASP Volume Binary Search")
    console.print("========================")
    console.print(f"Element: {config.system.element} ({config.system.atoms} atoms)")
    console.print(f"Temperature: {args.temperature} K")
    console.print(f"Expected volume: {args.expected_volume} A^3")
    console.print(f"Search range: {lower:g} - {upper:g} A^3")
    console.print(f"Target pressure: {args.target_pressure:g} kB (tolerance {config.search.tolerance:g} kB)")
    console.print("")


def render_summary(console: Console, outcome: SearchOutcome, target_pressure: float, csv_path: Path) -> None:
    table = Table(title=f"Search {outcome.label}")
    table.add_column("Iter", justify="right")
    table.add_column("Volume (A^3)", justify="right")
    table.add_column("Pressure (kB)", justify="right")
    table.add_column("dP (kB)", justify="right")
    table.add_column("T (K)", justify="right")
    for t in outcome.history:
        temp = "N/A" if t.temperature is None else f"{t.temperature:.2f}"
        table.add_row(
            str(t.iteration),
            StructureProcessor.format_volume(t.volume),
            f"{t.pressure:.2f}",
            f"{t.pressure - target_pressure:+.2f}",
            temp,
        )
    console.print(table)

    if outcome.final_volume is not None:
        vol = StructureProcessor.format_volume(outcome.final_volume)
        if outcome.converged:
            console.print(f"[green]Target volume: {vol} A^3 ({outcome.label})[/green]")
        else:
            console.print(f"[yellow]Best volume estimate: {vol} A^3; target pressure not reached within tolerance[/yellow]")
    if outcome.failure is not None:
        console.print(f"[red]Search failed ({outcome.failure.category}): {outcome.failure.message}[/red]")
    for a in outcome.anomalies:
        console.print(
            f"[yellow]Non-monotonic: {a.pressure_at_smaller:.2f} kB at {a.smaller_volume:g} A^3, "
            f"{a.pressure_at_larger:.2f} kB at {a.larger_volume:g} A^3[/yellow]"
        )
    console.print("")
    console.print("Results saved:")
    console.print(f"  {csv_path.name} - Volume-pressure data for all tested points")
    console.print("  OUTCAR_*A3, OSZICAR_*A3, INCAR_*A3 - Output files for each volume")
    console.print("  vasp_output_*.log - VASP execution logs")
    console.print("  results_*A3.log - Pressure/temperature analysis")


def dry_run(args: argparse.Namespace, console: Console, config: SearchConfiguration,
            backend, lower: float, upper: float) -> int:
    """Stage inputs for the first candidate only; no trial, no result files."""
    state = SearchState(
        lower_bound=lower,
        upper_bound=upper,
        target_pressure=args.target_pressure,
        tolerance=config.search.tolerance,
        max_iterations=config.search.max_iterations,
    )
    candidate = state.midpoint(VolumeRounding.from_config(config.search.rounding))
    try:
        FileManager.restore_reference(backend.reference_file, backend.structure_file)
        backend.prepare_inputs(candidate, args.temperature)
    except SearchError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return EXIT_FAILED
    console.print(f"Prepared inputs for {StructureProcessor.format_volume(candidate)} A^3 (dry-run)")
    return 0


def run_search(args: argparse.Namespace, console: Console) -> int:
    work_dir = Path(args.work_dir).resolve()
    setup_logging(level=args.log_level, log_file=work_dir / DATA_DIR / "vpflow.log")
    try:
        config = ConfigurationLoader(Path(args.config).resolve() if args.config else None).load_configuration()
        lower, upper = config.search_bounds(args.expected_volume)
        backend = get_backend(args.software, work_dir, config)
        print_banner(console, config, args, lower, upper)
        FileManager.stage_reference(backend.structure_file, backend.reference_file)
    except SearchError as e:
        log.error("Search setup failed: %s", e)
        console.print(f"[red]ERROR: {e}[/red]")
        return EXIT_FAILED

    if args.dry_run:
        return dry_run(args, console, config, backend, lower, upper)

    csv_path = work_dir / csv_filename(args.temperature, args.target_pressure)
    now = time.time()
    meta = SearchMeta(
        temperature=args.temperature,
        target_pressure=args.target_pressure,
        expected_volume=float(args.expected_volume),
        lower_bound=lower,
        upper_bound=upper,
        tolerance=config.search.tolerance,
        convergence_width=config.search.convergence_width,
        max_iterations=config.search.max_iterations,
        csv_file=str(csv_path),
        work_dir=str(work_dir),
        created_at=now,
        last_update=now,
    )
    result_log = ResultLog(csv_path, record_path=work_dir / DATA_DIR / "search.json", meta=meta)
    parser = OutputParser(max_attempts=config.output.poll_attempts, interval=config.output.poll_interval)
    runner = TrialRunner(backend, parser, result_log)
    controller = BisectionController.from_config(
        runner, config, args.temperature, args.target_pressure, lower, upper
    )

    outcome = controller.run()
    result_log.write_record(outcome)
    log.info("Search finished: %s, final volume %s", outcome.label, outcome.final_volume)
    render_summary(console, outcome, args.target_pressure, csv_path)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return int(run_search(args, Console()))


if __name__ == "__main__":
    sys.exit(main())
