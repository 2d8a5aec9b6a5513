import sys

import pytest

from vpflow.core.configuration import SearchConfiguration
from vpflow.core.errors import PreconditionError
from vpflow.software import VaspBackend, get_backend


@pytest.fixture
def potcar_dir(tmp_path_factory):
    root = tmp_path_factory.mktemp("POTs")
    (root / "Mg").mkdir()
    (root / "Mg" / "POTCAR").write_text("PAW_PBE Mg 13Apr2007\n")
    return root


def make_config(potcar_dir, command=None):
    data = {"simulator": {"potcar_dir": str(potcar_dir)}}
    if command is not None:
        data["simulator"]["command"] = command
    return SearchConfiguration.from_dict(data)


def test_prepare_inputs_writes_all_inputs(work_dir, potcar_dir):
    backend = VaspBackend(work_dir, make_config(potcar_dir))
    backend.prepare_inputs(3500.0, 3000)

    lines = (work_dir / "POSCAR").read_text().split("\n")
    assert lines[1] == "   -3500"
    assert lines[0] == "Mg128"
    incar = (work_dir / "INCAR").read_text()
    assert "TEBEG = 3000" in incar
    assert "SYSTEM = Mg, 128 atoms" in incar
    assert (work_dir / "KPOINTS").read_text().splitlines()[3] == "1 1 1"
    assert (work_dir / "POTCAR").read_text() == "PAW_PBE Mg 13Apr2007\n"


def test_prepare_inputs_is_idempotent(work_dir, potcar_dir):
    backend = VaspBackend(work_dir, make_config(potcar_dir))
    backend.prepare_inputs(3350.0, 3000)
    first = {n: (work_dir / n).read_text() for n in ("POSCAR", "INCAR", "KPOINTS", "POTCAR")}
    backend.prepare_inputs(3350.0, 3000)
    second = {n: (work_dir / n).read_text() for n in ("POSCAR", "INCAR", "KPOINTS", "POTCAR")}
    assert first == second


def test_prepare_inputs_starts_from_reference(work_dir, potcar_dir):
    backend = VaspBackend(work_dir, make_config(potcar_dir))
    backend.prepare_inputs(3500.0, 3000)
    backend.prepare_inputs(3275.5, 3000)
    assert (work_dir / "POSCAR").read_text().split("\n")[1] == "   -3275.5"


def test_existing_potcar_is_kept(work_dir, tmp_path_factory):
    (work_dir / "POTCAR").write_text("custom\n")
    backend = VaspBackend(work_dir, make_config(tmp_path_factory.mktemp("empty")))
    backend.prepare_inputs(3500.0, 3000)
    assert (work_dir / "POTCAR").read_text() == "custom\n"


def test_missing_potcar_is_a_precondition_error(work_dir, tmp_path_factory):
    backend = VaspBackend(work_dir, make_config(tmp_path_factory.mktemp("empty")))
    with pytest.raises(PreconditionError, match="POTCAR"):
        backend.prepare_inputs(3500.0, 3000)


def test_missing_reference_is_a_precondition_error(work_dir, potcar_dir):
    (work_dir / "POSCAR.original").unlink()
    backend = VaspBackend(work_dir, make_config(potcar_dir))
    with pytest.raises(PreconditionError):
        backend.prepare_inputs(3500.0, 3000)


def test_run_requires_prepared_inputs(work_dir, potcar_dir):
    backend = VaspBackend(work_dir, make_config(potcar_dir))
    with pytest.raises(PreconditionError):
        backend.run_simulator()


def test_build_command():
    assert VaspBackend(".", SearchConfiguration()).build_command() == ["srun", "vasp_std"]
    config = SearchConfiguration.from_dict({"simulator": {"command": ["mpirun", "-np", 4, "vasp_std"]}})
    assert VaspBackend(".", config).build_command() == ["mpirun", "-np", "4", "vasp_std"]


def test_run_simulator_success(work_dir, potcar_dir):
    script = "open('OUTCAR', 'w').write('x'); open('OSZICAR', 'w').write('y'); print('done')"
    backend = VaspBackend(work_dir, make_config(potcar_dir, [sys.executable, "-c", script]))
    (work_dir / "OUTCAR").write_text("stale")
    backend.prepare_inputs(3500.0, 3000)
    run = backend.run_simulator()
    assert run.succeeded
    assert run.artifacts.primary == work_dir / "OUTCAR"
    assert (work_dir / "OUTCAR").read_text() == "x"
    assert (work_dir / "vasp_output_3500.log").read_text().strip() == "done"
    assert set(run.artifacts.archive_sources()) == {"OUTCAR", "OSZICAR", "INCAR"}


def test_run_simulator_nonzero_exit(work_dir, potcar_dir):
    backend = VaspBackend(work_dir, make_config(potcar_dir, [sys.executable, "-c", "raise SystemExit(2)"]))
    (work_dir / "OUTCAR").write_text("stale")
    backend.prepare_inputs(3500.0, 3000)
    run = backend.run_simulator()
    assert run.exit_code == 2
    assert not run.succeeded
    # outputs of an earlier trial are never mistaken for this one
    assert not (work_dir / "OUTCAR").exists()


def test_run_simulator_missing_executable(work_dir, potcar_dir):
    backend = VaspBackend(work_dir, make_config(potcar_dir, "definitely-not-a-vasp-binary-xyz"))
    backend.prepare_inputs(3500.0, 3000)
    assert backend.run_simulator().exit_code == 127


def test_env_is_passed(work_dir, potcar_dir):
    script = "import os; open('OUTCAR', 'w').write(os.environ['VPFLOW_TEST_MARK'])"
    config = make_config(potcar_dir, [sys.executable, "-c", script])
    config.simulator.env = {"VPFLOW_TEST_MARK": "42"}
    backend = VaspBackend(work_dir, config)
    backend.prepare_inputs(3500.0, 3000)
    assert backend.run_simulator().succeeded
    assert (work_dir / "OUTCAR").read_text() == "42"


def test_get_backend(work_dir):
    assert isinstance(get_backend("VASP", work_dir, SearchConfiguration()), VaspBackend)
    with pytest.raises(ValueError):
        get_backend("qe", work_dir, SearchConfiguration())
