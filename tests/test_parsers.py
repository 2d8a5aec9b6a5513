import pytest

from vpflow.core.errors import MissingOutputError
from vpflow.software.parsers import (
    OutputParser,
    parse_pressure,
    parse_temperature,
    pressure_samples,
    temperature_samples,
)

from conftest import NoSleep, outcar_text, oszicar_text


def test_parse_pressure_average():
    text = outcar_text([10.0, 20.5, -4.5])
    assert pressure_samples(text) == [10.0, 20.5, -4.5]
    assert parse_pressure(text) == pytest.approx(26.0 / 3)


def test_parse_pressure_unavailable():
    text = "  in kB      10.00    10.00    10.00     0.00     0.00     0.00\n total drift 0.0\n"
    assert parse_pressure(text) is None
    assert parse_pressure("") is None


def test_parse_pressure_ignores_other_records():
    text = "\n".join([
        "  external pressure =       12.00 kB  Pullay stress =        0.00 kB",
        "  total pressure  =  999.00 kB",
        "  external pressure =      -8.00 kB  Pullay stress =        0.00 kB",
    ])
    assert parse_pressure(text) == pytest.approx(2.0)


def test_parse_temperature_uses_value_after_marker():
    text = oszicar_text([2990.0, 3010.0, 3030.0])
    # the leading step numbers must not be mistaken for temperatures
    assert temperature_samples(text) == [2990.0, 3010.0, 3030.0]
    assert parse_temperature(text) == pytest.approx(3010.0)


def test_parse_temperature_unavailable():
    text = "DAV:   1    -0.40E+03   -0.40E+03   -0.11E+03  1280   0.2E+03\n"
    assert parse_temperature(text) is None


def test_parse_temperature_trailing_dot():
    assert parse_temperature("   1 T=  3012. E= -.40E+03\n   2 T=  2988. E= -.40E+03\n") == pytest.approx(3000.0)


def test_output_parser_returns_averages(tmp_path):
    (tmp_path / "OUTCAR").write_text(outcar_text([40.0, 60.0]))
    (tmp_path / "OSZICAR").write_text(oszicar_text([1000.0]))
    sleep = NoSleep()
    parsed = OutputParser(max_attempts=5, interval=2.0, sleep=sleep).parse(tmp_path / "OUTCAR", tmp_path / "OSZICAR")
    assert parsed.pressure == pytest.approx(50.0)
    assert parsed.temperature == pytest.approx(1000.0)
    assert parsed.pressure_available
    assert sleep.calls == []


def test_output_parser_no_records_is_not_an_error(tmp_path):
    (tmp_path / "OUTCAR").write_text("nothing useful\n")
    (tmp_path / "OSZICAR").write_text("nothing useful\n")
    parsed = OutputParser(sleep=NoSleep()).parse(tmp_path / "OUTCAR", tmp_path / "OSZICAR")
    assert parsed.pressure is None
    assert parsed.temperature is None
    assert not parsed.pressure_available


def test_output_parser_waits_for_late_files(tmp_path):
    outcar, oszicar = tmp_path / "OUTCAR", tmp_path / "OSZICAR"
    calls = []

    def sleep(seconds):
        calls.append(seconds)
        if len(calls) == 2:
            outcar.write_text(outcar_text([5.0]))
            oszicar.write_text(oszicar_text([300.0]))

    parsed = OutputParser(max_attempts=30, interval=2.0, sleep=sleep).parse(outcar, oszicar)
    assert calls == [2.0, 2.0]
    assert parsed.pressure == pytest.approx(5.0)


def test_output_parser_gives_up_after_budget(tmp_path):
    (tmp_path / "OUTCAR").write_text(outcar_text([5.0]))
    sleep = NoSleep()
    with pytest.raises(MissingOutputError) as exc:
        OutputParser(max_attempts=30, interval=2.0, sleep=sleep).parse(tmp_path / "OUTCAR", tmp_path / "OSZICAR")
    assert len(sleep.calls) == 30
    assert "OSZICAR" in str(exc.value)


def test_output_parser_rejects_empty_budget():
    with pytest.raises(ValueError):
        OutputParser(max_attempts=0)
