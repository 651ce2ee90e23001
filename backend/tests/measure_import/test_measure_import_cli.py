import json

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from measure_tracker.models.patient_measure import PatientMeasure
from measure_tracker.scripts import measure_import as measure_import_script

CSV_TEXT = (
    "Patient,DOB,Phone,Eye Exam Q1,Eye Exam Q2\n"
    "\"Doe, Jane\",03/15/1960,5551234567,01/10/2025,Compliant\n"
)


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    monkeypatch.setattr(measure_import_script, "SessionLocal", factory)
    return factory


@pytest.fixture
def csv_path(tmp_path):
    path = tmp_path / "hill.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return path


def _count_measures(factory):
    with factory() as session:
        return len(session.scalars(select(PatientMeasure)).all())


def test_list_systems(capsys):
    assert measure_import_script.main(["--list-systems"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["systems"] == [{"id": "hill", "is_default": True, "name": "Hill Healthcare"}]


def test_dry_run_does_not_write(session_factory, csv_path, capsys):
    assert measure_import_script.main(["--csv", str(csv_path), "--system", "hill"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["mode"] == "merge"
    assert payload["file_name"] == "hill.csv"
    assert payload["diff"]["summary"]["inserts"] == 1
    assert payload["validation"]["valid"] is True
    assert "execution" not in payload
    assert _count_measures(session_factory) == 0


def test_execute_writes_and_stats_out(session_factory, csv_path, tmp_path, capsys):
    stats_path = tmp_path / "stats.json"

    rc = measure_import_script.main(
        ["--csv", str(csv_path), "--execute", "--stats-out", str(stats_path)]
    )

    assert rc == 0
    capsys.readouterr()
    stats = json.loads(stats_path.read_text(encoding="utf-8"))
    assert stats["execution"]["success"] is True
    assert stats["execution"]["stats"]["inserted"] == 1
    assert _count_measures(session_factory) == 1


def test_execute_refused_when_validation_fails(session_factory, tmp_path, capsys):
    path = tmp_path / "bad.csv"
    path.write_text("Patient,DOB,Eye Exam Q2\n\"Doe, Jane\",,Compliant\n", encoding="utf-8")

    assert measure_import_script.main(["--csv", str(path), "--execute"]) == 2

    assert "Refusing to execute" in capsys.readouterr().out
    assert _count_measures(session_factory) == 0


def test_report_prints_text_reports(session_factory, csv_path, capsys):
    assert measure_import_script.main(["--csv", str(csv_path), "--report"]) == 0

    out = capsys.readouterr().out
    assert "IMPORT VALIDATION REPORT" in out
    assert "Import Mode: MERGE" in out


def test_missing_csv_file(tmp_path, capsys):
    rc = measure_import_script.main(["--csv", str(tmp_path / "missing.csv")])

    assert rc == 2
    assert "Unable to read --csv file" in capsys.readouterr().out


def test_unknown_system(session_factory, csv_path, capsys):
    assert measure_import_script.main(["--csv", str(csv_path), "--system", "nowhere"]) == 2

    assert "System not found: nowhere" in capsys.readouterr().out


def test_csv_required_without_list_systems():
    with pytest.raises(SystemExit):
        measure_import_script.main([])


def test_stats_out_requires_existing_directory(session_factory, csv_path, tmp_path):
    with pytest.raises(RuntimeError, match="Stats output directory does not exist"):
        measure_import_script.main(
            ["--csv", str(csv_path), "--stats-out", str(tmp_path / "nope" / "stats.json")]
        )
