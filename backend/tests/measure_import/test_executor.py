from datetime import date, datetime, timezone

from sqlalchemy import select

from measure_tracker.models.patient import Patient
from measure_tracker.models.patient_measure import PatientMeasure
from measure_tracker.models.user import User
from measure_tracker.services.measure_import.diff_calculator import calculate_diff, detect_reassignments
from measure_tracker.services.measure_import.executor import execute_import
from measure_tracker.services.measure_import.existing_records import load_existing_records
from measure_tracker.services.measure_import.types import ImportMode
from measure_tracker.services.measure_import.validator import validate_rows

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _seed_patient(session, name="Doe, Jane", dob=date(1960, 3, 15), owner_id=None, measures=()):
    patient = Patient(member_name=name, member_dob=dob, owner_id=owner_id)
    session.add(patient)
    session.flush()
    for order, (quality_measure, status) in enumerate(measures):
        session.add(
            PatientMeasure(
                patient_id=patient.id,
                request_type="Quality",
                quality_measure=quality_measure,
                measure_status=status,
                row_order=order,
            )
        )
    session.commit()
    return patient


def _preview(session, store, rows, mode=ImportMode.merge, target_owner_id=None):
    existing = load_existing_records(session)
    preview_id = store.store(
        system_id="hill",
        mode=mode,
        diff=calculate_diff(rows, mode, existing, now=NOW),
        rows=rows,
        validation=validate_rows(rows),
        reassignments=detect_reassignments(rows, existing, target_owner_id),
        target_owner_id=target_owner_id,
    )
    return store.get(preview_id)


def _measures(session):
    return session.scalars(select(PatientMeasure).order_by(PatientMeasure.row_order)).all()


def test_merge_inserts_new_patient_and_measure(session, store, make_row):
    entry = _preview(session, store, [make_row(status_date="2025-01-10")])

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.success
    assert result.stats.inserted == 1
    patient = session.scalar(select(Patient))
    assert patient.member_name == "Doe, Jane"
    assert patient.member_dob == date(1960, 3, 15)
    measure = _measures(session)[0]
    assert measure.measure_status == "Diabetic eye exam completed"
    assert measure.status_date == date(2025, 1, 10)
    assert [outcome.status for outcome in result.outcomes] == ["success"]


def test_merge_updates_and_skips(session, store, make_row):
    _seed_patient(
        session,
        measures=[("Diabetic Eye Exam", "Not Addressed"), ("Vaccination", "Vaccination completed")],
    )
    rows = [
        make_row(status_date=None),
        make_row(quality_measure="Vaccination", measure_status="Vaccination completed"),
    ]
    entry = _preview(session, store, rows)

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.stats.updated == 1
    assert result.stats.skipped == 1
    eye = session.scalar(select(PatientMeasure).where(PatientMeasure.quality_measure == "Diabetic Eye Exam"))
    assert eye.measure_status == "Diabetic eye exam completed"
    assert eye.status_date == NOW.date()


def test_merge_both_keeps_old_row_and_flags_duplicates(session, store, make_row):
    _seed_patient(session, measures=[("Diabetic Eye Exam", "Diabetic eye exam completed")])
    entry = _preview(session, store, [make_row(measure_status="Not Addressed")])

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.stats.both_kept == 1
    measures = _measures(session)
    assert [m.measure_status for m in measures] == ["Diabetic eye exam completed", "Not Addressed"]
    assert [m.row_order for m in measures] == [0, 1]
    assert all(m.is_duplicate for m in measures)


def test_replace_deletes_then_inserts(session, store, make_row):
    _seed_patient(session, measures=[("Diabetic Eye Exam", "Not Addressed"), ("Vaccination", "Not Addressed")])
    entry = _preview(session, store, [make_row()], mode=ImportMode.replace)

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.stats.deleted == 2
    assert result.stats.inserted == 1
    assert [o.action.value for o in result.outcomes] == ["DELETE", "DELETE", "INSERT"]
    measures = _measures(session)
    assert [(m.quality_measure, m.measure_status) for m in measures] == [
        ("Diabetic Eye Exam", "Diabetic eye exam completed")
    ]
    assert session.scalar(select(Patient)).id == measures[0].patient_id


def test_insert_without_dob_is_an_error_and_batch_continues(session, store, make_row):
    rows = [make_row(member_dob=None), make_row(member_name="Roe, Rick")]
    entry = _preview(session, store, rows)

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert not result.success
    assert [o.status for o in result.outcomes] == ["error", "success"]
    assert "DOB is required" in result.errors[0].message
    assert result.stats.inserted == 1


def test_insert_conflicts_when_measure_appeared_after_preview(session, store, make_row):
    entry = _preview(session, store, [make_row()])
    _seed_patient(session, measures=[("Diabetic Eye Exam", "Not Addressed")])

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.stats.conflicts == 1
    assert result.outcomes[0].status == "conflict"
    assert len(_measures(session)) == 1


def test_update_conflicts_when_measure_was_removed(session, store, make_row):
    patient = _seed_patient(session, measures=[("Diabetic Eye Exam", "Not Addressed")])
    entry = _preview(session, store, [make_row()])
    session.delete(session.scalar(select(PatientMeasure).where(PatientMeasure.patient_id == patient.id)))
    session.commit()

    result = execute_import(session, entry, now=NOW)

    assert result.outcomes[0].status == "conflict"
    assert result.stats.updated == 0
    assert not result.success


def test_repeated_rows_in_one_upload_are_both_inserted(session, store, make_row):
    rows = [make_row(source_row_index=0), make_row(source_row_index=1)]
    entry = _preview(session, store, rows)

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.stats.inserted == 2
    assert all(m.is_duplicate for m in _measures(session))


def test_new_patients_get_target_owner_and_reassignments_apply(session, store, make_row):
    session.add_all([User(email="a@example.com", display_name="Dr. A"), User(email="b@example.com", display_name="Dr. B")])
    session.commit()
    first, second = session.scalars(select(User).order_by(User.id)).all()
    _seed_patient(session, name="Roe, Rick", owner_id=first.id, measures=[("Vaccination", "Not Addressed")])

    rows = [make_row(), make_row(member_name="Roe, Rick", quality_measure="Vaccination", measure_status="Vaccination completed")]
    entry = _preview(session, store, rows, target_owner_id=second.id)

    result = execute_import(session, entry, now=NOW)
    session.commit()

    assert result.stats.reassigned == 1
    owners = {p.member_name: p.owner_id for p in session.scalars(select(Patient)).all()}
    assert owners == {"Doe, Jane": second.id, "Roe, Rick": second.id}


def test_execution_result_as_dict(session, store, make_row):
    entry = _preview(session, store, [make_row()])

    payload = execute_import(session, entry, now=NOW).as_dict()

    assert payload["mode"] == "merge"
    assert payload["stats"]["inserted"] == 1
    assert payload["errors"] == []
    assert payload["outcomes"][0]["action"] == "INSERT"
