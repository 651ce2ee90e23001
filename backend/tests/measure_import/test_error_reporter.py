from measure_tracker.services.measure_import.error_reporter import (
    format_report_as_text,
    generate_error_report,
    get_condensed_report,
)
from measure_tracker.services.measure_import.validator import validate_rows


def _report(rows):
    return generate_error_report(validate_rows(rows), rows)


def test_success_summary(make_row):
    report = _report([make_row(), make_row(quality_measure="Vaccination")])

    assert report.summary.status == "success"
    assert report.summary.message == "All 2 rows passed validation."
    assert report.summary.can_proceed is True


def test_warning_summary_can_proceed(make_row):
    report = _report([make_row(member_telephone=None)])

    assert report.summary.status == "warning"
    assert report.summary.message == "1 rows validated with 1 warning(s). Import can proceed."
    assert report.summary.can_proceed is True


def test_error_summary_blocks_import(make_row):
    report = _report([make_row(member_dob=None), make_row(source_row_index=1, request_type="Bogus")])

    assert report.summary.status == "error"
    assert report.summary.message == (
        "Validation failed: 2 error(s) in 2 row(s). Please fix errors before importing."
    )
    assert report.summary.can_proceed is False
    assert report.summary.error_count == 2


def test_errors_by_field_keeps_five_samples(make_row):
    rows = [make_row(source_row_index=i, member_telephone=None, quality_measure=f"M{i}") for i in range(7)]

    report = _report(rows)

    phone = report.errors_by_field["memberTelephone"]
    assert phone.warning_count == 7
    assert len(phone.sample_errors) == 5


def test_errors_by_row_groups_issues(make_row):
    rows = [make_row(source_row_index=4, member_dob=None, member_telephone=None)]

    report = _report(rows)

    row = report.errors_by_row[4]
    assert row.patient_name == "Doe, Jane"
    assert [e.field for e in row.errors] == ["memberDob"]
    assert [w.field for w in row.warnings] == ["memberTelephone"]


def test_duplicate_report_counts_extra_rows(make_row):
    rows = [make_row(source_row_index=i) for i in (0, 1, 2)]
    rows += [make_row(source_row_index=i, quality_measure="Vaccination") for i in (3, 4)]

    report = _report(rows)

    assert report.duplicate_report.total_groups == 2
    assert report.duplicate_report.total_duplicate_rows == 3


def test_format_report_as_text_uses_one_based_rows(make_row):
    rows = [make_row(source_row_index=0), make_row(source_row_index=1, member_dob=None)]

    text = format_report_as_text(_report(rows))
    lines = text.splitlines()

    assert lines[0] == "=" * 60
    assert lines[1] == "IMPORT VALIDATION REPORT"
    assert "Status: ERROR" in lines
    assert "Can Proceed: No" in lines
    assert "  - Row 2: Date of birth is required" in lines
    assert lines[-1] == "=" * 60


def test_format_report_lists_duplicates(make_row):
    rows = [make_row(source_row_index=0), make_row(source_row_index=2)]

    text = format_report_as_text(_report(rows))

    assert "DUPLICATE ROWS" in text
    assert "  Rows: 1, 3" in text


def test_condensed_report_limits(make_row):
    rows = []
    for i in range(12):
        rows.append(make_row(source_row_index=i, member_dob=None, quality_measure=f"M{i}"))
    rows += [make_row(source_row_index=20 + i, member_name=f"P{i}") for i in range(7)]
    rows += [make_row(source_row_index=30 + i, member_name=f"P{i}") for i in range(7)]

    condensed = get_condensed_report(_report(rows))

    assert len(condensed.top_errors) == 5
    assert condensed.duplicates.count == 7
    assert len(condensed.duplicates.groups) == 5
    assert condensed.summary.can_proceed is False
