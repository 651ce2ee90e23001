import pytest

from measure_tracker.services.measure_import.validator import (
    find_duplicates,
    get_validation_summary,
    validate_row,
    validate_rows,
)


def test_valid_row_has_no_issues(make_row):
    assert validate_row(make_row()) == []


@pytest.mark.parametrize(
    ("overrides", "field", "message"),
    [
        ({"member_name": " "}, "memberName", "Member name is required"),
        ({"member_dob": None}, "memberDob", "Date of birth is required"),
        ({"member_dob": "03/15/1960"}, "memberDob", "Invalid date of birth format"),
        ({"member_dob": "1960-02-30"}, "memberDob", "Invalid date of birth format"),
        ({"request_type": ""}, "requestType", "Request type is required"),
        ({"request_type": "Wellness"}, "requestType", "Invalid request type: Wellness"),
        ({"quality_measure": ""}, "qualityMeasure", "Quality measure is required"),
    ],
)
def test_row_errors(make_row, overrides, field, message):
    issues = validate_row(make_row(**overrides))
    errors = [issue for issue in issues if issue.severity == "error"]

    assert [(issue.field, issue.message) for issue in errors] == [(field, message)]


def test_catalog_mismatch_is_a_warning(make_row):
    issues = validate_row(make_row(request_type="Screening", quality_measure="Diabetic Eye Exam"))

    assert [(i.field, i.severity, i.message) for i in issues] == [
        (
            "qualityMeasure",
            "warning",
            'Invalid quality measure "Diabetic Eye Exam" for request type "Screening"',
        )
    ]


def test_missing_status_and_phone_are_warnings(make_row):
    issues = validate_row(make_row(measure_status=None, member_telephone=None))

    assert [(i.field, i.severity) for i in issues] == [
        ("measureStatus", "warning"),
        ("memberTelephone", "warning"),
    ]
    assert issues[0].message == 'Measure status is empty - will be set to "Not Addressed"'


def test_validate_rows_dedupes_per_source_row_and_field(make_row):
    rows = [
        make_row(member_telephone=None, quality_measure="Diabetic Eye Exam"),
        make_row(member_telephone=None, quality_measure="Vaccination"),
    ]

    result = validate_rows(rows)

    assert result.valid
    assert [(w.row_index, w.field) for w in result.warnings] == [(0, "memberTelephone")]
    assert result.stats.warning_rows == 1


def test_validate_rows_reports_in_file_duplicates(make_row):
    rows = [
        make_row(source_row_index=0),
        make_row(source_row_index=3),
        make_row(source_row_index=5),
        make_row(source_row_index=6, quality_measure="Vaccination"),
    ]

    result = validate_rows(rows)

    assert len(result.duplicates) == 1
    assert result.duplicates[0].rows == [0, 3, 5]
    assert result.duplicates[0].patient == "Doe, Jane"
    assert result.duplicates[0].measure == "Diabetic Eye Exam"
    duplicate_warnings = [w for w in result.warnings if w.field == "duplicate"]
    assert [w.row_index for w in duplicate_warnings] == [3, 5]
    assert duplicate_warnings[0].message == "Duplicate entry: same patient + measure combination"
    assert result.stats.duplicate_groups == 1


def test_find_duplicates_ignores_repeats_from_same_source_row(make_row):
    rows = [make_row(source_row_index=2), make_row(source_row_index=2)]

    assert find_duplicates(rows) == []


def test_validate_rows_stats(make_row):
    rows = [
        make_row(source_row_index=0),
        make_row(source_row_index=1, member_dob=None),
        make_row(source_row_index=2, member_telephone=None, quality_measure="Vaccination"),
    ]

    result = validate_rows(rows)

    assert not result.valid
    assert result.stats.total_rows == 3
    assert result.stats.valid_rows == 2
    assert result.stats.error_rows == 1
    assert result.stats.warning_rows == 1


def test_validation_summary_text(make_row):
    passed = validate_rows([make_row()])
    assert get_validation_summary(passed) == "Validation PASSED\nTotal rows: 1\nValid rows: 1"

    failed = validate_rows([make_row(member_dob=None, member_telephone=None)])
    assert get_validation_summary(failed).splitlines() == [
        "Validation FAILED",
        "Total rows: 1",
        "Valid rows: 0",
        "Rows with errors: 1",
        "Rows with warnings: 1",
    ]
