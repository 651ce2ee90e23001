from __future__ import annotations

import argparse
import json
import os
import tempfile
from pathlib import Path

from measure_tracker.db.session import SessionLocal
from measure_tracker.services.measure_import.config_loader import list_systems
from measure_tracker.services.measure_import.csv_source import CsvImportSource
from measure_tracker.services.measure_import.diff_calculator import get_diff_summary_text
from measure_tracker.services.measure_import.errors import MeasureImportError
from measure_tracker.services.measure_import.error_reporter import (
    format_report_as_text,
    generate_error_report,
)
from measure_tracker.services.measure_import.executor import execute_import
from measure_tracker.services.measure_import.pipeline import build_preview
from measure_tracker.services.measure_import.preview_store import PreviewEntry, PreviewStore
from measure_tracker.services.measure_import.types import ImportMode


def _write_stats_file(path: str, payload: dict[str, object]) -> None:
    target = Path(path)
    parent = target.parent
    if parent and not parent.exists():
        raise RuntimeError(f"Stats output directory does not exist: {parent}")
    data = json.dumps(payload, indent=2, sort_keys=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        delete=False,
        dir=str(parent) if parent else None,
    ) as handle:
        handle.write(data)
        handle.write("\n")
        tmp_path = handle.name
    os.replace(tmp_path, target)


def _preview_payload(entry: PreviewEntry) -> dict[str, object]:
    mapping = entry.mapping
    return {
        "system_id": entry.system_id,
        "mode": entry.mode.value,
        "file_name": entry.file_name,
        "can_proceed": entry.can_proceed,
        "blocking_issues": list(entry.blocking_issues),
        "data_start_row": entry.data_start_row,
        "mapping": {
            "stats": mapping.stats.model_dump() if mapping else None,
            "unmapped_columns": mapping.unmapped_columns if mapping else [],
            "missing_required": mapping.missing_required if mapping else [],
        },
        "validation": {
            "valid": entry.validation.valid,
            "stats": entry.validation.stats.model_dump(),
        },
        "diff": {
            "summary": entry.diff.summary.model_dump(),
            "new_patients": entry.diff.new_patients,
            "existing_patients": entry.diff.existing_patients,
        },
        "reassignments": len(entry.reassignments),
        "patients_with_no_measures": len(entry.patients_with_no_measures),
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import quality measures from a CSV export.")
    parser.add_argument("--csv", dest="csv_path", help="CSV file exported from the health system.")
    parser.add_argument("--system", default=None, help="Import system id (default: registry default).")
    parser.add_argument(
        "--mode",
        default=ImportMode.merge.value,
        choices=[mode.value for mode in ImportMode],
        help="Import mode (default: merge).",
    )
    parser.add_argument("--owner-id", type=int, default=None, help="Physician user id to assign patients to.")
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Apply the diff to the database (default is a dry run).",
    )
    parser.add_argument("--stats-out", dest="stats_out", help="Write the JSON payload to this path.")
    parser.add_argument("--report", action="store_true", help="Print the validation and diff reports.")
    parser.add_argument("--list-systems", action="store_true", help="List configured import systems.")
    args = parser.parse_args(argv)

    if args.list_systems:
        systems = [item.model_dump() for item in list_systems()]
        print(json.dumps({"systems": systems}, indent=2, sort_keys=True))
        return 0

    if not args.csv_path:
        parser.error("--csv is required unless --list-systems is given.")

    try:
        source = CsvImportSource.from_path(Path(args.csv_path))
    except OSError as exc:
        print(f"Unable to read --csv file: {exc}")
        return 2
    except MeasureImportError as exc:
        print(str(exc))
        return 2

    session = SessionLocal()
    try:
        store = PreviewStore()
        try:
            entry = build_preview(
                session,
                source.headers,
                source.rows,
                system_id=args.system,
                mode=args.mode,
                target_owner_id=args.owner_id,
                file_name=Path(args.csv_path).name,
                store=store,
                data_start_row=source.data_start_row,
            )
        except MeasureImportError as exc:
            print(str(exc))
            return 2

        payload = _preview_payload(entry)
        if args.report:
            print(format_report_as_text(generate_error_report(entry.validation, entry.rows)))
            print(get_diff_summary_text(entry.diff))

        if args.execute:
            if not entry.can_proceed:
                print("Refusing to execute: validation failed.")
                for issue in entry.blocking_issues:
                    print(f"  - {issue}")
                print(json.dumps(payload, indent=2, sort_keys=True))
                return 2
            result = execute_import(session, entry)
            session.commit()
            store.delete(entry.id)
            payload["execution"] = result.as_dict()

        if args.stats_out:
            _write_stats_file(args.stats_out, payload)
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
