import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from measure_tracker.db.session import get_db
from measure_tracker.schemas.measure_import import (
    ImportExecutionOut,
    ImportPreviewOut,
    ImportSystemList,
    ImportSystemOut,
)
from measure_tracker.services.measure_import.config_loader import get_default_system_id, list_systems
from measure_tracker.services.measure_import.csv_source import CsvImportSource
from measure_tracker.services.measure_import.errors import (
    MeasureImportError,
    SystemConfigError,
    UnknownSystemError,
)
from measure_tracker.services.measure_import.executor import execute_import
from measure_tracker.services.measure_import.pipeline import build_preview
from measure_tracker.services.measure_import.preview_store import PreviewEntry, PreviewStore, preview_store
from measure_tracker.services.measure_import.types import ImportMode

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/import", tags=["import"])


def get_preview_store() -> PreviewStore:
    return preview_store


def _get_preview_or_404(store: PreviewStore, preview_id: str) -> PreviewEntry:
    entry = store.get(preview_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Preview not found or expired")
    return entry


@router.get("/systems", response_model=ImportSystemList)
def get_systems():
    try:
        systems = list_systems()
        default = get_default_system_id()
    except SystemConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    return ImportSystemList(
        items=[ImportSystemOut(**item.model_dump()) for item in systems],
        default=default,
    )


@router.post("/preview", response_model=ImportPreviewOut, status_code=status.HTTP_201_CREATED)
def create_preview(
    file: UploadFile = File(...),
    system_id: str | None = Form(default=None),
    mode: ImportMode = Form(default=ImportMode.merge),
    target_owner_id: int | None = Form(default=None),
    db: Session = Depends(get_db),
    store: PreviewStore = Depends(get_preview_store),
):
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename required")

    payload = file.file.read()
    try:
        source = CsvImportSource.from_bytes(payload)
        entry = build_preview(
            db,
            source.headers,
            source.rows,
            system_id=system_id,
            mode=mode,
            target_owner_id=target_owner_id,
            file_name=file.filename,
            store=store,
            data_start_row=source.data_start_row,
        )
    except UnknownSystemError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except SystemConfigError as exc:
        logger.error("Import system config unusable", extra={"system_id": system_id})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    except MeasureImportError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ImportPreviewOut.from_entry(entry)


@router.get("/preview/{preview_id}", response_model=ImportPreviewOut)
def get_preview(preview_id: str, store: PreviewStore = Depends(get_preview_store)):
    return ImportPreviewOut.from_entry(_get_preview_or_404(store, preview_id))


@router.delete("/preview/{preview_id}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_preview(preview_id: str, store: PreviewStore = Depends(get_preview_store)):
    if not store.delete(preview_id):
        raise HTTPException(status_code=404, detail="Preview not found or expired")


@router.post("/execute/{preview_id}", response_model=ImportExecutionOut)
def execute_preview(
    preview_id: str,
    db: Session = Depends(get_db),
    store: PreviewStore = Depends(get_preview_store),
):
    entry = _get_preview_or_404(store, preview_id)
    if not entry.can_proceed:
        detail = "Preview has validation errors; fix the file and preview again"
        if entry.blocking_issues:
            detail = f"{detail}: {'; '.join(entry.blocking_issues)}"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    result = execute_import(db, entry)
    db.commit()
    store.delete(preview_id)
    return ImportExecutionOut.from_result(result)
