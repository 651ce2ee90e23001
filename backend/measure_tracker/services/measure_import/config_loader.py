from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from measure_tracker.core.settings import settings
from measure_tracker.services.measure_import.errors import SystemConfigError, UnknownSystemError

REGISTRY_FILENAME = "systems.json"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class MeasureColumnConfig(_ConfigModel):
    request_type: str = Field(alias="requestType")
    quality_measure: str = Field(alias="qualityMeasure")


class StatusMapping(_ConfigModel):
    compliant: str
    non_compliant: str = Field(alias="nonCompliant")


class SystemConfig(_ConfigModel):
    name: str
    version: str = "1.0"
    patient_columns: dict[str, str] = Field(default_factory=dict, alias="patientColumns")
    measure_columns: dict[str, MeasureColumnConfig] = Field(
        default_factory=dict, alias="measureColumns"
    )
    status_mapping: dict[str, StatusMapping] = Field(default_factory=dict, alias="statusMapping")
    skip_columns: tuple[str, ...] = Field(default_factory=tuple, alias="skipColumns")


class SystemInfo(_ConfigModel):
    name: str
    config_file: str = Field(alias="configFile")


class SystemsRegistry(_ConfigModel):
    systems: dict[str, SystemInfo]
    default: str


class SystemListItem(BaseModel):
    id: str
    name: str
    is_default: bool


def _config_dir(config_dir: Path | None) -> Path:
    return config_dir if config_dir is not None else settings.resolved_import_config_dir


def _load_json(path: Path) -> dict:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SystemConfigError(f"Unable to read import config: {path}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemConfigError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemConfigError(f"{path} must contain a JSON object.")
    return data


def load_systems_registry(config_dir: Path | None = None) -> SystemsRegistry:
    path = _config_dir(config_dir) / REGISTRY_FILENAME
    if not path.exists():
        raise SystemConfigError(f"Systems registry not found: {REGISTRY_FILENAME}")
    try:
        return SystemsRegistry.model_validate(_load_json(path))
    except ValidationError as exc:
        raise SystemConfigError(f"Invalid systems registry: {exc}") from exc


def list_systems(config_dir: Path | None = None) -> list[SystemListItem]:
    registry = load_systems_registry(config_dir)
    return [
        SystemListItem(id=system_id, name=info.name, is_default=system_id == registry.default)
        for system_id, info in registry.systems.items()
    ]


def get_default_system_id(config_dir: Path | None = None) -> str:
    if settings.import_default_system and config_dir is None:
        return settings.import_default_system
    return load_systems_registry(config_dir).default


def system_exists(system_id: str, config_dir: Path | None = None) -> bool:
    if not system_id:
        return False
    try:
        registry = load_systems_registry(config_dir)
    except SystemConfigError:
        return False
    return system_id in registry.systems


def load_system_config(system_id: str, config_dir: Path | None = None) -> SystemConfig:
    base = _config_dir(config_dir)
    registry = load_systems_registry(base)
    info = registry.systems.get(system_id)
    if info is None:
        raise UnknownSystemError(system_id)

    path = base / info.config_file
    if not path.exists():
        raise SystemConfigError(
            f"Config file not found for system {system_id}: {info.config_file}"
        )
    try:
        return SystemConfig.model_validate(_load_json(path))
    except ValidationError as exc:
        raise SystemConfigError(f"Invalid config for system {system_id}: {exc}") from exc
