from __future__ import annotations


class MeasureImportError(Exception):
    pass


class SystemConfigError(MeasureImportError):
    pass


class UnknownSystemError(SystemConfigError):
    def __init__(self, system_id: str) -> None:
        super().__init__(f"System not found: {system_id}")
        self.system_id = system_id


class MalformedRowError(MeasureImportError):
    def __init__(self, row_index: int, detail: str) -> None:
        super().__init__(f"Malformed row {row_index}: {detail}")
        self.row_index = row_index


class WriteConflictError(MeasureImportError):
    pass
