from __future__ import annotations

import re

from measure_tracker.services.measure_import.types import ComplianceCategory

__all__ = [
    "COMPLIANT_KEYWORDS",
    "NON_COMPLIANT_KEYWORDS",
    "categorize_status",
    "is_blank_status",
    "normalize_status",
]

COMPLIANT_KEYWORDS: tuple[str, ...] = (
    "completed",
    "at goal",
    "confirmed",
    "scheduled",
    "ordered",
)

NON_COMPLIANT_KEYWORDS: tuple[str, ...] = (
    "not addressed",
    "declined",
    "invalid",
    "resolved",
    "discussed",
    "unnecessary",
)

# Compliant keywords are tested first, so "Not at Goal" lands in compliant via "at goal".
_ORDERED_RULES: tuple[tuple[ComplianceCategory, tuple[str, ...]], ...] = (
    (ComplianceCategory.compliant, COMPLIANT_KEYWORDS),
    (ComplianceCategory.non_compliant, NON_COMPLIANT_KEYWORDS),
)

_WHITESPACE_RE = re.compile(r"\s+", re.UNICODE)


def is_blank_status(value: str | None) -> bool:
    return value is None or not value.strip()


def normalize_status(value: str | None) -> str | None:
    if is_blank_status(value):
        return None
    return _WHITESPACE_RE.sub(" ", value.strip()).lower()


def categorize_status(status: str | None) -> ComplianceCategory:
    if is_blank_status(status):
        return ComplianceCategory.unknown

    lowered = status.lower()
    for category, keywords in _ORDERED_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category

    return ComplianceCategory.unknown
