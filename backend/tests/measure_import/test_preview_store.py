from datetime import datetime, timedelta, timezone

import pytest

from measure_tracker.services.measure_import.diff_calculator import calculate_diff
from measure_tracker.services.measure_import.preview_store import PreviewStore
from measure_tracker.services.measure_import.types import ImportMode
from measure_tracker.services.measure_import.validator import validate_rows

START = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def preview_store(clock):
    return PreviewStore(ttl=timedelta(minutes=30), clock=clock)


def _store(preview_store, make_row, **kwargs):
    rows = [make_row()]
    return preview_store.store(
        system_id="hill",
        mode=ImportMode.merge,
        diff=calculate_diff(rows, ImportMode.merge, [], now=START),
        rows=rows,
        validation=validate_rows(rows),
        file_name="upload.csv",
        **kwargs,
    )


def test_store_and_get(preview_store, make_row):
    preview_id = _store(preview_store, make_row)
    entry = preview_store.get(preview_id)

    assert entry is not None
    assert entry.system_id == "hill"
    assert entry.created_at == START
    assert entry.expires_at == START + timedelta(minutes=30)
    assert entry.can_proceed is True
    assert preview_store.has_valid(preview_id)


def test_get_unknown_returns_none(preview_store):
    assert preview_store.get("missing") is None
    assert preview_store.delete("missing") is False


def test_expired_entry_is_evicted_on_get(preview_store, make_row, clock):
    preview_id = _store(preview_store, make_row)
    clock.advance(minutes=31)

    assert preview_store.get(preview_id) is None
    assert preview_store.stats().total_entries == 0


def test_entry_valid_until_exact_expiry(preview_store, make_row, clock):
    preview_id = _store(preview_store, make_row)
    clock.advance(minutes=30)

    assert preview_store.has_valid(preview_id)


def test_extend_pushes_expiry(preview_store, make_row, clock):
    preview_id = _store(preview_store, make_row)
    clock.advance(minutes=20)

    assert preview_store.extend(preview_id, timedelta(minutes=15))
    clock.advance(minutes=20)

    assert preview_store.has_valid(preview_id)


def test_extend_expired_entry_fails(preview_store, make_row, clock):
    preview_id = _store(preview_store, make_row)
    clock.advance(hours=1)

    assert preview_store.extend(preview_id) is False
    assert preview_store.extend("missing") is False


def test_cleanup_and_stats(preview_store, make_row, clock):
    first = _store(preview_store, make_row)
    clock.advance(minutes=10)
    _store(preview_store, make_row, ttl=timedelta(hours=2))
    clock.advance(minutes=25)

    stats = preview_store.stats()
    assert stats.total_entries == 2
    assert stats.active_entries == 1
    assert stats.expired_entries == 1
    assert stats.oldest_entry == START
    assert stats.newest_entry == START + timedelta(minutes=10)
    assert len(preview_store.active()) == 1

    assert preview_store.cleanup_expired() == 1
    assert preview_store.get(first) is None
    assert preview_store.stats().total_entries == 1


def test_delete_and_clear(preview_store, make_row):
    first = _store(preview_store, make_row)
    _store(preview_store, make_row)

    assert preview_store.delete(first) is True
    preview_store.clear()
    assert preview_store.stats().total_entries == 0


def test_summary(preview_store, make_row):
    entry = preview_store.get(_store(preview_store, make_row))

    summary = PreviewStore.summary(entry)

    assert summary["preview_id"] == entry.id
    assert summary["mode"] == "merge"
    assert summary["file_name"] == "upload.csv"
    assert summary["total_changes"] == 1
    assert summary["summary"]["inserts"] == 1
    assert summary["expires_at"] == (START + timedelta(minutes=30)).isoformat()


def test_default_ttl_from_settings():
    assert PreviewStore().ttl == timedelta(minutes=30)
