"""
Tests for the in-memory import job registry.
"""

import time

import pytest

from property_import.api.schemas.shared import ImportStatus
from property_import.domain.imports.errors import ImportJobNotFoundError
from property_import.domain.imports.jobs import ImportJobRegistry


@pytest.fixture
def registry():
    registry = ImportJobRegistry()
    yield registry
    registry.shutdown()


def wait_until(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_create_registers_pending_job(registry):
    job = registry.create(200)
    assert job.import_id.startswith("import_")
    assert job.status == ImportStatus.PENDING
    assert job.total_rows == 200
    assert job.progress_percentage == 0
    assert registry.get(job.import_id) == job


def test_ids_are_unique(registry):
    ids = {registry.create(1).import_id for _ in range(50)}
    assert len(ids) == 50


@pytest.mark.parametrize("processed, total, expected", [
    (50, 200, 25),
    (1, 3, 33),
    (2, 3, 67),
    (3, 3, 100),
    (1, 8, 13),
    (5, 8, 63),
    (1, 200, 1),
])
def test_percentage_is_rounded(registry, processed, total, expected):
    job = registry.create(total)
    updated = registry.update(job.import_id, processed_rows=processed)
    assert updated.progress_percentage == expected


def test_zero_total_rows_keeps_percentage_at_zero(registry):
    job = registry.create(0)
    assert registry.update(job.import_id, status=ImportStatus.PROCESSING).progress_percentage == 0


def test_processed_rows_never_decrease(registry):
    job = registry.create(100)
    registry.update(job.import_id, processed_rows=50)
    updated = registry.update(job.import_id, processed_rows=40)
    assert updated.processed_rows == 50
    assert updated.progress_percentage == 50


def test_estimate_while_processing(registry):
    job = registry.create(100)
    registry.update(job.import_id, status=ImportStatus.PROCESSING)
    time.sleep(0.01)
    updated = registry.update(job.import_id, processed_rows=10)
    assert updated.estimated_remaining_ms is not None
    assert updated.estimated_remaining_ms >= 0


def test_terminal_status_is_sticky(registry):
    job = registry.create(10)
    registry.update(job.import_id, status=ImportStatus.TIMEOUT, processed_rows=4)
    late = registry.update(job.import_id, status=ImportStatus.COMPLETED, processed_rows=10)

    assert late.status == ImportStatus.TIMEOUT
    assert late.processed_rows == 4
    assert registry.get(job.import_id).status == ImportStatus.TIMEOUT


def test_status_accepts_plain_strings(registry):
    job = registry.create(10)
    assert registry.update(job.import_id, status="PROCESSING").status == ImportStatus.PROCESSING


def test_unknown_job_raises(registry):
    with pytest.raises(ImportJobNotFoundError):
        registry.update("import_missing", processed_rows=1)


def test_unsupported_field_raises(registry):
    job = registry.create(10)
    with pytest.raises(ValueError):
        registry.update(job.import_id, total_rows=99)


def test_get_returns_a_snapshot(registry):
    job = registry.create(10)
    snapshot = registry.get(job.import_id)
    snapshot.processed_rows = 9
    assert registry.get(job.import_id).processed_rows == 0


def test_listeners_receive_snapshots_and_failures_are_contained(registry):
    received = []

    def broken(snapshot):
        raise RuntimeError("listener exploded")

    registry.add_listener(broken)
    registry.add_listener(received.append)

    job = registry.create(4)
    registry.update(job.import_id, processed_rows=2)
    registry.remove_listener(received.append)
    registry.update(job.import_id, processed_rows=4)

    assert [snapshot.processed_rows for snapshot in received] == [0, 2]


def test_list_active_and_cleanup(registry):
    first = registry.create(1)
    second = registry.create(2)
    assert {job.import_id for job in registry.list_active()} == {first.import_id, second.import_id}

    assert registry.cleanup(first.import_id) is True
    assert registry.cleanup(first.import_id) is False
    assert registry.get(first.import_id) is None
    assert [job.import_id for job in registry.list_active()] == [second.import_id]


def test_scheduled_cleanup_removes_job(registry):
    job = registry.create(1)
    registry.update(job.import_id, status=ImportStatus.COMPLETED, processed_rows=1)
    registry.schedule_cleanup(job.import_id, 0.05)

    assert wait_until(lambda: registry.get(job.import_id) is None)
