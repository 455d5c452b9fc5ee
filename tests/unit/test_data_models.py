"""Unit tests for the SyncJob state machine and event types."""

from datetime import datetime, timedelta, timezone

import pytest

from phone_sync.errors import JobStateError
from phone_sync.models.data_models import EventType, SyncJob, SyncSource, SyncStatus

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _job():
    return SyncJob(id="gsmarena-sync-1", source=SyncSource.GSMARENA)


def test_new_job_is_pending():
    job = _job()
    assert job.status is SyncStatus.PENDING
    assert not job.is_terminal
    assert job.duration_ms is None


def test_happy_path_transitions():
    job = _job()
    job.start(T0)
    assert job.status is SyncStatus.RUNNING

    job.complete(T0 + timedelta(seconds=2))
    assert job.status is SyncStatus.COMPLETED
    assert job.is_terminal
    assert job.duration_ms == 2000


def test_fail_appends_error():
    job = _job()
    job.start(T0)
    job.fail("Sync failed: catalog down", T0)

    assert job.status is SyncStatus.FAILED
    assert job.errors == ["Sync failed: catalog down"]


@pytest.mark.parametrize("finish", ["complete", "fail"])
def test_terminal_jobs_cannot_restart(finish):
    job = _job()
    job.start(T0)
    if finish == "complete":
        job.complete(T0)
    else:
        job.fail("boom", T0)

    with pytest.raises(JobStateError):
        job.start(T0)


def test_pending_job_cannot_complete():
    with pytest.raises(JobStateError):
        _job().complete(T0)


def test_error_event_types():
    assert EventType.SYNC_FAILED.is_error
    assert EventType.API_ERROR.is_error
    assert EventType.DATA_VALIDATION_ERROR.is_error
    assert not EventType.RATE_LIMIT_HIT.is_error
    assert not EventType.FALLBACK_ACTIVATED.is_error
