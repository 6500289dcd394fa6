"""Unit tests for the failed job registry."""

import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from fakes import RecordingSleep
from jobs.failures import FailureRegistry
from jobs.queue import JobQueue
from models.constants import PRIORITY_RETRY
from models.job import Job, JobKind
from utils.errors import NetworkError, ValidationError


def failed_job(listing_id="12345", attempts=3, **payload):
    job = Job(
        kind=JobKind.DETAIL,
        payload={"url": f"https://example.com/bukken/{listing_id}/", "listing_id": listing_id, **payload},
    )
    job.attempts = attempts
    return job


@pytest.fixture
def registry_path(tmp_path):
    return tmp_path / "failed-jobs.json"


@pytest.fixture
def registry(registry_path):
    return FailureRegistry(str(registry_path))


class TestRecording:
    """Recording and listing failures."""

    def test_list_uses_operator_format(self, registry):
        """Entries expose id, url, failedAt, reason and retryCount only."""
        registry.record(failed_job(), "Navigation timed out")

        entries = registry.list()
        assert len(entries) == 1
        entry = entries[0]
        assert set(entry) == {"id", "url", "failedAt", "reason", "retryCount"}
        assert entry["id"] == "12345"
        assert entry["url"] == "https://example.com/bukken/12345/"
        assert entry["reason"] == "Navigation timed out"
        assert entry["retryCount"] == 3

    def test_entries_are_persisted(self, registry, registry_path):
        """A second registry on the same file sees the entry."""
        registry.record(failed_job(), "boom")

        reloaded = FailureRegistry(str(registry_path))
        assert len(reloaded) == 1
        record = reloaded.get("12345")
        assert record.kind == "detail"
        assert record.listing_id == "12345"

        with open(registry_path, encoding="utf-8") as f:
            data = json.load(f)
        assert data[0]["id"] == "12345"

    def test_same_listing_updates_one_entry(self, registry):
        """Repeated failures of a listing do not pile up."""
        registry.record(failed_job(attempts=1), "first")
        registry.record(failed_job(attempts=3), "second")

        entries = registry.list()
        assert len(entries) == 1
        assert entries[0]["reason"] == "second"
        assert entries[0]["retryCount"] == 3

    def test_job_without_listing_is_keyed_by_job_id(self, registry):
        """Search jobs have no listing id."""
        job = Job(kind=JobKind.SEARCH, payload={"url": "https://example.com/?paged=2"})
        job.attempts = 3
        record = registry.record(job, "timeout")
        assert record.id == job.id
        assert record.kind == "search"

    def test_retry_count_includes_earlier_attempts(self, registry):
        """Attempts made before a registry retry are added up."""
        job = failed_job(attempts=2, retry_count=3, original_kind="detail", failed_job_id="12345")
        job.kind = JobKind.RETRY
        record = registry.record(job, "timeout")

        assert record.retry_count == 5
        assert record.kind == "detail"
        assert "original_kind" not in record.payload
        assert "retry_count" not in record.payload

    def test_corrupt_file_starts_empty(self, registry_path):
        """An unreadable registry file is not fatal."""
        registry_path.write_text("{not json", encoding="utf-8")
        assert len(FailureRegistry(str(registry_path))) == 0


class TestClearing:
    """Removing entries."""

    def test_clear_all(self, registry):
        """clear() with no ids empties the registry and returns the count."""
        registry.record(failed_job("1"), "a")
        registry.record(failed_job("2"), "b")
        assert registry.clear() == 2
        assert registry.list() == []

    def test_clear_selected(self, registry):
        """Only the named entries are removed; unknown ids are ignored."""
        registry.record(failed_job("1"), "a")
        registry.record(failed_job("2"), "b")
        assert registry.clear(["1", "missing"]) == 1
        assert [e["id"] for e in registry.list()] == ["2"]


class TestRetry:
    """Re-queueing failed jobs."""

    def test_retry_requires_bound_queue(self, registry):
        """Retrying without a queue is a validation error."""
        with pytest.raises(ValidationError):
            asyncio.run(registry.retry())

    def test_retry_enqueues_retry_jobs_and_removes_entries(self, registry):
        """Each entry becomes a prioritized retry job carrying its history."""
        registry.record(failed_job("1"), "a")
        registry.record(failed_job("2"), "b")

        async def run():
            queue = JobQueue()
            registry.bind(queue)
            summary = await registry.retry(worker_count=5)
            return queue, summary

        queue, summary = asyncio.run(run())

        assert summary.to_dict() == {"queued": 2, "failed": 0, "missing": 0, "unsaved": 0}
        assert len(registry) == 0
        assert queue.concurrency[JobKind.RETRY] == 5
        job = queue.get_job(summary.queued[0])
        assert job.kind == JobKind.RETRY
        assert job.priority == PRIORITY_RETRY
        assert job.max_attempts == 2
        assert job.backoff_delay == 10.0
        assert job.payload["original_kind"] == "detail"
        assert job.payload["retry_count"] == 3
        assert job.payload["retries"] == 1
        assert job.payload["failed_job_id"] == "1"

    def test_retry_selected_reports_unknown_ids(self, registry):
        """Unknown ids are reported as missing and the rest stay registered."""
        registry.record(failed_job("1"), "a")
        registry.record(failed_job("2"), "b")

        async def run():
            registry.bind(JobQueue())
            return await registry.retry(["2", "nope"])

        summary = asyncio.run(run())

        assert len(summary.queued) == 1
        assert summary.missing == ["nope"]
        assert [e["id"] for e in registry.list()] == ["1"]

    def test_retry_into_stopped_queue_counts_as_failed(self, registry):
        """Entries that cannot be queued stay in the registry."""
        registry.record(failed_job("1"), "a")

        async def run():
            queue = JobQueue()
            registry.bind(queue)
            await queue.stop()
            return await registry.retry()

        summary = asyncio.run(run())

        assert summary.failed == ["1"]
        assert len(registry) == 1

    def test_bound_registry_records_terminal_failures(self, registry):
        """Jobs that exhaust their attempts are recorded automatically."""

        async def handler(job):
            raise NetworkError("net::ERR_CONNECTION_RESET")

        async def run():
            queue = JobQueue(max_attempts=2, sleep=RecordingSleep())
            queue.register(JobKind.DETAIL, handler)
            registry.bind(queue)
            await queue.start()
            await queue.enqueue(JobKind.DETAIL, failed_job("42").payload)
            await queue.join()
            await queue.stop()

        asyncio.run(run())

        entries = registry.list()
        assert len(entries) == 1
        assert entries[0]["id"] == "42"
        assert entries[0]["retryCount"] == 2
        assert entries[0]["reason"] == "net::ERR_CONNECTION_RESET"


class TestUnwritableRegistry:
    """File-system errors never escape the bulk operations."""

    @pytest.fixture
    def blocker(self, tmp_path):
        path = tmp_path / "blocker"
        path.write_text("not a directory", encoding="utf-8")
        return path

    def test_load_under_a_file_starts_empty(self, blocker):
        """A registry path that cannot be opened starts an empty registry."""
        assert len(FailureRegistry(str(blocker / "failed-jobs.json"))) == 0

    def test_record_keeps_entry_in_memory(self, registry, blocker):
        """A failed write still keeps the entry for this process."""
        registry.path = blocker / "failed-jobs.json"
        registry.record(failed_job("1"), "a")
        assert [e["id"] for e in registry.list()] == ["1"]

    def test_retry_reports_unsaved_entries_and_does_not_requeue(self, registry, blocker):
        """Queued entries leave the registry even when the file cannot be rewritten."""
        registry.record(failed_job("1"), "a")
        registry.record(failed_job("2"), "b")
        registry.path = blocker / "failed-jobs.json"

        async def run():
            registry.bind(JobQueue())
            first = await registry.retry()
            second = await registry.retry()
            return first, second

        first, second = asyncio.run(run())

        assert first.to_dict() == {"queued": 2, "failed": 0, "missing": 0, "unsaved": 2}
        assert first.unsaved == ["1", "2"]
        assert second.queued == []
        assert len(registry) == 0

    def test_clear_returns_count(self, registry, blocker):
        """clear() reports what it removed even if the file cannot be written."""
        registry.record(failed_job("1"), "a")
        registry.record(failed_job("2"), "b")
        registry.path = blocker / "failed-jobs.json"

        assert registry.clear() == 2
        assert registry.list() == []
