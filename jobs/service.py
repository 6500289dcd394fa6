"""Pipeline wiring and the start / retry / status trigger interface."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from extractors.coordinates import CoordinateResolver
from jobs.failures import FailureRegistry
from jobs.handlers import DetailJobHandler, RetryJobHandler, SearchJobHandler
from jobs.queue import JobQueue
from llm.translator import OllamaTranslator
from models.constants import PRIORITY_DETAIL, PRIORITY_MANUAL, DetailMode, ListingStatus
from models.job import Job, JobKind
from models.listing import ListingRecord
from portals import get_adapter
from storage.backup import BackupStore
from storage.listing_store import ListingStore
from storage.merge import MergeEngine, MergeRuleSet
from utils.browser import BrowserSession

logger = logging.getLogger(__name__)


class ScraperService:
    """
    Build the pipeline from configuration and expose its triggers.

    Args:
        config: Configuration dictionary (see utils.config.load_config)
        browser: Object providing `page(url, capture=, wait_for=)`; a
            BrowserSession is created from config when omitted
        store: Listing store (created from config when omitted)
        sleep: Sleep function used for queue backoff and coordinate retries
    """

    def __init__(
        self,
        config: Dict[str, Any],
        browser=None,
        store: Optional[ListingStore] = None,
        backups: Optional[BackupStore] = None,
        registry: Optional[FailureRegistry] = None,
        sleep=None,
    ):
        self.config = config
        queue_config = config.get("queue", {})
        storage_config = config.get("storage", {})
        browser_config = config.get("browser", {})
        coordinate_config = config.get("coordinates", {})
        llm_config = config.get("llm_settings", {})
        source_config = config.get("source", {})

        self.adapter = get_adapter(config)
        self.browser = browser or BrowserSession(
            headless=browser_config.get("headless", True),
            navigation_timeout=browser_config.get("navigation_timeout", 30.0),
            user_agent=browser_config.get("user_agent"),
        )
        self._owns_browser = browser is None
        self.store = store or ListingStore(storage_config.get("database_path", "data/listings.db"))
        self.backups = backups or BackupStore(
            storage_config.get("backup_dir", "data/backups"),
            max_backups=storage_config.get("max_backups_per_listing", 5),
        )
        self.merge_engine = MergeEngine(MergeRuleSet.from_config(config.get("merge_rules")))

        sleep_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.queue = JobQueue(
            concurrency={
                JobKind.SEARCH: queue_config.get("listing_concurrency", 1),
                JobKind.DETAIL: queue_config.get("detail_concurrency", 3),
                JobKind.RETRY: queue_config.get("detail_concurrency", 3),
            },
            max_attempts=queue_config.get("retry_limit", 3),
            backoff_delay=queue_config.get("backoff_delay", 5.0),
            **sleep_kwargs,
        )
        self.registry = registry or FailureRegistry(
            storage_config.get("failed_jobs_path", "data/failed-jobs.json"),
            retry_attempts=queue_config.get("retry_attempts", 2),
            retry_backoff_delay=queue_config.get("retry_backoff_delay", 10.0),
        )
        self.registry.bind(self.queue)

        translator = None
        if llm_config.get("enabled", False):
            translator = OllamaTranslator(
                model=llm_config.get("model", OllamaTranslator.DEFAULT_MODEL),
                base_url=llm_config.get("base_url", OllamaTranslator.DEFAULT_BASE_URL),
                timeout=llm_config.get("timeout", OllamaTranslator.DEFAULT_TIMEOUT),
            )

        resolver = CoordinateResolver(
            max_retries=coordinate_config.get("max_retries", 2),
            retry_delay=coordinate_config.get("retry_delay", 0.5),
            **sleep_kwargs,
        )

        search_handler = SearchJobHandler(
            self.browser, self.adapter, self.queue, max_pages=source_config.get("max_pages", 10)
        )
        detail_handler = DetailJobHandler(
            self.browser,
            self.adapter,
            self.store,
            self.merge_engine,
            self.backups,
            resolver=resolver,
            translator=translator,
        )
        self.queue.register(JobKind.SEARCH, search_handler)
        self.queue.register(JobKind.DETAIL, detail_handler)
        self.queue.register(
            JobKind.RETRY,
            RetryJobHandler({JobKind.SEARCH: search_handler, JobKind.DETAIL: detail_handler}),
        )
        self.queue.set_stale_check(self._is_stale)

        self.last_run: Optional[str] = None
        self._started = False

    def _is_stale(self, job: Job) -> bool:
        if job.kind == JobKind.SEARCH or not job.listing_id:
            return False
        if job.payload.get("original_kind") == JobKind.SEARCH.value:
            return False
        return self.store.is_removed(job.listing_id)

    async def start(self) -> None:
        if self._started:
            return
        if self._owns_browser:
            await self.browser.acquire()
        await self.queue.start()
        self._started = True

    async def start_scrape(self, target_url: Optional[str] = None) -> Dict[str, str]:
        """
        Queue a new scan of the search results.

        Args:
            target_url: Search URL to start from (defaults to the portal search)

        Returns:
            {"jobId": ..., "status": ...}
        """
        await self.start()
        url = target_url or self.adapter.build_search_url(1)
        job = await self.queue.enqueue(
            JobKind.SEARCH, {"url": url, "page": 1}, priority=PRIORITY_MANUAL
        )
        self.last_run = datetime.now(timezone.utc).isoformat()
        logger.info(f"Scrape started from {url} (job {job.id})")
        return {"jobId": job.id, "status": job.status.value}

    async def retry_failed_jobs(
        self, job_ids: Optional[Iterable[str]] = None, worker_count: Optional[int] = None
    ) -> List[str]:
        """
        Re-queue failed jobs from the registry.

        Returns:
            Ids of the queued retry jobs
        """
        await self.start()
        summary = await self.registry.retry(job_ids, worker_count)
        return summary.queued

    async def _queue_detail_jobs(self, records: List[ListingRecord], mode: str) -> Dict[str, Any]:
        queued: List[str] = []
        no_url: List[str] = []
        for record in records:
            if not record.listing_url:
                logger.warning(f"Listing {record.id} has no url to revisit, skipping")
                no_url.append(record.id)
                continue
            job = await self.queue.enqueue(
                JobKind.DETAIL,
                {"url": record.listing_url, "listing_id": record.id, "mode": mode},
                priority=PRIORITY_DETAIL,
            )
            queued.append(job.id)
        return {"queued": queued, "noUrl": no_url}

    async def requeue_incomplete(self) -> Dict[str, Any]:
        """
        Queue a full re-extraction of active listings missing tags or coordinates.

        Returns:
            Counts of scanned and incomplete listings, the queued job ids and
            the ids of incomplete listings without a url
        """
        await self.start()
        records = self.store.list_records(ListingStatus.ACTIVE)
        missing_tags = {r.id for r in records if not r.tags}
        missing_coordinates = {r.id for r in records if r.coordinates is None}
        incomplete = [r for r in records if r.id in missing_tags | missing_coordinates]

        summary = {
            "totalListings": len(records),
            "missingTags": len(missing_tags),
            "missingCoordinates": len(missing_coordinates),
            "missingBoth": len(missing_tags & missing_coordinates),
        }
        summary.update(await self._queue_detail_jobs(incomplete, DetailMode.FULL))
        logger.info(
            f"Incomplete listings: {len(incomplete)} of {len(records)}, "
            f"{len(summary['queued'])} queued for re-extraction"
        )
        return summary

    async def fix_missing_coordinates(self) -> Dict[str, Any]:
        """
        Re-run only the coordinate resolver for active listings without coordinates.

        Returns:
            Counts plus the queued job ids and the ids skipped for lack of a url
        """
        await self.start()
        records = self.store.list_records(ListingStatus.ACTIVE)
        missing = [r for r in records if r.coordinates is None]
        summary = {"totalListings": len(records), "missingCoordinates": len(missing)}
        summary.update(await self._queue_detail_jobs(missing, DetailMode.COORDINATES))
        logger.info(f"Coordinate pass: {len(summary['queued'])} of {len(missing)} listings queued")
        return summary

    async def check_removed(self) -> Dict[str, Any]:
        """
        Revisit every active listing and mark the ones gone from the source.

        Only the page status and removal markers are checked; nothing is
        re-extracted for listings that are still up.
        """
        await self.start()
        records = self.store.list_records(ListingStatus.ACTIVE)
        summary: Dict[str, Any] = {"totalListings": len(records)}
        summary.update(await self._queue_detail_jobs(records, DetailMode.EXISTS))
        logger.info(f"Removal check queued for {len(summary['queued'])} listings")
        return summary

    def list_failed_jobs(self) -> List[Dict[str, Any]]:
        return self.registry.list()

    def clear_failed_jobs(self, job_ids: Optional[Iterable[str]] = None) -> int:
        return self.registry.clear(job_ids)

    def get_status(self) -> Dict[str, Any]:
        """Queue counters plus the time of the last started scrape."""
        counts = self.queue.counts()
        return {
            "activeJobs": counts["active"],
            "waitingJobs": counts["waiting"],
            "completedJobs": counts["completed"],
            "failedJobs": counts["failed"],
            "skippedJobs": counts["skipped"],
            "registeredFailures": len(self.registry),
            "lastRun": self.last_run,
            "queueStatus": self.queue.state,
            "byKind": counts["by_kind"],
        }

    async def run_until_idle(self) -> None:
        await self.queue.join()

    async def close(self) -> None:
        await self.queue.stop()
        if self._owns_browser and self._started:
            await self.browser.release()
        self.store.close()
        self._started = False
