"""Job handlers: search page scans, detail page extraction and retries."""

import logging
from typing import Any, Dict, Optional

from extractors import DETAIL_EXTRACTORS, CoordinateResolver, NetworkResponseStrategy
from extractors import extract_search_results, run_extractors
from llm.translator import OllamaTranslator
from models.constants import PRIORITY_DETAIL, DetailMode
from models.job import Job, JobKind
from models.listing import ListingRecord
from portals.base import PortalAdapter
from storage.backup import BackupStore
from storage.listing_store import ListingStore
from storage.merge import MergeEngine, is_empty
from utils.errors import ListingRemovedError, ValidationError
from utils.logging_setup import JobLogger

logger = logging.getLogger(__name__)


class SearchJobHandler:
    """
    Scan one search results page and fan out detail jobs.

    Follows the next-page link by enqueueing another search job until
    `max_pages` pages have been scanned.
    """

    def __init__(self, browser, adapter: PortalAdapter, queue, max_pages: int = 10):
        self.browser = browser
        self.adapter = adapter
        self.queue = queue
        self.max_pages = max_pages

    async def __call__(self, job: Job) -> Dict[str, Any]:
        log = JobLogger(logger, {"job_id": job.id, "kind": job.kind.value})
        page_number = int(job.payload.get("page", 1))
        url = job.url or self.adapter.build_search_url(page_number)
        wait_for = self.adapter.get_page_config("search").get("wait_for")

        async with self.browser.page(url, wait_for=wait_for) as page:
            results = await extract_search_results(page, self.adapter)

        enqueued = 0
        for listing in results.listings:
            await self.queue.enqueue(
                JobKind.DETAIL,
                {
                    "url": listing.detail_url,
                    "listing_id": listing.listing_id,
                    "summary": listing.to_dict(),
                },
                priority=PRIORITY_DETAIL,
            )
            enqueued += 1

        next_queued = False
        if results.next_url and page_number < self.max_pages:
            await self.queue.enqueue(
                JobKind.SEARCH,
                {"url": results.next_url, "page": page_number + 1},
                priority=job.priority,
            )
            next_queued = True

        log.info(f"page {page_number}: {enqueued} detail jobs queued, next page queued={next_queued}")
        return {"found": len(results.listings), "enqueued": enqueued, "next_page": next_queued}


class DetailJobHandler:
    """
    Extract one listing page and sync it into the store.

    Navigation → removed check → field extractors → coordinate resolver →
    merge against the stored record → persist → backup snapshot. Field
    extractor failures are logged and leave the field empty; navigation and
    database failures propagate so the queue can retry the job.

    The payload `mode` narrows the work: "coordinates" only re-runs the
    coordinate resolver for a stored listing, "exists" only checks that the
    page is still listed. Both still mark vanished listings removed.
    """

    def __init__(
        self,
        browser,
        adapter: PortalAdapter,
        store: ListingStore,
        merge_engine: MergeEngine,
        backups: BackupStore,
        resolver: Optional[CoordinateResolver] = None,
        translator: Optional[OllamaTranslator] = None,
    ):
        self.browser = browser
        self.adapter = adapter
        self.store = store
        self.merge_engine = merge_engine
        self.backups = backups
        self.resolver = resolver or CoordinateResolver()
        self.translator = translator

    def _snapshot(self, record: ListingRecord):
        snapshot = self.backups.snapshot(record.id, record.to_dict())
        if snapshot.written and record.content_hash != snapshot.hash:
            self.store.update_fields(record.id, {"content_hash": snapshot.hash})
        return snapshot

    async def __call__(self, job: Job) -> Dict[str, Any]:
        log = JobLogger(logger, {"job_id": job.id, "kind": job.kind.value})
        url = job.url
        if not url:
            raise ValidationError("Detail job has no url", {"job_id": job.id})
        listing_id = job.listing_id or self.adapter.extract_listing_id(url)
        wait_for = self.adapter.get_page_config("detail").get("wait_for")
        mode = job.payload.get("mode") or DetailMode.FULL
        if mode not in DetailMode.ALL:
            raise ValidationError(f"Unknown detail mode '{mode}'", {"job_id": job.id})

        existing = None
        if mode == DetailMode.COORDINATES:
            existing = self.store.get(listing_id)
            if existing is None:
                # nothing to patch yet
                mode = DetailMode.FULL

        values: Dict[str, Any] = {}
        errors = []
        coordinates = None
        try:
            async with self.browser.page(
                url, capture=NetworkResponseStrategy.matches_url, wait_for=wait_for
            ) as page:
                html = await page.content()
                reason = self.adapter.is_listing_removed(page.status, html)
                if reason:
                    raise ListingRemovedError(reason, {"url": url, "listing_id": listing_id})

                if mode == DetailMode.EXISTS:
                    log.info(f"listing {listing_id} still listed")
                    return {"listing_id": listing_id, "status": "active"}

                if mode == DetailMode.FULL:
                    values, errors = await run_extractors(
                        page,
                        DETAIL_EXTRACTORS,
                        selectors=self.adapter.detail_selectors,
                        base_url=self.adapter.get_base_url(),
                    )
                coordinates = await self.resolver.resolve(page)
        except ListingRemovedError as e:
            record = self.store.mark_removed(listing_id, url, e.message)
            snapshot = self._snapshot(record)
            log.info(f"listing {listing_id} removed: {e.message}")
            return {
                "listing_id": listing_id,
                "status": "removed",
                "reason": e.message,
                "snapshot_written": snapshot.written,
            }

        if errors:
            log.warning(
                f"{len(errors)} field(s) missing for {listing_id}: "
                + ", ".join(sorted(str(err.context.get("field")) for err in errors))
            )

        if coordinates is not None:
            values["lat"] = coordinates.lat
            values["long"] = coordinates.long
            values["coordinate_source"] = coordinates.source
        elif mode == DetailMode.COORDINATES:
            log.warning(f"listing {listing_id} still has no coordinates")

        if mode == DetailMode.FULL:
            existing = self.store.get(listing_id)
        if self.translator is not None and values.get("address"):
            if existing is None or is_empty(existing.english_address):
                english = await self.translator.translate_address(values["address"])
                if english:
                    values["english_address"] = english

        values["id"] = listing_id
        result = self.merge_engine.merge(existing, values)

        if result.inserted:
            record = self.store.insert(ListingRecord.from_dict(result.changes))
        elif result.changed:
            record = self.store.update_fields(listing_id, result.changes)
        else:
            record = existing

        snapshot = self._snapshot(record)

        status = "inserted" if result.inserted else ("updated" if result.changed else "unchanged")
        log.info(
            f"listing {listing_id} {status}"
            + (f" ({', '.join(sorted(result.changes))})" if result.changed and not result.inserted else "")
        )
        return {
            "listing_id": listing_id,
            "status": status,
            "changed_fields": sorted(result.changes),
            "missing_fields": len(errors),
            "snapshot_written": snapshot.written,
        }


class RetryJobHandler:
    """Run a retry job with the handler of the kind that originally failed."""

    def __init__(self, handlers: Dict[JobKind, Any]):
        self.handlers = handlers

    async def __call__(self, job: Job) -> Any:
        original = job.payload.get("original_kind", JobKind.DETAIL.value)
        try:
            kind = JobKind(original)
        except ValueError:
            raise ValidationError(f"Unknown original job kind '{original}'", {"job_id": job.id}) from None
        handler = self.handlers.get(kind)
        if handler is None or kind == JobKind.RETRY:
            raise ValidationError(f"No handler for retried {original} job", {"job_id": job.id})
        return await handler(job)
