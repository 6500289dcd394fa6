"""Listing sync: scrape search results and detail pages into the listing store."""

import asyncio
import json
import logging

from jobs.service import ScraperService
from utils.config import load_config
from utils.errors import ScraperError
from utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def main():
    """Main entry point."""
    try:
        config = load_config()
    except ScraperError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Configuration error: {e}")
        return

    setup_logging(config.get("log_level", "INFO"))

    service = ScraperService(config)
    try:
        result = await service.start_scrape(config.get("source", {}).get("search_url"))
        logger.info(f"Started scrape job {result['jobId']}")
        await service.run_until_idle()
    except KeyboardInterrupt:
        logger.info("Scraping interrupted by user")
    finally:
        status = service.get_status()
        await service.close()

    logger.info(f"Final status: {json.dumps(status, ensure_ascii=False)}")
    failed = service.list_failed_jobs()
    if failed:
        logger.warning(f"{len(failed)} failed jobs waiting for retry")
        for entry in failed[:10]:
            logger.warning(f"  {entry['id']}: {entry['reason']} ({entry['retryCount']} attempts)")


if __name__ == "__main__":
    asyncio.run(main())
