"""Logging configuration for the scraper process."""

import logging
from typing import Any, MutableMapping, Optional, Tuple

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Libraries that log every request at INFO
NOISY_LOGGERS = ["httpx", "httpcore", "asyncio"]


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging for the process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        log_file: Optional file that receives a copy of every record
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class JobLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes every message with the job id and kind."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        job_id = self.extra.get("job_id", "-")
        kind = self.extra.get("kind", "-")
        return f"job {job_id} [{kind}] {msg}", kwargs
