# src/presigned_url_refresher/scanner.py

"""
The pagination driver: walks the metadata table one scan page at a time and
hands each page to the batch processor.

Pages are processed strictly in order because each scan needs the previous
page's `LastEvaluatedKey`. Scan errors are split by retryability: a retryable
error (throttling) is waited out and the *same* page is fetched again, anything
else aborts the run.
"""

import logging
import time
from enum import Enum
from typing import Any, Callable

from .clients import MetadataTableClient
from .config import BATCH_SIZE
from .core import PresignedUrlUpdater, process_items_batch
from .exceptions import ScanThrottleExhaustedError, get_error_context, is_retryable_error
from .schemas import ScanStats

logger = logging.getLogger(__name__)

# Pause between pages to stay under the table's provisioned capacity.
INTER_PAGE_DELAY_SECONDS = 0.1

# Pause before re-issuing a throttled scan.
THROTTLE_BACKOFF_SECONDS = 1.0


class ScanState(str, Enum):
    SCANNING = "SCANNING"
    THROTTLE_WAIT = "THROTTLE_WAIT"
    DONE = "DONE"
    FATAL = "FATAL"


class TableScanDriver:
    """
    Drives one full pass over the table.

    `stats` is updated as pages complete, so the counters gathered before a
    fatal error are still available to the caller after `run` raises.
    """

    def __init__(
        self,
        table: MetadataTableClient,
        updater: PresignedUrlUpdater,
        *,
        page_size: int = BATCH_SIZE,
        max_workers: int = 10,
        max_throttle_retries: int = 10,
        inter_page_delay: float = INTER_PAGE_DELAY_SECONDS,
        throttle_backoff: float = THROTTLE_BACKOFF_SECONDS,
        sleep: Callable[[float], None] | None = None,
    ):
        self._table = table
        self._updater = updater
        self._page_size = page_size
        self._max_workers = max_workers
        self._max_throttle_retries = max_throttle_retries
        self._inter_page_delay = inter_page_delay
        self._throttle_backoff = throttle_backoff
        self._sleep = sleep or time.sleep

        self.stats = ScanStats()
        self.state = ScanState.SCANNING

    def run(self) -> ScanStats:
        """
        Scans until the table is exhausted.

        Raises:
            ScanThrottleExhaustedError: If one page stays throttled past the retry bound.
            MetadataTableError: On any non-throttling scan failure.
        """
        self.state = ScanState.SCANNING
        start_key: dict[str, Any] | None = None
        consecutive_throttles = 0

        while self.state not in (ScanState.DONE, ScanState.FATAL):
            if self.state is ScanState.THROTTLE_WAIT:
                logger.info("Throughput exceeded, waiting before retry...")
                self._sleep(self._throttle_backoff)
                self.state = ScanState.SCANNING
                continue

            logger.debug(
                f"Scanning table {self._table.table_name}",
                extra={"limit": self._page_size, "exclusive_start_key": start_key},
            )
            try:
                page = self._table.scan_page(self._page_size, start_key)
            except Exception as e:
                if not is_retryable_error(e):
                    self.state = ScanState.FATAL
                    logger.error("Error scanning DynamoDB table", extra=get_error_context(e))
                    raise

                self.stats.add_throttle()
                consecutive_throttles += 1
                logger.warning("Error scanning DynamoDB table", extra=get_error_context(e))
                if consecutive_throttles > self._max_throttle_retries:
                    self.state = ScanState.FATAL
                    raise ScanThrottleExhaustedError(
                        attempts=consecutive_throttles,
                        context={"exclusive_start_key": start_key},
                    ) from e
                self.state = ScanState.THROTTLE_WAIT
                continue

            consecutive_throttles = 0

            if page.items:
                logger.info(f"Processing {len(page.items)} items")
                result = process_items_batch(page.items, self._updater, self._max_workers)
                self.stats.add_batch(result)

            start_key = page.last_evaluated_key
            if start_key:
                self._sleep(self._inter_page_delay)
            else:
                self.state = ScanState.DONE

        logger.info(
            "Table scan completed",
            extra={
                "pages": self.stats.pages,
                "processed_count": self.stats.processed_count,
                "throttle_count": self.stats.throttle_count,
            },
        )
        return self.stats
