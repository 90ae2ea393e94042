# src/presigned_url_refresher/core.py

"""
Core business logic for refreshing presigned URLs on metadata records.

For every record the job regenerates a presigned S3 GET URL from the record's
`objectKey` and writes it back, together with a freshness timestamp, using a
partial update addressed by the record's primary key. A page of records is
processed concurrently and every record's result is collected independently:
one bad record never prevents the rest of the page from being refreshed.
"""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable

from .clients import MetadataTableClient, S3Client
from .exceptions import (
    InvalidObjectKeyError,
    MetadataTableError,
    PresignedUrlGenerationError,
    get_error_context,
)
from .schemas import (
    BatchResult,
    FailureReason,
    ID_ATTR,
    IMAGE_NAME_ATTR,
    Item,
    OBJECT_KEY_ATTR,
    PRESIGNED_URL_ATTR,
    PRESIGNED_URL_TIMESTAMP_ATTR,
    SELECTION_ID_ATTR,
    UpdateOutcome,
)
from .security import redact_presigned_url

logger = logging.getLogger(__name__)


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _describe(item: Item) -> str:
    return str(item.get(IMAGE_NAME_ATTR) or "unknown")


# --- Credential Generator ---
class PresignedUrlGenerator:
    """Produces presigned GET URLs for objects in one bucket with a fixed lifetime."""

    def __init__(self, s3_client: S3Client, bucket: str, expires_in_seconds: int):
        self._s3_client = s3_client
        self._bucket = bucket
        self._expires_in = expires_in_seconds

    def generate(self, object_key: str) -> str:
        """
        Raises:
            InvalidObjectKeyError: If *object_key* is empty or missing.
            PresignedUrlGenerationError: If botocore cannot sign the request.
        """
        if not object_key:
            raise InvalidObjectKeyError(key=object_key)
        try:
            return self._s3_client.generate_presigned_get_url(
                self._bucket, object_key, self._expires_in
            )
        except PresignedUrlGenerationError as e:
            logger.error(
                f"Error generating presigned URL for {object_key}",
                extra=get_error_context(e),
            )
            raise


# --- Record Key Resolver ---
def determine_primary_key(item: Item) -> Item | None:
    """
    Derives the DynamoDB key for *item*.

    The composite (imageName, selectionId) key wins when both are present,
    then imageName, then selectionId, then the generic id. Returns None when
    the item carries none of them.
    """
    image_name = item.get(IMAGE_NAME_ATTR)
    selection_id = item.get(SELECTION_ID_ATTR)

    if image_name and selection_id:
        return {IMAGE_NAME_ATTR: image_name, SELECTION_ID_ATTR: selection_id}
    if image_name:
        return {IMAGE_NAME_ATTR: image_name}
    if selection_id:
        return {SELECTION_ID_ATTR: selection_id}
    if item.get(ID_ATTR):
        return {ID_ATTR: item[ID_ATTR]}

    logger.error(
        "No valid key found for item",
        extra={"item": json.dumps(item, default=str)},
    )
    return None


# --- Record Updater ---
class PresignedUrlUpdater:
    """Refreshes the presigned URL and timestamp of a single record."""

    def __init__(
        self,
        generator: PresignedUrlGenerator,
        table: MetadataTableClient,
        clock: Callable[[], datetime] | None = None,
    ):
        self._generator = generator
        self._table = table
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def update(self, item: Item) -> UpdateOutcome:
        """Never raises; every failure is reported through the returned outcome."""
        try:
            return self._update(item)
        except Exception as e:
            logger.exception(
                f"Unexpected error updating item {_describe(item)}",
                extra={"error_type": type(e).__name__},
            )
            return UpdateOutcome.failure(FailureReason.UNEXPECTED_ERROR, str(e))

    def _update(self, item: Item) -> UpdateOutcome:
        fields: dict[str, str] = {}

        object_key = item.get(OBJECT_KEY_ATTR)
        if object_key:
            try:
                fields[PRESIGNED_URL_ATTR] = self._generator.generate(str(object_key))
            except (InvalidObjectKeyError, PresignedUrlGenerationError) as e:
                logger.warning(
                    f"Failed to generate presigned URL for objectKey {object_key}: {e.message}",
                    extra={"error_code": e.error_code},
                )

        fields[PRESIGNED_URL_TIMESTAMP_ATTR] = utc_timestamp(self._clock())

        if PRESIGNED_URL_ATTR not in fields:
            logger.warning(f"No presignedUrl generated for item {_describe(item)}")
            return UpdateOutcome.failure(
                FailureReason.NO_PRESIGNED_URL, "No presignedUrl generated"
            )

        key = determine_primary_key(item)
        if key is None:
            return UpdateOutcome.failure(
                FailureReason.UNRESOLVABLE_KEY, "Unable to determine primary key"
            )

        logger.debug(
            "Attempting to update item",
            extra={
                "key": key,
                "presigned_url": redact_presigned_url(fields[PRESIGNED_URL_ATTR]),
            },
        )
        try:
            self._table.update_fields(key, fields)
        except MetadataTableError as e:
            logger.error(
                f"Error updating item {_describe(item)}",
                extra=get_error_context(e),
            )
            return UpdateOutcome.failure(FailureReason.UPDATE_FAILED, e.message)

        logger.debug(f"Successfully updated presignedUrl for item: {_describe(item)}")
        return UpdateOutcome.ok()


# --- Batch Processor ---
def process_items_batch(
    items: list[Item],
    updater: PresignedUrlUpdater,
    max_workers: int,
) -> BatchResult:
    """
    Runs `updater.update` for every item concurrently and waits for all of them.

    Each future is inspected on its own, so a failing record is counted and
    never cancels or hides the others. If the executor itself breaks, the
    whole page is counted as failed.
    """
    if not items:
        return BatchResult(success_count=0, error_count=0)

    try:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as executor:
            futures: list[Future[UpdateOutcome]] = [
                executor.submit(updater.update, item) for item in items
            ]
            outcomes = [_collect(index, future) for index, future in enumerate(futures)]
    except Exception:
        logger.exception("Error processing batch", extra={"batch_size": len(items)})
        return BatchResult(
            success_count=0,
            error_count=len(items),
            failure_reasons={FailureReason.UNEXPECTED_ERROR.value: len(items)},
        )

    success_count = 0
    failure_reasons: dict[str, int] = {}
    for index, outcome in enumerate(outcomes):
        if outcome.success:
            success_count += 1
            continue
        reason = (outcome.reason or FailureReason.UNEXPECTED_ERROR).value
        failure_reasons[reason] = failure_reasons.get(reason, 0) + 1
        logger.warning(
            f"Failed to process item {index}: {outcome.error}",
            extra={"reason": reason},
        )

    return BatchResult(
        success_count=success_count,
        error_count=len(items) - success_count,
        failure_reasons=failure_reasons,
    )


def _collect(index: int, future: "Future[UpdateOutcome]") -> UpdateOutcome:
    try:
        return future.result()
    except Exception as e:
        logger.error(
            f"Failed to process item {index}",
            extra={"error_type": type(e).__name__, "error": str(e)},
        )
        return UpdateOutcome.failure(FailureReason.UNEXPECTED_ERROR, str(e))
