"""
The Lambda Adapter & Orchestrator for the Presigned URL Refresher service.

This module is the main entry point for the scheduled AWS Lambda function. It
is responsible for:
1.  Initializing and configuring AWS Lambda Powertools (Logger, Tracer, Metrics).
2.  Loading and validating configuration before any AWS access.
3.  Wiring the AWS clients into the scan driver and running one full pass
    over the metadata table.
4.  Building the job summary on both the success and the failure path and
    handing it to the e-mail notifier.
5.  Translating the run into the `{statusCode, body}` invocation result.
"""

import json
import os
import time
from datetime import datetime, timezone
from functools import cached_property, lru_cache
from typing import Any

import boto3
from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.logging.utils import copy_config_to_registered_loggers
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError

from .clients import MetadataTableClient, S3Client, SESClient
from .config import DEFAULT_EXPIRATION_DAYS, AppConfig, get_config, parse_recipients
from .core import PresignedUrlGenerator, PresignedUrlUpdater
from .exceptions import PresignedUrlRefresherError, get_error_context
from .notifications import JobSummaryNotifier
from .scanner import TableScanDriver
from .schemas import HandlerResponse, JobSummary, ScanStats

# --- Global & Reusable Components ---
SERVICE_NAME = os.getenv("POWERTOOLS_SERVICE_NAME", "presigned-url-refresher")

logger = Logger(service=SERVICE_NAME)
tracer = Tracer(service=SERVICE_NAME)
metrics = Metrics(namespace="PresignedUrlRefresher", service=SERVICE_NAME)

# Route the package's stdlib loggers through the Powertools JSON formatter.
copy_config_to_registered_loggers(source_logger=logger, include={"presigned_url_refresher"})


class Dependencies:
    """Lazily-instantiated AWS clients, built once per cold start."""

    @cached_property
    def s3_client(self) -> S3Client:
        # SigV4 is required for URLs that live longer than an hour.
        return S3Client(s3_client=boto3.client("s3", config=BotoConfig(signature_version="s3v4")))

    @cached_property
    def dynamodb_client(self) -> Any:
        return boto3.client("dynamodb")

    @cached_property
    def ses_client(self) -> SESClient:
        return SESClient(ses_client=boto3.client("ses"))

    def metadata_table(self, table_name: str) -> MetadataTableClient:
        return MetadataTableClient(self.dynamodb_client, table_name)


@lru_cache(maxsize=1)
def get_dependencies() -> Dependencies:
    return Dependencies()


def build_driver(config: AppConfig, deps: Dependencies) -> TableScanDriver:
    """Wires the generator, updater and table client into a scan driver."""
    table = deps.metadata_table(config.table_name)
    generator = PresignedUrlGenerator(
        s3_client=deps.s3_client,
        bucket=config.bucket_name,
        expires_in_seconds=config.expiration_seconds,
    )
    updater = PresignedUrlUpdater(generator=generator, table=table)
    return TableScanDriver(
        table=table,
        updater=updater,
        page_size=config.batch_size,
        max_workers=config.max_workers,
        max_throttle_retries=config.max_scan_throttle_retries,
    )


def _build_summary(
    stats: ScanStats,
    config: AppConfig | None,
    start_time: datetime,
    duration_ms: int,
    error: str | None = None,
) -> JobSummary:
    return JobSummary(
        processed_count=stats.processed_count,
        success_count=stats.success_count,
        error_count=stats.error_count,
        duration_ms=duration_ms,
        start_time=start_time,
        table_name=config.table_name if config else os.getenv("TABLE_NAME") or "Unknown",
        bucket_name=config.bucket_name if config else os.getenv("S3_BUCKET_NAME") or "Unknown",
        expiration_days=config.expiration_days if config else DEFAULT_EXPIRATION_DAYS,
        status="failed" if error is not None else "success",
        error=error,
        failure_reasons=dict(stats.failure_reasons),
    )


def _send_summary(summary: JobSummary, config: AppConfig | None) -> None:
    """Hands the summary to the notifier. Must never fail the invocation."""
    if config is not None:
        from_address, to_addresses = config.ses_from_email, config.ses_to_emails
    else:
        # Configuration failed to load; the e-mail settings may still be usable.
        from_address = os.getenv("SES_FROM_EMAIL") or None
        to_addresses = parse_recipients(os.getenv("SES_TO_EMAILS", ""))

    ses_client: SESClient | None = None
    if from_address and to_addresses:
        try:
            ses_client = get_dependencies().ses_client
        except BotoCoreError as e:
            logger.error("Could not create SES client", extra=get_error_context(e))

    JobSummaryNotifier(ses_client, from_address, to_addresses).report(summary)


def _record_metrics(stats: ScanStats) -> None:
    metrics.add_metric(name="ProcessedRecords", unit=MetricUnit.Count, value=stats.processed_count)
    metrics.add_metric(name="SuccessfulRecords", unit=MetricUnit.Count, value=stats.success_count)
    metrics.add_metric(name="FailedRecords", unit=MetricUnit.Count, value=stats.error_count)
    metrics.add_metric(name="ScanThrottles", unit=MetricUnit.Count, value=stats.throttle_count)


def _response(status_code: int, body: dict[str, Any]) -> HandlerResponse:
    return {"statusCode": status_code, "body": json.dumps(body)}


@logger.inject_lambda_context(log_event=True)
@tracer.capture_lambda_handler
@metrics.log_metrics(capture_cold_start_metric=True)
def handler(event: dict, context: LambdaContext) -> HandlerResponse:
    """Main Lambda handler for scheduled (EventBridge) and manual invocations."""
    logger.info("Starting presigned URL regeneration process")

    start_time = datetime.now(timezone.utc)
    started = time.monotonic()
    stats = ScanStats()
    config: AppConfig | None = None

    try:
        config = get_config()
        logger.setLevel(config.log_level)
        copy_config_to_registered_loggers(
            source_logger=logger,
            log_level=config.log_level,
            include={"presigned_url_refresher"},
        )
        logger.info(
            "Configuration loaded",
            extra={
                "table_name": config.table_name,
                "bucket_name": config.bucket_name,
                "expiration_days": config.expiration_days,
                "batch_size": config.batch_size,
            },
        )

        driver = build_driver(config, get_dependencies())
        stats = driver.stats
        driver.run()

    except Exception as e:
        duration_ms = int((time.monotonic() - started) * 1000)
        error_message = e.message if isinstance(e, PresignedUrlRefresherError) else str(e)
        message = f"Error in presigned URL regeneration: {error_message}"
        logger.exception(message, extra=get_error_context(e))

        metrics.add_metric(name="JobFailures", unit=MetricUnit.Count, value=1)
        _record_metrics(stats)
        _send_summary(
            _build_summary(stats, config, start_time, duration_ms, error=error_message),
            config,
        )
        return _response(
            500,
            {
                "message": message,
                "processedCount": stats.processed_count,
                "successCount": stats.success_count,
                "errorCount": stats.error_count,
                "error": error_message,
            },
        )

    duration_ms = int((time.monotonic() - started) * 1000)
    message = (
        f"Successfully processed {stats.processed_count} items "
        f"({stats.success_count} successful, {stats.error_count} errors) in {duration_ms}ms"
    )
    logger.info(message, extra={"failure_reasons": dict(stats.failure_reasons)})

    _record_metrics(stats)
    _send_summary(_build_summary(stats, config, start_time, duration_ms), config)
    return _response(
        200,
        {
            "message": message,
            "processedCount": stats.processed_count,
            "successCount": stats.success_count,
            "errorCount": stats.error_count,
            "duration": duration_ms,
        },
    )
