# src/presigned_url_refresher/notifications.py

"""
Job summary e-mail sent once at the end of every invocation.

Delivery is best effort: a notification problem is logged and dropped, it
never changes the outcome of the job itself.
"""

import html
import logging
from datetime import datetime, timezone
from typing import Sequence

from .clients import SESClient
from .exceptions import get_error_context
from .schemas import JobSummary

logger = logging.getLogger(__name__)


def format_duration(ms: int) -> str:
    """Formats milliseconds as e.g. `1h 2m 3s`, `4m 5s` or `6s`."""
    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def format_date(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%B %d, %Y %H:%M:%S UTC")


def build_subject(summary: JobSummary) -> str:
    status_text = "Completed Successfully" if summary.status == "success" else "Failed"
    return (
        f"[AWS Lambda] Presigned URL Regeneration {status_text} - "
        f"{summary.processed_count} items"
    )


def _detail_rows(summary: JobSummary) -> list[tuple[str, str]]:
    rows = [
        ("Execution Time", format_duration(summary.duration_ms)),
        ("Started At", format_date(summary.start_time)),
        ("DynamoDB Table", summary.table_name),
        ("S3 Bucket", summary.bucket_name),
        ("URL Expiration", f"{summary.expiration_days} days"),
    ]
    if summary.error:
        rows.append(("Error", summary.error))
    return rows


def render_text(summary: JobSummary) -> str:
    lines = [
        "PRESIGNED URL REGENERATION SUMMARY",
        "",
        f"Status: {summary.status.upper()}",
        "",
        "METRICS:",
        f"- Total Processed: {summary.processed_count}",
        f"- Successful: {summary.success_count}",
        f"- Errors: {summary.error_count}",
        f"- Success Rate: {summary.success_rate:.1f}%",
    ]
    if summary.failure_reasons:
        lines.append("")
        lines.append("FAILURES BY REASON:")
        lines.extend(
            f"- {reason}: {count}" for reason, count in sorted(summary.failure_reasons.items())
        )
    lines.append("")
    lines.append("JOB DETAILS:")
    lines.extend(f"- {label}: {value}" for label, value in _detail_rows(summary))
    lines.append("")
    lines.append("---")
    lines.append("This is an automated notification from your AWS Lambda function.")
    lines.append(f"Generated on {format_date(datetime.now(timezone.utc))}")
    return "\n".join(lines) + "\n"


def render_html(summary: JobSummary) -> str:
    metrics = [
        ("Total Processed", summary.processed_count),
        ("Successful", summary.success_count),
        ("Errors", summary.error_count),
        ("Success Rate", f"{summary.success_rate:.1f}%"),
    ]
    metric_rows = "".join(
        f"<tr><th>{label}</th><td>{value}</td></tr>" for label, value in metrics
    )
    detail_rows = "".join(
        f"<tr><th>{html.escape(label)}</th><td>{html.escape(value)}</td></tr>"
        for label, value in _detail_rows(summary)
    )
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="UTF-8">'
        "<title>Presigned URL Regeneration Summary</title></head><body>"
        f"<h1>Presigned URL Regeneration: {summary.status.upper()}</h1>"
        f"<table>{metric_rows}</table>"
        f"<h2>Job Details</h2><table>{detail_rows}</table>"
        "<p>This is an automated notification from your AWS Lambda function.</p>"
        "</body></html>"
    )


class JobSummaryNotifier:
    """Run reporter: e-mails the job summary through SES."""

    def __init__(
        self,
        ses_client: SESClient | None,
        from_address: str | None,
        to_addresses: Sequence[str],
    ):
        self._ses_client = ses_client
        self._from_address = from_address
        self._to_addresses = tuple(to_addresses)

    def report(self, summary: JobSummary) -> None:
        """Sends the summary. Never raises."""
        if self._ses_client is None or not self._from_address or not self._to_addresses:
            logger.warning(
                "SES email configuration missing. Skipping email notification.",
                extra={
                    "ses_from_email": self._from_address,
                    "recipients": len(self._to_addresses),
                },
            )
            return

        try:
            message_id = self._ses_client.send_email(
                source=self._from_address,
                to_addresses=self._to_addresses,
                subject=build_subject(summary),
                html_body=render_html(summary),
                text_body=render_text(summary),
            )
        except Exception as e:
            # The job's own result must not depend on e-mail delivery.
            logger.error("Failed to send email notification", extra=get_error_context(e))
            return

        logger.info(f"Email notification sent successfully. MessageId: {message_id}")
