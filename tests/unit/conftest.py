"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import os
import types
import uuid
from unittest.mock import MagicMock

import pytest

from presigned_url_refresher.clients import S3Client
from presigned_url_refresher.exceptions import MetadataTableError
from presigned_url_refresher.schemas import ScanPage

# Powertools reads these when the handler module is imported, which happens at
# collection time, before any fixture runs.
os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "presigned-url-refresher-test")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "PresignedUrlRefresherTest")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables needed by the handler.
    """
    original = os.environ.copy()
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    yield
    os.environ.clear()
    os.environ.update(original)


@pytest.fixture
def lambda_context():
    """A *very* small stand-in for the LambdaContext object."""
    return types.SimpleNamespace(
        function_name="presigned-url-refresher",
        memory_limit_in_mb=256,
        aws_request_id="req-" + uuid.uuid4().hex,
        invoked_function_arn="arn:aws:lambda:eu-west-1:000000000000:function:dummy",
        get_remaining_time_in_millis=lambda: 300_000,
    )


# ---------- In-memory collaborators ---------- #
class FakeMetadataTable:
    """
    Stand-in for MetadataTableClient serving a fixed list of pages.

    Page *i* returns `LastEvaluatedKey` {"imageName": {"S": "page-i"}} unless
    it is the last page. `scan_errors` is consumed one entry per scan call:
    an exception is raised, None means serve the page normally.
    """

    table_name = "test-table"

    def __init__(self, pages, scan_errors=None, failing_keys=()):
        self.pages = [list(page) for page in pages]
        self.scan_calls: list[dict | None] = []
        self.updates: list[tuple[dict, dict]] = []
        self._scan_errors = list(scan_errors or [])
        self._failing_keys = [dict(k) for k in failing_keys]

    @staticmethod
    def key_for(index: int) -> dict:
        return {"imageName": {"S": f"page-{index}"}}

    def scan_page(self, limit, exclusive_start_key=None):
        self.scan_calls.append(exclusive_start_key)
        if self._scan_errors:
            error = self._scan_errors.pop(0)
            if error is not None:
                raise error

        if not self.pages:
            return ScanPage(items=[], last_evaluated_key=None)

        index = 0
        if exclusive_start_key is not None:
            index = int(exclusive_start_key["imageName"]["S"].split("-")[1]) + 1

        is_last = index == len(self.pages) - 1
        return ScanPage(
            items=self.pages[index][:limit],
            last_evaluated_key=None if is_last else self.key_for(index),
        )

    def update_fields(self, key, fields):
        if key in self._failing_keys:
            raise MetadataTableError(
                "UpdateItem", "The conditional request failed", context={"key": key}
            )
        self.updates.append((key, dict(fields)))
        return dict(fields)


@pytest.fixture
def mock_s3_client() -> MagicMock:
    """An S3Client whose presigned URLs are derived from the object key."""
    client = MagicMock(spec=S3Client)
    client.generate_presigned_get_url.side_effect = (
        lambda bucket, key, expires_in: f"https://{bucket}.s3.amazonaws.com/{key}"
        f"?X-Amz-Expires={expires_in}&X-Amz-Signature=deadbeef"
    )
    return client


@pytest.fixture
def make_table():
    """Factory fixture for FakeMetadataTable."""
    return FakeMetadataTable
