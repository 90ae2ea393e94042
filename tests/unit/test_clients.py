# tests/unit/test_clients.py

"""
Unit tests for the AWS client wrappers in src/presigned_url_refresher/clients.py.

These tests ensure that our wrappers call the underlying boto3 clients with
the expected arguments and map botocore failures onto the service's own
exception types.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from presigned_url_refresher.clients import MetadataTableClient, S3Client, SESClient
from presigned_url_refresher.exceptions import (
    InvalidObjectKeyError,
    MetadataTableError,
    NotificationDeliveryError,
    PresignedUrlGenerationError,
    TableThrottlingError,
)


def _client_error(code: str, message: str = "boom", operation: str = "Scan") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


# -----------------------------------------------------------------------------
# Fixtures for setting up clients with mock dependencies
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_boto_client() -> MagicMock:
    """Yields a MagicMock standing in for any low-level boto3 client."""
    return MagicMock()


@pytest.fixture
def table(mock_boto_client: MagicMock) -> MetadataTableClient:
    return MetadataTableClient(mock_boto_client, "images-table")


# -----------------------------------------------------------------------------
# Tests for S3Client
# -----------------------------------------------------------------------------


def test_s3_client_generates_presigned_get_url(mock_boto_client: MagicMock):
    mock_boto_client.generate_presigned_url.return_value = "https://signed"

    url = S3Client(mock_boto_client).generate_presigned_get_url(
        "images-bucket", "a/b.jpg", 604_800
    )

    assert url == "https://signed"
    mock_boto_client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "images-bucket", "Key": "a/b.jpg"},
        ExpiresIn=604_800,
    )


@pytest.mark.parametrize("bad_key", ["", None, 42])
def test_s3_client_rejects_invalid_keys(mock_boto_client: MagicMock, bad_key):
    with pytest.raises(InvalidObjectKeyError):
        S3Client(mock_boto_client).generate_presigned_get_url("b", bad_key, 60)
    mock_boto_client.generate_presigned_url.assert_not_called()


def test_s3_client_maps_botocore_errors(mock_boto_client: MagicMock):
    mock_boto_client.generate_presigned_url.side_effect = NoCredentialsError()

    with pytest.raises(PresignedUrlGenerationError) as exc_info:
        S3Client(mock_boto_client).generate_presigned_get_url("b", "k", 60)

    assert exc_info.value.context["bucket"] == "b"
    assert exc_info.value.context["botocore_error"] == "NoCredentialsError"


# -----------------------------------------------------------------------------
# Tests for MetadataTableClient
# -----------------------------------------------------------------------------


def test_scan_page_deserializes_items_and_passes_start_key(
    table: MetadataTableClient, mock_boto_client: MagicMock
):
    start_key = {"imageName": {"S": "cat.jpg"}}
    mock_boto_client.scan.return_value = {
        "Items": [
            {"imageName": {"S": "dog.jpg"}, "objectKey": {"S": "pets/dog.jpg"}, "size": {"N": "12"}}
        ],
        "LastEvaluatedKey": {"imageName": {"S": "dog.jpg"}},
    }

    page = table.scan_page(25, start_key)

    mock_boto_client.scan.assert_called_once_with(
        TableName="images-table", Limit=25, ExclusiveStartKey=start_key
    )
    assert page.items == [{"imageName": "dog.jpg", "objectKey": "pets/dog.jpg", "size": Decimal("12")}]
    assert page.last_evaluated_key == {"imageName": {"S": "dog.jpg"}}


def test_scan_page_without_start_key_or_items(
    table: MetadataTableClient, mock_boto_client: MagicMock
):
    mock_boto_client.scan.return_value = {}

    page = table.scan_page(25)

    mock_boto_client.scan.assert_called_once_with(TableName="images-table", Limit=25)
    assert page.items == []
    assert page.last_evaluated_key is None


@pytest.mark.parametrize(
    "code",
    ["ProvisionedThroughputExceededException", "ThrottlingException", "RequestLimitExceeded"],
)
def test_scan_page_maps_throttling(table: MetadataTableClient, mock_boto_client: MagicMock, code):
    mock_boto_client.scan.side_effect = _client_error(code)

    with pytest.raises(TableThrottlingError) as exc_info:
        table.scan_page(25)

    assert exc_info.value.context["aws_error_code"] == code


def test_scan_page_maps_other_client_errors_to_table_error(
    table: MetadataTableClient, mock_boto_client: MagicMock
):
    mock_boto_client.scan.side_effect = _client_error("ResourceNotFoundException", "no table")

    with pytest.raises(MetadataTableError) as exc_info:
        table.scan_page(25)

    assert not isinstance(exc_info.value, TableThrottlingError)
    assert "no table" in exc_info.value.message


def test_scan_page_maps_connection_errors_to_table_error(
    table: MetadataTableClient, mock_boto_client: MagicMock
):
    mock_boto_client.scan.side_effect = EndpointConnectionError(endpoint_url="https://dynamodb")

    with pytest.raises(MetadataTableError) as exc_info:
        table.scan_page(25)

    assert exc_info.value.error_code == "TABLE_CONNECTION_ERROR"


def test_update_fields_sets_only_given_attributes(
    table: MetadataTableClient, mock_boto_client: MagicMock
):
    mock_boto_client.update_item.return_value = {
        "Attributes": {"presignedUrl": {"S": "https://signed"}}
    }

    result = table.update_fields(
        {"imageName": "cat.jpg", "selectionId": "s-1"},
        {"presignedUrl": "https://signed", "presignedUrlTimestamp": "2024-01-01T00:00:00.000Z"},
    )

    mock_boto_client.update_item.assert_called_once_with(
        TableName="images-table",
        Key={"imageName": {"S": "cat.jpg"}, "selectionId": {"S": "s-1"}},
        UpdateExpression="SET #f0 = :v0, #f1 = :v1",
        ExpressionAttributeNames={"#f0": "presignedUrl", "#f1": "presignedUrlTimestamp"},
        ExpressionAttributeValues={
            ":v0": {"S": "https://signed"},
            ":v1": {"S": "2024-01-01T00:00:00.000Z"},
        },
        ReturnValues="UPDATED_NEW",
    )
    assert result == {"presignedUrl": "https://signed"}


def test_update_fields_maps_errors(table: MetadataTableClient, mock_boto_client: MagicMock):
    mock_boto_client.update_item.side_effect = _client_error(
        "ValidationException", "key mismatch", "UpdateItem"
    )

    with pytest.raises(MetadataTableError) as exc_info:
        table.update_fields({"id": "1"}, {"presignedUrl": "u"})

    assert exc_info.value.context["key"] == {"id": "1"}
    assert exc_info.value.context["operation"] == "UpdateItem"


def test_update_fields_requires_fields(table: MetadataTableClient):
    with pytest.raises(ValueError):
        table.update_fields({"id": "1"}, {})


# -----------------------------------------------------------------------------
# Tests for SESClient
# -----------------------------------------------------------------------------


def test_ses_client_send_email(mock_boto_client: MagicMock):
    mock_boto_client.send_email.return_value = {"MessageId": "msg-1"}

    message_id = SESClient(mock_boto_client).send_email(
        source="jobs@example.com",
        to_addresses=("ops@example.com",),
        subject="Subject",
        html_body="<p>hi</p>",
        text_body="hi",
    )

    assert message_id == "msg-1"
    kwargs = mock_boto_client.send_email.call_args.kwargs
    assert kwargs["Source"] == "jobs@example.com"
    assert kwargs["Destination"] == {"ToAddresses": ["ops@example.com"]}
    assert kwargs["Message"]["Subject"] == {"Data": "Subject", "Charset": "UTF-8"}
    assert kwargs["Message"]["Body"]["Html"]["Data"] == "<p>hi</p>"
    assert kwargs["Message"]["Body"]["Text"]["Data"] == "hi"
    assert {"Name": "EmailType", "Value": "SystemNotification"} in kwargs["Tags"]


def test_ses_client_maps_client_errors(mock_boto_client: MagicMock):
    mock_boto_client.send_email.side_effect = _client_error(
        "MessageRejected", "Email address is not verified", "SendEmail"
    )

    with pytest.raises(NotificationDeliveryError) as exc_info:
        SESClient(mock_boto_client).send_email("a@x.com", ["b@x.com"], "s", "h", "t")

    assert "not verified" in exc_info.value.message
    assert exc_info.value.context["aws_error_code"] == "MessageRejected"
