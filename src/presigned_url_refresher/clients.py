# src/presigned_url_refresher/clients.py

"""
Client wrappers for interacting with AWS services (S3, DynamoDB and SES).

These classes provide a clean, abstracted interface over raw boto3 clients,
making the core application logic easier to read, test, and maintain. Each
wrapper maps botocore failures onto the service's own exception types so the
callers only ever deal with one error vocabulary.

Only low-level boto3 *clients* are wrapped (never resources) because the
updater calls them from a thread pool and clients are thread-safe.
"""

import logging
from typing import Any, Sequence, TYPE_CHECKING

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import (
    MetadataTableError,
    NotificationDeliveryError,
    PresignedUrlGenerationError,
    TableThrottlingError,
)
from .schemas import Item, ScanPage
from .security import validate_object_key

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.client import DynamoDBClient as DynamoDBClientType
    from mypy_boto3_s3.client import S3Client as S3ClientType
    from mypy_boto3_ses.client import SESClient as SESClientType

logger = logging.getLogger(__name__)

# DynamoDB error codes that mean "slow down", as opposed to a permanent failure.
THROTTLING_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
    }
)

EMAIL_CHARSET = "UTF-8"
DEFAULT_EMAIL_TAGS = (
    {"Name": "EmailType", "Value": "SystemNotification"},
    {"Name": "Source", "Value": "AWSLambda"},
)


class S3Client:
    """
    A wrapper for the S3 operations this job needs: presigning object reads.
    """

    def __init__(self, s3_client: "S3ClientType"):
        self._client = s3_client

    def generate_presigned_get_url(self, bucket: str, key: str, expires_in: int) -> str:
        """
        Returns a presigned GET URL for s3://bucket/key valid for *expires_in* seconds.

        Signing happens locally, so the only failures are a bad key or a
        botocore problem (missing credentials, invalid parameters).
        """
        validate_object_key(key)
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except ClientError as e:
            raise PresignedUrlGenerationError(
                bucket=bucket,
                key=key,
                reason=e.response["Error"]["Message"],
                context={"aws_error_code": e.response["Error"]["Code"]},
            ) from e
        except BotoCoreError as e:
            raise PresignedUrlGenerationError(
                bucket=bucket,
                key=key,
                reason=str(e),
                context={"botocore_error": type(e).__name__},
            ) from e


class MetadataTableClient:
    """
    A wrapper for scanning and partially updating the DynamoDB metadata table.

    Items are returned as plain Python values; keys and attribute values are
    serialized back to the DynamoDB wire format on the way in.
    """

    def __init__(self, dynamodb_client: "DynamoDBClientType", table_name: str):
        self._client = dynamodb_client
        self._table_name = table_name
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @property
    def table_name(self) -> str:
        return self._table_name

    def scan_page(
        self, limit: int, exclusive_start_key: dict[str, Any] | None = None
    ) -> ScanPage:
        """
        Reads one page of at most *limit* items.

        *exclusive_start_key* is the opaque `last_evaluated_key` of the
        previous page and is passed back to DynamoDB untouched.
        """
        params: dict[str, Any] = {"TableName": self._table_name, "Limit": limit}
        if exclusive_start_key:
            params["ExclusiveStartKey"] = exclusive_start_key

        try:
            response = self._client.scan(**params)
        except ClientError as e:
            raise self._map_client_error(e, "Scan") from e
        except BotoCoreError as e:
            raise MetadataTableError(
                "Scan",
                str(e),
                error_code="TABLE_CONNECTION_ERROR",
                context={"table": self._table_name, "botocore_error": type(e).__name__},
            ) from e

        items = [self._deserialize(raw) for raw in response.get("Items", [])]
        return ScanPage(items=items, last_evaluated_key=response.get("LastEvaluatedKey"))

    def update_fields(self, key: Item, fields: dict[str, Any]) -> Item:
        """
        Applies `SET` for exactly the attributes in *fields* on the item
        addressed by *key*, leaving every other attribute untouched.
        Returns the updated attributes.
        """
        if not fields:
            raise ValueError("update_fields requires at least one attribute")

        assignments = []
        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        for i, (name, value) in enumerate(fields.items()):
            assignments.append(f"#f{i} = :v{i}")
            names[f"#f{i}"] = name
            values[f":v{i}"] = self._serializer.serialize(value)

        try:
            response = self._client.update_item(
                TableName=self._table_name,
                Key={k: self._serializer.serialize(v) for k, v in key.items()},
                UpdateExpression="SET " + ", ".join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="UPDATED_NEW",
            )
        except ClientError as e:
            raise self._map_client_error(e, "UpdateItem", key=key) from e
        except BotoCoreError as e:
            raise MetadataTableError(
                "UpdateItem",
                str(e),
                error_code="TABLE_CONNECTION_ERROR",
                context={"table": self._table_name, "key": key},
            ) from e

        return self._deserialize(response.get("Attributes", {}))

    def _deserialize(self, raw: dict[str, Any]) -> Item:
        return {name: self._deserializer.deserialize(value) for name, value in raw.items()}

    def _map_client_error(
        self, error: ClientError, operation: str, key: Item | None = None
    ) -> Exception:
        error_code = error.response["Error"]["Code"]
        error_message = error.response["Error"]["Message"]
        context: dict[str, Any] = {
            "table": self._table_name,
            "aws_error_code": error_code,
            "aws_error_message": error_message,
        }
        if key is not None:
            context["key"] = key

        # Map boto3 error codes to our specific exception types
        if error_code in THROTTLING_ERROR_CODES:
            return TableThrottlingError(operation, context=context)
        return MetadataTableError(operation, error_message, context=context)


class SESClient:
    """
    A wrapper for sending the job summary through Amazon SES.
    """

    def __init__(self, ses_client: "SESClientType"):
        self._client = ses_client

    def send_email(
        self,
        source: str,
        to_addresses: Sequence[str],
        subject: str,
        html_body: str,
        text_body: str,
    ) -> str:
        """Sends a multipart (HTML + text) e-mail and returns the SES message id."""
        try:
            response = self._client.send_email(
                Source=source,
                Destination={"ToAddresses": list(to_addresses)},
                Message={
                    "Subject": {"Data": subject, "Charset": EMAIL_CHARSET},
                    "Body": {
                        "Html": {"Data": html_body, "Charset": EMAIL_CHARSET},
                        "Text": {"Data": text_body, "Charset": EMAIL_CHARSET},
                    },
                },
                Tags=[dict(tag) for tag in DEFAULT_EMAIL_TAGS],
            )
        except ClientError as e:
            raise NotificationDeliveryError(
                e.response["Error"]["Message"],
                context={
                    "aws_error_code": e.response["Error"]["Code"],
                    "recipients": len(to_addresses),
                },
            ) from e
        except BotoCoreError as e:
            raise NotificationDeliveryError(
                str(e), context={"botocore_error": type(e).__name__}
            ) from e

        message_id = response["MessageId"]
        logger.debug("SES accepted message", extra={"message_id": message_id})
        return message_id
