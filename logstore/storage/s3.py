from __future__ import annotations

from collections.abc import Mapping
from contextlib import closing
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from logstore.credentials import StaticCredentials, resolve_credentials
from logstore.exceptions import S3Error, StorageError
from logstore.logging_config import get_logger
from logstore.settings import StorageSettings
from logstore.storage import ExecutionSession, build_user_metadata, copy_stream

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

# put_object has no LastModified parameter; it is carried through the request
# context and sent as a header.
LAST_MODIFIED_PARAM = "LastModified"
_LAST_MODIFIED_CONTEXT_KEY = "logstore_last_modified"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _stash_last_modified(params: dict[str, Any], context: dict[str, Any], **kwargs: Any) -> None:
    last_modified = params.pop(LAST_MODIFIED_PARAM, None)
    if last_modified is not None:
        context[_LAST_MODIFIED_CONTEXT_KEY] = last_modified


def _send_last_modified(params: dict[str, Any], context: dict[str, Any], **kwargs: Any) -> None:
    last_modified = context.get(_LAST_MODIFIED_CONTEXT_KEY)
    if last_modified is not None:
        params["headers"]["Last-Modified"] = format_datetime(_as_utc(last_modified), usegmt=True)


def register_last_modified_hooks(client: Any) -> None:
    events = client.meta.events
    events.register(
        "before-parameter-build.s3.PutObject",
        _stash_last_modified,
        unique_id="logstore-stash-last-modified",
    )
    events.register(
        "before-call.s3.PutObject",
        _send_last_modified,
        unique_id="logstore-send-last-modified",
    )


def create_s3_client(settings: StorageSettings, credentials: StaticCredentials | None = None) -> Any:
    config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "path" if settings.path_style else "auto"},
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
        retries={"max_attempts": settings.max_attempts, "mode": "standard"},
    )
    session = boto3.session.Session(region_name=settings.region)
    client_args: dict[str, Any] = {"config": config}
    if settings.endpoint:
        client_args["endpoint_url"] = settings.endpoint
    if credentials is not None:
        client_args["aws_access_key_id"] = credentials.access_key_id
        client_args["aws_secret_access_key"] = credentials.secret_access_key
    return session.client("s3", **client_args)


def is_not_found(exc: ClientError) -> bool:
    error_code = str(exc.response.get("Error", {}).get("Code", ""))
    status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error_code in NOT_FOUND_CODES or status_code == 404


class S3LogFileStorage:
    """Execution file storage in an S3 bucket.

    One instance serves one execution: the context is captured and the base
    key expanded when the instance is created, and every filetype of that
    execution is stored next to it.

    Request failures (error responses, connection problems) raise
    ``StorageError``. Failures while streaming an already opened object into
    the caller's output propagate unchanged.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        path_template: str,
        context: Mapping[str, str],
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.session = ExecutionSession.create(path_template, context)
        register_last_modified_hooks(client)

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        context: Mapping[str, str],
        client: Any | None = None,
    ) -> "S3LogFileStorage":
        """Build the storage for one execution.

        Raises:
            ConfigurationError: If the configured credentials are unusable.
        """
        credentials = resolve_credentials(settings)
        if client is None:
            client = create_s3_client(settings, credentials)
        return cls(client, settings.bucket, settings.path, context)

    def key_for(self, filetype: str) -> str:
        return self.session.key_for(filetype)

    def _log(self, operation: str, key: str) -> Any:
        return get_logger(__name__, bucket=self.bucket, key=key, operation=operation)

    def _failure(self, operation: str, key: str, exc: Exception) -> StorageError:
        details = {"bucket": self.bucket, "key": key, "operation": operation}
        self._log(operation, key).error(f"S3 {operation} failed for s3://{self.bucket}/{key}: {exc}")
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            return S3Error(
                str(exc),
                details,
                status_code=exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
                error_code=error.get("Code"),
            )
        return StorageError(str(exc), details)

    def probe(self, filetype: str) -> bool:
        key = self.key_for(filetype)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                self._log("head_object", key).debug(f"s3://{self.bucket}/{key} not found")
                return False
            raise self._failure("head_object", key, exc) from exc
        except BotoCoreError as exc:
            raise self._failure("head_object", key, exc) from exc
        return True

    def store(
        self,
        filetype: str,
        stream: BinaryIO,
        content_length: int,
        last_modified: datetime | None,
    ) -> bool:
        key = self.key_for(filetype)
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": stream,
            "ContentLength": content_length,
            "Metadata": build_user_metadata(self.session.context),
        }
        if last_modified is not None:
            params[LAST_MODIFIED_PARAM] = last_modified
        try:
            self.client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("put_object", key, exc) from exc
        self._log("put_object", key).info(f"Stored s3://{self.bucket}/{key} ({content_length} bytes)")
        return True

    def retrieve(self, filetype: str, output: BinaryIO) -> bool:
        key = self.key_for(filetype)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("get_object", key, exc) from exc

        with closing(response["Body"]) as body:
            copied = copy_stream(body, output)
        self._log("get_object", key).info(f"Retrieved s3://{self.bucket}/{key} ({copied} bytes)")
        return True

    def delete(self, filetype: str) -> bool:
        key = self.key_for(filetype)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise self._failure("delete_object", key, exc) from exc
        self._log("delete_object", key).info(f"Deleted s3://{self.bucket}/{key}")
        return True


__all__ = [
    "S3LogFileStorage",
    "create_s3_client",
    "register_last_modified_hooks",
    "is_not_found",
]
