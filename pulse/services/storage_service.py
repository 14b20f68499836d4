"""S3-compatible object storage (DigitalOcean Spaces) behind the upload relay."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable
from urllib.parse import urlparse

from boto3.session import Session
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from ..security.secrets import missing_secrets, read_secret

logger = logging.getLogger(__name__)

_REQUIRED_SETTINGS = (
    "DO_SPACES_KEY",
    "DO_SPACES_SECRET",
    "DO_SPACES_REGION",
    "DO_SPACES_NAME",
    "DO_SPACES_ENDPOINT",
)


@dataclass(frozen=True)
class StorageConfig:
    """Runtime configuration extracted from environment variables."""

    key: str
    secret: str
    region: str
    bucket: str
    api_endpoint: str
    public_endpoint: str


@dataclass(frozen=True)
class StoredObject:
    url: str
    key: str
    bucket: str
    content_type: str


class StorageConfigurationError(RuntimeError):
    """Raised when storage credentials or bucket settings are missing or invalid."""


class StorageUploadError(RuntimeError):
    """Raised when the storage provider rejects or fails an upload."""


@lru_cache(maxsize=1)
def load_storage_config() -> StorageConfig:
    """Read and validate storage configuration from the environment."""

    missing = missing_secrets(_REQUIRED_SETTINGS)
    if missing:
        raise StorageConfigurationError("Missing required storage configuration: " + ", ".join(sorted(missing)))

    key = read_secret("DO_SPACES_KEY")
    secret = read_secret("DO_SPACES_SECRET")
    region = read_secret("DO_SPACES_REGION")
    bucket = read_secret("DO_SPACES_NAME")
    endpoint_raw = read_secret("DO_SPACES_ENDPOINT")

    public_endpoint = endpoint_raw.rstrip("/")
    parsed = urlparse(public_endpoint)
    if not parsed.scheme:
        public_endpoint = f"https://{public_endpoint.lstrip(':/')}"
        parsed = urlparse(public_endpoint)

    host = parsed.netloc or parsed.path
    if not host:
        raise StorageConfigurationError("DO_SPACES_ENDPOINT must include a hostname.")

    api_endpoint = os.getenv("DO_SPACES_API_ENDPOINT") or f"https://{region}.digitaloceanspaces.com"

    return StorageConfig(
        key=key,
        secret=secret,
        region=region,
        bucket=bucket,
        api_endpoint=api_endpoint.rstrip("/"),
        public_endpoint=parsed.geturl().rstrip("/"),
    )


def is_storage_configured() -> bool:
    try:
        load_storage_config()
    except StorageConfigurationError:
        return False
    return True


@lru_cache(maxsize=1)
def get_storage_client() -> BaseClient:
    """Create a singleton boto3 client for bucket interactions."""

    config = load_storage_config()
    session = Session()
    return session.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.api_endpoint,
        aws_access_key_id=config.key,
        aws_secret_access_key=config.secret,
    )


def _sanitize_segments(parts: Iterable[str]) -> list[str]:
    sanitized: list[str] = []
    for part in parts:
        if part in {"", ".", ".."}:
            continue
        cleaned = re.sub(r"[^A-Za-z0-9._-]", "-", part.strip())
        cleaned = re.sub(r"-+", "-", cleaned).strip("-")
        if cleaned and cleaned not in {".", ".."}:
            sanitized.append(cleaned)
    return sanitized


def object_key(path: str) -> str:
    """Normalize a client-chosen destination path into a safe object key."""

    segments = _sanitize_segments((path or "").replace("\\", "/").split("/"))
    if not segments:
        raise StorageUploadError("Upload path is empty")
    return "/".join(segments)


def build_public_url(key: str) -> str:
    config = load_storage_config()
    normalized_key = key.lstrip("/")
    endpoint = config.public_endpoint.rstrip("/")
    return f"{endpoint}/{normalized_key}" if normalized_key else endpoint


async def upload_to_storage(
    file: UploadFile,
    *,
    path: str,
    client: BaseClient | None = None,
) -> StoredObject:
    """Upload ``file`` to ``path`` with public-read access and return its URL."""

    config = load_storage_config()
    s3_client = client or get_storage_client()
    key = object_key(path)
    content_type = (file.content_type or "application/octet-stream").strip() or "application/octet-stream"
    file_obj = getattr(file, "file", None)
    if file_obj is None:
        raise StorageUploadError("UploadFile is missing an underlying file buffer.")

    def _upload() -> None:
        try:
            file_obj.seek(0)
            s3_client.upload_fileobj(
                file_obj,
                config.bucket,
                key,
                ExtraArgs={"ACL": "public-read", "ContentType": content_type},
            )
        except (ClientError, BotoCoreError) as exc:
            logger.exception("Upload of %s failed: %s", key, exc)
            raise StorageUploadError("Upload to storage failed") from exc

    await run_in_threadpool(_upload)
    logger.info("Stored %s (%s) in %s", key, content_type, config.bucket)
    return StoredObject(url=build_public_url(key), key=key, bucket=config.bucket, content_type=content_type)


__all__ = [
    "StorageConfig",
    "StorageConfigurationError",
    "StorageUploadError",
    "StoredObject",
    "build_public_url",
    "get_storage_client",
    "is_storage_configured",
    "load_storage_config",
    "object_key",
    "upload_to_storage",
]
