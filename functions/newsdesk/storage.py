"""
Blob storage for uploaded images: Tencent COS (S3-compatible), a local
directory served by the app, and an in-memory test double.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import boto3
from botocore.config import Config


def with_random_suffix(key: str) -> str:
    """Insert a short random suffix before the extension of ``key``."""
    stem, ext = os.path.splitext(key)
    return f"{stem}-{uuid.uuid4().hex[:12]}{ext}"


class StorageClient(Protocol):
    """Defines the operations the upload pipeline needs from object storage."""

    def put_public(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` plus a random suffix; return its public URL."""
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)

    def put_public(self, key: str, data: bytes, content_type: str) -> str:
        final_key = with_random_suffix(key)
        self.stored_objects[final_key] = (bytes(data), content_type)
        return f"{self.base_url}/{final_key}"


@dataclass
class LocalStorageClient:
    """
    Writes uploads into a local directory whose files the app serves under
    ``url_prefix``. Only the final path segment of the key is used.
    """

    root_dir: str
    url_prefix: str = "/uploads"

    def put_public(self, key: str, data: bytes, content_type: str) -> str:
        name = Path(with_random_suffix(key)).name
        root = Path(self.root_dir)
        root.mkdir(parents=True, exist_ok=True)
        (root / name).write_bytes(data)
        return f"{self.url_prefix.rstrip('/')}/{name}"


@dataclass
class CosStorageClient:
    """
    S3-compatible storage client for Tencent COS.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"

    def put_public(self, key: str, data: bytes, content_type: str) -> str:
        final_key = with_random_suffix(key)
        self._client.put_object(
            Bucket=self.bucket,
            Key=final_key,
            Body=data,
            ContentType=content_type,
            ACL="public-read",
        )
        return self.public_url(final_key)
