"""
Object storage for cycle exports and data backups (S3-compatible or in-memory).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
import json

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def upload_json(self, path: str, payload: dict) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...

    def list_keys(self, prefix: str) -> list[str]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def upload_json(self, path: str, payload: dict) -> None:
        # Round-trip through JSON to mimic real upload behavior
        self.stored_objects[path] = json.loads(json.dumps(payload, default=str))

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        if isinstance(stored, bytes):
            return stored
        return json.dumps(stored, default=str).encode("utf-8")

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self.stored_objects if key.startswith(prefix))


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, Supabase storage, MinIO, COS).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )

    def upload_json(self, path: str, payload: dict) -> None:
        body = json.dumps(payload, default=str).encode("utf-8")
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=body,
            ContentType="application/json",
        )

    def get_bytes(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=path)
        except self._client.exceptions.NoSuchKey as exc:
            raise FileNotFoundError(path) from exc
        return response["Body"].read()

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(item["Key"] for item in page.get("Contents", []))
        return sorted(keys)
