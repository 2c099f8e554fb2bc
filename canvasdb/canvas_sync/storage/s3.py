"""
S3 blob store for canvas snapshots.

Snapshot layout:
    s3://<bucket>/<state_prefix>/<canvas_id>/<version>

Legacy Yjs documents live under whatever key the canvas row records; they
are read through the same store.

Invariants:
    - One client per store, created in connect() and closed in close()
    - Missing keys map to None, every other client error propagates

How to change safely:
    - Test against MinIO (S3_ENDPOINT) before changing request parameters
    - Keep ContentType stable; downstream tooling filters on it
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from .base import BlobStoreConnectionError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore:
    """Stores blobs in an S3 bucket via aiobotocore.

    Attributes:
        s3_config: S3 configuration (S3Config)

    Example:
        >>> store = S3BlobStore(s3_config)
        >>> await store.connect()
        >>> await store.put("canvas-state/c1/1", payload)
        >>> await store.close()
    """

    def __init__(self, s3_config: Any) -> None:
        """Initialize the store.

        Args:
            s3_config: S3Config instance
        """
        self.s3_config = s3_config
        self._session = None
        self._s3_ctx = None
        self._s3_client = None

    @property
    def is_connected(self) -> bool:
        return self._s3_client is not None

    async def connect(self) -> None:
        """Create the S3 client."""
        if self._s3_client:
            return

        self._session = get_session()

        client_kwargs = {
            "region_name": self.s3_config.region,
        }

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        self._s3_ctx = self._session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()
        logger.info(
            "S3 blob store connected",
            extra={"bucket": self.s3_config.bucket, "endpoint": self.s3_config.endpoint_url},
        )

    async def close(self) -> None:
        """Close the S3 client."""
        if self._s3_client:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None
            self._s3_ctx = None

    def _client(self):
        if not self._s3_client:
            raise BlobStoreConnectionError("S3 blob store not connected")
        return self._s3_client

    async def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        await self._client().put_object(
            Bucket=self.s3_config.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.debug("Stored blob", extra={"key": key, "size_bytes": len(data)})

    async def get(self, key: str) -> Optional[bytes]:
        try:
            response = await self._client().get_object(
                Bucket=self.s3_config.bucket,
                Key=key,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                return None
            raise

        async with response["Body"] as stream:
            return await stream.read()

    async def remove(self, key: str) -> None:
        await self._client().delete_object(
            Bucket=self.s3_config.bucket,
            Key=key,
        )
