"""
Durable object store (tier 1) for permanently archived audio.

S3 via boto3; blocking calls run in asyncio.to_thread. Keys are audio/{track_id}.{format}.
"""

import asyncio
import logging
from typing import Dict, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from recommender.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
}


def object_key(track_id: str, fmt: str) -> str:
    return f"audio/{track_id}.{fmt}"


class ObjectStore(Protocol):
    async def put(self, track_id: str, fmt: str, body: bytes) -> str:
        ...

    async def get(self, track_id: str, fmt: str) -> Optional[bytes]:
        ...

    async def head(self, track_id: str, fmt: str) -> Optional[Dict]:
        ...

    async def delete(self, track_id: str, fmt: str) -> None:
        ...

    async def signed_url(self, track_id: str, fmt: str, expires_in: int) -> str:
        ...


def _is_missing(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code", "")
    return code in ("404", "NoSuchKey", "NotFound")


class S3ObjectStore:
    """S3-backed archive. Construction fails with ConfigurationError without bucket/credentials."""

    def __init__(
        self,
        bucket: Optional[str],
        region: str = "us-east-1",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise ConfigurationError("S3_BUCKET is not set")
        if client is None:
            if not (access_key_id and secret_access_key):
                raise ConfigurationError("AWS credentials are not set")
            client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        self.bucket = bucket
        self._client = client

    async def put(self, track_id: str, fmt: str, body: bytes) -> str:
        key = object_key(track_id, fmt)
        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=CONTENT_TYPES.get(fmt, "application/octet-stream"),
        )
        logger.info("[archive] uploaded s3://%s/%s (%d bytes)", self.bucket, key, len(body))
        return key

    async def get(self, track_id: str, fmt: str) -> Optional[bytes]:
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=object_key(track_id, fmt)
            )
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise
        return await asyncio.to_thread(response["Body"].read)

    async def head(self, track_id: str, fmt: str) -> Optional[Dict]:
        try:
            response = await asyncio.to_thread(
                self._client.head_object, Bucket=self.bucket, Key=object_key(track_id, fmt)
            )
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise
        return {
            "size": response.get("ContentLength"),
            "content_type": response.get("ContentType"),
            "last_modified": response.get("LastModified"),
        }

    async def delete(self, track_id: str, fmt: str) -> None:
        await asyncio.to_thread(
            self._client.delete_object, Bucket=self.bucket, Key=object_key(track_id, fmt)
        )

    async def signed_url(self, track_id: str, fmt: str, expires_in: int) -> str:
        return await asyncio.to_thread(
            self._client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": object_key(track_id, fmt)},
            ExpiresIn=expires_in,
        )

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError):
            return False
