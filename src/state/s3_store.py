from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .errors import MissingKeyError, OptimisticLockError


logger = logging.getLogger(__name__)

# Environment variable names for convenience configuration
ENV_BUCKET = "CAMPAIGN_STATE_BUCKET"
ENV_PREFIX = "CAMPAIGN_STATE_PREFIX"
ENV_FERNET_KEY = "CAMPAIGN_FERNET_KEY"

DEFAULT_PREFIX = "campaign/"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


@dataclass
class S3Location:
    bucket: str
    prefix: str

    def object_key(self, key: str) -> str:
        return f"{self.prefix}{key}"


class S3Store:
    """
    S3-backed key-value store for a campaign instance, encrypted at rest using Fernet.

    Each key maps to one object `{prefix}{key}` in the bucket.

    Usage
    - `get(key)` returns `(value, etag)`; raises `MissingKeyError` if the object
      does not exist.
    - `set(key, value, if_match=None)` encrypts and writes, returning the new ETag.
      When `if_match` is provided, uses a copy-based conditional update so the write
      succeeds only if the current object ETag matches (optimistic lock).

    Environment variables (optional)
    - `CAMPAIGN_STATE_BUCKET`: S3 bucket holding the instance state
    - `CAMPAIGN_STATE_PREFIX`: key prefix (default "campaign/")
    - `CAMPAIGN_FERNET_KEY`:   urlsafe base64-encoded key for Fernet
    """

    def __init__(
        self,
        *,
        s3: Optional[object] = None,
        bucket: str,
        prefix: str = DEFAULT_PREFIX,
        fernet_key: str | bytes,
        region_name: Optional[str] = None,
    ) -> None:
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._loc = S3Location(bucket=bucket, prefix=prefix)
        self._fernet = _to_fernet(fernet_key)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "S3Store":
        bucket = os.environ.get(ENV_BUCKET)
        prefix = os.environ.get(ENV_PREFIX) or DEFAULT_PREFIX
        fkey = os.environ.get(ENV_FERNET_KEY)
        if not bucket or not fkey:
            missing = [name for name, val in [(ENV_BUCKET, bucket), (ENV_FERNET_KEY, fkey)] if not val]
            raise RuntimeError(
                f"Missing required environment variables for S3 store: {', '.join(missing)}"
            )
        return cls(bucket=bucket, prefix=prefix, fernet_key=fkey)

    # -------- Core operations --------
    def has(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self._loc.bucket, Key=self._loc.object_key(key))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404", "NotFound"):
                return False
            raise
        return True

    def get(self, key: str) -> Tuple[bytes, Optional[str]]:
        """Read and decrypt the value stored under `key`.

        Returns: (value, etag)
        Raises:
        - MissingKeyError if the object does not exist.
        - ValueError if decryption fails.
        - botocore.exceptions.ClientError for other S3 issues.
        """
        try:
            resp = self._s3.get_object(Bucket=self._loc.bucket, Key=self._loc.object_key(key))
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise MissingKeyError(key) from e
            raise

        body = resp["Body"].read()
        etag = resp.get("ETag")  # usually quoted string; None if the backend omits it
        try:
            return (self._fernet.decrypt(body), etag)
        except InvalidToken as ex:
            raise ValueError(f"Failed to decrypt value for key {key!r}: invalid Fernet token") from ex

    def set(self, key: str, value: bytes, *, if_match: Optional[str] = None) -> Optional[str]:
        """Encrypt and write `value` under `key`; returns the new ETag.

        If `if_match` is given the write proceeds only if the destination's
        current ETag equals it, otherwise `OptimisticLockError` is raised.
        """
        ciphertext = self._fernet.encrypt(value)
        dest = self._loc.object_key(key)

        # Fast path: unconditional overwrite
        if if_match is None:
            resp = self._s3.put_object(
                Bucket=self._loc.bucket,
                Key=dest,
                Body=ciphertext,
                ContentType="application/octet-stream",
            )
            return resp.get("ETag")

        # PutObject has no If-Match. Upload to a temporary key, then COPY over the
        # destination with an If-Match precondition on its current ETag.
        temp_key = f"{dest}.tmp-{uuid4().hex}"
        self._s3.put_object(
            Bucket=self._loc.bucket,
            Key=temp_key,
            Body=ciphertext,
            ContentType="application/octet-stream",
        )

        try:
            resp = self._s3.copy_object(
                Bucket=self._loc.bucket,
                Key=dest,
                CopySource={"Bucket": self._loc.bucket, "Key": temp_key},
                IfMatch=if_match,
                MetadataDirective="COPY",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("PreconditionFailed", "412"):
                raise OptimisticLockError(
                    f"ETag mismatch for s3://{self._loc.bucket}/{dest}"
                ) from e
            raise
        finally:
            try:
                self._s3.delete_object(Bucket=self._loc.bucket, Key=temp_key)
            except ClientError as e:
                logger.warning("Failed to delete temporary object %s: %s", temp_key, e)

        return resp.get("ETag")
