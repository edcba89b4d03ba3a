"""S3 service for managing AWS S3 operations."""

import configparser
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from mypy_boto3_s3 import S3Client

from photorific.services.errors import ConnectivityError, RemoteListingError, TransferError

ProgressCallback = Callable[[int, int], None]


def get_available_profiles() -> list[str]:
    """Get list of available AWS profiles from ~/.aws/config and ~/.aws/credentials."""
    profiles: set[str] = set()

    credentials_path = Path.home() / ".aws" / "credentials"
    if credentials_path.exists():
        config = configparser.ConfigParser()
        config.read(credentials_path)
        profiles.update(config.sections())

    config_path = Path.home() / ".aws" / "config"
    if config_path.exists():
        config = configparser.ConfigParser()
        config.read(config_path)
        for section in config.sections():
            # Config file uses "profile name" format
            profiles.add(section.removeprefix("profile "))

    profiles.add("default")

    return sorted(profiles)


def create_s3_client(profile: str, region: str = "us-east-1") -> S3Client:
    """Create an S3 client using the specified AWS profile.

    Args:
        profile: AWS profile name from ~/.aws/credentials or ~/.aws/config
        region: AWS region (default: us-east-1)

    Returns:
        Configured S3 client
    """
    session = boto3.Session(profile_name=profile, region_name=region)
    client: S3Client = session.client("s3")
    return client


def _describe_bucket_error(bucket: str, error: ClientError) -> str:
    error_code = error.response["Error"]["Code"]
    if error_code in ("404", "NoSuchBucket"):
        return f"Bucket '{bucket}' does not exist"
    if error_code in ("403", "AccessDenied"):
        return f"Access denied to bucket '{bucket}'"
    return str(error)


@dataclass
class ListPage:
    """One page of a prefix listing."""

    keys: list[str] = field(default_factory=list)
    next_token: str | None = None


class _ByteProgress:
    """Accumulates boto3 per-chunk byte counts into (loaded, total) calls.

    s3transfer invokes the callback from its worker threads; calls to the
    user callback are serialized and carry a non-decreasing loaded count.
    """

    def __init__(self, total_size: int, user_callback: ProgressCallback | None) -> None:
        self.total_size = total_size
        self.uploaded = 0
        self.user_callback = user_callback
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int) -> None:
        with self._lock:
            self.uploaded += bytes_amount
            if self.user_callback:
                self.user_callback(self.uploaded, self.total_size)


class S3Gateway:
    """The three bucket operations the sync engine depends on."""

    def __init__(self, client: S3Client) -> None:
        self.client = client

    def head_bucket(self, bucket: str) -> None:
        """Probe the bucket.

        Raises:
            ConnectivityError: If the bucket is missing, forbidden or unreachable
        """
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as e:
            raise ConnectivityError(_describe_bucket_error(bucket, e)) from e
        except NoCredentialsError as e:
            raise ConnectivityError("AWS credentials not found") from e
        except BotoCoreError as e:
            raise ConnectivityError(str(e)) from e

    def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes | IO[bytes],
        content_type: str,
        size: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> str:
        """Store one object.

        Bytes bodies are sent in a single PutObject. File-like bodies are piped
        through the managed transfer, which reports byte progress to
        progress(loaded, total).

        Returns:
            The object key

        Raises:
            TransferError: If S3 rejects the upload
        """
        try:
            if isinstance(body, bytes):
                self.client.put_object(
                    Bucket=bucket, Key=key, Body=body, ContentType=content_type
                )
            else:
                self.client.upload_fileobj(
                    body,
                    bucket,
                    key,
                    ExtraArgs={"ContentType": content_type},
                    Callback=_ByteProgress(size or 0, progress),
                )
        except (ClientError, BotoCoreError) as e:
            raise TransferError(f"Failed to upload {key}: {e}") from e
        return key

    def list_objects(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
    ) -> ListPage:
        """List one page of keys under a prefix.

        Raises:
            RemoteListingError: If the listing request fails
        """
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            response = self.client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise RemoteListingError(f"Failed to list s3://{bucket}/{prefix}: {e}") from e

        keys = [obj["Key"] for obj in response.get("Contents", []) if "Key" in obj]
        return ListPage(keys=keys, next_token=response.get("NextContinuationToken"))


def validate_bucket_access(client: S3Client, bucket: str) -> dict[str, Any]:
    """Validate that we can access the specified S3 bucket.

    Args:
        client: S3 client
        bucket: S3 bucket name

    Returns:
        Dictionary with validation result
    """
    try:
        S3Gateway(client).head_bucket(bucket)
    except ConnectivityError as e:
        return {"success": False, "bucket": bucket, "error": str(e)}
    return {"success": True, "bucket": bucket, "error": None}
