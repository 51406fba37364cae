"""Acquisition stage: download the remote archive into local scratch storage."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Protocol

import boto3
import structlog

from droot.core.config import Settings
from droot.core.exceptions import AcquisitionFailed
from droot.deploy.models import parse_s3_url


logger = structlog.get_logger()


class Downloader(Protocol):
    def download(self, source: str, sink: BinaryIO) -> int:
        """Write the object named by ``source`` into ``sink``; return bytes written."""
        ...


def _write_stream(stream_iter: Iterable[bytes], sink: BinaryIO, max_size_bytes: int) -> int:
    """Write streaming bytes to sink with max-size enforcement.

    Returns number of bytes written.
    """
    bytes_written = 0
    for chunk in stream_iter:
        if not chunk:
            continue
        bytes_written += len(chunk)
        if bytes_written > max_size_bytes:
            raise ValueError(f"Archive exceeds maximum allowed size of {max_size_bytes} bytes")
        sink.write(chunk)
    sink.flush()
    return bytes_written


class S3Downloader:
    """Streams an S3 object into a local file with boto3."""

    def __init__(
        self,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        max_size_bytes: int = 10 * 1024 * 1024 * 1024,  # 10GB
        chunk_size: int = 64 * 1024,
    ):
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.max_size_bytes = max_size_bytes
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Downloader":
        return cls(
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            max_size_bytes=settings.max_archive_size_bytes,
            chunk_size=settings.download_chunk_size,
        )

    def _client(self):
        kwargs = {}
        if self.region_name:
            kwargs["region_name"] = self.region_name
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        # Explicit keys only; otherwise boto3's default credential chain applies
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return boto3.client("s3", **kwargs)

    def download(self, source: str, sink: BinaryIO) -> int:
        ref = parse_s3_url(source)
        logger.debug("Fetching object from S3", bucket=ref.bucket, key=ref.key)
        obj = self._client().get_object(Bucket=ref.bucket, Key=ref.key)
        body = obj["Body"]
        try:
            return _write_stream(body.iter_chunks(self.chunk_size), sink, self.max_size_bytes)
        finally:
            body.close()


def acquire(source: str, artifact: Path, downloader: Downloader) -> int:
    """Download ``source`` into the (already created) ``artifact`` file.

    Raises:
        AcquisitionFailed: wrapping whatever the downloader raised
    """
    try:
        with open(artifact, "wb") as sink:
            bytes_written = downloader.download(source, sink)
    except Exception as e:
        raise AcquisitionFailed(source, e) from e
    return bytes_written
