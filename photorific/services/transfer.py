"""Size-based choice between buffered and streaming uploads."""

import logging
from enum import Enum
from pathlib import Path

from photorific.services.media import content_type_for
from photorific.services.s3_service import ProgressCallback, S3Gateway
from photorific.services.utils import format_file_size

logger = logging.getLogger(__name__)

# Files strictly larger than this are streamed instead of read into memory
STREAMING_THRESHOLD_BYTES = 100 * 1024 * 1024


class TransferStrategy(Enum):
    """How a file's bytes reach the bucket."""

    BUFFERED = "buffered"
    STREAMING = "streaming"


def select_strategy(file_size: int) -> TransferStrategy:
    """Pick the transfer strategy for a file of the given size."""
    if file_size > STREAMING_THRESHOLD_BYTES:
        return TransferStrategy.STREAMING
    return TransferStrategy.BUFFERED


def transfer_file(
    gateway: S3Gateway,
    bucket: str,
    local_path: str | Path,
    key: str,
    file_size: int,
    progress: ProgressCallback | None = None,
) -> str:
    """Upload one local file under the given key.

    Buffered transfers read the whole file and issue a single put. Streaming
    transfers hand an open file to the gateway and forward its byte progress;
    progress is never called for buffered transfers.

    Returns:
        The destination key

    Raises:
        OSError: If the local file cannot be read
        TransferError: If the upload is rejected
    """
    path = Path(local_path)
    content_type = content_type_for(path.name)

    if select_strategy(file_size) is TransferStrategy.STREAMING:
        logger.info(
            "Streaming upload for large file: %s (%s)", path.name, format_file_size(file_size)
        )
        with open(path, "rb") as stream:
            return gateway.put_object(
                bucket, key, stream, content_type, size=file_size, progress=progress
            )

    logger.info("Regular upload for file: %s (%s)", path.name, format_file_size(file_size))
    return gateway.put_object(bucket, key, path.read_bytes(), content_type)
