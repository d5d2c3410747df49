"""Copy a readable file object into object storage through a writer."""

import asyncio
import logging
from typing import BinaryIO

from partwriter.buffer import DEFAULT_SPOOL_MAX_SIZE
from partwriter.storage.backend import ObjectStorageSession
from partwriter.writer import PART_SIZE, MultipartUploadWriter

logger = logging.getLogger(__name__)

# Read size for source streams: 1 MiB
READ_SIZE = 1024 * 1024


async def upload_fileobj(
    storage: ObjectStorageSession,
    source: BinaryIO,
    bucket: str,
    key: str,
    acl: str | None = None,
    part_size: int = PART_SIZE,
    spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
    staging_dir: str | None = None,
    read_size: int = READ_SIZE,
) -> str:
    """Stream ``source`` to ``bucket/key`` until EOF.

    Reads run in a worker thread so a slow source (a pipe, stdin) does not
    block the event loop. If reading or uploading fails the upload is
    aborted and the error propagates.

    Returns:
        The ETag of the finished object.
    """
    writer = await MultipartUploadWriter.open(
        storage,
        bucket,
        key,
        acl=acl,
        part_size=part_size,
        spool_max_size=spool_max_size,
        staging_dir=staging_dir,
    )
    async with writer:
        while True:
            chunk = await asyncio.to_thread(source.read, read_size)
            if not chunk:
                break
            await writer.write(chunk)

    logger.info("Uploaded %d bytes to %s/%s", writer.bytes_written, bucket, key)
    return writer.etag
