"""Sequential write sink that turns a byte stream into a multipart upload.

The writer accumulates bytes into one part buffer at a time. When the
buffer holds ``part_size`` bytes and more input arrives, the buffer is
uploaded as a part and reset. ``close()`` uploads whatever is left (even
nothing) as the final part and completes the upload. Any failure aborts the
upload before the error reaches the caller.

Limits (https://docs.aws.amazon.com/AmazonS3/latest/dev/qfacts.html):
    Maximum object size                 5 TiB
    Maximum number of parts per upload  10,000
    Part numbers                        1 to 10,000 (inclusive)
    Part size                           5 MiB to 5 GiB, last part can be < 5 MiB
"""

import asyncio
import enum
import hashlib
import logging
from types import TracebackType

from partwriter import metrics
from partwriter.buffer import DEFAULT_SPOOL_MAX_SIZE, PartBuffer
from partwriter.errors import IntegrityMismatch, PartUploadFailure, UseAfterClose
from partwriter.models import PartReceipt, UploadSession
from partwriter.storage.backend import ObjectStorageSession

logger = logging.getLogger(__name__)

MAX_OBJECT_SIZE = 5 * 1024**4
MAX_PARTS_PER_UPLOAD = 10_000
MAX_PART_SIZE = 5 * 1024**3

# 549,755,814 bytes: enough to cover a 5 TiB object with 10,000 parts
PART_SIZE = -(-MAX_OBJECT_SIZE // MAX_PARTS_PER_UPLOAD)


def _check_part_size(part_size: int) -> None:
    if not 0 < part_size <= MAX_PART_SIZE:
        raise ValueError(
            f"part_size must be between 1 and {MAX_PART_SIZE} bytes, got {part_size}"
        )


class WriterState(enum.Enum):
    """Lifecycle state of a MultipartUploadWriter."""

    OPEN = "open"
    CLOSED = "closed"
    ABORTED = "aborted"


class MultipartUploadWriter:
    """Writes an unbounded byte stream to object storage as one multipart upload.

    Use ``await MultipartUploadWriter.open(...)`` to start the upload, then
    ``write()`` any number of times and ``close()`` once. Parts are uploaded
    one at a time, in order, from inside ``write()`` and ``close()``.

    Attributes:
        session: The upload handle returned by the storage session.
        part_size: Size of every part except the last.
        etag: ETag of the finished object, set by a successful close().
    """

    def __init__(
        self,
        storage: ObjectStorageSession,
        session: UploadSession,
        part_size: int = PART_SIZE,
        spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
        staging_dir: str | None = None,
    ) -> None:
        """Wrap an already started upload.

        Most callers want ``open()``, which starts the upload first.

        Args:
            storage: The object storage session that owns the upload.
            session: The upload handle returned by ``storage.begin()``.
            part_size: Size of every part except the last.
            spool_max_size: Part bytes held in memory before spilling to disk.
            staging_dir: Directory for spilled part files.

        Raises:
            ValueError: If part_size is not in (0, MAX_PART_SIZE].
        """
        _check_part_size(part_size)
        self._storage = storage
        self.session = session
        self.part_size = part_size
        self.etag: str | None = None

        self._read_md5 = hashlib.md5()
        self._written_md5 = hashlib.md5()
        self._buffer = PartBuffer(spool_max_size=spool_max_size, staging_dir=staging_dir)
        self._receipts: list[PartReceipt] = []
        self._part_number = 1
        self._bytes_written = 0
        self._state = WriterState.OPEN
        self._lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        storage: ObjectStorageSession,
        bucket: str,
        key: str,
        acl: str | None = None,
        part_size: int = PART_SIZE,
        spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
        staging_dir: str | None = None,
    ) -> "MultipartUploadWriter":
        """Start a multipart upload and return a writer for it.

        The begin call is made exactly once; its failure propagates.

        Args:
            storage: The object storage session to upload through.
            bucket: The target bucket name.
            key: The target object key.
            acl: Optional canned ACL, applied when the upload starts only.
            part_size: Size of every part except the last.
            spool_max_size: Part bytes held in memory before spilling to disk.
            staging_dir: Directory for spilled part files.

        Returns:
            An open writer.
        """
        _check_part_size(part_size)
        session = await storage.begin(bucket, key, acl)
        logger.debug(
            "Started multipart upload %s for %s/%s",
            session.upload_id,
            bucket,
            key,
            extra={"bucket": bucket, "key": key, "upload_id": session.upload_id},
        )
        return cls(
            storage,
            session,
            part_size=part_size,
            spool_max_size=spool_max_size,
            staging_dir=staging_dir,
        )

    # -- Introspection -----------------------------------------------------------

    @property
    def state(self) -> WriterState:
        return self._state

    @property
    def part_number(self) -> int:
        """Number the next flushed part will get."""
        return self._part_number

    @property
    def receipts(self) -> list[PartReceipt]:
        return list(self._receipts)

    @property
    def bytes_written(self) -> int:
        """Total bytes accepted by write() so far."""
        return self._bytes_written

    # -- Writing -----------------------------------------------------------------

    async def write(self, data: bytes | bytearray | memoryview) -> int:
        """Append bytes to the stream, uploading parts as they fill up.

        Part boundaries depend only on the number of bytes written, not on
        how the input is split across calls.

        Args:
            data: Any bytes-like object. Strided views are copied before
                splitting.

        Returns:
            The number of bytes accepted (always ``len(data)``).

        Raises:
            UseAfterClose: If the writer is closed or aborted.
        """
        async with self._lock:
            self._assert_open()
            view = memoryview(data)
            if not view.c_contiguous:
                view = memoryview(view.tobytes())
            view = view.cast("B")
            self._read_md5.update(view)

            offset = 0
            length = len(view)
            while offset < length:
                if self._buffer.byte_count == self.part_size:
                    await self._flush(is_last_part=False)

                to_copy = min(self.part_size - self._buffer.byte_count, length - offset)
                chunk = view[offset : offset + to_copy]
                self._buffer.write(chunk)
                self._written_md5.update(chunk)
                offset += to_copy

            self._bytes_written += length
            return length

    async def write_byte(self, value: int) -> int:
        """Append a single byte (0-255) to the stream."""
        return await self.write(bytes((value,)))

    def _assert_open(self) -> None:
        if self._state is not WriterState.OPEN:
            raise UseAfterClose()

    async def _flush(self, is_last_part: bool) -> None:
        """Upload the current buffer as the next part.

        On any failure the upload is aborted and the original error is
        re-raised.
        """
        part_number = self._part_number
        size = self._buffer.byte_count
        try:
            if part_number > MAX_PARTS_PER_UPLOAD:
                raise PartUploadFailure(
                    part_number,
                    f"Part number {part_number} exceeds the maximum of "
                    f"{MAX_PARTS_PER_UPLOAD} parts per upload",
                )
            body, content_md5 = self._buffer.seal()
            receipt = await self._storage.upload_part(
                self.session,
                part_number,
                body,
                size,
                is_last_part,
                content_md5,
            )
        except BaseException:
            await self._abort()
            raise

        logger.debug(
            "Uploaded part %d (%d bytes, last=%s) of upload %s",
            part_number,
            size,
            is_last_part,
            self.session.upload_id,
            extra={
                "upload_id": self.session.upload_id,
                "part_number": part_number,
                "size": size,
            },
        )
        metrics.record_part(size)
        self._receipts.append(receipt)
        self._buffer.reset()
        self._part_number += 1

    # -- Finishing ---------------------------------------------------------------

    async def close(self) -> str | None:
        """Upload the final part and complete the upload.

        A second call after a successful close is a no-op.

        Known limitation: if complete() fails after the service already
        assembled the object (for instance the response was lost), the abort
        that follows cannot undo it.

        Returns:
            The ETag of the finished object.

        Raises:
            UseAfterClose: If the writer was aborted.
            IntegrityMismatch: If the buffered bytes differ from the written ones.
        """
        async with self._lock:
            if self._state is WriterState.CLOSED:
                return self.etag
            self._assert_open()

            await self._flush(is_last_part=True)
            try:
                self._verify_digests()
                etag = await self._storage.complete(self.session, list(self._receipts))
            except BaseException:
                await self._abort()
                raise

            self.etag = etag
            self._state = WriterState.CLOSED
            self._buffer.close()
            metrics.record_upload("completed")
            logger.info(
                "Completed multipart upload %s for %s/%s: %d parts, %d bytes",
                self.session.upload_id,
                self.session.bucket,
                self.session.key,
                len(self._receipts),
                self._bytes_written,
                extra={
                    "bucket": self.session.bucket,
                    "key": self.session.key,
                    "upload_id": self.session.upload_id,
                    "size": self._bytes_written,
                },
            )
            return etag

    def _verify_digests(self) -> None:
        read = self._read_md5.hexdigest()
        written = self._written_md5.hexdigest()
        if read != written:
            raise IntegrityMismatch(read, written)

    async def abort(self) -> None:
        """Abort the upload and release the part buffer.

        No-op unless the writer is open.
        """
        async with self._lock:
            if self._state is WriterState.OPEN:
                await self._abort()

    async def _abort(self) -> None:
        """Best-effort abort: storage errors are logged, never raised."""
        self._state = WriterState.ABORTED
        try:
            await self._storage.abort(self.session)
        except Exception:
            logger.warning(
                "Failed to abort multipart upload %s",
                self.session.upload_id,
                exc_info=True,
                extra={"upload_id": self.session.upload_id},
            )
        finally:
            self._buffer.close()
            metrics.record_upload("aborted")
        logger.info(
            "Aborted multipart upload %s for %s/%s",
            self.session.upload_id,
            self.session.bucket,
            self.session.key,
            extra={
                "bucket": self.session.bucket,
                "key": self.session.key,
                "upload_id": self.session.upload_id,
            },
        )

    async def __aenter__(self) -> "MultipartUploadWriter":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            await self.close()
        else:
            await self.abort()

    def __repr__(self) -> str:
        return (
            f"MultipartUploadWriter(bucket={self.session.bucket!r}, "
            f"key={self.session.key!r}, state={self._state.value})"
        )
