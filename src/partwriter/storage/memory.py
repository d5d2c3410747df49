"""In-memory object storage session for partwriter.

Implements the ObjectStorageSession protocol using Python dictionaries and
enforces the same multipart rules S3 does: Content-MD5 verification on every
part, ascending part numbers and matching ETags at completion, and a minimum
size for every part except the last. Assembled objects get the S3 composite
ETag.
"""

import base64
import binascii
import hashlib
import logging
import uuid
from typing import BinaryIO

from partwriter.errors import CompletionFailure, NoSuchUpload, PartUploadFailure
from partwriter.models import PartReceipt, UploadSession

logger = logging.getLogger(__name__)


def compute_composite_etag(part_etags: list[str]) -> str:
    """Compute the S3 composite ETag from individual part ETags.

    The composite ETag is computed by concatenating the binary MD5
    digests of each part, computing the MD5 of the concatenation,
    and appending a dash followed by the number of parts.

    Args:
        part_etags: List of quoted ETag strings from each part.

    Returns:
        A quoted composite ETag string, e.g. '"abc123-3"'.
    """
    binary_md5s = b""
    for etag in part_etags:
        binary_md5s += binascii.unhexlify(etag.strip('"'))
    final_md5 = hashlib.md5(binary_md5s).hexdigest()
    return f'"{final_md5}-{len(part_etags)}"'


class MemoryMultipartSession:
    """Object storage session that holds uploads and objects in memory.

    Parts are stored per upload id as ``part_number -> (data, etag)``.
    Completed objects are stored keyed by ``(bucket, key)`` as
    ``(data, etag, acl)``.

    Attributes:
        min_part_size: Minimum size of every part except the last
            (S3 uses 5 MiB; 0 disables the check).
    """

    def __init__(self, min_part_size: int = 0) -> None:
        self.min_part_size = min_part_size
        self._uploads: dict[str, UploadSession] = {}
        self._parts: dict[str, dict[int, tuple[bytes, str]]] = {}
        self._objects: dict[tuple[str, str], tuple[bytes, str, str | None]] = {}

    @property
    def active_uploads(self) -> list[str]:
        """Upload ids that have been started and not completed or aborted."""
        return list(self._uploads)

    def _get_upload(self, session: UploadSession) -> UploadSession:
        upload = self._uploads.get(session.upload_id)
        if upload is None:
            raise NoSuchUpload(session.upload_id)
        return upload

    async def begin(self, bucket: str, key: str, acl: str | None = None) -> UploadSession:
        """Register a new multipart upload."""
        session = UploadSession(bucket=bucket, key=key, upload_id=uuid.uuid4().hex, acl=acl)
        self._uploads[session.upload_id] = session
        self._parts[session.upload_id] = {}
        return session

    async def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        body: BinaryIO,
        size: int,
        is_last_part: bool,
        content_md5: str,
    ) -> PartReceipt:
        """Store a part after checking its length and Content-MD5.

        Raises:
            NoSuchUpload: If the upload is unknown.
            PartUploadFailure: If the body is short or the digest differs.
        """
        self._get_upload(session)
        data = body.read(size)
        if len(data) != size:
            raise PartUploadFailure(
                part_number,
                f"IncompleteBody: expected {size} bytes, got {len(data)}",
            )

        digest = hashlib.md5(data)
        if base64.b64encode(digest.digest()).decode("ascii") != content_md5:
            raise PartUploadFailure(
                part_number,
                "BadDigest: the Content-MD5 you specified did not match what was received",
            )

        etag = f'"{digest.hexdigest()}"'
        self._parts[session.upload_id][part_number] = (data, etag)
        return PartReceipt(part_number=part_number, etag=etag, size=size)

    async def complete(self, session: UploadSession, receipts: list[PartReceipt]) -> str:
        """Assemble the listed parts into the final object.

        Raises:
            NoSuchUpload: If the upload is unknown.
            CompletionFailure: If the part list is empty, out of order,
                refers to a missing part, or has an undersized non-final part.
        """
        upload = self._get_upload(session)
        stored = self._parts[session.upload_id]
        if not receipts:
            raise CompletionFailure("MalformedXML: at least one part must be specified")

        previous = 0
        for index, receipt in enumerate(receipts):
            if receipt.part_number <= previous:
                raise CompletionFailure("InvalidPartOrder: parts must be in ascending order")
            previous = receipt.part_number

            part = stored.get(receipt.part_number)
            if part is None or part[1] != receipt.etag:
                raise CompletionFailure(
                    f"InvalidPart: part {receipt.part_number} could not be found"
                )
            is_last = index == len(receipts) - 1
            if not is_last and len(part[0]) < self.min_part_size:
                raise CompletionFailure(
                    f"EntityTooSmall: part {receipt.part_number} is smaller than "
                    f"the minimum allowed size of {self.min_part_size} bytes"
                )

        data = b"".join(stored[r.part_number][0] for r in receipts)
        etag = compute_composite_etag([r.etag for r in receipts])
        self._objects[(upload.bucket, upload.key)] = (data, etag, upload.acl)
        del self._uploads[session.upload_id]
        del self._parts[session.upload_id]
        logger.debug(
            "Assembled %s/%s from %d parts (%d bytes)",
            upload.bucket,
            upload.key,
            len(receipts),
            len(data),
        )
        return etag

    async def abort(self, session: UploadSession) -> None:
        """Discard an upload and its parts.

        Raises:
            NoSuchUpload: If the upload is unknown.
        """
        self._get_upload(session)
        del self._uploads[session.upload_id]
        del self._parts[session.upload_id]

    def get_object(self, bucket: str, key: str) -> bytes:
        """Return an assembled object's bytes.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        try:
            return self._objects[(bucket, key)][0]
        except KeyError:
            raise FileNotFoundError(f"Object not found: {bucket}/{key}") from None

    def get_object_etag(self, bucket: str, key: str) -> str:
        """Return an assembled object's ETag.

        Raises:
            FileNotFoundError: If the object does not exist.
        """
        try:
            return self._objects[(bucket, key)][1]
        except KeyError:
            raise FileNotFoundError(f"Object not found: {bucket}/{key}") from None

    def get_object_acl(self, bucket: str, key: str) -> str | None:
        """Return the canned ACL an object was uploaded with."""
        try:
            return self._objects[(bucket, key)][2]
        except KeyError:
            raise FileNotFoundError(f"Object not found: {bucket}/{key}") from None
