"""Data model types for multipart upload sessions.

These dataclasses are exchanged between the writer and an object storage
session: the handle for one in-progress upload and the receipt returned for
each uploaded part.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UploadSession:
    """Handle for one in-progress multipart upload.

    Attributes:
        bucket: The target bucket name.
        key: The target object key.
        upload_id: The storage-assigned multipart upload identifier.
        acl: Canned ACL applied when the upload was started, if any.
    """

    bucket: str
    key: str
    upload_id: str
    acl: str | None = None


@dataclass(frozen=True)
class PartReceipt:
    """Acknowledgement for one uploaded part.

    Attributes:
        part_number: The 1-based part number.
        etag: Storage-assigned ETag, quoted as returned by S3.
        size: Size of the part in bytes.
    """

    part_number: int
    etag: str
    size: int = 0

    def to_manifest_entry(self) -> dict[str, object]:
        """Return the entry used in a CompleteMultipartUpload parts list."""
        return {"ETag": self.etag, "PartNumber": self.part_number}
