"""Object storage session protocol for partwriter."""

from typing import BinaryIO, Protocol

from partwriter.models import PartReceipt, UploadSession


class ObjectStorageSession(Protocol):
    """Protocol defining the multipart upload interface of an object store.

    The writer drives one upload through begin -> upload_part* ->
    complete, or through abort on any failure. Implementations translate
    these calls to a concrete service (AWS S3, in-memory, etc.).
    """

    async def begin(self, bucket: str, key: str, acl: str | None = None) -> UploadSession:
        """Start a multipart upload.

        Args:
            bucket: The target bucket name.
            key: The target object key.
            acl: Optional canned ACL for the finished object.

        Returns:
            A handle identifying the new upload.
        """
        ...

    async def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        body: BinaryIO,
        size: int,
        is_last_part: bool,
        content_md5: str,
    ) -> PartReceipt:
        """Upload one part of a multipart upload.

        Args:
            session: The upload handle returned by begin().
            part_number: The 1-based part number.
            body: Readable file object positioned at the start of the part.
            size: Number of bytes to read from body.
            is_last_part: Whether this is the final part of the upload.
            content_md5: Base64-encoded MD5 of the part, for integrity checking.

        Returns:
            The receipt to pass back to complete().
        """
        ...

    async def complete(self, session: UploadSession, receipts: list[PartReceipt]) -> str:
        """Assemble uploaded parts into the final object.

        Args:
            session: The upload handle returned by begin().
            receipts: Part receipts ordered by part number.

        Returns:
            The ETag of the assembled object.
        """
        ...

    async def abort(self, session: UploadSession) -> None:
        """Abort a multipart upload and discard its parts.

        Args:
            session: The upload handle returned by begin().
        """
        ...
