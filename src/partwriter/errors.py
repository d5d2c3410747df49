"""Error definitions for partwriter."""


class PartWriterError(Exception):
    """A multipart writer error with an error code and message.

    Attributes:
        code: The error code string (e.g. "UseAfterClose", "IntegrityMismatch").
        message: Human-readable error description.
    """

    def __init__(self, code: str, message: str) -> None:
        """Initialize the writer error.

        Args:
            code: Error code.
            message: Error description.
        """
        super().__init__(message)
        self.code = code
        self.message = message


# -- Writer errors -------------------------------------------------------------


class UseAfterClose(PartWriterError):
    """A write or close was attempted on a closed or aborted writer."""

    def __init__(self, message: str = "Can't write to closed stream") -> None:
        super().__init__(code="UseAfterClose", message=message)


class IntegrityMismatch(PartWriterError):
    """The bytes written by the caller differ from the bytes buffered for upload.

    Attributes:
        read_digest: Hex MD5 of everything passed to write().
        written_digest: Hex MD5 of everything copied into part buffers.
    """

    def __init__(self, read_digest: str, written_digest: str) -> None:
        super().__init__(
            code="IntegrityMismatch",
            message=(
                "Local MD5s don't match: "
                f"read={read_digest} written={written_digest}"
            ),
        )
        self.read_digest = read_digest
        self.written_digest = written_digest


# -- Storage errors --------------------------------------------------------------


class SessionStartFailure(PartWriterError):
    """The storage service refused to start a multipart upload."""

    def __init__(self, message: str = "Failed to start multipart upload") -> None:
        super().__init__(code="SessionStartFailure", message=message)


class PartUploadFailure(PartWriterError):
    """A part could not be uploaded.

    Attributes:
        part_number: The part number that failed.
    """

    def __init__(self, part_number: int, message: str = "Part upload failed") -> None:
        super().__init__(code="PartUploadFailure", message=message)
        self.part_number = part_number


class CompletionFailure(PartWriterError):
    """The storage service refused to complete a multipart upload."""

    def __init__(self, message: str = "Failed to complete multipart upload") -> None:
        super().__init__(code="CompletionFailure", message=message)


class NoSuchUpload(PartWriterError):
    """The specified multipart upload does not exist."""

    def __init__(self, upload_id: str = "") -> None:
        super().__init__(
            code="NoSuchUpload",
            message=f"The specified multipart upload does not exist: {upload_id}",
        )
        self.upload_id = upload_id
