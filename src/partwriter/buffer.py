"""Accumulation buffer for the part currently being filled.

The buffer stages bytes in a ``tempfile.SpooledTemporaryFile``: it stays in
memory up to ``spool_max_size`` bytes and rolls over to an anonymous temp
file in ``staging_dir`` beyond that. The same backing file is reused for
every part and truncated on reset.
"""

import base64
import hashlib
import tempfile
from typing import BinaryIO

# Parts larger than this are staged on disk
DEFAULT_SPOOL_MAX_SIZE = 8 * 1024 * 1024


class PartBuffer:
    """Bounded byte sink with a counted length and a running MD5.

    Attributes:
        byte_count: Number of bytes written since the last reset.
    """

    def __init__(
        self,
        spool_max_size: int = DEFAULT_SPOOL_MAX_SIZE,
        staging_dir: str | None = None,
    ) -> None:
        """Allocate the backing storage.

        Args:
            spool_max_size: Bytes held in memory before spilling to disk.
            staging_dir: Directory for the spilled temp file. None uses the
                platform default temp directory.
        """
        self._file = tempfile.SpooledTemporaryFile(
            max_size=spool_max_size,
            mode="w+b",
            prefix="partwriter-part-",
            suffix=".tmp",
            dir=staging_dir or None,
        )
        self._md5 = hashlib.md5()
        self._sealed = False
        self.byte_count = 0

    @property
    def closed(self) -> bool:
        """Whether the backing storage has been released."""
        return self._file.closed

    @property
    def sealed(self) -> bool:
        """Whether the buffer has been sealed for upload."""
        return self._sealed

    def write(self, data: bytes | memoryview) -> int:
        """Append bytes to the current part.

        Raises:
            ValueError: If the buffer is sealed or released.
        """
        if self._sealed:
            raise ValueError("Part buffer is sealed")
        written = self._file.write(data)
        self._md5.update(data)
        self.byte_count += written
        return written

    def seal(self) -> tuple[BinaryIO, str]:
        """Stop accepting writes and expose the part for upload.

        Returns:
            The backing file (an ``io.IOBase`` on Python 3.11+, which
            botocore streams as a request body) positioned at offset 0, and
            the base64-encoded MD5 of its content (the S3 Content-MD5 form).
        """
        self._sealed = True
        self._file.flush()
        self._file.seek(0)
        content_md5 = base64.b64encode(self._md5.digest()).decode("ascii")
        return self._file, content_md5

    def hexdigest(self) -> str:
        """Return the hex MD5 of the bytes written since the last reset."""
        return self._md5.hexdigest()

    def reset(self) -> None:
        """Discard the current part and start a new empty one."""
        self._file.seek(0)
        self._file.truncate()
        self._md5 = hashlib.md5()
        self._sealed = False
        self.byte_count = 0

    def close(self) -> None:
        """Release the backing storage. Safe to call more than once."""
        if not self._file.closed:
            self._file.close()
