"""Shared pytest fixtures for partwriter tests.

``RecordingSession`` wraps the in-memory storage session, records every
call the writer makes (with a copy of each part's bytes) and can be told
to fail a given call, so tests can assert on exact call sequences.
"""

from typing import BinaryIO

import pytest

from partwriter.models import PartReceipt, UploadSession
from partwriter.storage.memory import MemoryMultipartSession


class InjectedFailure(Exception):
    """Error raised by RecordingSession when told to fail."""


class RecordingSession:
    """ObjectStorageSession test double backed by MemoryMultipartSession.

    Attributes:
        calls: Method names in call order.
        parts: (part_number, data, is_last_part) for each upload_part call.
        fail_begin / fail_part / fail_complete / fail_abort: Exceptions to
            raise from the matching call (fail_part raises only for the part
            number in fail_part_number).
    """

    def __init__(self, min_part_size: int = 0) -> None:
        self.inner = MemoryMultipartSession(min_part_size=min_part_size)
        self.calls: list[str] = []
        self.parts: list[tuple[int, bytes, bool]] = []
        self.completed_receipts: list[PartReceipt] | None = None
        self.fail_begin: Exception | None = None
        self.fail_part: Exception | None = None
        self.fail_part_number: int = 1
        self.fail_complete: Exception | None = None
        self.fail_abort: Exception | None = None

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def begin(self, bucket: str, key: str, acl: str | None = None) -> UploadSession:
        self.calls.append("begin")
        if self.fail_begin is not None:
            raise self.fail_begin
        return await self.inner.begin(bucket, key, acl)

    async def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        body: BinaryIO,
        size: int,
        is_last_part: bool,
        content_md5: str,
    ) -> PartReceipt:
        self.calls.append("upload_part")
        if self.fail_part is not None and part_number == self.fail_part_number:
            raise self.fail_part
        data = body.read(size)
        self.parts.append((part_number, data, is_last_part))
        body.seek(0)
        return await self.inner.upload_part(
            session, part_number, body, size, is_last_part, content_md5
        )

    async def complete(self, session: UploadSession, receipts: list[PartReceipt]) -> str:
        self.calls.append("complete")
        self.completed_receipts = list(receipts)
        if self.fail_complete is not None:
            raise self.fail_complete
        return await self.inner.complete(session, receipts)

    async def abort(self, session: UploadSession) -> None:
        self.calls.append("abort")
        if self.fail_abort is not None:
            raise self.fail_abort
        await self.inner.abort(session)


@pytest.fixture
def storage() -> RecordingSession:
    """A fresh recording storage session per test."""
    return RecordingSession()


@pytest.fixture
def memory_storage() -> MemoryMultipartSession:
    """A fresh in-memory storage session per test."""
    return MemoryMultipartSession()
