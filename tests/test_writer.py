"""Tests for MultipartUploadWriter.

Uses RecordingSession (see conftest.py) so every storage call made by the
writer can be asserted on. Small part sizes keep the payloads tiny.
"""

import asyncio
import hashlib
import logging
import random

import pytest

from conftest import InjectedFailure, RecordingSession
from partwriter.errors import IntegrityMismatch, PartUploadFailure, UseAfterClose
from partwriter.writer import (
    MAX_OBJECT_SIZE,
    MAX_PART_SIZE,
    MAX_PARTS_PER_UPLOAD,
    PART_SIZE,
    MultipartUploadWriter,
    WriterState,
)


async def _open(storage, part_size=4, **kwargs) -> MultipartUploadWriter:
    """Helper to open a writer on test-bucket/test-key."""
    return await MultipartUploadWriter.open(
        storage, "test-bucket", "test-key", part_size=part_size, **kwargs
    )


def _split(data: bytes, cuts: list[int]) -> list[bytes]:
    """Split data at the given offsets."""
    bounds = [0] + sorted(cuts) + [len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


class TestPartSize:
    """Tests for the part size constants and validation."""

    def test_part_size_value(self):
        assert PART_SIZE == 549_755_814

    def test_part_size_covers_max_object(self):
        assert PART_SIZE * MAX_PARTS_PER_UPLOAD >= MAX_OBJECT_SIZE
        assert (PART_SIZE - 1) * MAX_PARTS_PER_UPLOAD < MAX_OBJECT_SIZE

    def test_part_size_under_service_maximum(self):
        assert PART_SIZE <= MAX_PART_SIZE

    async def test_zero_part_size_rejected_before_begin(self, storage):
        with pytest.raises(ValueError, match="part_size"):
            await _open(storage, part_size=0)
        assert storage.calls == []

    async def test_oversized_part_size_rejected(self, storage):
        with pytest.raises(ValueError):
            await _open(storage, part_size=MAX_PART_SIZE + 1)
        assert storage.calls == []


class TestOpen:
    """Tests for MultipartUploadWriter.open()."""

    async def test_open_begins_one_session(self, storage):
        writer = await _open(storage)
        assert storage.calls == ["begin"]
        assert writer.state is WriterState.OPEN
        assert writer.part_number == 1
        assert writer.session.bucket == "test-bucket"
        assert writer.session.key == "test-key"

    async def test_begin_failure_propagates(self, storage):
        failure = InjectedFailure("no bucket")
        storage.fail_begin = failure
        with pytest.raises(InjectedFailure) as excinfo:
            await _open(storage)
        assert excinfo.value is failure
        assert storage.calls == ["begin"]

    async def test_acl_passed_to_begin(self, storage):
        writer = await _open(storage, acl="public-read")
        await writer.write(b"data")
        await writer.close()
        assert writer.session.acl == "public-read"
        assert storage.inner.get_object_acl("test-bucket", "test-key") == "public-read"

    def test_repr_names_target(self, storage):
        writer = asyncio.run(_open(storage))
        assert "test-bucket" in repr(writer)
        assert "test-key" in repr(writer)


class TestPartSplitting:
    """Tests for how written bytes are cut into parts."""

    async def test_single_write_parts(self, storage):
        data = bytes(range(23))
        writer = await _open(storage, part_size=4)
        await writer.write(data)
        await writer.close()

        sizes = [len(p[1]) for p in storage.parts]
        assert sizes == [4, 4, 4, 4, 4, 3]
        assert b"".join(p[1] for p in storage.parts) == data

    async def test_split_writes_match_single_write(self):
        rng = random.Random(1234)
        data = bytes(rng.randrange(256) for _ in range(101))

        single = RecordingSession()
        writer = await _open(single, part_size=8)
        await writer.write(data)
        await writer.close()
        expected = single.parts

        for _ in range(10):
            cuts = rng.sample(range(1, len(data)), rng.randrange(1, 30))
            split = RecordingSession()
            writer = await _open(split, part_size=8)
            for chunk in _split(data, cuts):
                await writer.write(chunk)
            await writer.close()
            assert split.parts == expected

    async def test_byte_at_a_time_matches_single_write(self):
        data = b"abcdefghijk"

        single = RecordingSession()
        writer = await _open(single, part_size=3)
        await writer.write(data)
        await writer.close()

        bytewise = RecordingSession()
        writer = await _open(bytewise, part_size=3)
        for value in data:
            await writer.write_byte(value)
        await writer.close()

        assert bytewise.parts == single.parts
        assert writer.bytes_written == len(data)

    async def test_no_part_exceeds_part_size(self, storage):
        writer = await _open(storage, part_size=5)
        for size in (1, 7, 0, 13, 5, 2):
            await writer.write(b"x" * size)
        await writer.close()
        assert all(0 <= len(p[1]) <= 5 for p in storage.parts)
        assert all(len(p[1]) == 5 for p in storage.parts[:-1])

    async def test_exact_part_size_gives_full_part_and_empty_last_part(self, storage):
        writer = await _open(storage, part_size=4)
        await writer.write(b"abcd")
        await writer.close()
        assert storage.parts == [(1, b"abcd", False), (2, b"", True)]

    async def test_zero_bytes_gives_one_empty_final_part(self, storage):
        writer = await _open(storage)
        etag = await writer.close()
        assert storage.parts == [(1, b"", True)]
        assert storage.calls == ["begin", "upload_part", "complete"]
        assert storage.inner.get_object("test-bucket", "test-key") == b""
        assert etag == writer.etag
        assert writer.state is WriterState.CLOSED

    async def test_zero_length_write_is_noop(self, storage):
        writer = await _open(storage)
        assert await writer.write(b"") == 0
        assert storage.calls == ["begin"]

    async def test_accepts_bytearray_and_memoryview(self, storage):
        writer = await _open(storage, part_size=4)
        await writer.write(bytearray(b"abc"))
        await writer.write(memoryview(b"defgh"))
        await writer.close()
        assert storage.inner.get_object("test-bucket", "test-key") == b"abcdefgh"

    async def test_accepts_non_contiguous_memoryview(self, storage):
        writer = await _open(storage, part_size=2)
        await writer.write(memoryview(b"abcdefg")[::2])
        await writer.close()
        assert storage.inner.get_object("test-bucket", "test-key") == b"aceg"
        assert [p[1] for p in storage.parts] == [b"ac", b"eg", b""]

    async def test_write_byte_out_of_range(self, storage):
        writer = await _open(storage)
        with pytest.raises(ValueError):
            await writer.write_byte(256)


class TestReceipts:
    """Tests for part numbering and the completion manifest."""

    async def test_part_numbers_are_gapless(self, storage):
        writer = await _open(storage, part_size=2)
        await writer.write(b"0123456789a")
        await writer.close()

        numbers = [r.part_number for r in storage.completed_receipts]
        assert numbers == list(range(1, len(numbers) + 1))
        assert len(numbers) == 6

    async def test_exactly_one_last_part(self, storage):
        writer = await _open(storage, part_size=2)
        await writer.write(b"0123456789")
        await writer.close()

        flags = [p[2] for p in storage.parts]
        assert flags.count(True) == 1
        assert flags[-1] is True

    async def test_object_matches_input(self, storage):
        data = bytes(range(256)) * 3
        writer = await _open(storage, part_size=100)
        await writer.write(data)
        await writer.close()
        assert storage.inner.get_object("test-bucket", "test-key") == data
        assert writer.etag.endswith('-8"')

    async def test_receipts_property_is_a_copy(self, storage):
        writer = await _open(storage, part_size=2)
        await writer.write(b"abcde")
        receipts = writer.receipts
        receipts.clear()
        assert len(writer.receipts) == 2


class TestUploadFailure:
    """Tests for part upload failures."""

    async def test_second_part_failure_aborts_once(self, storage):
        failure = InjectedFailure("connection reset")
        storage.fail_part = failure
        storage.fail_part_number = 2

        writer = await _open(storage, part_size=4)
        with pytest.raises(InjectedFailure) as excinfo:
            await writer.write(b"0123456789")

        assert excinfo.value is failure
        assert storage.count("abort") == 1
        assert storage.count("complete") == 0
        assert writer.state is WriterState.ABORTED
        assert storage.inner.active_uploads == []

    async def test_abort_failure_does_not_mask_original(self, storage, caplog):
        failure = InjectedFailure("part rejected")
        storage.fail_part = failure
        storage.fail_abort = RuntimeError("abort failed too")

        writer = await _open(storage, part_size=4)
        with caplog.at_level(logging.WARNING, logger="partwriter.writer"):
            with pytest.raises(InjectedFailure) as excinfo:
                await writer.close()

        assert excinfo.value is failure
        assert storage.count("abort") == 1
        assert "Failed to abort multipart upload" in caplog.text

    async def test_writes_after_failure_rejected(self, storage):
        storage.fail_part = InjectedFailure("boom")
        writer = await _open(storage, part_size=1)
        with pytest.raises(InjectedFailure):
            await writer.write(b"ab")

        with pytest.raises(UseAfterClose):
            await writer.write(b"c")
        with pytest.raises(UseAfterClose):
            await writer.close()
        assert storage.count("abort") == 1
        assert storage.count("upload_part") == 1

    async def test_buffer_released_after_failure(self, storage):
        storage.fail_part = InjectedFailure("boom")
        writer = await _open(storage, part_size=1)
        with pytest.raises(InjectedFailure):
            await writer.write(b"ab")
        assert writer._buffer.closed

    async def test_cancellation_aborts_and_releases_buffer(self, storage):
        storage.fail_part = asyncio.CancelledError()
        writer = await _open(storage, part_size=1)
        with pytest.raises(asyncio.CancelledError):
            await writer.write(b"ab")
        assert storage.count("abort") == 1
        assert writer._buffer.closed

    async def test_too_many_parts(self, storage, monkeypatch):
        monkeypatch.setattr("partwriter.writer.MAX_PARTS_PER_UPLOAD", 2)
        writer = await _open(storage, part_size=1)
        await writer.write(b"abc")
        with pytest.raises(PartUploadFailure) as excinfo:
            await writer.close()
        assert excinfo.value.part_number == 3
        assert storage.count("upload_part") == 2
        assert storage.count("abort") == 1


class TestClose:
    """Tests for close() and the terminal states."""

    async def test_close_twice_is_noop(self, storage):
        writer = await _open(storage)
        await writer.write(b"abc")
        first = await writer.close()
        calls = list(storage.calls)

        second = await writer.close()
        assert second == first
        assert storage.calls == calls

    async def test_write_after_close(self, storage):
        writer = await _open(storage)
        await writer.close()
        with pytest.raises(UseAfterClose):
            await writer.write(b"late")
        with pytest.raises(UseAfterClose):
            await writer.write_byte(1)

    async def test_buffer_released_after_close(self, storage):
        writer = await _open(storage)
        await writer.write(b"abc")
        await writer.close()
        assert writer._buffer.closed

    async def test_integrity_mismatch_aborts_without_completing(self, storage):
        writer = await _open(storage, part_size=4)
        await writer.write(b"0123456789")
        # Simulate bytes lost between the caller and the part buffer
        writer._written_md5.update(b"corrupted")

        with pytest.raises(IntegrityMismatch) as excinfo:
            await writer.close()

        assert excinfo.value.read_digest == hashlib.md5(b"0123456789").hexdigest()
        assert excinfo.value.read_digest != excinfo.value.written_digest
        assert storage.count("complete") == 0
        assert storage.count("abort") == 1
        assert writer.state is WriterState.ABORTED
        assert writer._buffer.closed

    async def test_completion_failure_aborts(self, storage):
        failure = InjectedFailure("complete timed out")
        storage.fail_complete = failure

        writer = await _open(storage)
        await writer.write(b"abc")
        with pytest.raises(InjectedFailure) as excinfo:
            await writer.close()

        assert excinfo.value is failure
        assert storage.calls[-2:] == ["complete", "abort"]
        assert writer.state is WriterState.ABORTED
        assert writer.etag is None

    async def test_explicit_abort(self, storage):
        writer = await _open(storage)
        await writer.write(b"abc")
        await writer.abort()
        await writer.abort()

        assert storage.count("abort") == 1
        assert storage.count("upload_part") == 0
        assert writer.state is WriterState.ABORTED
        with pytest.raises(UseAfterClose):
            await writer.write(b"d")

    async def test_abort_after_close_is_noop(self, storage):
        writer = await _open(storage)
        await writer.close()
        await writer.abort()
        assert storage.count("abort") == 0
        assert writer.state is WriterState.CLOSED


class TestContextManager:
    """Tests for async with usage."""

    async def test_clean_exit_closes(self, storage):
        async with await _open(storage, part_size=2) as writer:
            await writer.write(b"hello")
        assert writer.state is WriterState.CLOSED
        assert storage.inner.get_object("test-bucket", "test-key") == b"hello"

    async def test_exception_aborts(self, storage):
        with pytest.raises(KeyError):
            async with await _open(storage, part_size=2) as writer:
                await writer.write(b"hello")
                raise KeyError("caller failure")

        assert writer.state is WriterState.ABORTED
        assert storage.count("complete") == 0
        assert storage.count("abort") == 1
        with pytest.raises(FileNotFoundError):
            storage.inner.get_object("test-bucket", "test-key")

    async def test_upload_failure_inside_block_aborts_once(self, storage):
        storage.fail_part = InjectedFailure("boom")
        with pytest.raises(InjectedFailure):
            async with await _open(storage, part_size=1) as writer:
                await writer.write(b"ab")
        assert storage.count("abort") == 1


class TestStaging:
    """Tests for part buffers that spill to disk."""

    async def test_spilled_parts_round_trip(self, storage, tmp_path):
        rng = random.Random(7)
        data = bytes(rng.randrange(256) for _ in range(300))
        writer = await _open(
            storage, part_size=64, spool_max_size=16, staging_dir=str(tmp_path)
        )
        await writer.write(data)
        await writer.close()

        assert storage.inner.get_object("test-bucket", "test-key") == data
        assert writer._buffer.closed
