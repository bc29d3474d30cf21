"""Tests for the chunked upload protocol."""

from unittest.mock import AsyncMock, Mock

import pytest

from reconciler.clients.exceptions import ServerError, StateError, UploadPartConflictError, ValidationError
from reconciler.core.uploads import ChunkedUpload, UploadSession, UploadState


@pytest.fixture
def upload_client():
    """Mock client answering the upload endpoints."""
    client = Mock()
    client.create_upload = AsyncMock(return_value={"id": "upload_1", "status": "pending"})
    client.add_upload_part = AsyncMock(
        side_effect=lambda upload_id, part_number, data: {"id": f"part_{part_number}"}
    )
    client.complete_upload = AsyncMock(
        return_value={"id": "upload_1", "status": "completed", "file": {"id": "file-1"}}
    )
    client.cancel_upload = AsyncMock(return_value={"id": "upload_1", "status": "cancelled"})
    return client


async def start(client, total_bytes: int, chunk_size: int = 4) -> ChunkedUpload:
    return await ChunkedUpload.start(
        client,
        filename="data.jsonl",
        purpose="batch",
        total_bytes=total_bytes,
        mime_type="application/jsonl",
        chunk_size=chunk_size,
    )


class TestUploadSession:
    """Test UploadSession bookkeeping."""

    def test_expected_part_count(self):
        session = UploadSession(
            session_id="upload_1",
            filename="a",
            purpose="batch",
            mime_type="text/plain",
            total_bytes=10,
            chunk_size=4,
        )
        assert session.expected_part_count == 3
        assert session.state == UploadState.CREATED

    def test_single_part_for_small_file(self):
        session = UploadSession(
            session_id="upload_1",
            filename="a",
            purpose="batch",
            mime_type="text/plain",
            total_bytes=1,
            chunk_size=4,
        )
        assert session.expected_part_count == 1


@pytest.mark.asyncio
class TestChunkedUpload:
    """Test the upload state machine."""

    async def test_start_creates_remote_session(self, upload_client):
        upload = await start(upload_client, total_bytes=10)

        assert upload.session.session_id == "upload_1"
        assert upload.session.state == UploadState.CREATED
        upload_client.create_upload.assert_awaited_once_with(
            "data.jsonl", "batch", 10, "application/jsonl"
        )

    async def test_start_rejects_empty_file(self, upload_client):
        with pytest.raises(ValidationError):
            await start(upload_client, total_bytes=0)
        upload_client.create_upload.assert_not_awaited()

    async def test_parts_in_any_order_complete(self, upload_client):
        upload = await start(upload_client, total_bytes=10)

        await upload.add_part(3, b"ij")
        await upload.add_part(1, b"abcd")
        await upload.add_part(2, b"efgh")
        assert upload.session.state == UploadState.RECEIVING

        payload = await upload.complete()

        assert upload.session.state == UploadState.COMPLETED
        assert upload.session.file_id == "file-1"
        assert payload["status"] == "completed"
        submitted = upload_client.complete_upload.await_args.args[1]
        assert [part["part_number"] for part in submitted] == [1, 2, 3]
        assert [part["etag"] for part in submitted] == ["part_1", "part_2", "part_3"]

    async def test_gap_in_parts_fails_completion(self, upload_client):
        upload = await start(upload_client, total_bytes=16)

        await upload.add_part(1, b"aaaa")
        await upload.add_part(2, b"bbbb")
        await upload.add_part(4, b"dddd")

        with pytest.raises(ValidationError, match=r"missing parts \[3\]"):
            await upload.complete()

        assert upload.session.state == UploadState.RECEIVING
        upload_client.complete_upload.assert_not_awaited()

    async def test_out_of_order_completion_list_rejected(self, upload_client):
        upload = await start(upload_client, total_bytes=8)
        await upload.add_part(1, b"aaaa")
        await upload.add_part(2, b"bbbb")

        with pytest.raises(ValidationError, match="strictly ordered"):
            await upload.complete([2, 1])

    async def test_resubmitting_identical_part_is_idempotent(self, upload_client):
        upload = await start(upload_client, total_bytes=8)

        first = await upload.add_part(1, b"aaaa")
        again = await upload.add_part(1, b"aaaa")

        assert again == first
        assert upload_client.add_upload_part.await_count == 1

    async def test_resubmitting_part_with_other_content_conflicts(self, upload_client):
        upload = await start(upload_client, total_bytes=8)
        await upload.add_part(1, b"aaaa")

        with pytest.raises(UploadPartConflictError) as exc_info:
            await upload.add_part(1, b"zzzz")

        assert exc_info.value.part_number == 1
        assert upload.session.part(1).size_bytes == 4

    async def test_non_final_part_must_match_chunk_size(self, upload_client):
        upload = await start(upload_client, total_bytes=10)

        with pytest.raises(ValidationError, match="only the last part"):
            await upload.add_part(1, b"abc")

    async def test_part_number_out_of_range(self, upload_client):
        upload = await start(upload_client, total_bytes=8)

        with pytest.raises(ValidationError, match="outside"):
            await upload.add_part(3, b"aaaa")

    async def test_completed_session_rejects_parts(self, upload_client):
        upload = await start(upload_client, total_bytes=4)
        await upload.add_part(1, b"aaaa")
        await upload.complete()

        with pytest.raises(StateError):
            await upload.add_part(1, b"aaaa")
        with pytest.raises(StateError):
            await upload.complete()

    async def test_failed_completion_keeps_receiving(self, upload_client):
        upload_client.complete_upload.side_effect = ServerError("Server error: 500", status_code=500)
        upload = await start(upload_client, total_bytes=4)
        await upload.add_part(1, b"aaaa")

        with pytest.raises(ServerError):
            await upload.complete()

        assert upload.session.state == UploadState.RECEIVING
        assert upload.session.received_part_numbers() == [1]

    async def test_abort(self, upload_client):
        upload = await start(upload_client, total_bytes=8)
        await upload.add_part(1, b"aaaa")

        await upload.abort()

        assert upload.session.state == UploadState.ABORTED
        upload_client.cancel_upload.assert_awaited_once_with("upload_1")
        with pytest.raises(StateError):
            await upload.add_part(2, b"bbbb")

    async def test_completed_session_cannot_be_aborted(self, upload_client):
        upload = await start(upload_client, total_bytes=4)
        await upload.add_part(1, b"aaaa")
        await upload.complete()

        with pytest.raises(StateError):
            await upload.abort()
        upload_client.cancel_upload.assert_not_awaited()

    async def test_upload_file_sends_chunks(self, upload_client, tmp_path):
        source = tmp_path / "data.jsonl"
        source.write_bytes(b"0123456789")
        upload = await start(upload_client, total_bytes=10)

        payload = await upload.upload_file(source)

        sent = [call.args[1:] for call in upload_client.add_upload_part.await_args_list]
        assert sent == [(1, b"0123"), (2, b"4567"), (3, b"89")]
        assert upload.session.completed
        assert upload.session.file_id == "file-1"
        assert payload["status"] == "completed"
        upload_client.complete_upload.assert_awaited_once_with(
            "upload_1",
            [
                {"part_number": 1, "etag": "part_1"},
                {"part_number": 2, "etag": "part_2"},
                {"part_number": 3, "etag": "part_3"},
            ],
        )
