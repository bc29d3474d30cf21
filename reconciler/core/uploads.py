"""Chunked upload protocol: create session, add parts, complete."""

import asyncio
import hashlib
import math
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from reconciler.clients.exceptions import StateError, UploadPartConflictError, ValidationError
from reconciler.clients.openai import OpenAIClient

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024 * 1024


class UploadState(str, Enum):
    """Lifecycle of an upload session."""
    CREATED = "created"
    RECEIVING = "receiving"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTED = "aborted"


class UploadPart(BaseModel):
    """A part acknowledged by the remote service."""

    part_number: int
    size_bytes: int
    etag: str
    sha256: str


class UploadSession(BaseModel):
    """Local view of an in-progress chunked upload."""

    session_id: str
    filename: str
    purpose: str
    mime_type: str
    total_bytes: int
    chunk_size: int = DEFAULT_CHUNK_SIZE
    parts: List[UploadPart] = Field(default_factory=list)
    state: UploadState = UploadState.CREATED
    file_id: Optional[str] = None

    @property
    def expected_part_count(self) -> int:
        return max(1, math.ceil(self.total_bytes / self.chunk_size))

    @property
    def completed(self) -> bool:
        return self.state == UploadState.COMPLETED

    def part(self, part_number: int) -> Optional[UploadPart]:
        for part in self.parts:
            if part.part_number == part_number:
                return part
        return None

    def received_part_numbers(self) -> List[int]:
        return sorted(part.part_number for part in self.parts)


class ChunkedUpload:
    """Drives one UploadSession through the remote protocol.

    Part submissions are serialised by a lock, so parts produced by
    concurrent readers may be handed over in any order. Completion is
    validated locally before the remote call; a failed completion leaves the
    session receiving so parts already sent are kept.
    """

    def __init__(self, client: OpenAIClient, session: UploadSession) -> None:
        self.client = client
        self.session = session
        self._lock = asyncio.Lock()
        self._logger = logger.bind(upload_id=session.session_id, filename=session.filename)

    @classmethod
    async def start(
        cls,
        client: OpenAIClient,
        filename: str,
        purpose: str,
        total_bytes: int,
        mime_type: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "ChunkedUpload":
        """Create a remote upload session.

        Args:
            client: OpenAI client
            filename: Name of the file being uploaded
            purpose: Intended purpose of the resulting file
            total_bytes: Exact size of the file
            mime_type: MIME type of the file
            chunk_size: Nominal part size

        Returns:
            A ChunkedUpload in state CREATED
        """
        if total_bytes <= 0:
            raise ValidationError("Upload size must be positive", attribute="bytes")
        if chunk_size <= 0:
            raise ValidationError("Chunk size must be positive", attribute="chunk_size")

        payload = await client.create_upload(filename, purpose, total_bytes, mime_type)
        session = UploadSession(
            session_id=payload["id"],
            filename=filename,
            purpose=purpose,
            mime_type=mime_type,
            total_bytes=total_bytes,
            chunk_size=chunk_size,
        )
        logger.info(
            "Created upload session",
            upload_id=session.session_id,
            total_bytes=total_bytes,
            expected_parts=session.expected_part_count,
        )
        return cls(client, session)

    def _check_part_size(self, part_number: int, size: int) -> None:
        expected = self.session.expected_part_count
        if part_number < 1 or part_number > expected:
            raise ValidationError(
                f"Part number {part_number} outside 1..{expected}",
                attribute="part_number",
            )
        if part_number < expected and size != self.session.chunk_size:
            raise ValidationError(
                f"Part {part_number} has {size} bytes; only the last part may differ "
                f"from the chunk size {self.session.chunk_size}",
                attribute="part_number",
            )
        if part_number == expected and not 0 < size <= self.session.chunk_size:
            raise ValidationError(
                f"Last part has {size} bytes; expected 1..{self.session.chunk_size}",
                attribute="part_number",
            )

    async def add_part(self, part_number: int, data: bytes) -> UploadPart:
        """Submit one part.

        Re-submitting an acknowledged part with identical content returns the
        existing acknowledgement without a remote call.

        Args:
            part_number: 1-based part number
            data: Part content

        Returns:
            The acknowledged UploadPart

        Raises:
            StateError: If the session no longer accepts parts
            UploadPartConflictError: If the part was acknowledged with other content
            ValidationError: If the part number or size is invalid
        """
        async with self._lock:
            if self.session.state not in (UploadState.CREATED, UploadState.RECEIVING):
                raise StateError(
                    f"Upload {self.session.session_id} is {self.session.state.value}; "
                    "no further parts may be added"
                )

            digest = hashlib.sha256(data).hexdigest()
            existing = self.session.part(part_number)
            if existing is not None:
                if existing.size_bytes == len(data) and existing.sha256 == digest:
                    self._logger.debug("Part already acknowledged", part_number=part_number)
                    return existing
                raise UploadPartConflictError(
                    f"Part {part_number} was already acknowledged with "
                    f"{existing.size_bytes} bytes of different content",
                    part_number=part_number,
                )

            self._check_part_size(part_number, len(data))

            response = await self.client.add_upload_part(
                self.session.session_id, part_number, data
            )
            part = UploadPart(
                part_number=part_number,
                size_bytes=len(data),
                etag=str(response.get("etag") or response.get("id")),
                sha256=digest,
            )
            self.session.parts.append(part)
            self.session.parts.sort(key=lambda p: p.part_number)
            self.session.state = UploadState.RECEIVING

            self._logger.debug("Added part", part_number=part_number, size_bytes=len(data))
            return part

    def _validate_completion(self, part_numbers: List[int]) -> List[UploadPart]:
        expected = list(range(1, self.session.expected_part_count + 1))
        if part_numbers != sorted(set(part_numbers)):
            raise ValidationError("Completion parts must be strictly ordered by part number")

        missing = [n for n in expected if n not in part_numbers]
        if missing:
            raise ValidationError(f"Cannot complete upload: missing parts {missing}")
        unknown = [n for n in part_numbers if self.session.part(n) is None]
        if unknown:
            raise ValidationError(f"Cannot complete upload: parts {unknown} were never received")
        extra = [n for n in part_numbers if n not in expected]
        if extra:
            raise ValidationError(f"Cannot complete upload: unexpected parts {extra}")

        parts = [self.session.part(n) for n in part_numbers]
        total = sum(part.size_bytes for part in parts)
        if total != self.session.total_bytes:
            raise ValidationError(
                f"Cannot complete upload: parts hold {total} bytes, "
                f"session declared {self.session.total_bytes}"
            )
        return parts

    async def complete(self, part_numbers: Optional[List[int]] = None) -> Dict[str, Any]:
        """Complete the session with an ordered part list.

        Args:
            part_numbers: Ordered part numbers to submit (all received parts by default)

        Returns:
            The completed upload payload

        Raises:
            StateError: If the session is not receiving
            ValidationError: If the part list is incomplete or out of order
        """
        async with self._lock:
            if self.session.state in (UploadState.COMPLETED, UploadState.ABORTED):
                raise StateError(
                    f"Upload {self.session.session_id} is already {self.session.state.value}"
                )

            selected = list(part_numbers) if part_numbers is not None else self.session.received_part_numbers()
            parts = self._validate_completion(selected)

            self.session.state = UploadState.COMPLETING
            try:
                payload = await self.client.complete_upload(
                    self.session.session_id,
                    [{"part_number": p.part_number, "etag": p.etag} for p in parts],
                )
            except Exception:
                self.session.state = UploadState.RECEIVING
                self._logger.warning("Upload completion failed; session stays receiving")
                raise

            self.session.state = UploadState.COMPLETED
            file_info = payload.get("file") or {}
            self.session.file_id = file_info.get("id")

            self._logger.info("Completed upload", parts=len(parts), file_id=self.session.file_id)
            return payload

    async def abort(self) -> None:
        """Cancel the session remotely.

        Raises:
            StateError: If the session is completing or already terminal
        """
        async with self._lock:
            if self.session.state not in (UploadState.CREATED, UploadState.RECEIVING):
                raise StateError(
                    f"Upload {self.session.session_id} is {self.session.state.value} and cannot be aborted"
                )
            await self.client.cancel_upload(self.session.session_id)
            self.session.state = UploadState.ABORTED
            self._logger.info("Aborted upload")

    async def upload_file(self, path: Path) -> Dict[str, Any]:
        """Send a local file in chunk-size parts and complete the session.

        Args:
            path: File to upload; its size must equal the session's total_bytes

        Returns:
            The completed upload payload
        """
        path = Path(path)
        with open(path, "rb") as f:
            part_number = 1
            while True:
                chunk = f.read(self.session.chunk_size)
                if not chunk:
                    break
                await self.add_part(part_number, chunk)
                part_number += 1
        return await self.complete()
