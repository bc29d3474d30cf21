"""Files, uploaded either in one request or through a chunked upload session."""

import mimetypes
from pathlib import Path
from typing import Any, Dict, Optional

from reconciler.clients.exceptions import APIError, ResourceNotFoundError, StateError, ValidationError
from reconciler.core.models import FieldSpec, ImportResult, RemoteObject, ResourceKind
from reconciler.core.uploads import ChunkedUpload
from reconciler.resources.base import ResourceController, RestResourceController
from reconciler.security.validation import validate_file_path

FILE_PURPOSES = ("assistants", "batch", "fine-tune", "vision", "user_data", "evals")


def _local_file(declared: Dict[str, Any]) -> Path:
    path = declared["path"]
    if not validate_file_path(str(path)):
        raise ValidationError(f"Unsafe file path: {path}", attribute="path")
    resolved = Path(path)
    if not resolved.is_file():
        raise ValidationError(f"File not found: {path}", attribute="path")
    return resolved


def _check_purpose(declared: Dict[str, Any]) -> None:
    if declared.get("purpose") not in FILE_PURPOSES:
        raise ValidationError(
            f"purpose must be one of {', '.join(FILE_PURPOSES)}", attribute="purpose"
        )


class FileController(RestResourceController):
    """Files uploaded with a single multipart request."""

    kind = ResourceKind.FILE
    path = "/files"
    schema = {
        "path": FieldSpec(required=True, force_new=True, local_only=True),
        "purpose": FieldSpec(required=True, force_new=True, remote_key="purpose"),
        "filename": FieldSpec(force_new=True, computed=True, remote_key="filename"),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        _check_purpose(declared)

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        local = _local_file(declared)
        filename = declared.get("filename") or local.name
        payload = await self.client.post_multipart(
            self.path,
            data={"purpose": declared["purpose"]},
            files={"file": (filename, local.read_bytes())},
        )
        self._logger.info("Uploaded file", file_id=payload.get("id"), bytes=payload.get("bytes"))
        return self.to_remote(payload)

    async def import_(self, identity: str) -> ImportResult:
        # The local source path cannot be recovered from the API
        result = await super().import_(identity)
        result.declared_defaults["path"] = self.platform.import_placeholder_file
        result.suppressed.append("path")
        return result


class UploadController(ResourceController):
    """Large files sent through the chunked upload protocol.

    The upload object has no read endpoint; once completed it is tracked
    through the file it produced.
    """

    kind = ResourceKind.UPLOAD
    schema = {
        "path": FieldSpec(required=True, force_new=True, local_only=True),
        "purpose": FieldSpec(required=True, force_new=True, remote_key="purpose"),
        "filename": FieldSpec(force_new=True, computed=True, remote_key="filename"),
        "mime_type": FieldSpec(force_new=True, computed=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        _check_purpose(declared)

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        local = _local_file(declared)
        filename = declared.get("filename") or local.name
        mime_type = (
            declared.get("mime_type")
            or mimetypes.guess_type(filename)[0]
            or "application/octet-stream"
        )

        upload = await ChunkedUpload.start(
            self.client,
            filename=filename,
            purpose=declared["purpose"],
            total_bytes=local.stat().st_size,
            mime_type=mime_type,
            chunk_size=self.options.upload_chunk_size_bytes,
        )
        try:
            payload = await upload.upload_file(local)
        except (APIError, StateError, ValidationError, OSError) as e:
            # Not recorded in state, so the session would otherwise be orphaned
            try:
                await upload.abort()
            except (APIError, StateError) as abort_error:
                self._logger.error(
                    "Failed to abort upload after error",
                    upload_id=upload.session.session_id,
                    error=str(e),
                    abort_error=str(abort_error),
                )
            raise

        return RemoteObject(identity=upload.session.session_id, attributes=payload)

    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        if not previous:
            raise ResourceNotFoundError(
                f"Upload {identity} has no recorded observation", status_code=404
            )
        observed = dict(previous)
        file_id = (observed.get("file") or {}).get("id")
        if file_id:
            # A missing file surfaces as ResourceNotFoundError
            observed["file"] = await self.client.get_json(f"/files/{file_id}")
        return RemoteObject(identity=identity, attributes=observed)

    async def cancel(self, identity: str, observed: Dict[str, Any]) -> None:
        await self.client.cancel_upload(identity)
        self._logger.info("Cancelled upload", upload_id=identity)

    async def import_(self, identity: str) -> ImportResult:
        raise StateError("Uploads cannot be imported; import the resulting file instead")
