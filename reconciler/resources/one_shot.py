"""Write-once records of single inference calls.

Each instance is one completed call (a moderation, a completion, an
embedding, ...). Nothing about it can change afterwards: every input
forces a new call, updates and destroys only touch local state.
"""

import hashlib
import uuid
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional

from reconciler.clients.exceptions import ResourceNotFoundError, ValidationError
from reconciler.core.models import FieldSpec, ImportResult, RemoteObject, ResourceKind
from reconciler.resources.base import ResourceController
from reconciler.security.validation import validate_file_path

JSON_TRANSCRIPT_FORMATS = ("json", "verbose_json")


def _input(required: bool = False, remote_key: Optional[str] = None) -> FieldSpec:
    return FieldSpec(required=required, force_new=True, remote_key=remote_key)


class OneShotController(ResourceController):
    """Base for calls that produce an immutable result.

    Subclasses name the ``endpoint`` they POST to and, where the API keeps
    the result, the ``get_path`` it can be read back from.
    """

    endpoint: ClassVar[str]
    get_path: ClassVar[Optional[str]] = None
    # Prefix of locally generated identities for results without an id
    id_prefix: ClassVar[str] = "call"

    async def invoke(self, declared: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.post_json(self.endpoint, self.request_body(declared))

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        payload = await self.invoke(declared)
        identity = str(payload.get("id") or f"{self.id_prefix}-{uuid.uuid4().hex}")
        self._logger.info("Recorded call result", identity=identity)
        return RemoteObject(identity=identity, attributes=payload)

    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        # The recorded result is authoritative; re-reading would not change it
        if previous:
            return RemoteObject(identity=identity, attributes=previous)
        if self.get_path:
            payload = await self.client.get_json(self.get_path.format(id=identity))
            return RemoteObject(identity=identity, attributes=payload)
        raise ResourceNotFoundError(
            f"{self.kind.value} {identity} cannot be read back from the API", status_code=404
        )

    async def update(
        self,
        identity: str,
        changes: Dict[str, Any],
        declared: Dict[str, Any],
        observed: Optional[Dict[str, Any]] = None,
    ) -> RemoteObject:
        return RemoteObject(identity=identity, attributes=dict(observed or {}))

    async def delete(self, identity: str, observed: Dict[str, Any]) -> None:
        self._logger.debug("Write-once result; nothing to delete remotely", identity=identity)

    def placeholder_for(self, attribute: str) -> str:
        """Documented sentinel for an input the API cannot return."""
        if attribute == "model":
            return self.platform.import_placeholder_model
        if self.schema[attribute].local_only:
            return self.platform.import_placeholder_file
        return self.platform.import_placeholder_text

    async def recover_inputs(self, identity: str, observed: Dict[str, Any]) -> Dict[str, Any]:
        """Inputs that can be recovered beyond ``remote_key`` attributes."""
        return {}

    async def import_(self, identity: str) -> ImportResult:
        if self.get_path:
            observed = await self.read(identity)
        else:
            observed = RemoteObject(identity=identity, attributes={"id": identity})

        defaults = self.attributes_from_observed(observed.attributes)
        defaults.update(await self.recover_inputs(identity, observed.attributes))

        suppressed: List[str] = []
        for name, spec in self.schema.items():
            if spec.required and name not in defaults:
                defaults[name] = self.placeholder_for(name)
                suppressed.append(name)

        if suppressed:
            self._logger.info("Imported with placeholders", identity=identity, suppressed=suppressed)
        return ImportResult(declared_defaults=defaults, observed=observed, suppressed=suppressed)


class ModerationController(OneShotController):
    kind = ResourceKind.MODERATION
    endpoint = "/moderations"
    id_prefix = "modr"
    schema = {
        "input": _input(required=True),
        "model": FieldSpec(force_new=True, computed=True, remote_key="model"),
    }

    async def import_(self, identity: str) -> ImportResult:
        # Neither the input nor the model of a moderation can be read back
        result = await super().import_(identity)
        result.declared_defaults["model"] = self.platform.import_placeholder_model
        if "model" not in result.suppressed:
            result.suppressed.append("model")
        return result


class ChatCompletionController(OneShotController):
    """Chat completions; stored completions can be read back on import."""

    kind = ResourceKind.CHAT_COMPLETION
    endpoint = "/chat/completions"
    get_path = "/chat/completions/{id}"
    schema = {
        "model": _input(required=True, remote_key="model"),
        "messages": _input(required=True),
        "temperature": _input(),
        "top_p": _input(),
        "max_completion_tokens": _input(),
        "n": _input(),
        "seed": _input(),
        "response_format": _input(),
        "tools": _input(),
        "tool_choice": _input(),
        "store": _input(),
        "metadata": _input(),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        messages = declared.get("messages")
        if not isinstance(messages, list) or not messages:
            raise ValidationError("messages must be a non-empty list", attribute="messages")
        for message in messages:
            if not isinstance(message, dict) or "role" not in message:
                raise ValidationError("Each message needs a role", attribute="messages")

    async def recover_inputs(self, identity: str, observed: Dict[str, Any]) -> Dict[str, Any]:
        walker = self.client.walker(f"/chat/completions/{identity}/messages", order="asc")
        messages = [
            {"role": item.get("role"), "content": item.get("content")}
            async for item in walker.items()
        ]
        return {"messages": messages} if messages else {}


class ModelResponseController(OneShotController):
    """Responses API results; the input can be recovered from the input items."""

    kind = ResourceKind.MODEL_RESPONSE
    endpoint = "/responses"
    get_path = "/responses/{id}"
    schema = {
        "model": _input(required=True, remote_key="model"),
        "input": _input(required=True),
        "instructions": _input(remote_key="instructions"),
        "previous_response_id": _input(remote_key="previous_response_id"),
        "temperature": _input(),
        "max_output_tokens": _input(),
        "tools": _input(),
        "text": _input(),
        "store": _input(),
        "metadata": _input(),
    }

    async def recover_inputs(self, identity: str, observed: Dict[str, Any]) -> Dict[str, Any]:
        walker = self.client.walker(f"/responses/{identity}/input_items", order="asc")
        messages = []
        async for item in walker.items():
            texts = [
                part.get("text")
                for part in item.get("content") or []
                if part.get("type") == "input_text"
            ]
            if item.get("type") != "message" or len(texts) != 1:
                # Non-text input cannot be declared back faithfully
                return {}
            messages.append({"role": item.get("role"), "content": texts[0]})
        return {"input": messages} if messages else {}


class EmbeddingController(OneShotController):
    kind = ResourceKind.EMBEDDING
    endpoint = "/embeddings"
    id_prefix = "emb"
    schema = {
        "model": _input(required=True, remote_key="model"),
        "input": _input(required=True),
        "dimensions": _input(),
        "encoding_format": _input(),
        "user": _input(),
    }


class ImageGenerationController(OneShotController):
    kind = ResourceKind.IMAGE_GENERATION
    endpoint = "/images/generations"
    id_prefix = "img"
    schema = {
        "prompt": _input(required=True),
        "model": _input(),
        "n": _input(),
        "size": _input(),
        "quality": _input(),
        "style": _input(),
        "background": _input(),
        "output_format": _input(),
        "response_format": _input(),
        "user": _input(),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        n = declared.get("n")
        if n is not None and not 1 <= n <= 10:
            raise ValidationError("n must be between 1 and 10", attribute="n")


def _output_path(value: Any, attribute: str) -> Path:
    if not validate_file_path(str(value)):
        raise ValidationError(f"Unsafe file path: {value}", attribute=attribute)
    return Path(value)


class SpeechController(OneShotController):
    """Text to speech; the audio is written to ``output_file``."""

    kind = ResourceKind.SPEECH
    endpoint = "/audio/speech"
    id_prefix = "speech"
    schema = {
        "model": _input(required=True),
        "input": _input(required=True),
        "voice": _input(required=True),
        "instructions": _input(),
        "response_format": _input(),
        "speed": _input(),
        "output_file": FieldSpec(required=True, force_new=True, local_only=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        _output_path(declared["output_file"], "output_file")
        speed = declared.get("speed")
        if speed is not None and not 0.25 <= speed <= 4.0:
            raise ValidationError("speed must be between 0.25 and 4.0", attribute="speed")

    async def invoke(self, declared: Dict[str, Any]) -> Dict[str, Any]:
        audio = await self.client.post_binary(self.endpoint, self.request_body(declared))
        output = _output_path(declared["output_file"], "output_file")
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(audio)
        return {
            "output_file": str(output),
            "bytes": len(audio),
            "sha256": hashlib.sha256(audio).hexdigest(),
        }


class TranscriptionController(OneShotController):
    """Speech to text from a local audio file."""

    kind = ResourceKind.TRANSCRIPTION
    endpoint = "/audio/transcriptions"
    id_prefix = "transcript"
    schema = {
        "file": FieldSpec(required=True, force_new=True, local_only=True),
        "model": _input(required=True),
        "language": _input(),
        "prompt": _input(),
        "response_format": _input(),
        "temperature": _input(),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        response_format = declared.get("response_format")
        if response_format is not None and response_format not in JSON_TRANSCRIPT_FORMATS:
            raise ValidationError(
                f"response_format must be one of {', '.join(JSON_TRANSCRIPT_FORMATS)}",
                attribute="response_format",
            )

    async def invoke(self, declared: Dict[str, Any]) -> Dict[str, Any]:
        audio = _output_path(declared["file"], "file")
        if not audio.is_file():
            raise ValidationError(f"File not found: {audio}", attribute="file")
        data = {
            name: str(value)
            for name, value in self.request_body(declared).items()
        }
        return await self.client.post_multipart(
            self.endpoint,
            data=data,
            files={"file": (audio.name, audio.read_bytes())},
        )


class TranslationController(TranscriptionController):
    """Speech in any language to English text."""

    kind = ResourceKind.TRANSLATION
    endpoint = "/audio/translations"
    id_prefix = "translation"
    schema = {
        "file": FieldSpec(required=True, force_new=True, local_only=True),
        "model": _input(required=True),
        "prompt": _input(),
        "response_format": _input(),
        "temperature": _input(),
    }


def _input_image(value: Any, attribute: str) -> Path:
    image = _output_path(value, attribute)
    if not image.is_file():
        raise ValidationError(f"File not found: {image}", attribute=attribute)
    return image


class ImageVariationController(OneShotController):
    """Variations of a local image, uploaded as multipart form data."""

    kind = ResourceKind.IMAGE_VARIATION
    endpoint = "/images/variations"
    id_prefix = "img"
    # Local paths sent as file parts
    image_inputs: ClassVar[List[str]] = ["image"]
    schema = {
        "image": FieldSpec(required=True, force_new=True, local_only=True),
        "model": _input(),
        "n": _input(),
        "size": _input(),
        "response_format": _input(),
        "user": _input(),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        n = declared.get("n")
        if n is not None and not 1 <= n <= 10:
            raise ValidationError("n must be between 1 and 10", attribute="n")

    async def invoke(self, declared: Dict[str, Any]) -> Dict[str, Any]:
        files = {}
        for name in self.image_inputs:
            if declared.get(name) is not None:
                image = _input_image(declared[name], name)
                files[name] = (image.name, image.read_bytes())
        data = {
            name: str(value)
            for name, value in self.request_body(declared).items()
        }
        return await self.client.post_multipart(self.endpoint, data=data, files=files)


class ImageEditController(ImageVariationController):
    """Edits of a local image guided by a prompt and an optional mask."""

    kind = ResourceKind.IMAGE_EDIT
    endpoint = "/images/edits"
    image_inputs = ["image", "mask"]
    schema = {
        "image": FieldSpec(required=True, force_new=True, local_only=True),
        "mask": FieldSpec(force_new=True, local_only=True),
        "prompt": _input(required=True),
        "model": _input(),
        "n": _input(),
        "size": _input(),
        "quality": _input(),
        "background": _input(),
        "output_format": _input(),
        "response_format": _input(),
        "user": _input(),
    }
