"""Shared data models for declared instances, remote objects and plans."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(str, Enum):
    """Kinds of resources the reconciler manages."""
    PROJECT = "project"
    PROJECT_USER = "project_user"
    SERVICE_ACCOUNT = "service_account"
    ORGANIZATION_USER = "organization_user"
    INVITE = "invite"
    ADMIN_API_KEY = "admin_api_key"
    RATE_LIMIT = "rate_limit"
    PROJECT_API_KEY = "project_api_key"
    FILE = "file"
    UPLOAD = "upload"
    ASSISTANT = "assistant"
    THREAD = "thread"
    MESSAGE = "message"
    RUN = "run"
    VECTOR_STORE = "vector_store"
    VECTOR_STORE_FILE = "vector_store_file"
    VECTOR_STORE_FILE_BATCH = "vector_store_file_batch"
    BATCH = "batch"
    FINE_TUNING_JOB = "fine_tuning_job"
    FINE_TUNING_CHECKPOINT_PERMISSION = "fine_tuning_checkpoint_permission"
    MODERATION = "moderation"
    CHAT_COMPLETION = "chat_completion"
    MODEL_RESPONSE = "model_response"
    EMBEDDING = "embedding"
    IMAGE_GENERATION = "image_generation"
    IMAGE_EDIT = "image_edit"
    IMAGE_VARIATION = "image_variation"
    SPEECH = "speech"
    TRANSCRIPTION = "transcription"
    TRANSLATION = "translation"

    # Read-only list data sources
    PROJECTS = "projects"
    PROJECT_USERS = "project_users"
    SERVICE_ACCOUNTS = "service_accounts"
    RATE_LIMITS = "rate_limits"
    PROJECT_API_KEYS = "project_api_keys"
    ORGANIZATION_USERS = "organization_users"
    INVITES = "invites"
    FILES = "files"
    ASSISTANTS = "assistants"
    VECTOR_STORES = "vector_stores"
    VECTOR_STORE_FILES = "vector_store_files"
    BATCHES = "batches"
    FINE_TUNING_JOBS = "fine_tuning_jobs"


class Reference(BaseModel):
    """A declared value that must be read from another instance's state."""

    model_config = ConfigDict(frozen=True)

    address: str
    attribute: str = "id"

    def __str__(self) -> str:
        return f"${{{self.address}.{self.attribute}}}"


class FieldSpec(BaseModel):
    """How one declared attribute behaves under diff and update."""

    model_config = ConfigDict(frozen=True)

    required: bool = False
    updatable: bool = False
    force_new: bool = False
    # Optional attribute the server fills in when left undeclared
    computed: bool = False
    # Key of the attribute in the observed payload; None for write-only inputs
    remote_key: Optional[str] = None
    sensitive: bool = False
    # Controls local behaviour only (paths, polling flags); never sent remotely
    local_only: bool = False


class ResourceInstance(BaseModel):
    """A declared configuration record for one remote object."""

    kind: ResourceKind
    name: str
    declared_attributes: Dict[str, Any] = Field(default_factory=dict)
    identity: Optional[str] = None
    import_mode: bool = False
    depends_on: List[str] = Field(default_factory=list)

    @property
    def address(self) -> str:
        return f"{self.kind.value}.{self.name}"


class RemoteObject(BaseModel):
    """A remote object as observed after a controller call."""

    identity: str
    attributes: Dict[str, Any] = Field(default_factory=dict)


class ImportResult(BaseModel):
    """Outcome of binding a pre-existing remote object."""

    declared_defaults: Dict[str, Any] = Field(default_factory=dict)
    observed: RemoteObject
    # Attributes populated with a placeholder; their diff is suppressed
    suppressed: List[str] = Field(default_factory=list)


class PlanAction(str, Enum):
    """Operation selected for an instance in a reconciliation pass."""
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    IMPORT = "import"
    FORGET = "forget"
    NOOP = "noop"
    READ = "read"


class ResultStatus(str, Enum):
    """How an instance ended a reconciliation pass."""
    APPLIED = "applied"
    NOOP = "noop"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"
