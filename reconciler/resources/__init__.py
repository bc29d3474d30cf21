"""Resource controllers, one per resource kind."""

from typing import Dict, List, Optional, Type

from reconciler.clients.openai import OpenAIClient
from reconciler.config.options_models import ReconciliationOptions
from reconciler.config.platform_models import PlatformConstants
from reconciler.core.models import ResourceKind
from reconciler.resources.assistants import (
    AssistantController,
    MessageController,
    RunController,
    ThreadController,
)
from reconciler.resources.base import ResourceController, RestResourceController
from reconciler.resources.data_sources import (
    AssistantsDataSource,
    BatchesDataSource,
    FilesDataSource,
    FineTuningJobsDataSource,
    InvitesDataSource,
    ListDataSource,
    OrganizationUsersDataSource,
    ProjectApiKeysDataSource,
    ProjectsDataSource,
    ProjectUsersDataSource,
    RateLimitsDataSource,
    ServiceAccountsDataSource,
    VectorStoreFilesDataSource,
    VectorStoresDataSource,
)
from reconciler.resources.files import FileController, UploadController
from reconciler.resources.jobs import (
    BatchController,
    FineTuningCheckpointPermissionController,
    FineTuningJobController,
)
from reconciler.resources.one_shot import (
    ChatCompletionController,
    EmbeddingController,
    ImageEditController,
    ImageGenerationController,
    ImageVariationController,
    ModelResponseController,
    ModerationController,
    OneShotController,
    SpeechController,
    TranscriptionController,
    TranslationController,
)
from reconciler.resources.organization import (
    AdminApiKeyController,
    InviteController,
    OrganizationUserController,
)
from reconciler.resources.projects import (
    ProjectApiKeyController,
    ProjectController,
    ProjectUserController,
    RateLimitController,
    ServiceAccountController,
)
from reconciler.resources.vector_stores import (
    VectorStoreController,
    VectorStoreFileBatchController,
    VectorStoreFileController,
)

CONTROLLER_CLASSES: List[Type[ResourceController]] = [
    ProjectController,
    ProjectUserController,
    ServiceAccountController,
    RateLimitController,
    ProjectApiKeyController,
    OrganizationUserController,
    InviteController,
    AdminApiKeyController,
    FileController,
    UploadController,
    AssistantController,
    ThreadController,
    MessageController,
    RunController,
    VectorStoreController,
    VectorStoreFileController,
    VectorStoreFileBatchController,
    BatchController,
    FineTuningJobController,
    FineTuningCheckpointPermissionController,
    ModerationController,
    ChatCompletionController,
    ModelResponseController,
    EmbeddingController,
    ImageGenerationController,
    ImageEditController,
    ImageVariationController,
    SpeechController,
    TranscriptionController,
    TranslationController,
    ProjectsDataSource,
    ProjectUsersDataSource,
    ServiceAccountsDataSource,
    RateLimitsDataSource,
    ProjectApiKeysDataSource,
    OrganizationUsersDataSource,
    InvitesDataSource,
    FilesDataSource,
    AssistantsDataSource,
    VectorStoresDataSource,
    VectorStoreFilesDataSource,
    BatchesDataSource,
    FineTuningJobsDataSource,
]


def build_controllers(
    client: OpenAIClient,
    options: Optional[ReconciliationOptions] = None,
    platform: Optional[PlatformConstants] = None,
) -> Dict[ResourceKind, ResourceController]:
    """Instantiate one controller per resource kind.

    Args:
        client: OpenAI API client shared by all controllers
        options: Reconciliation options
        platform: Overridable platform constants

    Returns:
        Controllers keyed by the kind they manage
    """
    return {cls.kind: cls(client, options, platform) for cls in CONTROLLER_CLASSES}


__all__ = [
    "CONTROLLER_CLASSES",
    "build_controllers",
    "ResourceController",
    "RestResourceController",
    "OneShotController",
    "ProjectController",
    "ProjectUserController",
    "ServiceAccountController",
    "RateLimitController",
    "ProjectApiKeyController",
    "OrganizationUserController",
    "InviteController",
    "AdminApiKeyController",
    "FileController",
    "UploadController",
    "AssistantController",
    "ThreadController",
    "MessageController",
    "RunController",
    "VectorStoreController",
    "VectorStoreFileController",
    "VectorStoreFileBatchController",
    "BatchController",
    "FineTuningJobController",
    "FineTuningCheckpointPermissionController",
    "ModerationController",
    "ChatCompletionController",
    "ModelResponseController",
    "EmbeddingController",
    "ImageGenerationController",
    "ImageEditController",
    "ImageVariationController",
    "SpeechController",
    "TranscriptionController",
    "TranslationController",
    "ListDataSource",
]
