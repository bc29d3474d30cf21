"""Remote API configuration models."""

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from reconciler.security.validation import validate_api_token, validate_url


class OpenAIConfig(BaseModel):
    """OpenAI platform API configuration."""

    api_url: str = Field(
        "https://api.openai.com/v1",
        description="API base URL including the /v1 prefix"
    )
    project_api_key: SecretStr | None = Field(
        None,
        description="Project-scoped API key (files, assistants, threads, ...)"
    )
    admin_api_key: SecretStr | None = Field(
        None,
        description="Organization admin API key (projects, users, invites, rate limits)"
    )
    organization_id: str | None = Field(
        None,
        description="Organization ID sent as the OpenAI-Organization header"
    )
    project_id: str | None = Field(
        None,
        description="Project ID sent as the OpenAI-Project header"
    )
    timeout_seconds: float = Field(
        60,
        description="Per-call timeout in seconds",
        gt=0
    )
    rate_limit_per_minute: int = Field(
        600,
        description="Client-side request ceiling per minute",
        ge=1
    )
    max_retries: int = Field(
        3,
        description="Maximum retry attempts for transient failures",
        ge=0
    )
    retry_delay_seconds: float = Field(
        1.0,
        description="Initial delay between retries in seconds",
        ge=0.1
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Only HTTPS endpoints are accepted."""
        v = v.rstrip("/")
        if not validate_url(v, allowed_schemes=["https"]):
            raise ValueError("api_url must be a valid https URL")
        return v

    @field_validator("project_api_key", "admin_api_key")
    @classmethod
    def validate_key_format(cls, v: SecretStr | None) -> SecretStr | None:
        if v is not None and not validate_api_token(v.get_secret_value(), "openai"):
            raise ValueError("API keys must look like 'sk-...'")
        return v

    @model_validator(mode='after')
    def validate_has_credential(self) -> 'OpenAIConfig':
        if self.project_api_key is None and self.admin_api_key is None:
            raise ValueError("At least one of project_api_key or admin_api_key is required")
        return self
