"""Platform constants that are documented rather than guaranteed by the API."""

from typing import Dict, List

from pydantic import BaseModel, Field


class RateLimitValues(BaseModel):
    """Per-model rate-limit ceilings. Zero means "not applicable to this model"."""

    max_requests_per_1_minute: int = 0
    max_tokens_per_1_minute: int = 0
    max_images_per_1_minute: int = 0
    max_audio_megabytes_per_1_minute: int = 0
    max_requests_per_1_day: int = 0
    batch_1_day_max_input_tokens: int = 0

    def as_payload(self) -> Dict[str, int]:
        """Request body resetting every applicable ceiling."""
        payload = {
            "max_requests_per_1_minute": self.max_requests_per_1_minute,
            "max_tokens_per_1_minute": self.max_tokens_per_1_minute,
        }
        for field in (
            "max_images_per_1_minute",
            "max_audio_megabytes_per_1_minute",
            "max_requests_per_1_day",
            "batch_1_day_max_input_tokens",
        ):
            value = getattr(self, field)
            if value > 0:
                payload[field] = value
        return payload


def _limits(rpm: int, tpm: int, images: int = 0, batch: int = 0, rpd: int = 0) -> RateLimitValues:
    return RateLimitValues(
        max_requests_per_1_minute=rpm,
        max_tokens_per_1_minute=tpm,
        max_images_per_1_minute=images,
        batch_1_day_max_input_tokens=batch,
        max_requests_per_1_day=rpd,
    )


DEFAULT_RATE_LIMITS: Dict[str, RateLimitValues] = {
    "default": _limits(3000, 250000, images=10),
    "babbage-002": _limits(3000, 250000, images=10),
    "davinci-002": _limits(3000, 250000, images=10),
    "dall-e-2": _limits(7500, 2147483647, images=100),
    "dall-e-3": _limits(7500, 2147483647, images=15),
    "gpt-3.5-turbo": _limits(10000, 10000000, batch=1000000000),
    "gpt-3.5-turbo-0125": _limits(10000, 10000000, batch=1000000000),
    "gpt-3.5-turbo-1106": _limits(10000, 10000000, batch=1000000000),
    "gpt-3.5-turbo-16k": _limits(10000, 10000000, batch=1000000000),
    "gpt-3.5-turbo-instruct": _limits(3500, 90000, images=2147483647, batch=200000),
    "gpt-4": _limits(10000, 300000, batch=30000000),
    "gpt-4-0613": _limits(10000, 300000, batch=30000000),
    "gpt-4-0125-preview": _limits(10000, 300000, batch=30000000),
    "gpt-4-1106-preview": _limits(10000, 450000, rpd=2147483647),
    "gpt-4-turbo": _limits(10000, 800000, images=10000, batch=80000000),
    "gpt-4-turbo-2024-04-09": _limits(10000, 800000, images=10000, batch=80000000),
    "gpt-4-turbo-preview": _limits(10000, 800000, images=10000, batch=80000000),
    "gpt-4.1": _limits(10000, 2000000, images=50000, batch=200000000),
    "gpt-4.1-2025-04-14": _limits(10000, 2000000, images=50000, batch=200000000),
    "gpt-4.1-mini": _limits(10000, 10000000, images=50000, batch=1000000000),
    "gpt-4.1-nano": _limits(10000, 10000000, images=50000, batch=1000000000),
    "gpt-4.5-preview": _limits(10000, 1000000, images=50000, batch=100000000),
    "gpt-4o": _limits(10000, 2000000, images=50000, batch=200000000),
    "gpt-4o-2024-05-13": _limits(10000, 2000000, images=50000, batch=200000000),
    "gpt-4o-2024-08-06": _limits(10000, 2000000, images=50000, batch=200000000),
    "gpt-4o-2024-11-20": _limits(10000, 2000000, images=50000, batch=200000000),
    "gpt-4o-mini": _limits(10000, 10000000, images=50000, batch=1000000000),
    "gpt-4o-mini-2024-07-18": _limits(10000, 10000000, images=50000, batch=1000000000),
    "gpt-4o-mini-realtime-preview": _limits(10000, 4000000),
}


class PlatformConstants(BaseModel):
    """Values inferred from platform documentation.

    They are not enforced by any remote contract, so every one of them can
    be overridden from the configuration file.
    """

    rate_limit_defaults: Dict[str, RateLimitValues] = Field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS),
        description="Per-model values a rate limit is reset to when it is destroyed"
    )
    import_placeholder_text: str = Field(
        "imported-content-unavailable",
        description="Sentinel for free-text inputs the API cannot return on import"
    )
    import_placeholder_model: str = Field(
        "imported-model-unavailable",
        description="Sentinel for model names the API cannot return on import"
    )
    import_placeholder_file: str = Field(
        "imported-file-unavailable",
        description="Sentinel for input files the API cannot return on import"
    )
    model_aliases: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Extra alias -> concrete model prefixes for drift suppression"
    )

    def rate_limit_default(self, model: str) -> RateLimitValues:
        """Documented default for a model, falling back to the ``default`` entry."""
        if model in self.rate_limit_defaults:
            return self.rate_limit_defaults[model]
        return self.rate_limit_defaults.get("default", DEFAULT_RATE_LIMITS["default"])
