"""Security utilities for input validation and sanitization."""

from .validation import (
    SecurityError,
    mask_secret,
    sanitize_log_input,
    validate_api_token,
    validate_email,
    validate_file_path,
    validate_url,
)

__all__ = [
    "SecurityError",
    "mask_secret",
    "sanitize_log_input",
    "validate_api_token",
    "validate_email",
    "validate_file_path",
    "validate_url",
]
