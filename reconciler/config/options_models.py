"""Reconciliation pass options."""

from pydantic import BaseModel, Field


class ReconciliationOptions(BaseModel):
    """Options controlling how a reconciliation pass runs."""

    max_concurrent_operations: int = Field(
        5,
        description="Maximum number of instances reconciled at the same time",
        ge=1,
        le=50
    )
    operation_retries: int = Field(
        2,
        description="Extra attempts of a whole operation after transient failures",
        ge=0
    )
    operation_retry_delay_seconds: float = Field(
        2.0,
        description="Initial delay between operation attempts",
        ge=0
    )
    continue_on_error: bool = Field(
        True,
        description="Keep reconciling independent instances after a failure"
    )
    upload_chunk_size_bytes: int = Field(
        64 * 1024 * 1024,
        description="Nominal part size for chunked uploads",
        ge=1
    )
    wait_for_completion: bool = Field(
        False,
        description="Poll asynchronous jobs (runs, batches, fine-tuning) until terminal"
    )
    poll_interval_seconds: float = Field(
        5.0,
        description="Delay between status polls",
        ge=0
    )
    poll_timeout_seconds: float = Field(
        600.0,
        description="Give up polling after this many seconds (non-fatal)",
        ge=0
    )
