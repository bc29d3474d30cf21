"""Declared resource entries of the configuration file."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator

from reconciler.core.models import ResourceKind

_NAME_PATTERN = r'^[A-Za-z_][A-Za-z0-9_-]*$'


class ResourceDeclaration(BaseModel):
    """One entry of the ``resources:`` list."""

    type: ResourceKind = Field(
        ...,
        description="Resource kind"
    )
    name: str = Field(
        ...,
        description="Instance name, unique per kind",
        pattern=_NAME_PATTERN
    )
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Declared attributes; '${kind.name.attr}' strings reference other instances"
    )
    import_id: str | None = Field(
        None,
        description="Bind a pre-existing remote object instead of creating one"
    )
    depends_on: List[str] = Field(
        default_factory=list,
        description="Extra ordering edges to other instance addresses"
    )

    @field_validator("import_id")
    @classmethod
    def validate_import_id(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("import_id must not be empty")
        return v

    @property
    def address(self) -> str:
        return f"{self.type.value}.{self.name}"
