"""Assistant tool blocks as a closed tagged union keyed by ``type``."""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from reconciler.clients.exceptions import ValidationError


class _ToolBase(BaseModel):
    # Attributes of another variant are rejected, not ignored
    model_config = ConfigDict(extra="forbid")


class CodeInterpreterTool(_ToolBase):
    type: Literal["code_interpreter"]


class RankingOptions(_ToolBase):
    ranker: Optional[str] = None
    score_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)


class FileSearchSettings(_ToolBase):
    max_num_results: Optional[int] = Field(None, ge=1, le=50)
    ranking_options: Optional[RankingOptions] = None


class FileSearchTool(_ToolBase):
    type: Literal["file_search"]
    file_search: Optional[FileSearchSettings] = None


class FunctionDefinition(_ToolBase):
    name: str = Field(..., pattern=r"^[A-Za-z0-9_-]{1,64}$")
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    strict: Optional[bool] = None


class FunctionTool(_ToolBase):
    type: Literal["function"]
    function: FunctionDefinition


Tool = Annotated[
    Union[CodeInterpreterTool, FileSearchTool, FunctionTool],
    Field(discriminator="type"),
]

_TOOLS_ADAPTER = TypeAdapter(List[Tool])


def parse_tools(tools: Any, attribute: str = "tools") -> List[Tool]:
    """Validate declared tool blocks.

    Args:
        tools: Declared list of tool mappings
        attribute: Attribute name used in error messages

    Returns:
        Parsed tool variants

    Raises:
        ValidationError: On an unknown ``type`` or attributes of another variant
    """
    try:
        return _TOOLS_ADAPTER.validate_python(tools or [])
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(
            f"Invalid tool block at {attribute}.{location}: {first['msg']}",
            attribute=attribute,
        ) from e


def tools_payload(tools: Any) -> List[Dict[str, Any]]:
    """Normalized request payload for declared tool blocks."""
    return [tool.model_dump(exclude_none=True) for tool in parse_tools(tools)]
