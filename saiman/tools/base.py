"""Base types and definitions for tools."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, ClassVar, Self

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError


class ToolError(Exception):
    """Base class for tool failures. The message is what the model sees."""


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidArgumentsError(ToolError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid arguments: {reason}")


class ExecutionFailedError(ToolError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Tool execution failed: {reason}")


class ParameterType(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class ToolParameter:
    """One named argument a tool accepts."""

    name: str
    type: ParameterType
    description: str
    required: bool = True
    enum_values: tuple[str, ...] | None = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type.value, "description": self.description}
        if self.enum_values is not None:
            schema["enum"] = list(self.enum_values)
        if self.type is ParameterType.OBJECT:
            schema["additionalProperties"] = False
        return schema


class Tool(ABC):
    """A capability the model may invoke by name."""

    name: ClassVar[str]
    description: ClassVar[str]
    parameters: ClassVar[Sequence[ToolParameter]] = ()

    @abstractmethod
    async def execute(self, arguments: str) -> str:
        """Run the tool with a JSON-encoded argument object and return text for the model."""

    def to_schema(self) -> dict[str, Any]:
        """Function-calling schema, strict about undeclared properties."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": {param.name: param.to_schema() for param in self.parameters},
                "required": [param.name for param in self.parameters if param.required],
                "additionalProperties": False,
            },
        }


class ToolInput(BaseModel):
    """Validated argument object for one tool.

    ``parse`` turns any validation failure into ``InvalidArgumentsError`` so the model
    learns why its call was rejected.
    """

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def parse(cls, arguments: str) -> Self:
        try:
            return cls.model_validate_json(arguments if arguments.strip() else "{}")
        except ValidationError as e:
            raise InvalidArgumentsError(describe_validation_error(e)) from e


def describe_validation_error(error: ValidationError) -> str:
    """One line naming the first offending parameter and the value received."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"])
    match first["type"]:
        case "json_invalid" | "model_type":
            return "Failed to parse arguments as JSON"
        case "missing":
            return f"Missing required '{field}' parameter."
        case "extra_forbidden":
            return f"Unexpected parameter '{field}'."
        case "value_error":
            return str(first["ctx"]["error"])
        case _:
            return f"Invalid {field} {first['input']!r}. {first['msg']}"


def _single_url_as_list(value: Any) -> Any:
    """Accept a single URL string where an array of URLs is expected."""
    return [value] if isinstance(value, str) else value


UrlList = Annotated[list[str], BeforeValidator(_single_url_as_list)]


def divider(char: str = "=", width: int = 60) -> str:
    return char * width
