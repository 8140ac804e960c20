"""
Tool input schemas.

Each tool parameter is one tagged variant (string, number, boolean, object)
carrying an optional description, an optional default and a required flag.
A parameter set renders to JSON Schema for advertisement and compiles to a
pydantic model, which is the single validator used for every tool.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictStr,
    ValidationError,
    create_model,
)


class InvalidArgumentsError(Exception):
    """Raised when tool arguments do not satisfy the tool's input schema."""

    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)


class _Param(BaseModel):
    description: str | None = None
    default: Any = None
    required: bool = False

    model_config = ConfigDict(frozen=True)

    def python_type(self) -> Any:
        raise NotImplementedError

    def json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.kind}  # type: ignore[attr-defined]
        if self.description:
            schema["description"] = self.description
        if self.default is not None:
            schema["default"] = self.default
        return schema


class StringParam(_Param):
    kind: Literal["string"] = "string"

    def python_type(self) -> Any:
        return StrictStr


class NumberParam(_Param):
    kind: Literal["number"] = "number"

    def python_type(self) -> Any:
        return StrictFloat


class BooleanParam(_Param):
    kind: Literal["boolean"] = "boolean"

    def python_type(self) -> Any:
        return StrictBool


class ObjectParam(_Param):
    kind: Literal["object"] = "object"

    def python_type(self) -> Any:
        return dict[str, Any]


Param = Annotated[
    Union[StringParam, NumberParam, BooleanParam, ObjectParam],
    Field(discriminator="kind"),
]


class InputSchema:
    """An ordered set of named parameters for one tool."""

    def __init__(self, params: dict[str, _Param] | None = None):
        self.params: dict[str, _Param] = dict(params or {})
        self._model = self._compile()

    def _compile(self) -> type[BaseModel]:
        fields: dict[str, Any] = {}
        for name, param in self.params.items():
            py_type = param.python_type()
            if param.required:
                fields[name] = (py_type, Field(...))
            elif param.default is not None:
                fields[name] = (py_type, Field(default=param.default))
            else:
                fields[name] = (Optional[py_type], Field(default=None))
        # Unknown keys are dropped, not rejected.
        return create_model(
            "ToolArguments",
            __config__=ConfigDict(extra="ignore"),
            **fields,
        )

    def to_json_schema(self) -> dict[str, Any]:
        """Render as a JSON Schema object."""
        return {
            "type": "object",
            "properties": {name: p.json_schema() for name, p in self.params.items()},
            "required": [name for name, p in self.params.items() if p.required],
        }

    def validate(self, arguments: Any) -> dict[str, Any]:
        """Validate and normalize arguments.

        Defaults are filled in; optional parameters without a default are
        omitted unless supplied.

        Raises:
            InvalidArgumentsError: listing the offending field names
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentsError(
                f"Arguments must be an object, got {type(arguments).__name__}."
            )

        try:
            instance = self._model.model_validate(arguments)
        except ValidationError as e:
            fields: list[str] = []
            issues: list[str] = []
            for error in e.errors():
                loc = ".".join(str(x) for x in error["loc"]) or "<root>"
                if loc not in fields:
                    fields.append(loc)
                issues.append(f"{loc}: {error['msg']}")
            raise InvalidArgumentsError("; ".join(issues), fields=fields) from e

        dumped = instance.model_dump()
        return {
            name: value
            for name, value in dumped.items()
            if name in instance.model_fields_set or self.params[name].default is not None
        }


def validate_arguments(schema: InputSchema, arguments: Any) -> dict[str, Any]:
    """Shared validator entry point used by the tool registry."""
    return schema.validate(arguments)
