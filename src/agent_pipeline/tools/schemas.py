"""Tagged parameter schemas and tool definitions.

Tool parameter schemas are handed to a chat-model API that rejects incomplete
array schemas and `default` keys, so every definition is normalized while it is
validated instead of being patched before each model call.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_ALLOWED_AGENTS: tuple[str, ...] = ("executor",)


class SchemaNode(BaseModel):
    """Immutable base for schema variants; unsupported keys such as `default` are dropped."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    description: str | None = None


class StringSchema(SchemaNode):
    type: Literal["string"]
    enum: tuple[str, ...] | None = None


class NumberSchema(SchemaNode):
    type: Literal["number"]
    minimum: float | None = None
    maximum: float | None = None


class IntegerSchema(SchemaNode):
    type: Literal["integer"]
    minimum: int | None = None
    maximum: int | None = None


class BooleanSchema(SchemaNode):
    type: Literal["boolean"]


class ArraySchema(SchemaNode):
    type: Literal["array"]
    items: ParameterSchema

    @model_validator(mode="before")
    @classmethod
    def _backfill_items(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        items = data.get("items")
        if isinstance(items, SchemaNode):
            return data
        if not isinstance(items, dict):
            return {**data, "items": {"type": "string"}}
        if not items.get("type"):
            return {**data, "items": {**items, "type": "string"}}
        return data


class ObjectSchema(SchemaNode):
    type: Literal["object"] = "object"
    properties: dict[str, ParameterSchema] = Field(default_factory=dict)
    required: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _required_are_declared(self) -> ObjectSchema:
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"required properties are not declared: {', '.join(missing)}")
        return self


ParameterSchema = Annotated[
    Union[StringSchema, NumberSchema, IntegerSchema, BooleanSchema, ArraySchema, ObjectSchema],
    Field(discriminator="type"),
]

ArraySchema.model_rebuild()
ObjectSchema.model_rebuild()


class ToolDefinition(BaseModel):
    """A named, schema-described action a role's model may request."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    parameters: ObjectSchema
    allowed_agents: tuple[str, ...] = Field(
        default=DEFAULT_ALLOWED_AGENTS,
        alias="allowedAgents",
    )

    @field_validator("parameters", mode="before")
    @classmethod
    def _default_object_type(cls, value: Any) -> Any:
        if isinstance(value, dict) and "type" not in value:
            return {**value, "type": "object"}
        return value

    @field_validator("allowed_agents", mode="before")
    @classmethod
    def _dedupe_agents(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_ALLOWED_AGENTS
        if isinstance(value, str):
            value = [value]
        ordered: list[str] = []
        for role in value:
            if role not in ordered:
                ordered.append(role)
        return tuple(ordered)

    def with_agents(self, allowed_agents: tuple[str, ...] | list[str]) -> ToolDefinition:
        return self.model_copy(update={"allowed_agents": tuple(dict.fromkeys(allowed_agents))})

    def parameters_schema(self) -> dict[str, Any]:
        return self.parameters.model_dump(mode="json", exclude_none=True)

    def to_function_declaration(self) -> dict[str, Any]:
        """Shape consumed by function-calling chat APIs."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }

    def to_wire(self) -> dict[str, Any]:
        payload = self.to_function_declaration()
        payload["allowedAgents"] = list(self.allowed_agents)
        return payload
