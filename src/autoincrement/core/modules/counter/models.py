"""Counter records and plugin bindings."""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from autoincrement.errors import ConfigurationError
from autoincrement.paths import split_path


class CounterRecord(BaseModel):
    """Persisted sequence state for one (model, field) pair.

    Indexed on (modelName, fieldName) - unique.
    """

    model_name: str = Field(alias="modelName")
    field_name: str = Field(alias="fieldName")
    count: int  # Last allocated value; next allocation yields count + increment_by

    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())


class Binding(BaseModel):
    """Options of one plugin attachment. Not persisted; rebuilt on every process start."""

    model: str = Field(min_length=1)
    field: str = "_id"  # Dotted path, e.g. "meta.number"
    start_at: int = Field(0, alias="startAt")
    increment_by: int = Field(1, alias="incrementBy")  # Negative counts down
    unique: bool = True  # Declare a unique index on the field (ignored for _id)
    output_filter: Callable[[int], Any] | None = Field(None, alias="outputFilter")

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="forbid", arbitrary_types_allowed=True)

    @field_validator("field")
    @classmethod
    def validate_field(cls, value: str) -> str:
        split_path(value)
        return value

    @field_validator("increment_by")
    @classmethod
    def validate_increment_by(cls, value: int) -> int:
        if value == 0:
            raise ValueError("incrementBy must not be zero")
        return value


def parse_binding(options: str | Mapping[str, Any] | Binding | None) -> Binding:
    """Build a Binding from a bare model name, an options mapping or a Binding."""
    if isinstance(options, Binding):
        return options
    if isinstance(options, str):
        options = {"model": options}
    if not isinstance(options, Mapping):
        raise ConfigurationError("Auto-increment options must be a model name or a mapping with 'model'")
    try:
        return Binding.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid auto-increment options: {e}") from e
