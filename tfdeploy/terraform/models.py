"""Pydantic models for Terraform machine-readable output."""

from typing import Any

from pydantic import BaseModel, TypeAdapter


class OutputMeta(BaseModel):
    """A single entry of `terraform output -json`.

    Attributes:
        sensitive: Whether Terraform marks the output as sensitive.
        value: The output value, any JSON type.
        type: Terraform type constraint (string, or a nested list for
            complex types).
    """

    sensitive: bool = False
    value: Any = None
    type: str | list[Any] | None = None


OutputSet = dict[str, OutputMeta]

output_set_adapter: TypeAdapter[OutputSet] = TypeAdapter(OutputSet)


__all__ = ["OutputMeta", "OutputSet", "output_set_adapter"]
