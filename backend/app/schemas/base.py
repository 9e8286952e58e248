"""
Base schemas with standardized field types for consistent API responses.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema


class StandardizedModel(BaseModel):  # type: ignore[misc]
    """Base model with standardized JSON encoding"""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class Money(Decimal):
    """Money field: validated to cents, serialized as float in JSON"""

    CENT = Decimal("0.01")

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_money(value: Any) -> Decimal:
            if isinstance(value, (int, float)):
                value = Decimal(str(value))
            elif isinstance(value, str):
                try:
                    value = Decimal(value.strip())
                except InvalidOperation:
                    raise ValueError(f"Invalid money amount: {value!r}") from None
            elif not isinstance(value, Decimal):
                raise ValueError(f"Cannot convert {type(value)} to Money")
            if not value.is_finite():
                raise ValueError("Money must be a finite amount")
            return value.quantize(cls.CENT, rounding=ROUND_HALF_UP)

        return core_schema.no_info_after_validator_function(
            validate_money,
            core_schema.union_schema(
                [
                    # strict so bools are rejected instead of coerced to 0/1
                    core_schema.int_schema(strict=True),
                    core_schema.float_schema(strict=True),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(Decimal),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                float,
                info_arg=False,
                return_schema=core_schema.float_schema(),
                when_used="json",
            ),
        )
