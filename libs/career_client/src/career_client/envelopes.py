from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessEnvelope(WireModel):
    success: Literal[True]
    data: Any = None


class ErrorBody(WireModel):
    code: str = "UNKNOWN_ERROR"
    message: str = "Request failed"
    details: list[str] | None = None

    @field_validator("details", mode="before")
    @classmethod
    def stringify_details(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, list):
            value = [value]
        return [item if isinstance(item, str) else json.dumps(item) for item in value]


class ErrorMeta(WireModel):
    trace_id: str | None = None
    timestamp: str | None = None


class TokenPairData(WireModel):
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)


class RefreshEnvelope(WireModel):
    success: Literal[True]
    data: TokenPairData
