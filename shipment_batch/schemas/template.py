from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class DimensionTemplate(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    length: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    weight: float = Field(gt=0)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class DimensionTemplateList(BaseModel):
    templates: list[DimensionTemplate]
