from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FrozenSchema(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)
