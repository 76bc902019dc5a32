from __future__ import annotations

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Wire format is camelCase; Python code keeps snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    data: T


class ErrorDetailOut(CamelModel):
    field: str
    message: str


class ErrorOut(CamelModel):
    success: bool = False
    error: str
    details: Optional[List[ErrorDetailOut]] = None


class UserOut(CamelModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class GroupRefOut(CamelModel):
    id: str
    name: Optional[str] = None


class GroupOut(CamelModel):
    id: str
    name: str
    creator: Optional[UserOut] = None
    members: List[UserOut]
    created_at: datetime
