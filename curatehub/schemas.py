"""
Request / response schemas shared by both plugins.
"""
from typing import Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    # Upper bounds come from Settings and are enforced where requests enter
    limit: int = Field(50, ge=1)
    offset: int = Field(0, ge=0)


class SuccessResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class IdResponse(BaseModel):
    id: str


class ErrorResponse(BaseModel):
    kind: str
    message: str
    cause: Optional[str] = None
