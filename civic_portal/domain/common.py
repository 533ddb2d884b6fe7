"""Shared schema helpers."""
from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Paginated listing"""
    data: List[T]
    total: int
    page: int
    page_size: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str
