from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    status_code: int = 200
    status: str = "success"
    message: str
    data: T


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    limit: int
    offset: int
