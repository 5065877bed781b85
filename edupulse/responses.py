from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from .pagination import Page

T = TypeVar("T")


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: T | None = None
    pagination: PaginationMeta | None = None


def ok(data: Any = None, message: str = "Success", pagination: dict | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "message": message, "data": data}
    if pagination is not None:
        body["pagination"] = pagination
    return body


def paged(page: Page, schema: type[BaseModel], message: str = "Success") -> dict[str, Any]:
    return ok([schema.model_validate(item) for item in page.items], message, page.meta)
