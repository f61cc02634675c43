"""Response envelope for the public API: {"success": true, "data": ...}"""

from typing import Any

from fastapi import Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


class Page(BaseModel):
    limit: int
    offset: int


def page_params(
    limit: int = Query(DEFAULT_LIMIT, ge=1),
    offset: int = Query(0, ge=0),
) -> Page:
    return Page(limit=min(limit, MAX_LIMIT), offset=offset)


def api_success(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": True, "data": jsonable_encoder(data)}
    )


def pagination(total: int, page: Page) -> dict:
    return {
        "total": total,
        "limit": page.limit,
        "offset": page.offset,
        "has_more": total > page.offset + page.limit,
    }


def serialize(schema: type[BaseModel], items) -> list[dict]:
    return [schema.model_validate(item).model_dump(mode="json") for item in items]
