import math
from typing import Any, List

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def ok(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    payload = {"success": True, "message": message, "data": data}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def paginated(data: List[Any], page: int, limit: int, total: int, message: str = "Success") -> JSONResponse:
    total_pages = math.ceil(total / limit) if limit else 0
    payload = {
        "success": True,
        "message": message,
        "data": data,
        "pagination": {
            "currentPage": page,
            "itemsPerPage": limit,
            "totalItems": total,
            "totalPages": total_pages,
            "hasNextPage": page < total_pages,
            "hasPrevPage": page > 1,
        },
    }
    return JSONResponse(status_code=200, content=jsonable_encoder(payload))


def err(message: str, status_code: int = 400, **extra: Any) -> JSONResponse:
    payload = {"success": False, "message": message, **extra}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))
