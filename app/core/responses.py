"""
core/responses.py
-----------------
Success envelopes shared by every router.

    success(data)                       → {success, data, message}
    paginated(items, page, limit, total) → {success, data, pagination, message}
"""

import math
from typing import Any

from fastapi.encoders import jsonable_encoder


def success(data: Any = None, message: str = "OK") -> dict:
    return {"success": True, "data": jsonable_encoder(data), "message": message}


def paginated(
    items: list,
    page: int,
    limit: int,
    total: int,
    message: str = "OK",
) -> dict:
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "success": True,
        "data": jsonable_encoder(items),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
        },
        "message": message,
    }


def error_body(code: str, message: str, details: Any = None) -> dict:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": jsonable_encoder(details)},
    }
