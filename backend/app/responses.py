# Response envelopes shared by every endpoint

import math
from typing import Any, Optional


def success(data: Any = None, message: Optional[str] = None) -> dict:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def paginated(data: Any, page: int, limit: int, total: int) -> dict:
    return {
        "success": True,
        "data": data,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
        },
    }


def error(message: str, errors: Optional[list] = None) -> dict:
    body = {"success": False, "error": message}
    if errors is not None:
        body["errors"] = errors
    return body
