"""Page/limit pagination shared by list endpoints"""

import math

from pydantic import BaseModel

MAX_PAGE_SIZE = 100


def clamp_page(page: int, limit: int, max_limit: int = MAX_PAGE_SIZE) -> tuple[int, int]:
    return max(page, 1), min(max(limit, 1), max_limit)


def paginate(query, page: int = 1, limit: int = 50, max_limit: int = MAX_PAGE_SIZE) -> tuple[list, dict]:
    """Run ``query`` for one page; returns (items, pagination meta)"""
    page, limit = clamp_page(page, limit, max_limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
