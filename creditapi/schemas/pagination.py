import math
from typing import Optional

from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """페이지네이션 메타 정보"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit) if total else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )

def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    """limit을 [1, maximum] 범위로 제한"""
    if limit is None:
        limit = default
    return max(1, min(int(limit), maximum))
