import math
from typing import Any, Dict, List, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def page_window(total: int, page: int, limit: int) -> Dict[str, Any]:
    """
    Clamp `page` into [1, pages] and compute offset and neighbours.
    An empty result still reports page 1.
    """
    pages = math.ceil(total / limit) if limit else 0
    current = max(1, min(page, pages))
    return {
        "total": total,
        "pages": pages,
        "first": 1,
        "next": current + 1 if current < pages else None,
        "prev": current - 1 if current > 1 else None,
        "current": current,
        "offset": (current - 1) * limit,
    }


def paginate(session: Session, stmt: Select, page: int, limit: int) -> Dict[str, Any]:
    """
    Run `stmt` (an ORM select of a single entity) for one page.
    Returns {total, pages, first, next, prev, items}.
    """
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    window = page_window(int(total), page, limit)
    items: List[Any] = list(session.scalars(stmt.limit(limit).offset(window["offset"])))
    return {
        "total": window["total"],
        "pages": window["pages"],
        "first": window["first"],
        "next": window["next"],
        "prev": window["prev"],
        "items": items,
    }


def page_response(result: Dict[str, Any], data: Optional[List[Any]] = None) -> Dict[str, Any]:
    """Shape a `paginate` result as the API listing envelope."""
    out = {k: v for k, v in result.items() if k != "items"}
    out["data"] = data if data is not None else result["items"]
    return out
