from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any

from kanban_config import Settings

DEFAULT_PAGE = 1


@dataclass(frozen=True)
class PageOptions:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class PageMeta:
    page: int
    limit: int
    item_count: int
    page_count: int
    has_previous_page: bool
    has_next_page: bool

    def to_json(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Page:
    items: list[dict[str, Any]]
    meta: PageMeta

    def to_json(self) -> dict[str, Any]:
        return {"items": list(self.items), "meta": self.meta.to_json()}


def compute_page_meta(item_count: int, page: int, limit: int) -> PageMeta:
    # limit >= 1 and page >= 1 are guaranteed by page_options.
    item_count = max(int(item_count or 0), 0)
    page_count = math.ceil(item_count / limit)
    return PageMeta(
        page=page,
        limit=limit,
        item_count=item_count,
        page_count=page_count,
        has_previous_page=page > 1,
        has_next_page=page < page_count,
    )


def _positive_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        n = int(str(raw).strip())
    except ValueError:
        return None
    return n if n >= 1 else None


def page_options(raw_page: Any, raw_limit: Any, settings: Settings) -> PageOptions:
    page = _positive_int(raw_page) or DEFAULT_PAGE
    limit = _positive_int(raw_limit) or settings.default_page_limit
    return PageOptions(page=page, limit=min(limit, settings.max_page_limit))
