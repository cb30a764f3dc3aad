"""
Generic paginated listing shared by every list endpoint.

Callers hand over the raw query-string bag untouched. Nothing in it reaches
the SQL statement directly: page and size are parsed and clamped, and the sort
field is looked up in a per-resource whitelist that maps public names to
model attributes.
"""
import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence
from urllib.parse import urlencode

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from eventhub.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)


class SortOrder(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class ResourceConfig:
    model: type
    # public sort name -> model attribute name
    sort_fields: Mapping[str, str]
    default_sort_field: str
    default_sort_order: SortOrder = SortOrder.DESC
    result_key: str = "items"
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    options: Sequence[Any] = field(default_factory=tuple)

    def __post_init__(self):
        if self.default_sort_field not in self.sort_fields:
            raise ValueError(f"default sort field {self.default_sort_field!r} is not in the whitelist")


@dataclass(frozen=True)
class PageParams:
    page: int
    size: int
    sort_by: str
    sort_order: SortOrder

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


def parse_positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


def normalize_params(params: Mapping[str, Any] | None, config: ResourceConfig) -> PageParams:
    """Turn an untrusted parameter bag into bounded page/sort settings. Never raises."""
    params = params or {}

    page = parse_positive_int(params.get("page")) or 1

    size = parse_positive_int(params.get("size")) or config.default_page_size
    size = min(size, config.max_page_size)

    sort_by = params.get("sortBy")
    if not isinstance(sort_by, str) or sort_by not in config.sort_fields:
        sort_by = config.default_sort_field

    # the resource default applies only when no order was asked for;
    # anything other than ASC/DESC is read as DESC
    raw_order = params.get("sortOrder")
    if raw_order is None or not str(raw_order).strip():
        sort_order = config.default_sort_order
    else:
        try:
            sort_order = SortOrder(str(raw_order).strip().upper())
        except ValueError:
            sort_order = SortOrder.DESC

    return PageParams(page=page, size=size, sort_by=sort_by, sort_order=sort_order)


def build_pagination(total: int, page: int, size: int, base_url: str | None = None) -> dict:
    total_pages = math.ceil(total / size) if size else 0
    meta = {
        "total": total,
        "page": page,
        "size": size,
        "totalPages": total_pages,
        "hasNext": page * size < total,
        "hasPrevious": page > 1,
    }

    if base_url:
        def link(target: int) -> str:
            return f"{base_url}?{urlencode({'page': target, 'size': size})}"

        links = {
            "self": link(page),
            "first": link(1),
            "last": link(max(total_pages, 1)),
        }
        if page > 1:
            links["prev"] = link(page - 1)
        if page < total_pages:
            links["next"] = link(page + 1)
        meta["links"] = links

    return meta


def paginate(
    db: Session,
    config: ResourceConfig,
    params: Mapping[str, Any] | None,
    *,
    where: Iterable[Any] = (),
    transform: Callable[[Any], Any] | None = None,
    base_url: str | None = None,
) -> dict:
    """
    Run a count query and a page query sharing the same predicate.

    Items are optionally passed through ``transform``; it must map one row to
    one item. Persistence errors propagate unchanged.
    """
    page_params = normalize_params(params, config)
    criteria = list(where)
    model = config.model

    total = db.scalar(select(func.count()).select_from(model).where(*criteria)) or 0

    sort_column = getattr(model, config.sort_fields[page_params.sort_by])
    ordering = sort_column.asc() if page_params.sort_order is SortOrder.ASC else sort_column.desc()
    # primary key tiebreaker keeps pages stable when sort values repeat
    tiebreakers = [column.asc() for column in inspect(model).primary_key]

    stmt = (
        select(model)
        .where(*criteria)
        .order_by(ordering, *tiebreakers)
        .offset(page_params.offset)
        .limit(page_params.limit)
    )
    if config.options:
        stmt = stmt.options(*config.options)

    rows = db.scalars(stmt).all()
    items = [transform(row) for row in rows] if transform else list(rows)

    logger.debug(
        "Listed %s: page=%s size=%s sort=%s %s total=%s",
        model.__tablename__,
        page_params.page,
        page_params.size,
        page_params.sort_by,
        page_params.sort_order.value,
        total,
    )

    return {
        config.result_key: items,
        "pagination": build_pagination(total, page_params.page, page_params.size, base_url),
        "sort": {"sortBy": page_params.sort_by, "sortOrder": page_params.sort_order.value},
    }
