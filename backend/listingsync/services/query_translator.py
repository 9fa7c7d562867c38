"""
Turns a generic filter-state map into store predicates and upstream query
parameters, driven entirely by the source's FilterSpec/ColumnSpec/SortSpec
lists. No field names are hard-coded here.

Unknown filter keys and unknown sort ids are ignored rather than rejected,
so stale UI state never breaks a query.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import String, cast

from listingsync.models.listing import Listing
from listingsync.schemas.source import (
    CORE_FIELDS,
    DEFAULT_SORT_COLUMN,
    ColumnKind,
    FilterKind,
    FilterSpec,
    SourceSchema,
)

logger = logging.getLogger(__name__)

RANGE_SUFFIXES = {"_min": "min", "_max": "max"}


@dataclass
class StorePredicate:
    """SQLAlchemy clauses to AND together, plus bookkeeping for debugging."""
    clauses: list = field(default_factory=list)
    applied: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)


@dataclass
class StoreSort:
    order_by: list
    sort_id: Optional[str] = None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple)) and not value:
        return True
    return False


def _split_range_key(key: str) -> tuple[str, Optional[str]]:
    for suffix, bound in RANGE_SUFFIXES.items():
        if key.endswith(suffix):
            return key[: -len(suffix)], bound
    return key, None


def _lookup_filter(schema: SourceSchema, key: str) -> tuple[Optional[FilterSpec], Optional[str]]:
    """Find the FilterSpec a filter-state key refers to, and which bound it sets.

    The suffix-stripped id wins; a filter whose own id ends in _min/_max
    (e.g. "balance_min") is still found by its full id.
    """
    base_id, bound = _split_range_key(key)
    spec = schema.filter(base_id)
    if spec is None and bound is not None:
        spec = schema.filter(key)
    return spec, bound


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _column_kind(schema: SourceSchema, field_id: str) -> ColumnKind:
    column = schema.column(field_id)
    if column is not None:
        return column.kind
    return ColumnKind.CORE if field_id in CORE_FIELDS else ColumnKind.EXTENSION


def _target(schema: SourceSchema, field_id: str, numeric: bool):
    """Resolve a field id to a store expression: a Listing column or a JSON path."""
    match _column_kind(schema, field_id):
        case ColumnKind.CORE:
            return getattr(Listing, field_id)
        case ColumnKind.EXTENSION:
            path = Listing.extension_data[field_id]
            return path.as_float() if numeric else path.as_string()


def _is_numeric_column(schema: SourceSchema, field_id: str) -> bool:
    column = schema.column(field_id)
    return bool(column and column.is_numeric)


def _is_stored(schema: SourceSchema, field_id: str) -> bool:
    """False for filters that only exist upstream (no column, not a Listing attribute)."""
    return schema.column(field_id) is not None or field_id in CORE_FIELDS


def _is_multi_value(spec: FilterSpec) -> bool:
    return bool(spec.param_name and spec.param_name.endswith("[]"))


def _split_values(value: Any) -> list[str]:
    parts = value if isinstance(value, (list, tuple)) else str(value).split(",")
    return [str(part).strip() for part in parts if str(part).strip()]


def _select_clause(schema: SourceSchema, spec: FilterSpec, value: Any):
    # Array-style params ("region[]") carry several comma-separated values
    values = _split_values(value) if _is_multi_value(spec) else [str(value)]
    if not values:
        return None

    if _is_numeric_column(schema, spec.id):
        numbers = [_as_number(v) for v in values]
        if all(n is not None for n in numbers):
            return _target(schema, spec.id, numeric=True).in_(numbers)
    return _target(schema, spec.id, numeric=False).in_(values)


def translate(source, filter_state: Optional[dict[str, Any]]) -> StorePredicate:
    """Build the store predicate for `filter_state` against `source`'s schema."""
    schema = SourceSchema.from_source(source)
    predicate = StorePredicate()

    for key, value in (filter_state or {}).items():
        if _is_empty(value):
            continue
        spec, bound = _lookup_filter(schema, key)
        if spec is None or not _is_stored(schema, spec.id):
            predicate.ignored.append(key)
            continue

        clause = None
        match spec.kind:
            case FilterKind.TEXT:
                target = _target(schema, spec.id, numeric=False)
                if not isinstance(target.type, String):
                    target = cast(target, String)
                clause = target.icontains(str(value), autoescape=True)
            case FilterKind.NUMBER_RANGE:
                number = _as_number(value)
                if number is not None and bound is not None:
                    target = _target(schema, spec.id, numeric=True)
                    clause = target >= number if bound == "min" else target <= number
            case FilterKind.SELECT:
                clause = _select_clause(schema, spec, value)

        if clause is None:
            predicate.ignored.append(key)
            continue
        predicate.clauses.append(clause)
        predicate.applied.append(key)

    if predicate.ignored:
        logger.debug(f"Ignored filter keys for source {source.id}: {predicate.ignored}")
    return predicate


def resolve_sort(source, sort_id: Optional[str] = None) -> StoreSort:
    """
    Pick the ORDER BY for a listing query.

    Requested sort id, else the source's first configured sort, else most
    recently seen first. item_id breaks ties so paging is stable.
    """
    schema = SourceSchema.from_source(source)
    spec = schema.sort(sort_id) or (schema.sorts[0] if schema.sorts else None)

    if spec is None:
        expr = getattr(Listing, DEFAULT_SORT_COLUMN)
        ascending = False
    else:
        expr = _target(schema, spec.column, numeric=_is_numeric_column(schema, spec.column))
        ascending = spec.ascending

    order = expr.asc() if ascending else expr.desc()
    return StoreSort(
        order_by=[order.nullslast(), Listing.item_id.asc()],
        sort_id=spec.id if spec else None,
    )


def build_upstream_params(source, page: int, filters: Optional[dict[str, Any]] = None) -> list[tuple[str, str]]:
    """
    Query parameters for one upstream list request.

    `page`, then the source's default filters, then caller filters mapped
    through each FilterSpec's param_name*. Returned as pairs because
    array-style params ("game[]") repeat once per comma-separated value.
    """
    schema = SourceSchema.from_source(source)
    params: list[tuple[str, str]] = [("page", str(page))]
    params.extend((name, str(value)) for name, value in (source.default_filters or {}).items())

    for key, value in (filters or {}).items():
        if _is_empty(value):
            continue
        spec, bound = _lookup_filter(schema, key)
        if spec is None:
            continue

        match spec.kind:
            case FilterKind.NUMBER_RANGE:
                name = {"min": spec.param_name_min, "max": spec.param_name_max}.get(bound)
                if name:
                    params.append((name, str(value)))
            case FilterKind.TEXT | FilterKind.SELECT:
                if not spec.param_name:
                    continue
                if _is_multi_value(spec):
                    params.extend((spec.param_name, part) for part in _split_values(value))
                else:
                    params.append((spec.param_name, str(value)))

    return params
