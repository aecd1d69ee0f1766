"""
Filter / Sort Engine

Produces the list an administrator sees from an already-fetched
collection: search, status and type filters, then a typed sort.

    rows = view(records, ViewQuery(search_term="0712", sort_key="endAt"),
                EntityKind.SUBSCRIPTION, now=now)

No I/O, no mutation of the input. The same arguments (including ``now``)
always give the same ordered result.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from entitlements.models import (
    EntityKind,
    PaymentStatus,
    as_utc,
    coerce_timestamp,
    get_field,
    utcnow,
)
from entitlements.status import derive_subscription_status, derive_voucher_status

ALL = "all"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FieldKind(str, Enum):
    """How values of a sortable field compare"""
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class ViewQuery:
    """What the administrator asked to see"""
    search_term: str = ""
    status_filter: str = ALL
    type_filter: str = ALL
    sort_key: str = "createdAt"
    sort_order: SortOrder = SortOrder.DESC


def _payment_status(payment: Any, now: datetime) -> str:
    raw = get_field(payment, "status", "")
    try:
        return PaymentStatus(getattr(raw, "value", raw)).value
    except ValueError:
        return str(raw).lower()


@dataclass(frozen=True)
class EntityViewSpec:
    """Per-kind search fields, status source, type field and sortable fields"""
    search_fields: Tuple[str, ...]
    status_of: Callable[[Any, datetime], Any]
    type_field: str
    sort_fields: Dict[str, FieldKind] = field(default_factory=dict)


VIEW_SPECS: Dict[EntityKind, EntityViewSpec] = {
    EntityKind.VOUCHER: EntityViewSpec(
        search_fields=("code", "packageKey", "id"),
        status_of=derive_voucher_status,
        type_field="type",
        sort_fields={
            "code": FieldKind.STRING,
            "packageKey": FieldKind.STRING,
            "type": FieldKind.STRING,
            "status": FieldKind.STRING,
            "value": FieldKind.NUMBER,
            "maxUses": FieldKind.NUMBER,
            "usedCount": FieldKind.NUMBER,
            "active": FieldKind.BOOLEAN,
            "expiresAt": FieldKind.DATE,
            "usedAt": FieldKind.DATE,
            "createdAt": FieldKind.DATE,
            "updatedAt": FieldKind.DATE,
        },
    ),
    EntityKind.SUBSCRIPTION: EntityViewSpec(
        search_fields=("user.name", "user.phone", "packageKey", "id"),
        status_of=derive_subscription_status,
        type_field="packageKey",
        sort_fields={
            "user.name": FieldKind.STRING,
            "packageKey": FieldKind.STRING,
            "status": FieldKind.STRING,
            "active": FieldKind.BOOLEAN,
            "suspended": FieldKind.BOOLEAN,
            "startAt": FieldKind.DATE,
            "endAt": FieldKind.DATE,
            "createdAt": FieldKind.DATE,
        },
    ),
    EntityKind.PAYMENT: EntityViewSpec(
        search_fields=("provider", "transactionId", "phone", "id"),
        status_of=_payment_status,
        type_field="provider",
        sort_fields={
            "provider": FieldKind.STRING,
            "status": FieldKind.STRING,
            "phone": FieldKind.STRING,
            "amountKES": FieldKind.NUMBER,
            "createdAt": FieldKind.DATE,
            "updatedAt": FieldKind.DATE,
        },
    ),
}


def _plain(value: Any) -> Any:
    # str-based enums compare and search by their value
    return getattr(value, "value", value)


def _sort_value(value: Any, kind: FieldKind) -> Optional[Any]:
    """Typed sort key for a raw value, or None when it should sort last"""
    value = _plain(value)
    if value is None or value == "":
        return None
    if kind == FieldKind.NUMBER:
        if isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    if kind == FieldKind.DATE:
        return coerce_timestamp(value)
    if kind == FieldKind.BOOLEAN:
        if isinstance(value, bool):
            return int(value)
        return int(str(value).strip().lower() == "true")
    return str(value).casefold()


def matches_search(entity: Any, term: str, search_fields: Sequence[str]) -> bool:
    """Case-insensitive substring match against any of the search fields"""
    term = term.strip().casefold()
    if not term:
        return True
    for path in search_fields:
        value = get_field(entity, path)
        if value is not None and term in str(_plain(value)).casefold():
            return True
    return False


def view(
    collection: Sequence[Any],
    query: ViewQuery,
    kind: EntityKind,
    now: Optional[datetime] = None,
) -> List[Any]:
    """
    Filter and sort a collection for display.

    Entries with a missing or unreadable sort value go last in either
    order. Ties keep the collection's order.

    Raises:
        ValueError: unknown sort key or sort order for this kind
    """
    spec = VIEW_SPECS[EntityKind(kind)]
    now = as_utc(now) if now is not None else utcnow()
    order = SortOrder(query.sort_order)

    sort_kind = spec.sort_fields.get(query.sort_key)
    if sort_kind is None:
        raise ValueError(
            f"Cannot sort {kind.value} by {query.sort_key!r}; "
            f"choose one of {', '.join(sorted(spec.sort_fields))}"
        )

    selected = []
    for entity in collection:
        status = _plain(spec.status_of(entity, now))
        if query.status_filter != ALL and status != query.status_filter:
            continue
        if query.type_filter != ALL and _plain(get_field(entity, spec.type_field)) != query.type_filter:
            continue
        if not matches_search(entity, query.search_term, spec.search_fields):
            continue
        selected.append((entity, status))

    def raw_sort_value(item: Tuple[Any, Any]) -> Any:
        entity, status = item
        if query.sort_key == "status":
            return status
        return get_field(entity, query.sort_key)

    keyed = [(_sort_value(raw_sort_value(item), sort_kind), item[0]) for item in selected]
    present = [pair for pair in keyed if pair[0] is not None]
    missing = [entity for key, entity in keyed if key is None]

    present.sort(key=lambda pair: pair[0], reverse=order == SortOrder.DESC)
    return [entity for _, entity in present] + missing
