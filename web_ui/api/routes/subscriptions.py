"""
Subscription API Routes

Listing with derived status and time remaining, plus suspend/activate.
"""

import sys
from datetime import datetime
from pathlib import Path

from fastapi import APIRouter, Depends

sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from entitlements.errors import EntitlementError
from entitlements.models import EntityKind, get_field, utcnow
from entitlements.status import TimeRemaining, derive_subscription_status, time_remaining
from entitlements.store import EntityStore, get_entity_store
from entitlements.subscriptions import (
    activate_subscription,
    subscription_progress,
    suspend_subscription,
)
from entitlements.view import ViewQuery, view
from web_ui.api.schemas.subscription_schemas import SubscriptionDetail, TimeRemainingInfo
from web_ui.api.schemas.voucher_schemas import RecordListResponse
from web_ui.api.utils import bad_view_query, http_error, view_query

router = APIRouter()


def _detail(record: dict, now: datetime) -> SubscriptionDetail:
    remaining = time_remaining(get_field(record, "endAt"), now)
    if isinstance(remaining, TimeRemaining):
        remaining_info = TimeRemainingInfo(days=remaining.days, hours=remaining.hours)
    else:
        remaining_info = TimeRemainingInfo(label=remaining)

    return SubscriptionDetail(
        record=record,
        status=derive_subscription_status(record, now).value,
        time_remaining=remaining_info,
        progress=subscription_progress(record, now),
    )


@router.get("", response_model=RecordListResponse)
async def list_subscriptions(
    query: ViewQuery = Depends(view_query),
    store: EntityStore = Depends(get_entity_store),
):
    """
    List subscriptions.

    Search covers user name, user phone, package and id; the type
    filter selects a package.
    """
    now = utcnow()
    try:
        records = await store.list_entities(EntityKind.SUBSCRIPTION)
    except EntitlementError as e:
        raise http_error(e)
    try:
        rows = view(records, query, EntityKind.SUBSCRIPTION, now=now)
    except ValueError as e:
        raise bad_view_query(e)

    items = [{**r, "status": derive_subscription_status(r, now).value} for r in rows]
    return RecordListResponse(items=items, total=len(items))


@router.post("/{subscription_id}/suspend", response_model=SubscriptionDetail)
async def suspend(subscription_id: str, store: EntityStore = Depends(get_entity_store)):
    """Suspend a subscription"""
    try:
        record = await suspend_subscription(store, subscription_id)
    except EntitlementError as e:
        raise http_error(e)
    return _detail(record, utcnow())


@router.post("/{subscription_id}/activate", response_model=SubscriptionDetail)
async def activate(subscription_id: str, store: EntityStore = Depends(get_entity_store)):
    """Lift a suspension"""
    try:
        record = await activate_subscription(store, subscription_id)
    except EntitlementError as e:
        raise http_error(e)
    return _detail(record, utcnow())
