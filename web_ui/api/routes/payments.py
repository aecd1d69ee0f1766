"""
Payment API Routes

Payments are written by the M-Pesa gateway callback and only displayed
here: search over provider, transaction id and phone, filter by stored
status or provider.
"""

import sys
from pathlib import Path

from fastapi import APIRouter, Depends

sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from entitlements.errors import EntitlementError
from entitlements.models import EntityKind, utcnow
from entitlements.store import EntityStore, get_entity_store
from entitlements.view import ViewQuery, view
from web_ui.api.schemas.voucher_schemas import RecordListResponse
from web_ui.api.utils import bad_view_query, http_error, view_query

router = APIRouter()


@router.get("", response_model=RecordListResponse)
async def list_payments(
    query: ViewQuery = Depends(view_query),
    store: EntityStore = Depends(get_entity_store),
):
    """List payments"""
    try:
        records = await store.list_entities(EntityKind.PAYMENT)
    except EntitlementError as e:
        raise http_error(e)
    try:
        rows = view(records, query, EntityKind.PAYMENT, now=utcnow())
    except ValueError as e:
        raise bad_view_query(e)
    return RecordListResponse(items=rows, total=len(rows))
