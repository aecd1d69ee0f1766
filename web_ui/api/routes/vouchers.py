"""
Voucher API Routes

Administration of redeemable access codes:
- Filtered/sorted listing with derived status
- Single create, duplicate and delete
- Bulk generation
- Import from CSV/JSON and export back out
- Redemption into a subscription
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import Response

sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from entitlements.bulk_issuer import BulkIssuer, BulkIssueRequest
from entitlements.errors import EntitlementError
from entitlements.export import export_vouchers
from entitlements.import_pipeline import ImportFormat, ImportPipeline
from entitlements.models import EntityKind, Voucher, VoucherType, get_field, utcnow
from entitlements.redemption import redeem_voucher
from entitlements.status import derive_voucher_status
from entitlements.store import EntityStore, get_entity_store
from entitlements.view import ViewQuery, view
from entitlements.vouchers import create_voucher, duplicate_voucher, find_voucher
from utils.logger import logger
from web_ui.api.schemas.voucher_schemas import (
    BulkVoucherRequest,
    BulkVoucherResponse,
    ImportResponse,
    RecordListResponse,
    RedeemRequest,
    RedeemResponse,
    VoucherCreateRequest,
)
from web_ui.api.utils import bad_view_query, http_error, view_query

router = APIRouter()


def _with_status(record: dict, now: datetime) -> dict:
    return {**record, "status": derive_voucher_status(record, now).value}


async def _filtered_vouchers(store: EntityStore, query: ViewQuery, now: datetime) -> list:
    try:
        records = await store.list_entities(EntityKind.VOUCHER)
    except EntitlementError as e:
        raise http_error(e)
    try:
        return view(records, query, EntityKind.VOUCHER, now=now)
    except ValueError as e:
        raise bad_view_query(e)


@router.get("", response_model=RecordListResponse)
async def list_vouchers(
    query: ViewQuery = Depends(view_query),
    store: EntityStore = Depends(get_entity_store),
):
    """
    List vouchers.

    Supports search over code, package and id, status/type filters and
    sorting by any voucher field. Each item carries its derived status.
    """
    now = utcnow()
    rows = await _filtered_vouchers(store, query, now)
    return RecordListResponse(items=[_with_status(r, now) for r in rows], total=len(rows))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_single_voucher(
    request: VoucherCreateRequest,
    store: EntityStore = Depends(get_entity_store),
):
    """Create one voucher with an administrator-chosen code"""
    voucher = Voucher(
        code=request.code,
        package_key=request.package_key,
        value=request.value,
        type=VoucherType(request.type),
        active=request.active,
        max_uses=request.max_uses,
        expires_at=request.expires_at,
        duration_seconds=request.duration_seconds,
        notes=request.notes,
    )
    try:
        return await create_voucher(store, voucher.to_payload())
    except EntitlementError as e:
        raise http_error(e)


@router.post("/bulk", response_model=BulkVoucherResponse)
async def bulk_create_vouchers(
    request: BulkVoucherRequest,
    store: EntityStore = Depends(get_entity_store),
):
    """
    Generate a batch of vouchers.

    Returns every generated code; codes whose creation failed are listed
    in ``errors`` and the rest of the batch is still created.
    """
    issuer = BulkIssuer(store)
    try:
        existing = [get_field(r, "code") for r in await store.list_entities(EntityKind.VOUCHER)]
        result = await issuer.issue_batch(
            BulkIssueRequest(
                package_key=request.package_key,
                value=request.value,
                count=request.count,
                prefix=request.prefix,
                suffix=request.suffix,
                expires_at=request.expires_at,
                active=request.active,
                notes=request.notes,
                max_uses=request.max_uses,
            ),
            existing_codes=existing,
        )
    except EntitlementError as e:
        raise http_error(e)

    return BulkVoucherResponse(
        codes=result.codes,
        created_count=result.created_count,
        error_count=result.error_count,
        errors=[e.to_dict() for e in result.errors],
    )


@router.post("/import", response_model=ImportResponse)
async def import_vouchers(
    file: UploadFile = File(...),
    source_format: Optional[str] = Query(None, alias="format"),
    keep_codes: bool = Query(True, alias="keepCodes"),
    store: EntityStore = Depends(get_entity_store),
):
    """
    Import vouchers from an uploaded CSV or JSON file.

    The format defaults to the file extension (.json is records,
    anything else delimited). Rows without a packageKey are skipped.
    """
    if source_format is None:
        source_format = "json" if (file.filename or "").lower().endswith(".json") else "csv"
    try:
        fmt = ImportFormat(source_format)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported import format: {source_format}")

    try:
        raw_text = (await file.read()).decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Import file must be UTF-8 text")

    logger.info(f"Importing vouchers from {file.filename or 'upload'} ({fmt.value})")
    try:
        result = await ImportPipeline(store, keep_codes=keep_codes).import_file(raw_text, fmt)
    except EntitlementError as e:
        raise http_error(e)

    return ImportResponse(
        imported_count=result.imported_count,
        error_count=result.error_count,
        skipped_count=result.skipped_count,
        errors=[e.to_dict() for e in result.errors],
    )


@router.get("/export")
async def export_voucher_file(
    target_format: str = Query("csv", alias="format"),
    query: ViewQuery = Depends(view_query),
    store: EntityStore = Depends(get_entity_store),
):
    """Download the (filtered) voucher list as CSV or JSON"""
    try:
        fmt = ImportFormat(target_format)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {target_format}")

    rows = await _filtered_vouchers(store, query, utcnow())
    try:
        content = export_vouchers(rows, fmt)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    extension, media_type = ("csv", "text/csv") if fmt == ImportFormat.DELIMITED else ("json", "application/json")
    filename = f"vouchers_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{extension}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{code}/redeem", response_model=RedeemResponse)
async def redeem(
    code: str,
    request: RedeemRequest = RedeemRequest(),
    store: EntityStore = Depends(get_entity_store),
):
    """Redeem one use of a voucher and start a subscription"""
    try:
        result = await redeem_voucher(
            store,
            code,
            user_id=request.user_id,
            duration_seconds=request.duration_seconds,
        )
    except EntitlementError as e:
        raise http_error(e)
    return RedeemResponse(voucher=result.voucher, subscription=result.subscription)


@router.post("/{code}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate(code: str, store: EntityStore = Depends(get_entity_store)):
    """Copy a voucher under a fresh code, with its usage reset"""
    try:
        record = await find_voucher(store, code)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Voucher not found: {code}")
        return await duplicate_voucher(store, record)
    except EntitlementError as e:
        raise http_error(e)


@router.delete("/{voucher_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_voucher(voucher_id: str, store: EntityStore = Depends(get_entity_store)):
    """Delete a voucher by record id"""
    try:
        await store.delete_entity(EntityKind.VOUCHER, voucher_id)
    except EntitlementError as e:
        raise http_error(e)
    logger.info(f"Deleted voucher {voucher_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
