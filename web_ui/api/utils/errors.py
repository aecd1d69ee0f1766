"""
HTTP mapping for entitlement engine errors

Routes call the engine and let its exceptions surface through
``http_error`` so every endpoint reports failures the same way:

- ValidationError          -> 422 {"message", "errors": {field: message}}
- ImportParseError         -> 400
- VoucherNotFoundError     -> 404
- VoucherExhausted/Unavailable -> 400
- CodeSpaceExhaustedError  -> 409
- EntityStoreError         -> 404 when the backend said so, else 502
"""

from fastapi import HTTPException, Query, status

from entitlements.errors import (
    CodeSpaceExhaustedError,
    EntitlementError,
    EntityStoreError,
    ImportParseError,
    ValidationError,
    VoucherExhaustedError,
    VoucherNotFoundError,
    VoucherUnavailableError,
)
from entitlements.view import ALL, SortOrder, ViewQuery
from utils.logger import logger


def http_error(error: EntitlementError) -> HTTPException:
    """Translate an engine error into an HTTPException"""
    if isinstance(error, ValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": error.message, "errors": error.errors},
        )
    if isinstance(error, ImportParseError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": error.message, "line": error.line},
        )
    if isinstance(error, VoucherNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (VoucherExhaustedError, VoucherUnavailableError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, CodeSpaceExhaustedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, EntityStoreError):
        if error.status_code == 404:
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.detail)
        logger.error(f"Entity store call failed: {error.detail}")
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.detail)

    logger.error(f"Unhandled entitlement error: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def view_query(
    search: str = Query("", description="Case-insensitive substring search"),
    status_filter: str = Query(ALL, alias="status"),
    type_filter: str = Query(ALL, alias="type"),
    sort_key: str = Query("createdAt", alias="sortKey"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
) -> ViewQuery:
    """Query-string dependency for list endpoints"""
    return ViewQuery(
        search_term=search,
        status_filter=status_filter,
        type_filter=type_filter,
        sort_key=sort_key,
        sort_order=sort_order,
    )


def bad_view_query(error: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
