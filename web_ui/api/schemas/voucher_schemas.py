"""Voucher-related API schemas"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel


class VoucherCreateRequest(BaseModel):
    """Create a single voucher"""
    code: str
    package_key: str
    value: float = 0.0  # KES
    type: Literal["single", "bulk"] = "single"
    active: bool = True
    max_uses: int = 1
    expires_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    notes: Optional[str] = None


class BulkVoucherRequest(BaseModel):
    """Generate a batch of vouchers sharing package and limits"""
    package_key: str
    value: float = 0.0
    count: int = 10  # Range is checked by the issuer so the error names the limit
    prefix: str = "VOUCHER"
    suffix: Optional[str] = None
    expires_at: Optional[datetime] = None
    active: bool = True
    notes: Optional[str] = None
    max_uses: int = 1


class BatchErrorItem(BaseModel):
    code: str
    error: str


class BulkVoucherResponse(BaseModel):
    """Bulk issue outcome"""
    codes: List[str]
    created_count: int
    error_count: int
    errors: List[BatchErrorItem] = []


class ImportErrorItem(BaseModel):
    line: int
    code: Optional[str] = None
    error: str


class ImportResponse(BaseModel):
    """Import outcome"""
    imported_count: int
    error_count: int
    skipped_count: int
    errors: List[ImportErrorItem] = []


class RedeemRequest(BaseModel):
    """Redeem one use of a voucher"""
    user_id: Optional[str] = None
    duration_seconds: Optional[int] = None  # Used when the voucher has no duration


class RedeemResponse(BaseModel):
    voucher: Dict[str, Any]
    subscription: Dict[str, Any]


class RecordListResponse(BaseModel):
    """A filtered, sorted page of records as stored, plus derived status"""
    items: List[Dict[str, Any]]
    total: int
