"""
Single-voucher administration: validation, creation and duplication.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

from entitlements.errors import ValidationError
from entitlements.models import (
    EntityKind,
    Voucher,
    VoucherType,
    get_field,
    utcnow,
)
from entitlements.store import EntityStore
from utils.logger import logger


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_voucher(data: Dict[str, Any], require_code: bool = True) -> Dict[str, str]:
    """
    Validate a voucher creation payload (camelCase keys).

    Returns a field -> message map, empty when valid. ``require_code``
    is False for imports, where a missing code is generated server-side.
    """
    errors: Dict[str, str] = {}

    code = data.get("code")
    if require_code and (not isinstance(code, str) or not code.strip()):
        errors["code"] = "Voucher code is required"

    package_key = data.get("packageKey")
    if not isinstance(package_key, str) or not package_key.strip():
        errors["packageKey"] = "Package key is required"

    value = data.get("value")
    if value is not None:
        if not _is_number(value):
            errors["value"] = "Value must be a number"
        elif value < 0:
            errors["value"] = "Value must be positive"

    max_uses = data.get("maxUses", 1)
    if not isinstance(max_uses, int) or isinstance(max_uses, bool) or max_uses < 1:
        errors["maxUses"] = "Max uses must be at least 1"
    elif data.get("type") == VoucherType.BULK.value and max_uses < 2:
        errors["maxUses"] = "Bulk vouchers must allow multiple uses"

    if data.get("type") is not None and data.get("type") not in {t.value for t in VoucherType}:
        errors["type"] = "Type must be 'single' or 'bulk'"

    used_count = data.get("usedCount", 0)
    if not isinstance(used_count, int) or isinstance(used_count, bool) or used_count < 0:
        errors["usedCount"] = "Used count must be a non-negative whole number"
    elif "maxUses" not in errors and used_count > max_uses:
        errors["usedCount"] = "Used count cannot exceed max uses"

    return errors


async def create_voucher(store: EntityStore, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and create a single voucher.

    Raises:
        ValidationError: payload is invalid; nothing was submitted
        EntityStoreError: the store rejected the record
    """
    errors = validate_voucher(data)
    if errors:
        raise ValidationError(errors)

    payload = dict(data)
    payload["code"] = payload["code"].strip()
    payload["packageKey"] = payload["packageKey"].strip()
    record = await store.create_entity(EntityKind.VOUCHER, payload)
    logger.info(f"Created voucher {payload['code']} for package {payload['packageKey']}")
    return record


async def duplicate_voucher(
    store: EntityStore,
    voucher: Any,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Create a fresh copy of a voucher under a new code.

    The copy keeps package, value, type, limits and expiry but starts
    unused: ``<code>_copy_<epoch ms>`` with usedCount 0.
    """
    source = voucher if isinstance(voucher, Voucher) else Voucher.from_dict(voucher)
    stamp = int((now or utcnow()).timestamp() * 1000)

    copy = Voucher(
        code=f"{source.code}_copy_{stamp}",
        package_key=source.package_key,
        value=source.value,
        type=source.type,
        active=source.active,
        max_uses=source.max_uses,
        expires_at=source.expires_at,
        duration_seconds=source.duration_seconds,
        notes=source.notes,
    )
    return await create_voucher(store, copy.to_payload())


async def find_voucher(store: EntityStore, code: str) -> Optional[Dict[str, Any]]:
    """Look up a voucher record by its code"""
    for record in await store.list_entities(EntityKind.VOUCHER):
        if get_field(record, "code") == code:
            return record
    return None
