"""
Voucher Redemption

Turns one use of a voucher into a time-bounded subscription.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from entitlements.errors import (
    VoucherExhaustedError,
    VoucherNotFoundError,
    VoucherUnavailableError,
)
from entitlements.models import (
    EntityKind,
    Subscription,
    Voucher,
    VoucherStatus,
    as_utc,
    format_timestamp,
    get_field,
    utcnow,
)
from entitlements.status import derive_voucher_status
from entitlements.store import EntityStore
from entitlements.vouchers import find_voucher
from utils.logger import logger


@dataclass
class RedemptionResult:
    """Updated voucher record and the subscription it produced"""
    voucher: Dict[str, Any]
    subscription: Dict[str, Any]

    def to_dict(self) -> dict:
        return {"voucher": self.voucher, "subscription": self.subscription}


async def redeem_voucher(
    store: EntityStore,
    code: str,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
    duration_seconds: Optional[int] = None,
) -> RedemptionResult:
    """
    Redeem one use of ``code``.

    The use is recorded on the voucher before the subscription is
    created, so a rejected increment never leaves a subscription behind.

    Args:
        duration_seconds: Access length when the voucher carries none

    Raises:
        VoucherNotFoundError: no voucher has this code
        VoucherExhaustedError: every use has been redeemed
        VoucherUnavailableError: expired, inactive, or no access duration
        EntityStoreError: the store rejected an update
    """
    now = as_utc(now) if now is not None else utcnow()
    code = code.strip()

    record = await find_voucher(store, code)
    if record is None:
        raise VoucherNotFoundError(code)

    status = derive_voucher_status(record, now)
    if status == VoucherStatus.USED:
        raise VoucherExhaustedError(code)
    if status != VoucherStatus.ACTIVE:
        raise VoucherUnavailableError(code, status.value)

    voucher = Voucher.from_dict(record)
    duration = voucher.duration_seconds or duration_seconds
    if not duration:
        raise VoucherUnavailableError(code, "missing an access duration")

    patch = {
        "usedCount": voucher.used_count + 1,
        "usedAt": format_timestamp(now),
    }
    if user_id:
        patch["usedBy"] = user_id
    updated = await store.update_entity(EntityKind.VOUCHER, get_field(record, "id"), patch)

    subscription = Subscription(
        user_id=user_id,
        package_key=voucher.package_key,
        start_at=now,
        end_at=now + timedelta(seconds=int(duration)),
        notes=f"voucher:{voucher.code}",
        created_at=now,
    )
    try:
        created = await store.create_entity(EntityKind.SUBSCRIPTION, subscription.to_payload())
    except Exception:
        logger.error(f"Voucher {code} use recorded but subscription creation failed")
        raise

    logger.info(
        f"Redeemed voucher {code} ({patch['usedCount']}/{voucher.max_uses}) "
        f"for package {voucher.package_key}"
    )
    return RedemptionResult(voucher=updated, subscription=created)
