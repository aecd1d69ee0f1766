"""
Status Derivation

Maps an entitlement's stored fields plus the current time to a canonical
lifecycle status. Derivation is pure and never raises: absent or
malformed fields fall through to the next rule.

Works on model instances and on raw backend records alike:

    derive_voucher_status(Voucher(...), now)
    derive_voucher_status({"code": "X", "usedCount": 1, "maxUses": 1}, now)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from entitlements.models import (
    VoucherStatus,
    SubscriptionStatus,
    get_field,
    coerce_timestamp,
    as_utc,
    utcnow,
)

EXPIRED = "expired"
NO_EXPIRY = "no expiry"

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR


@dataclass(frozen=True)
class TimeRemaining:
    """Structured time left until an end date; formatting is up to the caller"""
    days: int
    hours: int
    total_seconds: float

    @property
    def under_an_hour(self) -> bool:
        return self.days == 0 and self.hours == 0


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


_TRUE_WORDS = {"true", "1", "yes", "y"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    return False


def _resolve_now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else utcnow()


def derive_voucher_status(voucher: Any, now: Optional[datetime] = None) -> VoucherStatus:
    """
    Derive a voucher's status. First matching rule wins:

    1. USED     - used_count >= max_uses, or the explicit ``used`` flag is set
    2. EXPIRED  - expires_at is set and in the past
    3. ACTIVE   - active is true
    4. INACTIVE - otherwise
    """
    now = _resolve_now(now)

    max_uses = _as_int(get_field(voucher, "maxUses", get_field(voucher, "uses")), 1)
    used_count = _as_int(get_field(voucher, "usedCount"), 0)
    if _as_bool(get_field(voucher, "used")) or used_count >= max_uses:
        return VoucherStatus.USED

    expires_at = coerce_timestamp(get_field(voucher, "expiresAt"))
    if expires_at is not None and expires_at < now:
        return VoucherStatus.EXPIRED

    if _as_bool(get_field(voucher, "active")):
        return VoucherStatus.ACTIVE

    return VoucherStatus.INACTIVE


def derive_subscription_status(subscription: Any, now: Optional[datetime] = None) -> SubscriptionStatus:
    """
    Derive a subscription's status. First matching rule wins:

    1. SUSPENDED - suspended is true (regardless of active)
    2. ACTIVE    - active is true and end_at is unset or still in the future
    3. EXPIRED   - otherwise
    """
    now = _resolve_now(now)

    if _as_bool(get_field(subscription, "suspended")):
        return SubscriptionStatus.SUSPENDED

    if _as_bool(get_field(subscription, "active")):
        end_at = coerce_timestamp(get_field(subscription, "endAt"))
        if end_at is None or end_at > now:
            return SubscriptionStatus.ACTIVE

    return SubscriptionStatus.EXPIRED


def grants_access(subscription: Any, now: Optional[datetime] = None) -> bool:
    """True only when the subscription currently derives to ACTIVE"""
    return derive_subscription_status(subscription, now) == SubscriptionStatus.ACTIVE


def time_remaining(end: Any, now: Optional[datetime] = None) -> Union[TimeRemaining, str]:
    """
    Time left until ``end`` (an expiry or subscription end date).

    Returns:
        TimeRemaining with whole days and leftover hours,
        EXPIRED once the end is strictly in the past (an end equal to
        ``now`` still counts as not yet expired, like voucher expiry),
        NO_EXPIRY if there is no (parseable) end date.
    """
    end_at = coerce_timestamp(end)
    if end_at is None:
        return NO_EXPIRY

    remaining = (end_at - _resolve_now(now)).total_seconds()
    if remaining < 0:
        return EXPIRED

    days = int(remaining // SECONDS_PER_DAY)
    hours = int((remaining % SECONDS_PER_DAY) // SECONDS_PER_HOUR)
    return TimeRemaining(days=days, hours=hours, total_seconds=remaining)
