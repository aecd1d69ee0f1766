"""
Subscription administration: suspend, re-activate, progress.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from entitlements.models import EntityKind, as_utc, coerce_timestamp, get_field, utcnow
from entitlements.store import EntityStore
from utils.logger import logger


async def suspend_subscription(store: EntityStore, subscription_id: str) -> Dict[str, Any]:
    """Suspend a subscription; it stops granting access immediately"""
    record = await store.update_entity(
        EntityKind.SUBSCRIPTION, subscription_id, {"suspended": True, "active": False}
    )
    logger.info(f"Suspended subscription {subscription_id}")
    return record


async def activate_subscription(store: EntityStore, subscription_id: str) -> Dict[str, Any]:
    """Lift a suspension. Access resumes only if the end date has not passed."""
    record = await store.update_entity(
        EntityKind.SUBSCRIPTION, subscription_id, {"suspended": False, "active": True}
    )
    logger.info(f"Activated subscription {subscription_id}")
    return record


def subscription_progress(subscription: Any, now: Optional[datetime] = None) -> Optional[float]:
    """
    Fraction of the start -> end window that has elapsed, clamped to 0..1.

    Returns None when either date is missing or the window is empty.
    """
    start_at = coerce_timestamp(get_field(subscription, "startAt"))
    end_at = coerce_timestamp(get_field(subscription, "endAt"))
    if start_at is None or end_at is None:
        return None

    total = (end_at - start_at).total_seconds()
    if total <= 0:
        return None

    now = as_utc(now) if now is not None else utcnow()
    elapsed = (now - start_at).total_seconds()
    return min(1.0, max(0.0, elapsed / total))
