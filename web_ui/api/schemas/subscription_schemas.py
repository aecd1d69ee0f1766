"""Subscription-related API schemas"""

from typing import Optional, Dict, Any
from pydantic import BaseModel


class TimeRemainingInfo(BaseModel):
    """Time left on a subscription; label is 'expired' or 'no expiry' when there is no countdown"""
    days: Optional[int] = None
    hours: Optional[int] = None
    label: Optional[str] = None


class SubscriptionDetail(BaseModel):
    """Subscription record with derived fields"""
    record: Dict[str, Any]
    status: str
    time_remaining: TimeRemainingInfo
    progress: Optional[float] = None  # 0..1 of the start -> end window
