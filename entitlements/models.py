"""
Entitlement Data Models

Defines the core data structures handled by the entitlement engine:
vouchers, subscriptions and (read-only) payments.

Records travel to and from the backend admin API as camelCase dicts
(``packageKey``, ``maxUses``, ``_id``). The dataclasses here use
snake_case attributes and convert at the ``to_dict``/``from_dict`` seam.
"""

import re
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Any, Dict
from datetime import datetime, timezone


class EntityKind(str, Enum):
    """Kinds of records the persistence collaborator stores"""
    VOUCHER = "voucher"
    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"


class VoucherType(str, Enum):
    """Voucher redemption style"""
    SINGLE = "single"
    BULK = "bulk"  # Multi-use, requires max_uses >= 2


class VoucherStatus(str, Enum):
    """Derived voucher lifecycle status"""
    USED = "used"
    EXPIRED = "expired"
    ACTIVE = "active"
    INACTIVE = "inactive"


class SubscriptionStatus(str, Enum):
    """Derived subscription lifecycle status"""
    SUSPENDED = "suspended"
    ACTIVE = "active"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    """Payment status as reported by the payment gateway"""
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"

    @classmethod
    def _missing_(cls, value):
        # The M-Pesa callback handler stores "success"
        if isinstance(value, str) and value.lower() == "success":
            return cls.SUCCESSFUL
        return None


# ============================================================================
# Field helpers
# ============================================================================

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')
_MISSING = object()


def to_snake(name: str) -> str:
    """packageKey -> package_key, amountKES -> amount_kes"""
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an absolute timestamp.

    Accepts datetime instances and ISO 8601 strings (a trailing ``Z`` is
    understood as UTC). Empty values return None.

    Raises:
        ValueError: if the value is not a recognizable timestamp
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(text))
    raise ValueError(f"Not a timestamp: {value!r}")


def coerce_timestamp(value: Any) -> Optional[datetime]:
    """Lenient variant of parse_timestamp that returns None instead of raising"""
    try:
        return parse_timestamp(value)
    except (ValueError, TypeError):
        return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 representation used on the wire and in export files"""
    if value is None:
        return None
    return as_utc(value).isoformat().replace("+00:00", "Z")


def get_field(entity: Any, path: str, default: Any = None) -> Any:
    """
    Read a wire-named field from a record dict or a model instance.

    ``path`` uses the backend's camelCase names and may be dotted
    (``user.phone``). Dicts are looked up by camelCase key, then
    snake_case key; ``id`` also matches Mongo's ``_id``. Model instances
    are read by snake_case attribute.
    """
    current = entity
    for part in path.split('.'):
        if current is None:
            return default
        if isinstance(current, dict):
            value = current.get(part, _MISSING)
            if value is _MISSING:
                value = current.get(to_snake(part), _MISSING)
            if value is _MISSING and part == "id":
                value = current.get("_id", _MISSING)
        else:
            value = getattr(current, to_snake(part), _MISSING)
        if value is _MISSING:
            return default
        current = value
    return default if current is None else current


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


# ============================================================================
# Entities
# ============================================================================

@dataclass
class UserRef:
    """User summary embedded in subscription listings"""
    id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'UserRef':
        return cls(
            id=_first(data, 'id', '_id'),
            name=data.get('name'),
            phone=data.get('phone'),
            email=data.get('email'),
        )


@dataclass
class Voucher:
    """
    Redeemable access code for a package.

    A voucher may be redeemed ``max_uses`` times; ``used_count`` only
    grows and never exceeds ``max_uses``.
    """
    code: str
    package_key: str
    value: float = 0.0  # KES
    type: VoucherType = VoucherType.SINGLE
    active: bool = True
    max_uses: int = 1
    used_count: int = 0
    used: bool = False  # Explicit flag set by some backends once redeemed
    used_by: Optional[str] = None
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    notes: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to the backend's camelCase record form"""
        return {
            'id': self.id,
            'code': self.code,
            'packageKey': self.package_key,
            'value': self.value,
            'type': self.type.value,
            'active': self.active,
            'maxUses': self.max_uses,
            'usedCount': self.used_count,
            'used': self.used,
            'usedBy': self.used_by,
            'usedAt': format_timestamp(self.used_at),
            'expiresAt': format_timestamp(self.expires_at),
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
            'durationSeconds': self.duration_seconds,
            'notes': self.notes,
        }

    def to_payload(self) -> dict:
        """Creation payload: record fields without store-managed ones"""
        data = self.to_dict()
        for key in ('id', 'createdAt', 'updatedAt', 'used', 'usedBy', 'usedAt'):
            data.pop(key, None)
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> 'Voucher':
        """Create from a backend record (camelCase or snake_case keys)"""
        used_by = _first(data, 'usedBy', 'used_by')
        if isinstance(used_by, dict):
            used_by = _first(used_by, '_id', 'id')
        return cls(
            id=_first(data, '_id', 'id'),
            code=data.get('code', ''),
            package_key=_first(data, 'packageKey', 'package_key', default=''),
            value=float(_first(data, 'value', 'valueKES', default=0) or 0),
            type=VoucherType(_first(data, 'type', default=VoucherType.SINGLE.value)),
            active=bool(data.get('active', True)),
            max_uses=int(_first(data, 'maxUses', 'max_uses', 'uses', default=1)),
            used_count=int(_first(data, 'usedCount', 'used_count', default=0)),
            used=bool(data.get('used', False)),
            used_by=used_by,
            used_at=coerce_timestamp(_first(data, 'usedAt', 'used_at')),
            expires_at=coerce_timestamp(_first(data, 'expiresAt', 'expires_at')),
            created_at=coerce_timestamp(_first(data, 'createdAt', 'created_at')) or utcnow(),
            updated_at=coerce_timestamp(_first(data, 'updatedAt', 'updated_at')),
            duration_seconds=_first(data, 'durationSeconds', 'duration_seconds'),
            notes=data.get('notes'),
        )

    def __str__(self) -> str:
        return f"Voucher({self.code}, {self.package_key}, {self.used_count}/{self.max_uses})"


@dataclass
class Subscription:
    """
    Date-bounded access for a known user.

    ``suspended`` overrides ``active``: a suspended subscription grants
    no access.
    """
    user_id: str
    package_key: str
    active: bool = True
    suspended: bool = False
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    user: Optional[UserRef] = None
    package_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'userId': self.user_id,
            'user': self.user.to_dict() if self.user else None,
            'packageKey': self.package_key,
            'packageName': self.package_name,
            'active': self.active,
            'suspended': self.suspended,
            'startAt': format_timestamp(self.start_at),
            'endAt': format_timestamp(self.end_at),
            'notes': self.notes,
            'createdAt': format_timestamp(self.created_at),
        }

    def to_payload(self) -> dict:
        data = self.to_dict()
        for key in ('id', 'user', 'createdAt'):
            data.pop(key, None)
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> 'Subscription':
        user_data = data.get('user')
        user_id = _first(data, 'userId', 'user_id', default='')
        if isinstance(user_id, dict):
            # Populated reference
            user_data = user_data or user_id
            user_id = _first(user_id, '_id', 'id', default='')
        return cls(
            id=_first(data, '_id', 'id'),
            user_id=user_id,
            user=UserRef.from_dict(user_data) if isinstance(user_data, dict) else None,
            package_key=_first(data, 'packageKey', 'package_key', default=''),
            package_name=_first(data, 'packageName', 'package_name'),
            active=bool(data.get('active', True)),
            suspended=bool(data.get('suspended', False)),
            start_at=coerce_timestamp(_first(data, 'startAt', 'start_at')),
            end_at=coerce_timestamp(_first(data, 'endAt', 'end_at')),
            notes=data.get('notes'),
            created_at=coerce_timestamp(_first(data, 'createdAt', 'created_at')) or utcnow(),
        )


@dataclass
class Payment:
    """Gateway payment record (display only)"""
    provider: str
    amount_kes: float
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    phone: Optional[str] = None
    package_key: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'provider': self.provider,
            'amountKES': self.amount_kes,
            'status': self.status.value,
            'transactionId': self.transaction_id,
            'phone': self.phone,
            'packageKey': self.package_key,
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Payment':
        return cls(
            id=_first(data, '_id', 'id'),
            provider=data.get('provider', ''),
            amount_kes=float(_first(data, 'amountKES', 'amount_kes', default=0) or 0),
            status=PaymentStatus(data.get('status', PaymentStatus.PENDING.value)),
            transaction_id=_first(data, 'transactionId', 'transaction_id'),
            phone=data.get('phone'),
            package_key=_first(data, 'packageKey', 'package_key'),
            created_at=coerce_timestamp(_first(data, 'createdAt', 'created_at')) or utcnow(),
            updated_at=coerce_timestamp(_first(data, 'updatedAt', 'updated_at')),
        )
