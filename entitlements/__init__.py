"""
Hotspot Entitlement Engine for Eco Wifi

Manages the records that grant Wi-Fi access:
- Vouchers: redeemable codes, single-use or multi-use
- Subscriptions: date-bounded access for a known user
- Payments: gateway records, read-only

Architecture:
- Status is always derived from stored fields plus the current time
- Bulk issuance and imports submit records strictly one at a time
- Persistence goes through an EntityStore (backend admin API or in-memory)
"""

from entitlements.models import (
    EntityKind,
    VoucherType,
    VoucherStatus,
    SubscriptionStatus,
    PaymentStatus,
    Voucher,
    Subscription,
    Payment,
    UserRef,
)
from entitlements.errors import (
    EntitlementError,
    ValidationError,
    ImportParseError,
    EntityStoreError,
    CodeSpaceExhaustedError,
    VoucherNotFoundError,
    VoucherExhaustedError,
    VoucherUnavailableError,
)
from entitlements.status import (
    derive_voucher_status,
    derive_subscription_status,
    grants_access,
    time_remaining,
    TimeRemaining,
)
from entitlements.codes import CodeTemplate, generate_code
from entitlements.store import (
    EntityStore,
    HttpEntityStore,
    InMemoryEntityStore,
    get_entity_store,
    set_entity_store,
)
from entitlements.bulk_issuer import BulkIssuer, BulkIssueRequest, BatchResult
from entitlements.import_pipeline import ImportPipeline, ImportFormat, ImportResult
from entitlements.export import export_vouchers, write_export
from entitlements.view import ViewQuery, SortOrder, view
from entitlements.vouchers import validate_voucher, create_voucher, duplicate_voucher, find_voucher
from entitlements.redemption import redeem_voucher, RedemptionResult
from entitlements.subscriptions import (
    suspend_subscription,
    activate_subscription,
    subscription_progress,
)

__all__ = [
    # Models
    'EntityKind',
    'VoucherType',
    'VoucherStatus',
    'SubscriptionStatus',
    'PaymentStatus',
    'Voucher',
    'Subscription',
    'Payment',
    'UserRef',
    # Errors
    'EntitlementError',
    'ValidationError',
    'ImportParseError',
    'EntityStoreError',
    'CodeSpaceExhaustedError',
    'VoucherNotFoundError',
    'VoucherExhaustedError',
    'VoucherUnavailableError',
    # Status
    'derive_voucher_status',
    'derive_subscription_status',
    'grants_access',
    'time_remaining',
    'TimeRemaining',
    # Codes
    'CodeTemplate',
    'generate_code',
    # Persistence
    'EntityStore',
    'HttpEntityStore',
    'InMemoryEntityStore',
    'get_entity_store',
    'set_entity_store',
    # Issuance, import, export
    'BulkIssuer',
    'BulkIssueRequest',
    'BatchResult',
    'ImportPipeline',
    'ImportFormat',
    'ImportResult',
    'export_vouchers',
    'write_export',
    # Views
    'ViewQuery',
    'SortOrder',
    'view',
    # Administration
    'validate_voucher',
    'create_voucher',
    'duplicate_voucher',
    'find_voucher',
    'redeem_voucher',
    'RedemptionResult',
    'suspend_subscription',
    'activate_subscription',
    'subscription_progress',
]
