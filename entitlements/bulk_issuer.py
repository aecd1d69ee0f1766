"""
Bulk Voucher Issuance

Generates a batch of unique voucher codes and creates one voucher per
code through the entity store.

    issuer = BulkIssuer(store)
    result = await issuer.issue_batch(BulkIssueRequest(package_key="daily", count=50))
    result.codes      # all 50 codes, in generation order
    result.errors     # per-code submission failures

Request validation failures raise ValidationError before anything is
submitted. Individual submission failures are collected, never raised.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from config import settings
from entitlements.codes import CodeTemplate, generate_code
from entitlements.errors import CodeSpaceExhaustedError, ValidationError
from entitlements.models import EntityKind, Voucher, VoucherType
from entitlements.store import EntityStore
from entitlements.submission import SequentialSubmitter
from utils.logger import logger


@dataclass
class BulkIssueRequest:
    """Parameters for a batch of vouchers"""
    package_key: str
    value: float = 0.0
    count: int = 10
    prefix: str = "VOUCHER"
    suffix: Optional[str] = None
    expires_at: Optional[datetime] = None
    active: bool = True
    notes: Optional[str] = None
    max_uses: int = 1
    body_length: int = settings.CODE_BODY_LENGTH

    def validate(self, max_count: int = settings.BULK_MAX_COUNT) -> Dict[str, str]:
        """Return a field -> message map; empty when the request is valid"""
        errors: Dict[str, str] = {}

        if not isinstance(self.package_key, str) or not self.package_key.strip():
            errors["packageKey"] = "Package key is required"

        if (
            isinstance(self.value, bool)
            or not isinstance(self.value, (int, float))
            or not math.isfinite(self.value)
        ):
            errors["value"] = "Value must be a number"
        elif self.value < 0:
            errors["value"] = "Value must be positive"

        if isinstance(self.count, bool) or not isinstance(self.count, int):
            errors["count"] = "Count must be a whole number"
        elif self.count < 1 or self.count > max_count:
            errors["count"] = f"Count must be between 1 and {max_count}"

        if not isinstance(self.prefix, str) or not self.prefix.strip():
            errors["prefix"] = "Prefix is required"

        if isinstance(self.max_uses, bool) or not isinstance(self.max_uses, int) or self.max_uses < 1:
            errors["maxUses"] = "Max uses must be at least 1"

        if isinstance(self.body_length, bool) or not isinstance(self.body_length, int) or self.body_length < 1:
            errors["bodyLength"] = "Code length must be at least 1"

        return errors

    @property
    def voucher_type(self) -> VoucherType:
        # Multi-use vouchers are "bulk"; single-use ones stay "single"
        return VoucherType.BULK if self.max_uses >= 2 else VoucherType.SINGLE

    def template(self) -> CodeTemplate:
        return CodeTemplate(
            prefix=self.prefix.strip(),
            body_length=self.body_length,
            suffix=self.suffix.strip() if self.suffix and self.suffix.strip() else None,
        )


@dataclass
class BatchError:
    """A code whose creation request failed"""
    code: str
    error: str

    def to_dict(self) -> dict:
        return {"code": self.code, "error": self.error}


@dataclass
class BatchResult:
    """Outcome of a bulk issue"""
    codes: List[str] = field(default_factory=list)
    created: List[dict] = field(default_factory=list)
    errors: List[BatchError] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            "codes": list(self.codes),
            "createdCount": self.created_count,
            "errorCount": self.error_count,
            "errors": [e.to_dict() for e in self.errors],
        }


def generate_unique_codes(
    template: CodeTemplate,
    count: int,
    exclude: Optional[Iterable[str]] = None,
    max_collisions: Optional[int] = None,
) -> List[str]:
    """
    Generate ``count`` distinct codes, regenerating on collision.

    Codes in ``exclude`` (e.g. codes already stored) count as collisions.

    Raises:
        CodeSpaceExhaustedError: if the template cannot yield enough codes
    """
    taken: Set[str] = set(exclude or ())
    if max_collisions is None:
        max_collisions = max(count, 1) * settings.BULK_MAX_COLLISION_RETRIES

    if template.distinct_bodies < count:
        raise CodeSpaceExhaustedError(
            f"Template can produce only {template.distinct_bodies} codes, {count} requested"
        )

    codes: List[str] = []
    collisions = 0
    while len(codes) < count:
        code = generate_code(template)
        if code in taken:
            collisions += 1
            if collisions > max_collisions:
                raise CodeSpaceExhaustedError(
                    f"Gave up after {collisions} collisions with {len(codes)}/{count} codes generated"
                )
            continue
        taken.add(code)
        codes.append(code)

    if collisions:
        logger.debug(f"Regenerated {collisions} colliding voucher codes")
    return codes


class BulkIssuer:
    """Orchestrates batch voucher creation"""

    def __init__(self, store: EntityStore, max_count: Optional[int] = None):
        self._store = store
        self._max_count = max_count or settings.BULK_MAX_COUNT

    def _payload(self, request: BulkIssueRequest, code: str) -> dict:
        voucher = Voucher(
            code=code,
            package_key=request.package_key.strip(),
            value=float(request.value),
            type=request.voucher_type,
            active=request.active,
            max_uses=request.max_uses,
            expires_at=request.expires_at,
            notes=request.notes,
        )
        return voucher.to_payload()

    async def issue_batch(
        self,
        request: BulkIssueRequest,
        existing_codes: Optional[Iterable[str]] = None,
    ) -> BatchResult:
        """
        Issue a batch of vouchers.

        Args:
            request: Batch parameters
            existing_codes: Codes already in use, avoided during generation

        Returns:
            BatchResult with every generated code and per-code failures

        Raises:
            ValidationError: request is invalid; nothing was submitted
            CodeSpaceExhaustedError: not enough distinct codes available
        """
        errors = request.validate(self._max_count)
        if errors:
            logger.info(f"Rejected bulk voucher request: {errors}")
            raise ValidationError(errors)

        codes = generate_unique_codes(request.template(), request.count, exclude=existing_codes)

        submitter = SequentialSubmitter(self._store, EntityKind.VOUCHER)
        for index, code in enumerate(codes):
            submitter.enqueue(self._payload(request, code), index=index)
        outcomes = await submitter.run()

        result = BatchResult(codes=codes)
        for outcome in outcomes:
            if outcome.ok:
                result.created.append(outcome.record)
            else:
                result.errors.append(BatchError(code=outcome.payload["code"], error=outcome.error))

        logger.info(
            f"Bulk issued {result.created_count}/{len(codes)} vouchers "
            f"for package {request.package_key.strip()}"
        )
        return result
