"""
Entitlement error taxonomy

- ValidationError: field-level problems found before anything is submitted.
  Fatal to the single call.
- ImportParseError: the import source could not be parsed at all.
  Fatal to the whole import.
- EntityStoreError: one create/update/delete call failed after validation.
  Recoverable at the batch level.
"""

from typing import Dict, Optional, Any


class EntitlementError(Exception):
    """Base class for all entitlement engine errors"""
    pass


class ValidationError(EntitlementError):
    """Raised when a request fails field-level validation"""

    def __init__(self, errors: Dict[str, str], message: str = "Validation failed"):
        self.errors = dict(errors)
        self.message = message
        super().__init__(f"{message}: {self.errors}")


class ImportParseError(EntitlementError):
    """Raised when an import source is malformed"""

    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class EntityStoreError(EntitlementError):
    """Raised by the persistence collaborator when a call fails"""

    def __init__(self, detail: str, status_code: Optional[int] = None, payload: Optional[Any] = None):
        self.detail = detail
        self.status_code = status_code
        self.payload = payload
        super().__init__(detail)


class CodeSpaceExhaustedError(EntitlementError):
    """Raised when unique voucher codes cannot be generated for a batch"""
    pass


class VoucherNotFoundError(EntitlementError):
    """Raised when a voucher code does not exist"""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Invalid voucher: {code}")


class VoucherExhaustedError(EntitlementError):
    """Raised when a voucher has no remaining uses"""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Voucher exhausted: {code}")


class VoucherUnavailableError(EntitlementError):
    """Raised when a voucher is expired or inactive"""

    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"Voucher {code} is {reason}")
