"""
Entity Store - persistence collaborator

The entitlement engine never talks to a database directly. It goes
through an EntityStore:

    record = await store.create_entity(EntityKind.VOUCHER, {...})
    await store.update_entity(EntityKind.SUBSCRIPTION, sub_id, {"suspended": True})
    records = await store.list_entities(EntityKind.PAYMENT)

Every call is a single attempt; failures raise EntityStoreError and are
never retried here.

Implementations:
- HttpEntityStore: the backend admin REST API (httpx)
- InMemoryEntityStore: process-local store used by tests and offline tooling
"""

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from entitlements.codes import random_body
from entitlements.errors import EntityStoreError
from entitlements.models import EntityKind, format_timestamp, utcnow
from utils.logger import logger


class EntityStore(ABC):
    """Abstract persistence collaborator"""

    @abstractmethod
    async def create_entity(self, kind: EntityKind, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a record and return it as stored"""
        pass

    @abstractmethod
    async def update_entity(self, kind: EntityKind, entity_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update and return the updated record"""
        pass

    @abstractmethod
    async def delete_entity(self, kind: EntityKind, entity_id: str) -> None:
        """Remove a record from subsequent queries"""
        pass

    @abstractmethod
    async def list_entities(self, kind: EntityKind) -> List[Dict[str, Any]]:
        """Fetch the (bounded) collection of records of a kind"""
        pass


# ============================================================================
# HTTP implementation
# ============================================================================

class HttpEntityStore(EntityStore):
    """
    EntityStore backed by the hotspot backend's admin API.

    Endpoints mirror the management console:
        GET    /admin/vouchers
        POST   /admin/vouchers/create
        PUT    /admin/vouchers/{id}
        DELETE /admin/vouchers/{id}
    and the same shape for subscriptions and payments.
    """

    ENDPOINTS = {
        EntityKind.VOUCHER: {
            "list": "/admin/vouchers",
            "create": "/admin/vouchers/create",
            "item": "/admin/vouchers/{id}",
        },
        EntityKind.SUBSCRIPTION: {
            "list": "/admin/subscriptions",
            "create": "/admin/subscriptions",
            "item": "/admin/subscriptions/{id}",
        },
        EntityKind.PAYMENT: {
            "list": "/admin/payments",
            "create": None,  # Payments are written by the gateway callback only
            "item": None,
        },
    }

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._token = token if token is not None else settings.API_TOKEN
        self._timeout = httpx.Timeout(timeout or settings.API_TIMEOUT_SECONDS, connect=5.0)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _endpoint(self, kind: EntityKind, name: str, entity_id: Optional[str] = None) -> str:
        path = self.ENDPOINTS[kind][name]
        if path is None:
            raise EntityStoreError(f"{kind.value} records are read-only")
        return path.format(id=entity_id) if entity_id is not None else path

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise EntityStoreError(f"{method} {path} failed: {e}") from e
        except (TypeError, ValueError) as e:
            # Payload could not be encoded as JSON
            raise EntityStoreError(f"{method} {path} rejected payload: {e}", payload=payload) from e

        if response.status_code >= 400:
            detail = self._error_detail(response)
            raise EntityStoreError(detail, status_code=response.status_code, payload=payload)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise EntityStoreError(f"{method} {path} returned invalid JSON") from e

    async def create_entity(self, kind: EntityKind, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", self._endpoint(kind, "create"), data)

    async def update_entity(self, kind: EntityKind, entity_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", self._endpoint(kind, "item", entity_id), patch)

    async def delete_entity(self, kind: EntityKind, entity_id: str) -> None:
        await self._request("DELETE", self._endpoint(kind, "item", entity_id))

    async def list_entities(self, kind: EntityKind) -> List[Dict[str, Any]]:
        data = await self._request("GET", self._endpoint(kind, "list"))
        if isinstance(data, dict):
            # Some list endpoints wrap results: {"data": [...]}
            data = data.get("data", [])
        return list(data or [])


# ============================================================================
# In-memory implementation
# ============================================================================

class InMemoryEntityStore(EntityStore):
    """
    Process-local EntityStore.

    Enforces the same write-time contracts the backend is expected to:
    voucher codes are globally unique, usedCount stays within
    [0, maxUses] and never decreases.
    """

    SERVER_CODE_LENGTH = 8

    def __init__(self):
        self._records: Dict[EntityKind, Dict[str, Dict[str, Any]]] = {kind: {} for kind in EntityKind}

    def _vouchers(self) -> Dict[str, Dict[str, Any]]:
        return self._records[EntityKind.VOUCHER]

    def _code_taken(self, code: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            record.get("code") == code and record_id != exclude_id
            for record_id, record in self._vouchers().items()
        )

    def _check_voucher(self, record: Dict[str, Any], previous: Optional[Dict[str, Any]] = None):
        try:
            max_uses = int(record.get("maxUses", 1))
            used_count = int(record.get("usedCount", 0))
        except (TypeError, ValueError) as e:
            raise EntityStoreError(f"Invalid usage counters: {e}") from e
        if max_uses < 1:
            raise EntityStoreError("maxUses must be at least 1")
        if used_count < 0 or used_count > max_uses:
            raise EntityStoreError(f"usedCount {used_count} outside 0..{max_uses}")
        if previous is not None and used_count < int(previous.get("usedCount", 0)):
            raise EntityStoreError("usedCount cannot decrease")
        if record.get("type") == "bulk" and max_uses < 2:
            raise EntityStoreError("bulk vouchers must allow multiple uses")

    async def create_entity(self, kind: EntityKind, data: Dict[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(data)
        record_id = record.pop("id", None) or uuid.uuid4().hex
        record["_id"] = record_id
        record.setdefault("createdAt", format_timestamp(utcnow()))

        if kind == EntityKind.VOUCHER:
            if not record.get("code"):
                record["code"] = random_body(self.SERVER_CODE_LENGTH)
            if self._code_taken(record["code"]):
                raise EntityStoreError(f"Voucher code already exists: {record['code']}")
            record.setdefault("type", "single")
            record.setdefault("active", True)
            record.setdefault("maxUses", 1)
            record.setdefault("usedCount", 0)
            self._check_voucher(record)

        self._records[kind][record_id] = record
        return copy.deepcopy(record)

    async def update_entity(self, kind: EntityKind, entity_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        existing = self._records[kind].get(entity_id)
        if existing is None:
            raise EntityStoreError(f"{kind.value} not found: {entity_id}", status_code=404)

        updated = {**existing, **copy.deepcopy(patch)}
        updated["_id"] = entity_id
        updated["updatedAt"] = format_timestamp(utcnow())

        if kind == EntityKind.VOUCHER:
            if updated.get("code") != existing.get("code") and self._code_taken(updated.get("code"), entity_id):
                raise EntityStoreError(f"Voucher code already exists: {updated.get('code')}")
            self._check_voucher(updated, existing)

        self._records[kind][entity_id] = updated
        return copy.deepcopy(updated)

    async def delete_entity(self, kind: EntityKind, entity_id: str) -> None:
        if self._records[kind].pop(entity_id, None) is None:
            raise EntityStoreError(f"{kind.value} not found: {entity_id}", status_code=404)
        logger.debug(f"Deleted {kind.value} {entity_id}")

    async def list_entities(self, kind: EntityKind) -> List[Dict[str, Any]]:
        return [copy.deepcopy(record) for record in self._records[kind].values()]

    def load(self, kind: EntityKind, records: List[Dict[str, Any]]) -> None:
        """Load existing records as-is (e.g. a backend snapshot), keeping their ids"""
        for record in records:
            record = copy.deepcopy(record)
            record_id = record.pop("id", None) or record.get("_id") or uuid.uuid4().hex
            record["_id"] = record_id
            self._records[EntityKind(kind)][record_id] = record
        logger.debug(f"Loaded {len(records)} {EntityKind(kind).value} records")


# Global singleton instance
_entity_store: Optional[EntityStore] = None


def get_entity_store() -> EntityStore:
    """Get the global entity store (HTTP backend by default)"""
    global _entity_store
    if _entity_store is None:
        _entity_store = HttpEntityStore()
    return _entity_store


def set_entity_store(store: Optional[EntityStore]) -> None:
    """Replace the global entity store (tests, offline tooling)"""
    global _entity_store
    _entity_store = store
