"""
Sequential Submission Queue

Bulk issuance and imports push many creation requests through the
persistence collaborator. They go through this queue, which runs them
strictly one at a time in enqueue order and captures a per-item outcome.
A failed item never stops the ones behind it.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from entitlements.errors import EntityStoreError
from entitlements.models import EntityKind
from entitlements.store import EntityStore
from utils.logger import logger


@dataclass
class SubmissionOutcome:
    """Result of one creation request"""
    index: int  # Caller-supplied position (batch index or source line)
    payload: Dict[str, Any]
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SequentialSubmitter:
    """
    Bounded sequential task queue over EntityStore.create_entity.

    Only one submission is in flight at any time, so server load stays
    predictable and outcomes come back in the order items were enqueued.
    """

    def __init__(self, store: EntityStore, kind: EntityKind):
        self._store = store
        self._kind = kind
        self._pending: Deque[SubmissionOutcome] = deque()

    def enqueue(self, payload: Dict[str, Any], index: Optional[int] = None) -> None:
        """Queue a creation request; ``index`` defaults to queue position"""
        if index is None:
            index = len(self._pending)
        self._pending.append(SubmissionOutcome(index=index, payload=payload))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def run(self) -> List[SubmissionOutcome]:
        """Drain the queue, returning one outcome per item in order"""
        outcomes: List[SubmissionOutcome] = []

        while self._pending:
            item = self._pending.popleft()
            try:
                item.record = await self._store.create_entity(self._kind, item.payload)
            except EntityStoreError as e:
                item.error = e.detail
                logger.warning(f"Failed to create {self._kind.value} #{item.index}: {e.detail}")
            outcomes.append(item)

        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        logger.info(
            f"Submitted {len(outcomes)} {self._kind.value} records: "
            f"{succeeded} created, {len(outcomes) - succeeded} failed"
        )
        return outcomes
