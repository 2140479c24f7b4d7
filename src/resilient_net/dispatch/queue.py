"""
In-memory active set of pending requests and its durable snapshot.

The active set holds every non-terminal PendingRequest. Ordering is
always derived (priority tier descending, then `created_at` ascending),
never stored, so every observation sees the same order.
"""

from __future__ import annotations

import time
from collections.abc import Collection, Iterator
from typing import TYPE_CHECKING

from resilient_net.storage.codec import decode_records, encode_records
from resilient_net.types.request import PendingRequest, RequestStatus

if TYPE_CHECKING:
    from resilient_net.storage.backends import KeyValueStore

SCHEMA = "pending_requests"


class ActiveSet:
    """Non-terminal requests keyed by id."""

    def __init__(self, requests: list[PendingRequest] | None = None) -> None:
        self._items: dict[str, PendingRequest] = {}
        for request in requests or []:
            self._items[request.id] = request

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._items

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(self.ordered())

    def ordered(self) -> list[PendingRequest]:
        """Requests in dispatch order."""
        return sorted(self._items.values(), key=lambda r: r.order_key)

    def get(self, request_id: str) -> PendingRequest | None:
        return self._items.get(request_id)

    def add(self, request: PendingRequest) -> None:
        self._items[request.id] = request

    def remove(self, request_id: str) -> PendingRequest | None:
        return self._items.pop(request_id, None)

    def clear(self) -> list[PendingRequest]:
        """Remove everything.

        Returns:
            The removed requests in dispatch order
        """
        removed = self.ordered()
        self._items.clear()
        return removed

    def replace(self, requests: list[PendingRequest]) -> None:
        self._items = {r.id: r for r in requests}

    def enforce_capacity(self, capacity: int) -> list[PendingRequest]:
        """Drop the tail of the dispatch order beyond `capacity`.

        The tail holds the lowest tier and, within it, the newest requests.

        Returns:
            Evicted requests
        """
        if len(self._items) <= capacity:
            return []
        evicted = self.ordered()[capacity:]
        for request in evicted:
            del self._items[request.id]
        return evicted

    def purge_expired(
        self,
        horizon_seconds: float,
        now: float | None = None,
        *,
        exclude: str | None = None,
    ) -> list[PendingRequest]:
        """Remove requests older than the retention horizon.

        Removed requests are marked expired.

        Args:
            horizon_seconds: Retention horizon
            now: Reference time
            exclude: Id of a request currently in flight

        Returns:
            Expired requests
        """
        now = now if now is not None else time.time()
        expired = [
            r
            for r in self.ordered()
            if r.id != exclude and r.is_expired(horizon_seconds, now)
        ]
        for request in expired:
            request.status = RequestStatus.EXPIRED
            del self._items[request.id]
        return expired

    def recover_stale(self, exclude: str | None = None) -> list[PendingRequest]:
        """Reset `in_progress` requests that are not actually in flight.

        Returns:
            The reset requests
        """
        stale = [
            r
            for r in self._items.values()
            if r.status == RequestStatus.IN_PROGRESS and r.id != exclude
        ]
        for request in stale:
            request.status = RequestStatus.PENDING
        return stale

    def next_eligible(
        self,
        horizon_seconds: float,
        now: float | None = None,
        exclude: Collection[str] = (),
    ) -> PendingRequest | None:
        """Pick the next request to dispatch.

        Eligible requests are pending, have attempts left, are not expired,
        have no backoff still running and are not in `exclude`. The first
        eligible one in dispatch order wins.
        """
        now = now if now is not None else time.time()
        for request in self.ordered():
            if (
                request.id not in exclude
                and request.status == RequestStatus.PENDING
                and not request.attempts_exhausted
                and not request.is_expired(horizon_seconds, now)
                and request.is_due(now)
            ):
                return request
        return None

    def backing_off(self, now: float | None = None) -> list[PendingRequest]:
        """Pending requests whose backoff has not elapsed yet."""
        now = now if now is not None else time.time()
        return [
            r
            for r in self.ordered()
            if r.status == RequestStatus.PENDING and not r.is_due(now)
        ]

    def status_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for request in self._items.values():
            counts[request.status.value] = counts.get(request.status.value, 0) + 1
        return counts

    def oldest_created_at(self) -> float | None:
        if not self._items:
            return None
        return min(r.created_at for r in self._items.values())


class QueueSnapshotStore:
    """Reads and writes the active set as one self-describing document."""

    def __init__(self, kv_store: KeyValueStore, key: str) -> None:
        self._kv = kv_store
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    async def save(self, requests: list[PendingRequest]) -> None:
        """Persist the full active set.

        Raises:
            StoreError: If the write fails
        """
        await self._kv.set(self._key, encode_records(SCHEMA, list(requests)))

    async def load(self) -> list[PendingRequest]:
        """Read the persisted active set.

        Raises:
            StoreError: If the document is unreadable
        """
        data = await self._kv.get(self._key)
        if data is None:
            return []
        return decode_records(SCHEMA, data, PendingRequest)
