"""备用网络目录：按优先级排序的持久化备用网络列表。

Backup network catalogue.

Records live in the key-value store as one self-describing document;
passphrases live in the credential store under an opaque reference. A
mutation touching both is transactional: if the durable write of one
side fails, the other is rolled back before the StoreError is raised, so
no credential is left without its record.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from resilient_net.errors import NotSupportedError, StoreError, ValidationError
from resilient_net.storage.codec import decode_records, encode_records
from resilient_net.telemetry.logger import get_logger
from resilient_net.types.network import BackupNetwork

if TYPE_CHECKING:
    from resilient_net.credentials.stores import CredentialStore
    from resilient_net.failover.attach import NetworkAttacher
    from resilient_net.storage.backends import KeyValueStore

logger = get_logger("resilient_net.failover.store")

STORAGE_KEY = "wifi_backup_networks"
SCHEMA = "backup_networks"
CREDENTIAL_PREFIX = "wifi_password_"

_DAY_SECONDS = 86400.0
# Networks added within this many days get a score bonus
_RECENT_DAYS = 7
# Networks older than this many days get a score penalty
_STALE_DAYS = 30
# Rank at or above which a network is recommended
_RECOMMENDED_RANK = 3


@dataclass(frozen=True)
class NetworkRecommendation:
    """A scored backup network.

    Attributes:
        network: Record snapshot
        score: rank * 10, +5 if recent, -2 if stale, floored at 0
        recommended: Whether the rank is high enough to recommend
    """

    network: BackupNetwork
    score: int
    recommended: bool


def credential_ref_for(network_id: str) -> str:
    """Credential store reference for a network id."""
    return f"{CREDENTIAL_PREFIX}{network_id}"


def score_network(network: BackupNetwork, now: float | None = None) -> int:
    """Score a backup network for recommendations."""
    now = now if now is not None else time.time()
    score = network.priority_rank * 10
    age_days = (now - network.created_at) / _DAY_SECONDS
    if age_days < _RECENT_DAYS:
        score += 5
    if age_days > _STALE_DAYS:
        score -= 2
    return max(0, score)


class BackupNetworkStore:
    """Durable, priority-ordered catalogue of backup networks.

    `list()` is ordered by `priority_rank` descending, then `created_at`
    ascending, and is recomputed after every mutation.

    Example:
        >>> store = BackupNetworkStore(FileStore("~/.resilient-net"), KeyringCredentialStore())
        >>> await store.load()
        >>> await store.add("Home", "secret", priority_rank=3)
        >>> [n.name for n in store.list()]
        ['Home']
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        credentials: CredentialStore,
        *,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        """Initialize the catalogue.

        Args:
            kv_store: Durable storage for the record list
            credentials: Secure storage for passphrases
            storage_key: Key holding the record list
        """
        self._kv = kv_store
        self._credentials = credentials
        self._storage_key = storage_key
        self._networks: list[BackupNetwork] = []
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        """Check if `load()` has completed."""
        return self._loaded

    async def load(self) -> list[BackupNetwork]:
        """Restore the catalogue from durable storage.

        Returns:
            Ordered records

        Raises:
            StoreError: If the stored document is unreadable
        """
        async with self._lock:
            data = await self._kv.get(self._storage_key)
            networks = (
                decode_records(SCHEMA, data, BackupNetwork) if data is not None else []
            )
            self._networks = self._ordered(networks)
            self._loaded = True
        logger.info("Loaded backup networks", count=len(self._networks))
        return self.list()

    def list(self) -> list[BackupNetwork]:
        """Get all records in failover order."""
        return [n.model_copy() for n in self._networks]

    def get(self, network_id: str) -> BackupNetwork | None:
        """Get a record by id."""
        for network in self._networks:
            if network.id == network_id:
                return network.model_copy()
        return None

    def find(self, name: str) -> BackupNetwork | None:
        """Get a record by name."""
        name = name.strip()
        for network in self._networks:
            if network.name == name:
                return network.model_copy()
        return None

    def __len__(self) -> int:
        return len(self._networks)

    async def add(
        self,
        name: str,
        secret: str | None = None,
        priority_rank: int = 1,
    ) -> BackupNetwork:
        """Add a network, or replace the one with the same name.

        Re-adding keeps the existing `id` and `created_at` and replaces the
        rank and credential. Re-adding without a secret makes the network
        open and drops its stored credential.

        Args:
            name: Network name (natural key)
            secret: Passphrase, or None for an open network
            priority_rank: Higher ranks are tried first

        Returns:
            The stored record

        Raises:
            ValidationError: If the name is empty
            StoreError: If either write fails (both sides rolled back)
        """
        name = name.strip()
        if not name:
            raise ValidationError("Network name must not be empty", field="name", actual=name)
        secret = secret.strip() if secret else None
        secret = secret or None

        async with self._lock:
            existing = next((n for n in self._networks if n.name == name), None)
            network_id = existing.id if existing else uuid.uuid4().hex
            ref = credential_ref_for(network_id)
            record = BackupNetwork(
                id=network_id,
                name=name,
                priority_rank=priority_rank,
                secure=secret is not None,
                credential_ref=ref if secret is not None else None,
                created_at=existing.created_at if existing else time.time(),
            )

            previous_secret: str | None = None
            if secret is not None:
                previous_secret = await self._credentials.get(ref)
                await self._credentials.set(ref, secret)

            networks = self._ordered(
                [n for n in self._networks if n.id != network_id] + [record]
            )
            try:
                await self._persist(networks)
            except StoreError:
                if secret is not None:
                    await self._restore_credential(ref, previous_secret)
                raise
            self._networks = networks

            if secret is None and existing is not None and existing.credential_ref:
                await self._drop_stale_credential(existing.credential_ref)

        logger.info(
            "Backup network saved",
            network=name,
            priority_rank=priority_rank,
            secure=record.secure,
            updated=existing is not None,
        )
        return record.model_copy()

    async def remove(self, network_id: str) -> BackupNetwork:
        """Delete a record and its credential.

        Returns:
            The removed record

        Raises:
            ValidationError: If the id is unknown
            StoreError: If either write fails (both sides rolled back)
        """
        async with self._lock:
            record = self._require(network_id)
            previous_secret: str | None = None
            if record.credential_ref:
                previous_secret = await self._credentials.get(record.credential_ref)
                await self._credentials.delete(record.credential_ref)

            networks = [n for n in self._networks if n.id != network_id]
            try:
                await self._persist(networks)
            except StoreError:
                if record.credential_ref and previous_secret is not None:
                    await self._restore_credential(record.credential_ref, previous_secret)
                raise
            self._networks = networks

        logger.info("Backup network removed", network=record.name)
        return record.model_copy()

    async def update_priority(self, network_id: str, priority_rank: int) -> BackupNetwork:
        """Change the rank of a record.

        Raises:
            ValidationError: If the id is unknown
            StoreError: If the write fails (catalogue unchanged)
        """
        async with self._lock:
            record = self._require(network_id)
            updated = record.model_copy(update={"priority_rank": priority_rank})
            networks = self._ordered(
                [n for n in self._networks if n.id != network_id] + [updated]
            )
            await self._persist(networks)
            self._networks = networks

        logger.info(
            "Backup network priority updated",
            network=updated.name,
            priority_rank=priority_rank,
        )
        return updated.model_copy()

    async def resolve_credential(self, network: BackupNetwork) -> str | None:
        """Fetch the passphrase of a record, if it has one."""
        if not network.credential_ref:
            return None
        return await self._credentials.get(network.credential_ref)

    def recommendations(self, now: float | None = None) -> list[NetworkRecommendation]:
        """Score every record, best first."""
        scored = [
            NetworkRecommendation(
                network=n.model_copy(),
                score=score_network(n, now),
                recommended=n.priority_rank >= _RECOMMENDED_RANK,
            )
            for n in self._networks
        ]
        return sorted(scored, key=lambda r: r.score, reverse=True)

    async def save_current_as_backup(
        self,
        attacher: NetworkAttacher,
        priority_rank: int = 1,
    ) -> BackupNetwork:
        """Save the currently attached network as an open backup.

        An already catalogued network only has its rank updated, so a
        stored credential is kept.

        Raises:
            NotSupportedError: If the current network cannot be determined
        """
        name = await attacher.current_network()
        if not name:
            raise NotSupportedError("No current network information available")
        existing = self.find(name)
        if existing is not None:
            return await self.update_priority(existing.id, priority_rank)
        return await self.add(name, None, priority_rank)

    def _require(self, network_id: str) -> BackupNetwork:
        for network in self._networks:
            if network.id == network_id:
                return network
        raise ValidationError(
            f"Unknown backup network '{network_id}'", field="id", actual=network_id
        )

    @staticmethod
    def _ordered(networks: list[BackupNetwork]) -> list[BackupNetwork]:
        return sorted(networks, key=lambda n: n.sort_key)

    async def _persist(self, networks: list[BackupNetwork]) -> None:
        await self._kv.set(self._storage_key, encode_records(SCHEMA, list(networks)))

    async def _restore_credential(self, ref: str, previous: str | None) -> None:
        try:
            if previous is None:
                await self._credentials.delete(ref)
            else:
                await self._credentials.set(ref, previous)
        except StoreError:
            logger.exception("Credential rollback failed", credential_ref=ref)

    async def _drop_stale_credential(self, ref: str) -> None:
        try:
            await self._credentials.delete(ref)
        except StoreError:
            logger.exception("Could not delete credential of an opened network", credential_ref=ref)
