"""
Network state and backup network models.

NetworkState is an immutable snapshot replaced wholesale on every change;
BackupNetwork is the durable catalogue record used for failover.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AttachmentType(str, Enum):
    """Kind of link the host is currently attached through."""

    NONE = "none"
    CELLULAR = "cellular"
    WIFI = "wifi"
    ETHERNET = "ethernet"
    OTHER = "other"


class QualityClass(str, Enum):
    """Coarse connectivity-health bucket."""

    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    DISCONNECTED = "disconnected"
    SWITCHING = "switching"

    @property
    def allows_direct_call(self) -> bool:
        """Whether a direct (unqueued) call is worth attempting."""
        return self in (QualityClass.EXCELLENT, QualityClass.GOOD)


class NetworkState(BaseModel):
    """Immutable snapshot of the host's connectivity.

    Attributes:
        attachment: Link type
        connected: Whether a link is up
        internet_reachable: True/False, or None when the platform cannot tell
        cellular_generation: Cellular generation hint ("2g" .. "5g")
        wifi_strength: WiFi signal strength hint, 0-100
        observed_at: Time the snapshot was taken
    """

    model_config = ConfigDict(frozen=True)

    attachment: AttachmentType = Field(default=AttachmentType.NONE)
    connected: bool = Field(default=False)
    internet_reachable: bool | None = Field(default=None)
    cellular_generation: str | None = Field(default=None)
    wifi_strength: int | None = Field(default=None, ge=0, le=100)
    observed_at: float = Field(default_factory=time.time)

    @property
    def is_reachable(self) -> bool:
        """Connected and not known to be cut off from the internet."""
        return self.connected and self.internet_reachable is not False

    @classmethod
    def disconnected(cls) -> NetworkState:
        """Create a snapshot for a host with no link."""
        return cls(attachment=AttachmentType.NONE, connected=False, internet_reachable=False)

    @classmethod
    def online(
        cls,
        attachment: AttachmentType = AttachmentType.WIFI,
        **hints: object,
    ) -> NetworkState:
        """Create a snapshot for a host with a reachable link."""
        return cls(attachment=attachment, connected=True, internet_reachable=True, **hints)


class BackupNetwork(BaseModel):
    """A backup network profile in the failover catalogue.

    `id` is unique and stable across upserts; `name` is the natural key.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    priority_rank: int = Field(default=1)
    secure: bool = Field(default=False)
    credential_ref: str | None = Field(default=None)
    created_at: float = Field(default_factory=time.time)

    @property
    def sort_key(self) -> tuple[int, float]:
        """Sort key giving priority desc, then created_at asc."""
        return (-self.priority_rank, self.created_at)
