"""
Network attachment collaborator.

Associating with a WiFi network is platform specific; implementations
wrap whatever the host offers. Platforms that cannot attach
programmatically use UnsupportedAttacher, and failover degrades to
asking the user to join the network by hand.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from resilient_net.errors import NotSupportedError


class NetworkAttacher(ABC):
    """Abstract network attachment primitive."""

    @property
    def supported(self) -> bool:
        """Whether programmatic association is available."""
        return True

    @abstractmethod
    async def associate(self, name: str, credential: str | None) -> bool:
        """Attach to a network.

        Args:
            name: Network name (SSID)
            credential: Passphrase, or None for an open network

        Returns:
            True if the platform accepted the association request

        Raises:
            AssociationError: If the attempt failed outright
        """
        ...

    @abstractmethod
    async def current_network(self) -> str | None:
        """Get the name of the currently attached network, if known."""
        ...


class UnsupportedAttacher(NetworkAttacher):
    """Attacher for platforms without programmatic association."""

    @property
    def supported(self) -> bool:
        return False

    async def associate(self, name: str, credential: str | None) -> bool:
        raise NotSupportedError(
            f"Cannot attach to '{name}' on this platform"
        ).with_hint("Join the network manually from the system settings")

    async def current_network(self) -> str | None:
        return None
