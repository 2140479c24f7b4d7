"""
Secure credential storage.

Network secrets are referenced elsewhere only through opaque handles; the
secret itself lives in one of these stores:
1. System keyring (optional `keyring` extra)
2. Process memory (tests, ephemeral deployments)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from resilient_net._features import require_extra
from resilient_net.errors import StoreError

DEFAULT_SERVICE = "resilient-net"


class CredentialStore(ABC):
    """Abstract secure credential store keyed by opaque references."""

    @abstractmethod
    async def get(self, ref: str) -> str | None:
        """Get a secret.

        Args:
            ref: Credential reference

        Returns:
            Secret or None if absent
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, ref: str, secret: str) -> None:
        """Store a secret, replacing any previous value.

        Raises:
            StoreError: If the secret cannot be stored
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, ref: str) -> bool:
        """Delete a secret.

        Returns:
            True if deleted, False if not found

        Raises:
            StoreError: If the backend refuses the deletion
        """
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    """Credential store held in process memory."""

    def __init__(self) -> None:
        self._secrets: dict[str, str] = {}

    async def get(self, ref: str) -> str | None:
        return self._secrets.get(ref)

    async def set(self, ref: str, secret: str) -> None:
        self._secrets[ref] = secret

    async def delete(self, ref: str) -> bool:
        return self._secrets.pop(ref, None) is not None

    def __contains__(self, ref: object) -> bool:
        return ref in self._secrets

    def __len__(self) -> int:
        return len(self._secrets)


class KeyringCredentialStore(CredentialStore):
    """Credential store backed by the system keyring.

    Keyring calls block, so they run in a worker thread.

    Example:
        >>> store = KeyringCredentialStore(service="resilient-net")
        >>> await store.set("wifi_password_abc", "hunter2")
    """

    def __init__(self, service: str = DEFAULT_SERVICE) -> None:
        """Initialize keyring store.

        Args:
            service: Keyring service name under which secrets are filed

        Raises:
            ImportError: If the keyring extra is not installed
        """
        require_extra("keyring", "keyring")
        self._service = service

    @property
    def service(self) -> str:
        """Keyring service name."""
        return self._service

    async def get(self, ref: str) -> str | None:
        import keyring
        from keyring.errors import KeyringError

        try:
            return await asyncio.to_thread(keyring.get_password, self._service, ref)
        except KeyringError as e:
            raise StoreError(f"Keyring read failed for '{ref}': {e}", key=ref, cause=e) from e

    async def set(self, ref: str, secret: str) -> None:
        import keyring
        from keyring.errors import KeyringError

        try:
            await asyncio.to_thread(keyring.set_password, self._service, ref, secret)
        except KeyringError as e:
            raise StoreError(f"Keyring write failed for '{ref}': {e}", key=ref, cause=e) from e

    async def delete(self, ref: str) -> bool:
        import keyring
        from keyring.errors import KeyringError, PasswordDeleteError

        try:
            await asyncio.to_thread(keyring.delete_password, self._service, ref)
            return True
        except PasswordDeleteError:
            # Not present
            return False
        except KeyringError as e:
            raise StoreError(f"Keyring delete failed for '{ref}': {e}", key=ref, cause=e) from e
