"""Tests for credential stores."""

import keyring
import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from resilient_net._features import require_extra
from resilient_net.credentials import KeyringCredentialStore, MemoryCredentialStore
from resilient_net.errors import StoreError


class TestMemoryCredentialStore:
    """Tests for MemoryCredentialStore."""

    @pytest.mark.asyncio
    async def test_roundtrip(self) -> None:
        """Secrets are stored and removed by reference."""
        store = MemoryCredentialStore()
        await store.set("wifi_password_a", "hunter2")
        assert "wifi_password_a" in store
        assert await store.get("wifi_password_a") == "hunter2"
        assert await store.delete("wifi_password_a")
        assert not await store.delete("wifi_password_a")
        assert len(store) == 0


class TestKeyringCredentialStore:
    """Tests for KeyringCredentialStore with a patched keyring."""

    @pytest.fixture
    def vault(self, monkeypatch: pytest.MonkeyPatch) -> dict:
        secrets: dict[tuple[str, str], str] = {}

        def get_password(service: str, ref: str) -> str | None:
            return secrets.get((service, ref))

        def set_password(service: str, ref: str, secret: str) -> None:
            secrets[(service, ref)] = secret

        def delete_password(service: str, ref: str) -> None:
            if (service, ref) not in secrets:
                raise PasswordDeleteError("not found")
            del secrets[(service, ref)]

        monkeypatch.setattr(keyring, "get_password", get_password)
        monkeypatch.setattr(keyring, "set_password", set_password)
        monkeypatch.setattr(keyring, "delete_password", delete_password)
        return secrets

    @pytest.mark.asyncio
    async def test_roundtrip(self, vault: dict) -> None:
        """Secrets are filed under the service name."""
        store = KeyringCredentialStore(service="test-svc")
        await store.set("wifi_password_a", "hunter2")
        assert vault[("test-svc", "wifi_password_a")] == "hunter2"
        assert await store.get("wifi_password_a") == "hunter2"
        assert await store.delete("wifi_password_a")
        assert await store.get("wifi_password_a") is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, vault: dict) -> None:
        """Deleting an absent secret returns False."""
        assert not await KeyringCredentialStore().delete("nope")

    @pytest.mark.asyncio
    async def test_backend_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Keyring failures surface as StoreError."""

        def locked(service: str, ref: str, secret: str) -> None:
            raise KeyringError("locked")

        monkeypatch.setattr(keyring, "set_password", locked)
        with pytest.raises(StoreError, match="Keyring write failed"):
            await KeyringCredentialStore().set("ref", "secret")


class TestRequireExtra:
    """Tests for require_extra."""

    def test_present(self) -> None:
        """Installed extras pass silently."""
        require_extra("keyring", "keyring")

    def test_missing(self) -> None:
        """Missing extras raise with an install hint."""
        with pytest.raises(ImportError, match=r"resilient-net\[nothing\]"):
            require_extra("nothing", "definitely_not_a_module_xyz")
