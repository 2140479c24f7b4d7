"""
Credential storage for backup network secrets.
"""

from resilient_net.credentials.stores import (
    CredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
)

__all__ = [
    "CredentialStore",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
]
