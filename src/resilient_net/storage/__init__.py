"""
Storage module for resilient-net.

Durable key-value persistence for the backup network catalogue and the
dispatcher's active set.
"""

from resilient_net.storage.backends import FileStore, KeyValueStore, MemoryStore
from resilient_net.storage.codec import decode_records, encode_records

__all__ = [
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "decode_records",
    "encode_records",
]
