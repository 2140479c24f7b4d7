"""
Self-describing record lists.

Persisted payloads are JSON documents of the form::

    {"schema": "backup_networks", "version": 1, "items": [...]}

so a reader can tell what a blob holds without outside context.
"""

from __future__ import annotations

import json
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from resilient_net.errors import StoreError

M = TypeVar("M", bound=BaseModel)

FORMAT_VERSION = 1


def encode_records(schema: str, records: list[BaseModel]) -> bytes:
    """Serialize records into a self-describing JSON document.

    Args:
        schema: Schema name stored alongside the items
        records: Models to serialize

    Returns:
        UTF-8 encoded JSON
    """
    document = {
        "schema": schema,
        "version": FORMAT_VERSION,
        "items": [r.model_dump(mode="json") for r in records],
    }
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def decode_records(schema: str, data: bytes, model: type[M]) -> list[M]:
    """Parse a document written by `encode_records`.

    A bare JSON list is accepted as a version-0 document.

    Args:
        schema: Expected schema name
        data: Raw bytes
        model: Model class for items

    Returns:
        Parsed records

    Raises:
        StoreError: If the payload is malformed or holds another schema
    """
    try:
        document = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StoreError(f"Corrupt '{schema}' payload: {e}", key=schema, cause=e) from e

    if isinstance(document, list):
        items = document
    elif isinstance(document, dict):
        if document.get("schema") != schema:
            raise StoreError(
                f"Expected schema '{schema}', found '{document.get('schema')}'",
                key=schema,
            )
        items = document.get("items", [])
    else:
        raise StoreError(f"Unexpected '{schema}' payload type", key=schema)

    try:
        return [model.model_validate(item) for item in items]
    except PydanticValidationError as e:
        raise StoreError(f"Invalid '{schema}' record: {e}", key=schema, cause=e) from e
