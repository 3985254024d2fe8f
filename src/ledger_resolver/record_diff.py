"""
Field-level comparison and patching of domain records.

Scalar fields are compared directly. The opaque ``metadata`` payload and the
``owned_subrecords`` list are compared by their canonical JSON form so that
key order or container identity never registers as a change.
"""

import json
from dataclasses import asdict
from typing import Any, Iterable

from .models import DomainRecord, SubRecord, utc_now


# Mutable fields tracked when the source carries a complete profile
TRACKED_FIELDS = (
    "identifier",
    "address",
    "owner",
    "signer",
    "metadata",
    "rps",
    "is_rented",
    "tenant",
    "rented_at",
    "duration",
    "is_banned",
    "is_candidate",
    "is_domain",
    "missed",
    "offered_at",
    "bid_amount",
    "buyer",
    "balance",
    "bid_target",
    "owned_subrecords",
)

# Fields carried by bulk listing entries
LISTING_FIELDS = (
    "identifier",
    "address",
    "owner",
    "rps",
    "metadata",
    "is_domain",
    "is_banned",
)

_CANONICAL_FIELDS = frozenset({"metadata", "owned_subrecords"})


def canonical_json(value: Any) -> str:
    """Serialize a value to a stable JSON string."""
    if isinstance(value, list):
        value = [asdict(item) if isinstance(item, SubRecord) else item for item in value]
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _field_equal(field_name: str, current: Any, incoming: Any) -> bool:
    if field_name in _CANONICAL_FIELDS:
        return canonical_json(current) == canonical_json(incoming)
    return current == incoming


def compute_changes(
    current: DomainRecord,
    incoming: DomainRecord,
    fields: Iterable[str] = TRACKED_FIELDS,
) -> dict[str, Any]:
    """
    Compute the fields whose incoming value differs from the current one.

    Args:
        current: Record as held by the mirror
        incoming: Record as reported by the ledger
        fields: Names of the fields to compare

    Returns:
        Mapping of changed field name to the incoming value
    """
    changes: dict[str, Any] = {}
    for field_name in fields:
        new_value = getattr(incoming, field_name)
        if not _field_equal(field_name, getattr(current, field_name), new_value):
            changes[field_name] = new_value
    return changes


def apply_changes(record: DomainRecord, changes: dict[str, Any]) -> DomainRecord:
    """
    Return a copy of ``record`` with exactly ``changes`` applied.

    ``updated_at`` is bumped only when at least one field changed.
    """
    patched = record.copy()
    if not changes:
        return patched
    for field_name, value in changes.items():
        if field_name == "owned_subrecords":
            value = [SubRecord.from_dict(asdict(sub)) for sub in value]
        setattr(patched, field_name, value)
    patched.updated_at = utc_now()
    return patched
