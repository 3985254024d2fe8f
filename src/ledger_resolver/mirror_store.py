"""
Mirror Store module for the local copy of ledger records.

This module provides HMAC-protected JSON storage for domain records. Records
are keyed by name, with a secondary index on identifier; both keys are unique.
Every mutation is written through to disk, and a failed write leaves the
in-memory view unchanged.
"""

import hashlib
import hmac
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .exceptions import PersistenceError, TamperingError
from .models import DomainRecord, utc_now


class MirrorStore:
    """
    Persistent mirror of domain records with HMAC protection.

    Supports find-by-name, find-by-identifier, create, upsert and bulk scan.
    Records handed out are independent copies; callers never share state with
    the store.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        """
        Initialize the mirror store.

        Args:
            file_path: Path to the mirror file (JSON format)
            hmac_secret: Secret key for HMAC computation
        """
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._records: dict[str, dict] = {}
        self._by_identifier: dict[str, str] = {}
        self._last_updated = ""
        self._lock = threading.RLock()

    def load(self) -> int:
        """
        Load records from file and validate HMAC.

        A missing file is an empty mirror.

        Returns:
            Number of records loaded

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read, parsed, or violates
                uniqueness
        """
        if not self._file_path.exists():
            with self._lock:
                self._records = {}
                self._by_identifier = {}
            return 0

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse mirror file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read mirror file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e

        stored_hmac = raw_data.get("hmac", "")
        records = raw_data.get("records", {})
        computed_hmac = self.compute_hmac({
            "version": raw_data.get("version"),
            "records": records,
            "last_updated": raw_data.get("last_updated"),
        })
        if not hmac.compare_digest(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - mirror may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        by_identifier: dict[str, str] = {}
        for name, data in records.items():
            identifier = data.get("identifier")
            if identifier in by_identifier:
                raise PersistenceError(
                    code="duplicate_identifier",
                    message=f"Identifier {identifier} is held by more than one record",
                    details={"names": [by_identifier[identifier], name]},
                )
            by_identifier[identifier] = name

        with self._lock:
            self._records = records
            self._by_identifier = by_identifier
            self._last_updated = raw_data.get("last_updated", "")
            return len(self._records)

    def find_by_name(self, name: str) -> Optional[DomainRecord]:
        with self._lock:
            data = self._records.get(name.lower())
            return DomainRecord.from_dict(data) if data is not None else None

    def find_by_identifier(self, identifier: str) -> Optional[DomainRecord]:
        with self._lock:
            name = self._by_identifier.get(identifier)
            if name is None:
                return None
            return DomainRecord.from_dict(self._records[name])

    def names(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def create(self, record: DomainRecord) -> DomainRecord:
        """
        Insert a new record.

        Raises:
            PersistenceError: If the name or identifier already exists, or
                the write fails
        """
        with self._lock:
            name = record.name.lower()
            if name in self._records:
                raise PersistenceError(
                    code="duplicate_name",
                    message=f"Record already exists: {name}",
                    details={"name": name},
                )
            return self._write(name, record)

    def upsert(self, record: DomainRecord) -> DomainRecord:
        """
        Insert a record or replace the one stored under the same name.

        Raises:
            PersistenceError: If the identifier belongs to another name, or
                the write fails
        """
        with self._lock:
            return self._write(record.name.lower(), record)

    def _write(self, name: str, record: DomainRecord) -> DomainRecord:
        owner_of_identifier = self._by_identifier.get(record.identifier)
        if owner_of_identifier is not None and owner_of_identifier != name:
            raise PersistenceError(
                code="duplicate_identifier",
                message=f"Identifier {record.identifier} already belongs to {owner_of_identifier}",
                details={"name": name, "identifier": record.identifier},
            )

        stored = record.copy()
        stored.name = name
        if not stored.updated_at:
            stored.updated_at = utc_now()

        previous = self._records.get(name)
        records = dict(self._records)
        records[name] = stored.to_dict()
        by_identifier = dict(self._by_identifier)
        if previous is not None:
            by_identifier.pop(previous["identifier"], None)
        by_identifier[stored.identifier] = name

        self._save(records)
        self._records = records
        self._by_identifier = by_identifier
        return stored.copy()

    def _save(self, records: dict[str, dict]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        computed_hmac = self.compute_hmac({
            "version": self.VERSION,
            "records": records,
            "last_updated": now,
        })
        output_data = {
            "version": self.VERSION,
            "records": records,
            "last_updated": now,
            "hmac": computed_hmac,
        }

        # Write beside the target and rename so a failed write never truncates it
        tmp_path = self._file_path.with_name(self._file_path.name + ".tmp")
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(output_data, f, indent=2, sort_keys=True)
            tmp_path.replace(self._file_path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write mirror file: {e}",
                details={"file_path": str(self._file_path)},
            ) from e
        self._last_updated = now

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Args:
            data: Dictionary to compute HMAC over

        Returns:
            Hexadecimal HMAC string
        """
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def file_path(self) -> Path:
        """Get the mirror file path."""
        return self._file_path

    @property
    def last_updated(self) -> str:
        return self._last_updated
