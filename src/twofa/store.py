"""File-backed store of per-account 2FA enrollment records.

The whole document sits behind one asyncio.Lock: loading it from disk,
changing it and writing it back happen as a single unit, so two writers
never interleave. The cached map is replaced, never edited in place, and
only after the new document has reached disk.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from twofa.errors import InvalidArgument, PersistenceError
from twofa.models import EnrollmentRecord

logger = logging.getLogger(__name__)

_DOCUMENT = TypeAdapter(dict[str, EnrollmentRecord])

AccountId = UUID | str
Mutator = Callable[[EnrollmentRecord], EnrollmentRecord | None]


def _key(account_id: AccountId) -> str:
    return str(account_id)


class EnrollmentStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._cache: dict[str, EnrollmentRecord] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, account_id: AccountId) -> EnrollmentRecord:
        """Record for an account, or the default (not enrolled) record."""
        records = await self._snapshot()
        record = records.get(_key(account_id))
        return record.model_copy() if record is not None else EnrollmentRecord()

    async def get_all(self) -> dict[str, EnrollmentRecord]:
        records = await self._snapshot()
        return {k: v.model_copy() for k, v in records.items()}

    async def set(self, account_id: AccountId, record: EnrollmentRecord) -> None:
        """Replace the whole record for an account and persist it."""
        stored = record.model_copy()
        await self.update(account_id, lambda _current: stored)

    async def update(self, account_id: AccountId, mutate: Mutator) -> EnrollmentRecord:
        """Read-modify-write one record under the store lock.

        ``mutate`` gets a private copy of the current record and returns the
        replacement, or None to leave the document untouched. Returns the
        record as stored afterwards.
        """
        key = _key(account_id)
        async with self._lock:
            # Past this point the write runs to completion even if the caller
            # is cancelled; the cancellation is re-raised afterwards.
            unit = asyncio.ensure_future(self._apply(key, mutate))
            try:
                return await asyncio.shield(unit)
            except asyncio.CancelledError:
                while not unit.done():
                    try:
                        await asyncio.shield(unit)
                    except asyncio.CancelledError:
                        continue
                raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _snapshot(self) -> dict[str, EnrollmentRecord]:
        if self._cache is not None:
            return self._cache
        async with self._lock:
            return await self._load()

    async def _apply(self, key: str, mutate: Mutator) -> EnrollmentRecord:
        current = await self._load()
        existing = current.get(key)
        replacement = mutate(existing.model_copy() if existing is not None else EnrollmentRecord())
        if replacement is None:
            return existing.model_copy() if existing is not None else EnrollmentRecord()

        try:
            # Re-run the model validators; model_copy and attribute assignment skip them
            replacement = EnrollmentRecord.model_validate(replacement.model_dump())
        except ValidationError as e:
            raise InvalidArgument(f"Invalid enrollment record for account {key}") from e

        updated = dict(current)
        updated[key] = replacement
        await asyncio.to_thread(self._write, updated)
        self._cache = updated
        return replacement.model_copy()

    async def _load(self) -> dict[str, EnrollmentRecord]:
        """Return the cached map, reading it from disk on first use. Lock must be held."""
        if self._cache is None:
            self._cache = await asyncio.to_thread(self._read)
            logger.debug("Loaded %d enrollment records from %s", len(self._cache), self.path)
        return self._cache

    def _read(self) -> dict[str, EnrollmentRecord]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("Failed to read enrollment store %s", self.path, exc_info=True)
            raise PersistenceError(f"Cannot read enrollment store {self.path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            return _DOCUMENT.validate_json(raw)
        except ValidationError as e:
            logger.warning("Enrollment store %s is corrupt", self.path)
            raise PersistenceError(f"Corrupt enrollment store {self.path}") from e

    def _write(self, records: dict[str, EnrollmentRecord]) -> None:
        payload = _DOCUMENT.dump_json(records, indent=2)
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.warning("Failed to write enrollment store %s", self.path, exc_info=True)
            raise PersistenceError(f"Cannot write enrollment store {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_name)
