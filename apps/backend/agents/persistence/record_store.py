"""
Key-addressed record store used for drafts, presentations and jobs.

Rows are plain JSON-ready dicts. Every row carries ``id``, ``created_at``,
``updated_at`` and an integer ``version`` that the store bumps on each
update. ``update`` accepts an ``expected`` dict of field preconditions;
when the record exists but a precondition does not hold, the store raises
``ConcurrencyConflictError`` instead of silently overwriting.

Two backends share the contract: Supabase (durable) and an in-memory map
(tests, local development, and deployments without database credentials).
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from agents.generation.exceptions import ConcurrencyConflictError, LoadError, SaveError
from setup_logging_optimized import get_logger
from utils.supabase import get_supabase_client, perform_supabase_operation_with_retry, supabase_configured

logger = get_logger(__name__)

Row = Dict[str, Any]

OWNER_FIELD = "user_id"
_MAX_VERSION_RACES = 3


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unmet_preconditions(row: Row, expected: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not expected:
        return {}
    return {key: row.get(key) for key, value in expected.items() if row.get(key) != value}


class RecordStore(ABC):
    """Store contract consumed by the typed draft/presentation/job stores."""

    def __init__(self, table: str, owner_field: str = OWNER_FIELD):
        self.table = table
        self.owner_field = owner_field

    @abstractmethod
    async def get(self, record_id: str, owner_id: Optional[str] = None) -> Optional[Row]:
        ...

    @abstractmethod
    async def create(self, record: Row) -> Row:
        ...

    @abstractmethod
    async def update(self, record_id: str, partial: Row, owner_id: Optional[str] = None,
                     expected: Optional[Dict[str, Any]] = None) -> Optional[Row]:
        """Merge ``partial`` into the record. None means not found or not visible."""
        ...

    @abstractmethod
    async def delete(self, record_id: str, owner_id: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> List[Row]:
        ...

    @abstractmethod
    async def search(self, owner_id: str, query: str, field: str = "title") -> List[Row]:
        ...

    def _stamp_new(self, record: Row) -> Row:
        row = copy.deepcopy(record)
        timestamp = now_iso()
        row.setdefault("created_at", timestamp)
        row.setdefault("updated_at", timestamp)
        row["version"] = row.get("version") or 1
        return row


class InMemoryRecordStore(RecordStore):
    """Dict-backed store; all access is serialized by one asyncio lock."""

    def __init__(self, table: str, owner_field: str = OWNER_FIELD):
        super().__init__(table, owner_field)
        self._rows: Dict[str, Row] = {}
        self._lock = asyncio.Lock()

    def _visible(self, row: Optional[Row], owner_id: Optional[str]) -> bool:
        return row is not None and (owner_id is None or row.get(self.owner_field) == owner_id)

    async def get(self, record_id: str, owner_id: Optional[str] = None) -> Optional[Row]:
        async with self._lock:
            row = self._rows.get(record_id)
            return copy.deepcopy(row) if self._visible(row, owner_id) else None

    async def create(self, record: Row) -> Row:
        row = self._stamp_new(record)
        async with self._lock:
            if row["id"] in self._rows:
                raise SaveError(f"Record {row['id']} already exists in {self.table}")
            self._rows[row["id"]] = row
            return copy.deepcopy(row)

    async def update(self, record_id: str, partial: Row, owner_id: Optional[str] = None,
                     expected: Optional[Dict[str, Any]] = None) -> Optional[Row]:
        async with self._lock:
            row = self._rows.get(record_id)
            if not self._visible(row, owner_id):
                return None
            unmet = _unmet_preconditions(row, expected)
            if unmet:
                raise ConcurrencyConflictError(record_id, expected, unmet)
            updated = {**row, **copy.deepcopy(partial)}
            updated["id"] = record_id
            updated["updated_at"] = now_iso()
            updated["version"] = row.get("version", 1) + 1
            self._rows[record_id] = updated
            return copy.deepcopy(updated)

    async def delete(self, record_id: str, owner_id: Optional[str] = None) -> bool:
        async with self._lock:
            if not self._visible(self._rows.get(record_id), owner_id):
                return False
            del self._rows[record_id]
            return True

    async def list_by_owner(self, owner_id: str) -> List[Row]:
        async with self._lock:
            rows = [copy.deepcopy(r) for r in self._rows.values() if r.get(self.owner_field) == owner_id]
        return sorted(rows, key=lambda r: r.get("updated_at") or "", reverse=True)

    async def search(self, owner_id: str, query: str, field: str = "title") -> List[Row]:
        needle = (query or "").lower()
        rows = await self.list_by_owner(owner_id)
        return [r for r in rows if needle in str(r.get(field) or "").lower()]


class SupabaseRecordStore(RecordStore):
    """Supabase-backed store. SDK calls are blocking, so each runs in a worker thread."""

    async def _run(self, operation, description: str):
        return await asyncio.to_thread(
            perform_supabase_operation_with_retry, operation, f"{self.table} {description}"
        )

    def _select(self, record_id: str, owner_id: Optional[str]):
        query = get_supabase_client().table(self.table).select("*").eq("id", record_id)
        if owner_id is not None:
            query = query.eq(self.owner_field, owner_id)
        return query.limit(1).execute()

    async def get(self, record_id: str, owner_id: Optional[str] = None) -> Optional[Row]:
        try:
            result = await self._run(lambda: self._select(record_id, owner_id), "get")
        except Exception as e:
            raise LoadError(f"Failed to load {self.table} record {record_id}", cause=e) from e
        return result.data[0] if result.data else None

    async def create(self, record: Row) -> Row:
        row = self._stamp_new(record)
        try:
            result = await self._run(
                lambda: get_supabase_client().table(self.table).insert(row).execute(), "insert"
            )
        except Exception as e:
            raise SaveError(f"Failed to create {self.table} record {row.get('id')}", cause=e) from e
        return result.data[0] if result.data else row

    async def update(self, record_id: str, partial: Row, owner_id: Optional[str] = None,
                     expected: Optional[Dict[str, Any]] = None) -> Optional[Row]:
        for _ in range(_MAX_VERSION_RACES):
            current = await self.get(record_id, owner_id)
            if current is None:
                return None
            unmet = _unmet_preconditions(current, expected)
            if unmet:
                raise ConcurrencyConflictError(record_id, expected, unmet)

            changes = {**copy.deepcopy(partial), "updated_at": now_iso(), "version": current.get("version", 1) + 1}

            def operation():
                query = (
                    get_supabase_client().table(self.table).update(changes)
                    .eq("id", record_id)
                    .eq("version", current.get("version", 1))
                )
                for key, value in (expected or {}).items():
                    query = query.eq(key, value)
                if owner_id is not None:
                    query = query.eq(self.owner_field, owner_id)
                return query.execute()

            try:
                result = await self._run(operation, "update")
            except Exception as e:
                raise SaveError(f"Failed to update {self.table} record {record_id}", cause=e) from e
            if result.data:
                return result.data[0]
            logger.info(f"{self.table} record {record_id} changed during update, re-reading")

        raise ConcurrencyConflictError(record_id, expected or {"version": "current"})

    async def delete(self, record_id: str, owner_id: Optional[str] = None) -> bool:
        def operation():
            query = get_supabase_client().table(self.table).delete().eq("id", record_id)
            if owner_id is not None:
                query = query.eq(self.owner_field, owner_id)
            return query.execute()

        try:
            result = await self._run(operation, "delete")
        except Exception as e:
            raise SaveError(f"Failed to delete {self.table} record {record_id}", cause=e) from e
        return bool(result.data)

    async def list_by_owner(self, owner_id: str) -> List[Row]:
        try:
            result = await self._run(
                lambda: get_supabase_client().table(self.table).select("*")
                .eq(self.owner_field, owner_id)
                .order("updated_at", desc=True)
                .execute(),
                "list",
            )
        except Exception as e:
            raise LoadError(f"Failed to list {self.table} records", cause=e) from e
        return result.data or []

    async def search(self, owner_id: str, query: str, field: str = "title") -> List[Row]:
        try:
            result = await self._run(
                lambda: get_supabase_client().table(self.table).select("*")
                .eq(self.owner_field, owner_id)
                .ilike(field, f"%{query}%")
                .order("updated_at", desc=True)
                .execute(),
                "search",
            )
        except Exception as e:
            raise LoadError(f"Failed to search {self.table} records", cause=e) from e
        return result.data or []


def build_record_store(table: str, owner_field: str = OWNER_FIELD) -> RecordStore:
    """Supabase when credentials are configured, otherwise an in-memory map."""
    if supabase_configured():
        logger.info(f"Using Supabase record store for '{table}'")
        return SupabaseRecordStore(table, owner_field)
    logger.warning(f"Supabase not configured; using in-memory record store for '{table}'")
    return InMemoryRecordStore(table, owner_field)
