"""
LedgerRepository - append-only transaction records.

There is deliberately no update or delete here: entries are written once.
Reads return entries in insertion order (ObjectId order).
"""

from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.models.base import as_object_id
from bursar.models.ledger import LedgerEntry, LedgerFilter
from bursar.models.obligation import ObligationRef


class LedgerRepository:
    """Repository for ledger entries (monetary events)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.transactions

    async def create(self, entry: LedgerEntry) -> LedgerEntry:
        """Insert an entry and return it with its id."""
        now = datetime.now(timezone.utc)
        entry = entry.model_copy(update={"created_at": now, "updated_at": now})
        result = await self.collection.insert_one(entry.to_document())
        return entry.model_copy(update={"id": str(result.inserted_id)})

    async def get(self, entry_id: str) -> Optional[LedgerEntry]:
        oid = as_object_id(entry_id)
        if oid is None:
            return None

        doc = await self.collection.find_one({"_id": oid})
        if not doc:
            return None
        return LedgerEntry.from_document(doc)

    async def list_all(self, ledger_filter: Optional[LedgerFilter] = None) -> List[LedgerEntry]:
        """All entries matching the filter, oldest first."""
        query = ledger_filter.to_query() if ledger_filter else {}
        docs = await self.collection.find(query).sort("_id", 1).to_list(None)
        return [LedgerEntry.from_document(doc) for doc in docs]

    async def list_by_obligation(self, ref: ObligationRef) -> List[LedgerEntry]:
        """Entries linked to one obligation, oldest first."""
        return await self.list_all(LedgerFilter(obligation=ref))

    async def count_by_obligation(self, ref: ObligationRef) -> int:
        return await self.collection.count_documents(LedgerFilter(obligation=ref).to_query())
