"""
ObligationRepository - expenses, fee collections and payroll records.

All writes go through a version-guarded find_one_and_update so two payments
read against the same snapshot cannot both land.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from bursar.models.base import as_object_id
from bursar.models.obligation import (
    Obligation,
    ObligationKind,
    ObligationRef,
    ObligationStatus,
)


class ObligationRepository:
    """Repository for obligations (money owed)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.obligations

    async def create(self, obligation: Obligation) -> Obligation:
        """Insert a new obligation and return it with its id."""
        now = datetime.now(timezone.utc)
        obligation = obligation.model_copy(update={"created_at": now, "updated_at": now})
        result = await self.collection.insert_one(obligation.to_document())
        return obligation.model_copy(update={"id": str(result.inserted_id)})

    async def get(self, ref: ObligationRef) -> Optional[Obligation]:
        """Get one obligation, or None if the id is unknown or of another kind."""
        oid = as_object_id(ref.id)
        if oid is None:
            return None

        doc = await self.collection.find_one({"_id": oid, "kind": ref.kind.value})
        if not doc:
            return None
        return Obligation.from_document(doc)

    async def list(
        self,
        kind: Optional[ObligationKind] = None,
        status: Optional[ObligationStatus] = None,
        category: Optional[str] = None,
        counterparty_ref: Optional[str] = None,
    ) -> List[Obligation]:
        """List obligations in creation order."""
        query = {}
        if kind is not None:
            query["kind"] = kind.value
        if status is not None:
            query["status"] = status.value
        if category:
            query["category"] = category
        if counterparty_ref:
            query["counterparty_ref"] = counterparty_ref

        docs = await self.collection.find(query).sort([("created_at", 1), ("_id", 1)]).to_list(None)
        return [Obligation.from_document(doc) for doc in docs]

    async def update(
        self, ref: ObligationRef, fields: dict, expected_version: int
    ) -> Optional[Obligation]:
        """
        Set fields if the stored version still equals expected_version.

        Returns the updated obligation, or None when the document is missing or
        another writer got there first.
        """
        oid = as_object_id(ref.id)
        if oid is None:
            return None

        fields = dict(fields)
        fields["updated_at"] = datetime.now(timezone.utc)

        result = await self.collection.find_one_and_update(
            {"_id": oid, "kind": ref.kind.value, "version": expected_version},
            {"$set": fields, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER
        )
        if not result:
            return None
        return Obligation.from_document(result)

    async def apply_payment(
        self,
        ref: ObligationRef,
        paid_amount: Decimal,
        status: ObligationStatus,
        payment_method: str,
        paid_at: datetime,
        expected_version: int,
    ) -> Optional[Obligation]:
        """Write the new paid amount and status computed by the payment service."""
        return await self.update(
            ref,
            {
                "paid_amount": paid_amount,
                "status": status.value,
                "last_payment_method": payment_method,
                "last_paid_at": paid_at,
            },
            expected_version
        )

    async def delete(self, ref: ObligationRef) -> bool:
        oid = as_object_id(ref.id)
        if oid is None:
            return False

        result = await self.collection.delete_one({"_id": oid, "kind": ref.kind.value})
        return result.deleted_count > 0
