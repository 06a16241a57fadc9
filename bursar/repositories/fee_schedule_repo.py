from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from bursar.models.enrollment import FeeSchedule


class FeeScheduleRepository:
    """Admission and tuition fee amounts per grade."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.fee_schedules

    async def get_by_grade(self, grade: str) -> Optional[FeeSchedule]:
        doc = await self.collection.find_one({"grade": grade})
        if not doc:
            return None
        return FeeSchedule.from_document(doc)

    async def list(self) -> List[FeeSchedule]:
        docs = await self.collection.find({}).sort("grade", 1).to_list(None)
        return [FeeSchedule.from_document(doc) for doc in docs]

    async def upsert(self, schedule: FeeSchedule) -> FeeSchedule:
        """Create or replace the schedule for schedule.grade."""
        now = datetime.now(timezone.utc)
        result = await self.collection.find_one_and_update(
            {"grade": schedule.grade},
            {
                "$set": {
                    "admission_fee": schedule.admission_fee,
                    "tuition_fee": schedule.tuition_fee,
                    "updated_at": now
                },
                "$setOnInsert": {"created_at": now}
            },
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return FeeSchedule.from_document(result)
