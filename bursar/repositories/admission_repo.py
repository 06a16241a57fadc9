from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.models.base import as_object_id
from bursar.models.enrollment import Admission, AdmissionStatus


class AdmissionRepository:
    """Admission applications awaiting approval."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.admissions

    async def get(self, admission_id: str) -> Optional[Admission]:
        oid = as_object_id(admission_id)
        if oid is None:
            return None

        doc = await self.collection.find_one({"_id": oid})
        if not doc:
            return None
        return Admission.from_document(doc)

    async def mark_approved(self, admission_id: str, student_id: str) -> bool:
        """Flag the application approved and link it to the created student."""
        oid = as_object_id(admission_id)
        if oid is None:
            return False

        result = await self.collection.update_one(
            {"_id": oid},
            {"$set": {
                "status": AdmissionStatus.APPROVED.value,
                "student_id": student_id,
                "updated_at": datetime.now(timezone.utc)
            }}
        )
        return result.modified_count > 0
