from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.models.base import as_object_id
from bursar.models.enrollment import SchoolClass


class ClassRepository:
    """Class registry: sections, capacity and current enrollment."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.classes

    async def find_by_grade_section(self, grade: str, section: str) -> Optional[SchoolClass]:
        """The active class for a normalized grade ("Grade 7") and section ("B")."""
        doc = await self.collection.find_one({
            "grade": grade,
            "section": section,
            "status": "Active"
        })
        if not doc:
            return None
        return SchoolClass.from_document(doc)

    async def increment_enrollment(self, class_id: str) -> bool:
        oid = as_object_id(class_id)
        if oid is None:
            return False

        result = await self.collection.update_one(
            {"_id": oid},
            {
                "$inc": {"current_students": 1},
                "$set": {"updated_at": datetime.now(timezone.utc)}
            }
        )
        return result.modified_count > 0
