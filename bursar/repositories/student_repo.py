from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.models.enrollment import Student


class StudentRepository:
    """Student records created by admission approval."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.students

    async def create(self, student: Student) -> str:
        """Insert a student linked to its user and class; returns the new id."""
        now = datetime.now(timezone.utc)
        student = student.model_copy(update={"created_at": now, "updated_at": now})
        result = await self.collection.insert_one(student.to_document())
        return str(result.inserted_id)
