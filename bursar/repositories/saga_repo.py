from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.models.base import as_object_id
from bursar.models.enrollment import EnrollmentSaga, SagaState


class SagaRepository:
    """Persisted enrollment saga state, one record per approval."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db.enrollment_sagas

    async def save(self, saga: EnrollmentSaga) -> EnrollmentSaga:
        """Insert on first save, replace afterwards."""
        saga = saga.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        if saga.id is None:
            result = await self.collection.insert_one(saga.to_document())
            return saga.model_copy(update={"id": str(result.inserted_id)})

        await self.collection.replace_one({"_id": as_object_id(saga.id)}, saga.to_document())
        return saga

    async def get(self, saga_id: str) -> Optional[EnrollmentSaga]:
        oid = as_object_id(saga_id)
        if oid is None:
            return None

        doc = await self.collection.find_one({"_id": oid})
        if not doc:
            return None
        return EnrollmentSaga.from_document(doc)

    async def find_by_admission(self, admission_id: str) -> Optional[EnrollmentSaga]:
        """A saga for this admission that did not abort, if any."""
        doc = await self.collection.find_one({
            "admission_id": admission_id,
            "state": {"$ne": SagaState.ABORTED.value}
        })
        if not doc:
            return None
        return EnrollmentSaga.from_document(doc)
