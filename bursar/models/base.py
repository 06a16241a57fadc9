from datetime import datetime, timezone
from typing import Annotated, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, Field, ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


def as_object_id(value: str | ObjectId | None) -> Optional[ObjectId]:
    """Parse a string id, returning None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class MongoModel(BaseModel):
    """
    Base for documents persisted in their own collection.

    ``id`` is kept as a string in Python and read from / written to ``_id``.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        from_attributes=True
    )

    id: Optional[str] = Field(default=None, validation_alias="_id", serialization_alias="_id")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_document(cls, doc: dict):
        """Build a model from a raw MongoDB document."""
        doc = dict(doc)
        if "_id" in doc:
            doc["_id"] = str(doc["_id"])
        return cls(**doc)

    def to_document(self) -> dict:
        """Dump for insertion; ``_id`` is left to MongoDB."""
        return self.model_dump(exclude={"id"})
