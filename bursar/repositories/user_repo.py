from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorDatabase

from bursar.core.security import hash_password
from bursar.models.base import as_object_id
from bursar.models.user import UserProfile


class UserRepository:
    """User identity operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    async def create_user(self, profile: UserProfile) -> str:
        """Create a new user and return its id."""
        now = datetime.now(timezone.utc)
        user_dict = {
            "username": profile.username,
            "email": profile.email,
            "name": profile.name,
            "role": profile.role,
            "password_hash": hash_password(profile.password),
            "is_deleted": False,
            "created_at": now,
            "updated_at": now
        }

        result = await self.collection.insert_one(user_dict)
        return str(result.inserted_id)

    async def soft_delete_user(self, user_id: str) -> bool:
        """Soft delete user."""
        oid = as_object_id(user_id)
        if oid is None:
            return False

        result = await self.collection.update_one(
            {"_id": oid},
            {"$set": {
                "is_deleted": True,
                "updated_at": datetime.now(timezone.utc)
            }}
        )
        return result.modified_count > 0
