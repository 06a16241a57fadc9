from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserProfile(BaseModel):
    """Identity to create for a newly enrolled student."""
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    role: str = "student"
    password: str = Field(..., min_length=8)


class Actor(BaseModel):
    """Caller resolved from the bearer token."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: str
