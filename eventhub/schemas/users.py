from datetime import datetime

from pydantic import BaseModel, Field

from eventhub.core.permissions import Role


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    role: Role = Role.USER


class UserSummary(BaseModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None

    class Config:
        from_attributes = True


class UserOut(UserSummary):
    role: Role
    is_active: bool
    created_at: datetime
