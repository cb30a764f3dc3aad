from datetime import datetime

from pydantic import BaseModel, Field


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: str | None = None


class TagSummary(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class TagOut(TagSummary):
    description: str | None = None
    created_by: int
    created_at: datetime
