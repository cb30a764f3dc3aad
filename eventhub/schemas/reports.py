from pydantic import BaseModel


class ReportOut(BaseModel):
    total_events: int
    total_capacity: int
    total_participants: int

    class Config:
        from_attributes = True
