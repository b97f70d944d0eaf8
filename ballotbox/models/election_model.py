from pydantic import BaseModel, Field


class Candidate(BaseModel):
    candidate_id: str
    election_id: str
    name: str = ""


class Election(BaseModel):
    election_id: str
    name: str = Field(default="", examples=["Student Council 2026"])
    is_open: bool = True


class TallyEntry(BaseModel):
    election_id: str
    candidate_id: str
    count: int = Field(..., ge=0)
