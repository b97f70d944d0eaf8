from typing import List

from pydantic import BaseModel, Field


class CastVoteIn(BaseModel):
    candidate_id: str = Field(default="", examples=["c1"])


class CastVoteOut(BaseModel):
    vote_id: str
    receipt_hash: str


class VoteStatusOut(BaseModel):
    election_id: str
    has_voted: bool


class ReceiptOut(BaseModel):
    election_id: str
    receipt_hash: str
    created_at: str


class TallyOut(BaseModel):
    candidate_id: str
    name: str  # falls back to candidate_id when the candidate has no name
    count: int


class CandidateOut(BaseModel):
    candidate_id: str
    name: str


class ElectionOut(BaseModel):
    election_id: str
    name: str
    candidates: List[CandidateOut]
