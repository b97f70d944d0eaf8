from pydantic import BaseModel, ConfigDict


class Ballot(BaseModel):
    """Encrypted vote record. Never carries the candidate in the clear."""

    model_config = ConfigDict(frozen=True)

    vote_id: str
    election_id: str
    voter_id: str
    cipher_hex: str
    nonce_hex: str
    tag_hex: str
    created_at: str
    receipt_hash: str


class CastResult(BaseModel):
    vote_id: str
    receipt_hash: str


class ReceiptView(BaseModel):
    election_id: str
    receipt_hash: str
    created_at: str


class ReconciliationEntry(BaseModel):
    vote_id: str
    election_id: str
    stage: str  # "persist" | "tally" | "receipt"
    error: str
    created_at: str
