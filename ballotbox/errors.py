# ballotbox/errors.py
# Typed errors raised by the ballot lifecycle and its stores
from typing import List, Optional


class VotingError(Exception):
    """Base class. `message` is safe to show to the voter."""

    message = "Vote failed."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ConfigError(VotingError):
    """Fatal startup error: bad or missing configuration."""


class ElectionClosedOrMissing(VotingError):
    message = "Election is closed or not found."


class InvalidCandidate(VotingError):
    message = "Candidate not found in election."


class AlreadyVoted(VotingError):
    message = "You have already voted in this election."


class AuthenticationFailure(VotingError):
    """Ciphertext, nonce or tag failed verification. Treated as data corruption."""

    message = "Ballot failed authentication."


class DuplicateVote(VotingError):
    """Storage-level rejection of a second ballot for the same key."""

    message = "Duplicate ballot."


class TransientStorageFailure(VotingError):
    """Timeout or contention in storage. Safe to retry the whole cast."""


class NotFound(VotingError):
    message = "Receipt not found."


class IncompleteCast(VotingError):
    """
    The ballot was persisted but one or more later stages (tally, receipt)
    failed. The vote is NOT rolled back; one reconciliation entry per failed
    stage has been recorded. `vote_id` lets the voter fetch the receipt later.
    """

    message = "Your vote was recorded but could not be fully confirmed."

    def __init__(self, vote_id: str, stages: List[str]):
        super().__init__()
        self.vote_id = vote_id
        self.stages = list(stages)
