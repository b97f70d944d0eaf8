import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ballotbox.errors import (
    AlreadyVoted,
    ElectionClosedOrMissing,
    IncompleteCast,
    InvalidCandidate,
    TransientStorageFailure,
)
from ballotbox.lifecycle import BallotLifecycle
from ballotbox.schemas import CastVoteIn, CastVoteOut, VoteStatusOut
from ballotbox.security import Identity, get_current_voter

logger = logging.getLogger(__name__)

vote_router = APIRouter(prefix="/vote", tags=["Vote"])


def get_lifecycle(request: Request) -> BallotLifecycle:
    return request.app.state.lifecycle


# ------------------------------
# CAST VOTE
# ------------------------------
@vote_router.post("/{election_id}", response_model=CastVoteOut)
def cast_vote(
    election_id: str,
    payload: CastVoteIn,
    identity: Identity = Depends(get_current_voter),
    lifecycle: BallotLifecycle = Depends(get_lifecycle),
):
    """
    Encrypts and records the caller's ballot, returns the vote id and the
    public receipt hash.
    """
    try:
        result = lifecycle.cast_vote(identity.voter_id, election_id, payload.candidate_id)
    except (ElectionClosedOrMissing, InvalidCandidate, AlreadyVoted) as e:
        raise HTTPException(status_code=400, detail=e.message)
    except TransientStorageFailure:
        logger.exception(f"Transient storage failure casting vote in election {election_id}")
        raise HTTPException(status_code=503, detail="Vote failed.")
    except IncompleteCast as e:
        # already logged by the lifecycle with the vote id and stages; the
        # vote_id lets the voter fetch the stored receipt
        raise HTTPException(status_code=500, detail={"message": e.message, "vote_id": e.vote_id})
    except Exception:
        logger.exception(f"Unexpected error casting vote in election {election_id}")
        raise HTTPException(status_code=500, detail="Vote failed.")

    return CastVoteOut(vote_id=result.vote_id, receipt_hash=result.receipt_hash)


# ------------------------------
# CHECK IF USER HAS ALREADY VOTED
# ------------------------------
@vote_router.get("/{election_id}/status", response_model=VoteStatusOut)
def vote_status(
    election_id: str,
    identity: Identity = Depends(get_current_voter),
    lifecycle: BallotLifecycle = Depends(get_lifecycle),
):
    try:
        voted = lifecycle.has_voted(election_id, identity.voter_id)
    except TransientStorageFailure:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry.")
    return VoteStatusOut(election_id=election_id, has_voted=voted)
