import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ballotbox.errors import TransientStorageFailure
from ballotbox.lifecycle import BallotLifecycle
from ballotbox.routes.vote_routes import get_lifecycle
from ballotbox.schemas import CandidateOut, ElectionOut, TallyOut
from ballotbox.security import Identity, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Election"])


@router.get("/elections", response_model=List[ElectionOut])
def list_open_elections(lifecycle: BallotLifecycle = Depends(get_lifecycle)):
    try:
        out = []
        for e in lifecycle.elections.list_open():
            candidates = lifecycle.elections.list_candidates(e.election_id)
            out.append(
                ElectionOut(
                    election_id=e.election_id,
                    name=e.name,
                    candidates=[CandidateOut(candidate_id=c.candidate_id, name=c.name) for c in candidates],
                )
            )
    except TransientStorageFailure:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry.")
    return out


@router.get("/admin/elections/{election_id}/tallies", response_model=List[TallyOut])
def election_tallies(
    election_id: str,
    admin: Identity = Depends(require_admin),
    lifecycle: BallotLifecycle = Depends(get_lifecycle),
):
    """Per-candidate counts, joined with candidate names, sorted by candidate id."""
    try:
        tallies = lifecycle.list_tallies(election_id)
        names = {c.candidate_id: c.name for c in lifecycle.elections.list_candidates(election_id)}
    except TransientStorageFailure:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry.")
    logger.info(f"Admin {admin.voter_id} read tallies for election {election_id}")
    return [
        TallyOut(candidate_id=t.candidate_id, name=names.get(t.candidate_id) or t.candidate_id, count=t.count)
        for t in tallies
    ]
