from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ballotbox.errors import NotFound, TransientStorageFailure
from ballotbox.lifecycle import BallotLifecycle
from ballotbox.routes.vote_routes import get_lifecycle
from ballotbox.schemas import ReceiptOut
from ballotbox.security import Identity, get_current_voter

receipt_router = APIRouter(tags=["Receipt"])


@receipt_router.get("/receipt/{vote_id}", response_model=ReceiptOut)
def get_receipt(
    vote_id: str,
    identity: Identity = Depends(get_current_voter),
    lifecycle: BallotLifecycle = Depends(get_lifecycle),
):
    """Only the voter who cast the ballot can see its receipt."""
    try:
        view = lifecycle.get_receipt(vote_id, identity.voter_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except TransientStorageFailure:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry.")
    return ReceiptOut(**view.model_dump())


# Public: a receipt hash alone says nothing about the choice
@receipt_router.get("/public/receipts", response_model=List[str])
def public_receipts(lifecycle: BallotLifecycle = Depends(get_lifecycle)):
    try:
        return lifecycle.list_public_receipts()
    except TransientStorageFailure:
        raise HTTPException(status_code=503, detail="Storage unavailable, please retry.")
