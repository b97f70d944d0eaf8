from .election_model import Candidate, Election, TallyEntry
from .vote_model import Ballot, CastResult, ReceiptView, ReconciliationEntry

__all__ = [
    "Ballot",
    "Candidate",
    "CastResult",
    "Election",
    "ReceiptView",
    "ReconciliationEntry",
    "TallyEntry",
]
