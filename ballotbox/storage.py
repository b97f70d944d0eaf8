# ballotbox/storage.py
# In-process stores with the same interface as storage_mongo.
# Used for development and tests; state lives only as long as the process.
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, List, Optional, Set, Tuple

from ballotbox.config import DEFAULT_STORAGE_TIMEOUT_MS
from ballotbox.errors import DuplicateVote, NotFound, TransientStorageFailure
from ballotbox.models import Ballot, Candidate, Election, ReconciliationEntry, TallyEntry

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    One lock per key, created on first use. Only callers touching the same
    key wait on each other; the registry guard is held just long enough to
    look a lock up.
    """

    def __init__(self, timeout_ms: int = DEFAULT_STORAGE_TIMEOUT_MS):
        self.timeout_s = timeout_ms / 1000.0
        self._guard = threading.Lock()
        # never evicted; grows with distinct keys, fine for a dev/test backend
        self._locks: Dict[Tuple, threading.Lock] = {}

    @contextmanager
    def hold(self, key: Tuple):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        if not lock.acquire(timeout=self.timeout_s):
            raise TransientStorageFailure(f"Timed out waiting for lock on {key[0]}")
        try:
            yield
        finally:
            lock.release()


class MemoryElectionRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._elections: Dict[str, Election] = {}
        self._candidates: Dict[str, Dict[str, Candidate]] = {}

    def create_election(self, name: str, is_open: bool = True, election_id: Optional[str] = None) -> Election:
        election = Election(election_id=election_id or uuid.uuid4().hex, name=name, is_open=is_open)
        with self._lock:
            if election.election_id in self._elections:
                raise ValueError(f"Election {election.election_id} already exists.")
            self._elections[election.election_id] = election
            self._candidates[election.election_id] = {}
        return election

    def add_candidate(self, election_id: str, name: str, candidate_id: Optional[str] = None) -> Candidate:
        candidate = Candidate(candidate_id=candidate_id or uuid.uuid4().hex, election_id=election_id, name=name)
        with self._lock:
            if election_id not in self._elections:
                raise NotFound("Election not found.")
            by_id = self._candidates[election_id]
            if candidate.candidate_id in by_id:
                raise ValueError(f"Candidate {candidate.candidate_id} already exists.")
            by_id[candidate.candidate_id] = candidate
        return candidate

    def set_open(self, election_id: str, is_open: bool) -> Election:
        with self._lock:
            election = self._elections.get(election_id)
            if election is None:
                raise NotFound("Election not found.")
            election = election.model_copy(update={"is_open": is_open})
            self._elections[election_id] = election
        return election

    def get_election(self, election_id: str) -> Optional[Election]:
        return self._elections.get(election_id)

    def get_candidate(self, election_id: str, candidate_id: str) -> Optional[Candidate]:
        return self._candidates.get(election_id, {}).get(candidate_id)

    def list_candidates(self, election_id: str) -> List[Candidate]:
        by_id = self._candidates.get(election_id, {})
        return [by_id[k] for k in sorted(by_id)]

    def list_open(self) -> List[Election]:
        with self._lock:
            return [e for e in self._elections.values() if e.is_open]


class MemoryBallotStore:
    def __init__(self, timeout_ms: int = DEFAULT_STORAGE_TIMEOUT_MS):
        self._locks = KeyedLocks(timeout_ms)
        self._by_vote_id: Dict[str, Ballot] = {}
        self._by_voter: Dict[Tuple[str, str], str] = {}

    def cast_ballot(self, ballot: Ballot) -> None:
        voter_key = (ballot.election_id, ballot.voter_id)
        with self._locks.hold(("ballot", *voter_key)):
            if voter_key in self._by_voter:
                logger.warning(f"Duplicate ballot rejected for election {ballot.election_id}")
                raise DuplicateVote()
            # dict.setdefault is atomic, so two equal vote_ids cannot both land
            if self._by_vote_id.setdefault(ballot.vote_id, ballot) is not ballot:
                logger.warning(f"vote_id collision on {ballot.vote_id}")
                raise DuplicateVote()
            self._by_voter[voter_key] = ballot.vote_id

    def get_ballot(self, vote_id: str, voter_id: str) -> Ballot:
        ballot = self._by_vote_id.get(vote_id)
        if ballot is None or ballot.voter_id != voter_id:
            raise NotFound()
        return ballot

    def has_voted(self, election_id: str, voter_id: str) -> bool:
        return (election_id, voter_id) in self._by_voter


class MemoryTallyAggregator:
    def __init__(self, timeout_ms: int = DEFAULT_STORAGE_TIMEOUT_MS):
        self._locks = KeyedLocks(timeout_ms)
        self._counts: Dict[Tuple[str, str], int] = {}

    def increment(self, election_id: str, candidate_id: str) -> int:
        key = (election_id, candidate_id)
        with self._locks.hold(("tally", *key)):
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
        return count

    def list(self, election_id: str) -> List[TallyEntry]:
        snapshot = [(k, v) for k, v in dict(self._counts).items() if k[0] == election_id]
        return [
            TallyEntry(election_id=e, candidate_id=c, count=n)
            for (e, c), n in sorted(snapshot)
        ]


class MemoryReceiptLedger:
    def __init__(self):
        self._lock = threading.Lock()
        self._hashes: Set[str] = set()

    def publish(self, receipt_hash: str) -> None:
        with self._lock:
            self._hashes.add(receipt_hash)

    def list_all(self) -> List[str]:
        with self._lock:
            return sorted(self._hashes)


class MemoryReconciliationLog:
    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[ReconciliationEntry] = []

    def record(self, entry: ReconciliationEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def pending(self) -> List[ReconciliationEntry]:
        with self._lock:
            return list(self._entries)
