# storage_mongo.py
import logging
import uuid
from contextlib import contextmanager
from typing import List, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ExecutionTimeout, WTimeoutError

from ballotbox.database.connection import CANDIDATES, ELECTIONS, RECEIPTS, RECONCILIATION, TALLIES, VOTES
from ballotbox.errors import DuplicateVote, NotFound, TransientStorageFailure
from ballotbox.models import Ballot, Candidate, Election, ReconciliationEntry, TallyEntry

logger = logging.getLogger(__name__)

# AutoReconnect, NetworkTimeout, ServerSelectionTimeoutError and
# WaitQueueTimeoutError all derive from ConnectionFailure
TRANSIENT_ERRORS = (ConnectionFailure, ExecutionTimeout, WTimeoutError)


@contextmanager
def transient(operation: str):
    """Turn timeouts/connection errors into TransientStorageFailure."""
    try:
        yield
    except TRANSIENT_ERRORS as e:
        logger.error(f"MongoDB {operation} failed: {e}")
        raise TransientStorageFailure() from e


class MongoElectionRegistry:
    def __init__(self, db: Database):
        self.elections = db[ELECTIONS]
        self.candidates = db[CANDIDATES]

    def create_election(self, name: str, is_open: bool = True, election_id: Optional[str] = None) -> Election:
        election = Election(election_id=election_id or uuid.uuid4().hex, name=name, is_open=is_open)
        with transient("create_election"):
            try:
                self.elections.insert_one({"_id": election.election_id, "name": name, "is_open": is_open})
            except DuplicateKeyError:
                raise ValueError(f"Election {election.election_id} already exists.")
        logger.info(f"Election {election.election_id} created")
        return election

    def add_candidate(self, election_id: str, name: str, candidate_id: Optional[str] = None) -> Candidate:
        candidate = Candidate(candidate_id=candidate_id or uuid.uuid4().hex, election_id=election_id, name=name)
        with transient("add_candidate"):
            if self.elections.find_one({"_id": election_id}, {"_id": 1}) is None:
                raise NotFound("Election not found.")
            try:
                self.candidates.insert_one(
                    {"_id": candidate.candidate_id, "election_id": election_id, "name": name}
                )
            except DuplicateKeyError:
                raise ValueError(f"Candidate {candidate.candidate_id} already exists.")
        return candidate

    def set_open(self, election_id: str, is_open: bool) -> Election:
        with transient("set_open"):
            doc = self.elections.find_one_and_update(
                {"_id": election_id},
                {"$set": {"is_open": is_open}},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            raise NotFound("Election not found.")
        return self._election(doc)

    def get_election(self, election_id: str) -> Optional[Election]:
        with transient("get_election"):
            doc = self.elections.find_one({"_id": election_id})
        return self._election(doc) if doc else None

    def get_candidate(self, election_id: str, candidate_id: str) -> Optional[Candidate]:
        with transient("get_candidate"):
            doc = self.candidates.find_one({"_id": candidate_id, "election_id": election_id})
        return self._candidate(doc) if doc else None

    def list_candidates(self, election_id: str) -> List[Candidate]:
        with transient("list_candidates"):
            docs = list(self.candidates.find({"election_id": election_id}).sort("_id", ASCENDING))
        return [self._candidate(d) for d in docs]

    def list_open(self) -> List[Election]:
        with transient("list_open"):
            docs = list(self.elections.find({"is_open": True}).sort("_id", ASCENDING))
        return [self._election(d) for d in docs]

    @staticmethod
    def _election(doc) -> Election:
        return Election(election_id=doc["_id"], name=doc.get("name", ""), is_open=bool(doc.get("is_open")))

    @staticmethod
    def _candidate(doc) -> Candidate:
        return Candidate(candidate_id=doc["_id"], election_id=doc["election_id"], name=doc.get("name", ""))


class MongoBallotStore:
    def __init__(self, db: Database):
        self.collection = db[VOTES]

    def cast_ballot(self, ballot: Ballot) -> None:
        """
        Single insert; the _id (vote_id) and the unique_election_user index
        make the server reject a second ballot atomically.
        """
        doc = ballot.model_dump()
        doc["_id"] = ballot.vote_id
        with transient("cast_ballot"):
            try:
                self.collection.insert_one(doc)
            except DuplicateKeyError as e:
                logger.warning(f"Duplicate ballot rejected for election {ballot.election_id}")
                raise DuplicateVote() from e

    def get_ballot(self, vote_id: str, voter_id: str) -> Ballot:
        with transient("get_ballot"):
            doc = self.collection.find_one({"_id": vote_id, "voter_id": voter_id})
        if not doc:
            raise NotFound()
        doc.pop("_id", None)
        return Ballot(**doc)

    def has_voted(self, election_id: str, voter_id: str) -> bool:
        with transient("has_voted"):
            doc = self.collection.find_one({"election_id": election_id, "voter_id": voter_id}, {"_id": 1})
        return doc is not None


class MongoTallyAggregator:
    def __init__(self, db: Database):
        self.collection = db[TALLIES]

    def increment(self, election_id: str, candidate_id: str) -> int:
        query = {"election_id": election_id, "candidate_id": candidate_id}
        with transient("increment"):
            try:
                doc = self._upsert_inc(query)
            except DuplicateKeyError:
                # two first votes raced on the upsert; the entry exists now,
                # so the retry is a plain $inc
                logger.info(f"Retrying tally upsert for election {election_id}")
                doc = self._upsert_inc(query)
        return int(doc["count"])

    def _upsert_inc(self, query):
        return self.collection.find_one_and_update(
            query,
            {"$inc": {"count": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def list(self, election_id: str) -> List[TallyEntry]:
        with transient("list_tallies"):
            docs = list(
                self.collection.find({"election_id": election_id}, {"_id": 0}).sort("candidate_id", ASCENDING)
            )
        return [TallyEntry(**d) for d in docs]


class MongoReceiptLedger:
    def __init__(self, db: Database):
        self.collection = db[RECEIPTS]

    def publish(self, receipt_hash: str) -> None:
        with transient("publish_receipt"):
            try:
                self.collection.insert_one({"_id": receipt_hash})
            except DuplicateKeyError:
                logger.debug("Receipt already published")

    def list_all(self) -> List[str]:
        with transient("list_receipts"):
            return [d["_id"] for d in self.collection.find({}, {"_id": 1}).sort("_id", ASCENDING)]


class MongoReconciliationLog:
    def __init__(self, db: Database):
        self.collection = db[RECONCILIATION]

    def record(self, entry: ReconciliationEntry) -> None:
        with transient("record_reconciliation"):
            self.collection.insert_one(entry.model_dump())

    def pending(self) -> List[ReconciliationEntry]:
        with transient("pending_reconciliation"):
            docs = list(self.collection.find({}, {"_id": 0}).sort("created_at", ASCENDING))
        return [ReconciliationEntry(**d) for d in docs]
