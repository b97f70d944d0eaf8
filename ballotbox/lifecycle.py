# ballotbox/lifecycle.py
"""
Ballot lifecycle: validate -> encrypt -> persist -> tally -> receipt.

The candidate choice exists in the clear only inside cast_vote, long enough
to encrypt it and increment its tally. It is never stored next to the voter
and never logged.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List

from ballotbox import cipher
from ballotbox.config import Settings
from ballotbox.errors import (
    AlreadyVoted,
    DuplicateVote,
    ElectionClosedOrMissing,
    IncompleteCast,
    InvalidCandidate,
    NotFound,
    TransientStorageFailure,
)
from ballotbox.models import Ballot, CastResult, ReceiptView, ReconciliationEntry, TallyEntry
from ballotbox.receipts import derive_receipt

logger = logging.getLogger(__name__)

STAGE_PERSIST = "persist"
STAGE_TALLY = "tally"
STAGE_RECEIPT = "receipt"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class BallotLifecycle:
    def __init__(self, *, key: bytes, public_salt: str, elections, ballots, tallies, receipts, reconciliation):
        self.key = key
        self.public_salt = public_salt
        self.elections = elections
        self.ballots = ballots
        self.tallies = tallies
        self.receipts = receipts
        self.reconciliation = reconciliation

    @classmethod
    def from_settings(cls, settings: Settings, db=None) -> "BallotLifecycle":
        """
        Wire the stores for the configured backend. `db` may be passed to
        reuse an existing Mongo database handle.
        """
        if settings.storage_backend == "memory":
            from ballotbox import storage

            timeout = settings.storage_timeout_ms
            stores = dict(
                elections=storage.MemoryElectionRegistry(),
                ballots=storage.MemoryBallotStore(timeout),
                tallies=storage.MemoryTallyAggregator(timeout),
                receipts=storage.MemoryReceiptLedger(),
                reconciliation=storage.MemoryReconciliationLog(),
            )
        else:
            from ballotbox import storage_mongo
            from ballotbox.database.connection import connect

            if db is None:
                db = connect(settings)
            stores = dict(
                elections=storage_mongo.MongoElectionRegistry(db),
                ballots=storage_mongo.MongoBallotStore(db),
                tallies=storage_mongo.MongoTallyAggregator(db),
                receipts=storage_mongo.MongoReceiptLedger(db),
                reconciliation=storage_mongo.MongoReconciliationLog(db),
            )
        return cls(key=settings.encryption_key, public_salt=settings.public_salt, **stores)

    def cast_vote(self, voter_id: str, election_id: str, candidate_id: str) -> CastResult:
        if not voter_id:
            raise ValueError("voter_id is required")

        # Validated
        election = self.elections.get_election(election_id)
        if election is None or not election.is_open:
            raise ElectionClosedOrMissing()
        if not candidate_id:
            raise InvalidCandidate("No candidate selected.")
        if self.elections.get_candidate(election_id, candidate_id) is None:
            raise InvalidCandidate()

        # Encrypted
        vote_id = str(uuid.uuid4())
        sealed = cipher.encrypt(
            candidate_id.encode("utf-8"),
            self.key,
            associated_data=cipher.ballot_aad(election_id, vote_id),
        )
        receipt_hash = derive_receipt(vote_id, sealed.cipher_hex, self.public_salt)

        # Persisted
        ballot = Ballot(
            vote_id=vote_id,
            election_id=election_id,
            voter_id=voter_id,
            cipher_hex=sealed.cipher_hex,
            nonce_hex=sealed.nonce_hex,
            tag_hex=sealed.tag_hex,
            created_at=_utc_now_iso(),
            receipt_hash=receipt_hash,
        )
        try:
            self.ballots.cast_ballot(ballot)
        except DuplicateVote:
            raise AlreadyVoted()
        except TransientStorageFailure as e:
            # the write may have committed even though the reply was lost
            if not self._landed(ballot, e):
                raise

        # Tallied, then Receipted. Both are attempted so one failure does not
        # leave the other undone.
        failures = []
        try:
            self.tallies.increment(election_id, candidate_id)
        except Exception as e:
            failures.append((STAGE_TALLY, e))
        try:
            self.receipts.publish(receipt_hash)
        except Exception as e:
            failures.append((STAGE_RECEIPT, e))

        if failures:
            for stage, error in failures:
                self._record_gap(ballot, stage, error)
            raise IncompleteCast(vote_id, [stage for stage, _ in failures]) from failures[0][1]

        logger.info(f"Vote {vote_id} cast in election {election_id}")
        return CastResult(vote_id=vote_id, receipt_hash=receipt_hash)

    def _landed(self, ballot: Ballot, error: TransientStorageFailure) -> bool:
        """
        After a transient failure on the ballot write, look the ballot up.
        True means it committed and the cast should carry on. If the lookup
        fails too the outcome is unknown: a persist gap is recorded so the
        reconciliation job can check, and the caller gets the original error.
        """
        try:
            stored = self.ballots.get_ballot(ballot.vote_id, ballot.voter_id)
        except NotFound:
            return False
        except TransientStorageFailure:
            self._record_gap(ballot, STAGE_PERSIST, error)
            return False
        if stored.receipt_hash != ballot.receipt_hash:
            return False
        logger.warning(f"Vote {ballot.vote_id} committed despite a storage timeout; continuing")
        return True

    def _record_gap(self, ballot: Ballot, stage: str, error: Exception) -> None:
        """
        The ballot is already committed (or may be) and is not rolled back.
        Record the gap for the reconciliation job.
        """
        # only the error type: storage messages can echo the tally key,
        # which would tie this vote_id to a candidate
        logger.error(f"Vote {ballot.vote_id} {stage} stage failed: {type(error).__name__}")
        entry = ReconciliationEntry(
            vote_id=ballot.vote_id,
            election_id=ballot.election_id,
            stage=stage,
            error=type(error).__name__,
            created_at=_utc_now_iso(),
        )
        try:
            self.reconciliation.record(entry)
        except Exception:
            logger.critical(f"Could not record reconciliation entry for vote {ballot.vote_id}", exc_info=True)

    def get_receipt(self, vote_id: str, voter_id: str) -> ReceiptView:
        ballot = self.ballots.get_ballot(vote_id, voter_id)
        return ReceiptView(
            election_id=ballot.election_id,
            receipt_hash=ballot.receipt_hash,
            created_at=ballot.created_at,
        )

    def has_voted(self, election_id: str, voter_id: str) -> bool:
        return self.ballots.has_voted(election_id, voter_id)

    def list_public_receipts(self) -> List[str]:
        return self.receipts.list_all()

    def list_tallies(self, election_id: str) -> List[TallyEntry]:
        return self.tallies.list(election_id)

    def pending_reconciliation(self) -> List[ReconciliationEntry]:
        return self.reconciliation.pending()
