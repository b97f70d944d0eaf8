import logging

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ballotbox.config import Settings
from ballotbox.errors import ConfigError

logger = logging.getLogger(__name__)

ELECTIONS = "elections"
CANDIDATES = "candidates"
VOTES = "votes"
RECEIPTS = "receipts"
TALLIES = "tallies"
RECONCILIATION = "reconciliation"


def get_client(settings: Settings) -> MongoClient:
    if not settings.mongo_uri:
        raise ConfigError("MONGO_URI not set. Check your .env file.")
    if not settings.mongo_db:
        raise ConfigError("MONGO_DB not set. Check your .env file.")

    timeout = settings.storage_timeout_ms
    # bounded waits everywhere so a stuck server surfaces as a timeout
    return MongoClient(
        settings.mongo_uri,
        serverSelectionTimeoutMS=timeout,
        connectTimeoutMS=timeout,
        socketTimeoutMS=timeout,
        waitQueueTimeoutMS=timeout,
    )


def ensure_indexes(db: Database) -> None:
    """Create the uniqueness constraints the ballot lifecycle relies on."""
    # votes: _id is the vote_id; one ballot per (election, voter)
    db[VOTES].create_index(
        [("election_id", ASCENDING), ("voter_id", ASCENDING)],
        unique=True,
        name="unique_election_user",
    )
    db[TALLIES].create_index(
        [("election_id", ASCENDING), ("candidate_id", ASCENDING)],
        unique=True,
        name="unique_election_candidate",
    )
    db[CANDIDATES].create_index([("election_id", ASCENDING)], name="by_election")
    db[RECONCILIATION].create_index([("created_at", ASCENDING)], name="by_created_at")
    # receipts and elections are keyed by _id, unique already


def connect(settings: Settings) -> Database:
    client = get_client(settings)
    db = client[settings.mongo_db]
    try:
        client.admin.command("ping")
        ensure_indexes(db)
    except PyMongoError as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise
    logger.info(f"Connected to MongoDB at {settings.mongo_uri}, database: {settings.mongo_db}")
    return db
