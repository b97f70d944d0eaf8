import pytest
from fastapi.testclient import TestClient

from ballotbox.errors import ConfigError, TransientStorageFailure
from ballotbox.main import create_app
from ballotbox.security import create_access_token

from conftest import SECRET


def _auth(voter_id, **claims):
    token = create_access_token({"sub": voter_id, **claims}, SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(settings, lifecycle, e1):
    with TestClient(create_app(settings=settings, lifecycle=lifecycle)) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "storage": "memory"}


def test_open_elections_listed(client):
    r = client.get("/elections")
    assert r.status_code == 200
    body = r.json()
    assert body[0]["election_id"] == "E1"
    assert [c["candidate_id"] for c in body[0]["candidates"]] == ["C1", "C2"]


def test_vote_flow(client):
    r = client.get("/vote/E1/status", headers=_auth("V1"))
    assert r.json() == {"election_id": "E1", "has_voted": False}

    r = client.post("/vote/E1", json={"candidate_id": "C1"}, headers=_auth("V1"))
    assert r.status_code == 200
    vote_id, receipt_hash = r.json()["vote_id"], r.json()["receipt_hash"]

    assert client.get("/vote/E1/status", headers=_auth("V1")).json()["has_voted"] is True

    r = client.get(f"/receipt/{vote_id}", headers=_auth("V1"))
    assert r.status_code == 200
    assert r.json()["election_id"] == "E1"
    assert r.json()["receipt_hash"] == receipt_hash

    r = client.get(f"/receipt/{vote_id}", headers=_auth("V2"))
    assert r.status_code == 404
    assert r.json()["detail"] == "Receipt not found."

    r = client.get("/public/receipts")
    assert r.status_code == 200
    assert r.json() == [receipt_hash]


def test_duplicate_vote_message(client):
    client.post("/vote/E1", json={"candidate_id": "C1"}, headers=_auth("V1"))
    r = client.post("/vote/E1", json={"candidate_id": "C2"}, headers=_auth("V1"))
    assert r.status_code == 400
    assert r.json()["detail"] == "You have already voted in this election."


@pytest.mark.parametrize(
    "election_id, candidate_id, detail",
    [
        ("E9", "C1", "Election is closed or not found."),
        ("E1", "", "No candidate selected."),
        ("E1", "C7", "Candidate not found in election."),
    ],
)
def test_validation_messages(client, election_id, candidate_id, detail):
    r = client.post(f"/vote/{election_id}", json={"candidate_id": candidate_id}, headers=_auth("V1"))
    assert r.status_code == 400
    assert r.json()["detail"] == detail


def test_auth_required(client):
    assert client.post("/vote/E1", json={"candidate_id": "C1"}).status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.post("/vote/E1", json={"candidate_id": "C1"}, headers=bad).status_code == 401
    forged = create_access_token({"sub": "V1"}, "some-other-secret")
    r = client.get("/vote/E1/status", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 401


def test_admin_tallies(client):
    client.post("/vote/E1", json={"candidate_id": "C1"}, headers=_auth("V1"))
    client.post("/vote/E1", json={"candidate_id": "C1"}, headers=_auth("V2"))

    assert client.get("/admin/elections/E1/tallies", headers=_auth("V1")).status_code == 403

    r = client.get("/admin/elections/E1/tallies", headers=_auth("admin", is_admin=True))
    assert r.status_code == 200
    assert r.json() == [{"candidate_id": "C1", "name": "Alice", "count": 2}]


def test_storage_errors_are_generic(client, lifecycle, monkeypatch):
    def down(*args, **kwargs):
        raise TransientStorageFailure("mongo01:27017 timed out")

    monkeypatch.setattr(lifecycle.ballots, "cast_ballot", down)
    r = client.post("/vote/E1", json={"candidate_id": "C1"}, headers=_auth("V1"))
    assert r.status_code == 503
    assert r.json()["detail"] == "Vote failed."


def test_incomplete_cast_returns_vote_id(client, lifecycle, monkeypatch):
    def down(*args, **kwargs):
        raise TransientStorageFailure("mongo01:27017 timed out")

    monkeypatch.setattr(lifecycle.tallies, "increment", down)
    r = client.post("/vote/E1", json={"candidate_id": "C1"}, headers=_auth("V1"))
    assert r.status_code == 500
    detail = r.json()["detail"]
    assert detail["message"] == "Your vote was recorded but could not be fully confirmed."
    assert "mongo01" not in r.text

    pending = lifecycle.pending_reconciliation()
    assert [(p.vote_id, p.stage) for p in pending] == [(detail["vote_id"], "tally")]

    # only the tally failed, so the receipt is both fetchable and public
    r = client.get(f"/receipt/{detail['vote_id']}", headers=_auth("V1"))
    assert r.status_code == 200
    assert r.json()["receipt_hash"] in client.get("/public/receipts").json()


def test_server_refuses_to_start_without_key(monkeypatch):
    monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    with pytest.raises(ConfigError):
        with TestClient(create_app()):
            pass
