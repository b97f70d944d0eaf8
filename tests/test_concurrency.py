import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from ballotbox.errors import AlreadyVoted, TransientStorageFailure
from ballotbox.storage import KeyedLocks, MemoryTallyAggregator

N = 48


def _run_together(n, fn):
    """Start n calls behind a barrier so they hit the store at once."""
    barrier = threading.Barrier(n)

    def call(i):
        barrier.wait()
        try:
            return fn(i)
        except Exception as e:
            return e

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(call, range(n)))


def test_concurrent_casts_same_voter_one_success(lifecycle, e1):
    outcomes = _run_together(N, lambda i: lifecycle.cast_vote("V1", e1, "C1" if i % 2 else "C2"))

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    rejected = [o for o in outcomes if isinstance(o, AlreadyVoted)]
    assert len(successes) == 1
    assert len(rejected) == N - 1

    counts = {t.candidate_id: t.count for t in lifecycle.list_tallies(e1)}
    assert sum(counts.values()) == 1
    assert lifecycle.list_public_receipts() == [successes[0].receipt_hash]


def test_concurrent_first_votes_counted_exactly(lifecycle, e1):
    outcomes = _run_together(N, lambda i: lifecycle.cast_vote(f"V{i}", e1, "C2"))

    assert not [o for o in outcomes if isinstance(o, Exception)]
    counts = {t.candidate_id: t.count for t in lifecycle.list_tallies(e1)}
    assert counts == {"C2": N}
    assert len(lifecycle.list_public_receipts()) == N


def test_tally_increment_race_free():
    tallies = MemoryTallyAggregator()
    results = _run_together(N, lambda i: tallies.increment("E1", "C1"))
    assert sorted(results) == list(range(1, N + 1))
    assert tallies.list("E1")[0].count == N


def test_lock_wait_is_bounded():
    locks = KeyedLocks(timeout_ms=50)
    with locks.hold(("k",)):
        result = []

        def contender():
            try:
                with locks.hold(("k",)):
                    result.append("acquired")
            except TransientStorageFailure:
                result.append("timeout")

        t = threading.Thread(target=contender)
        t.start()
        t.join(timeout=5)
    assert result == ["timeout"]


def test_unrelated_keys_do_not_block():
    locks = KeyedLocks(timeout_ms=50)
    with locks.hold(("ballot", "E1", "V1")):
        with locks.hold(("ballot", "E1", "V2")):
            pass


@pytest.mark.parametrize("voters", [2, 8])
def test_many_voters_many_candidates(lifecycle, e1, voters):
    picks = ["C1", "C2"]
    _run_together(voters * 2, lambda i: lifecycle.cast_vote(f"V{i}", e1, picks[i % 2]))
    counts = {t.candidate_id: t.count for t in lifecycle.list_tallies(e1)}
    assert counts == {"C1": voters, "C2": voters}
