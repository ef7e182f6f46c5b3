import asyncio

import aiosqlite
import pytest

from ctf_leaderboard.aggregator import Aggregator
from ctf_leaderboard.cache import ReadCache
from ctf_leaderboard.database import utcnow
from ctf_leaderboard.errors import StoreError
from ctf_leaderboard.models import (
    Challenge,
    Checkpoint,
    SolvedChallenge,
    Submission,
    Team,
)


def _run(coro):
    return asyncio.run(coro)


class _FakeStore:
    """In-memory stand-in for DatabaseManager with injectable failures."""

    def __init__(self, teams=(), challenges=(), submissions=()):
        self.teams = list(teams)
        self.challenges = list(challenges)
        self.submissions = list(submissions)
        self.failures = {}
        self.init_calls = 0

    def _maybe_fail(self, name):
        remaining = self.failures.get(name, 0)
        if remaining:
            self.failures[name] = remaining - 1
            raise aiosqlite.OperationalError("database is locked")

    async def init_db(self):
        self.init_calls += 1

    async def list_teams(self):
        self._maybe_fail("list_teams")
        return list(self.teams)

    async def list_challenges(self):
        self._maybe_fail("list_challenges")
        return list(self.challenges)

    async def list_submissions(self):
        self._maybe_fail("list_submissions")
        return list(self.submissions)


def _aggregator(store, make_config, **overrides):
    return Aggregator(store, make_config(**overrides))


def _team_with_score(team_id, points):
    # Zero points means no solved record
    challenge = Challenge(
        id=f"c-{team_id}",
        name=f"C {team_id}",
        description="",
        type="non-interactive",
        points=points or 1,
    )
    team = Team(id=team_id, name=team_id)
    if points:
        team.solved_challenges[challenge.id] = SolvedChallenge(challenge_id=challenge.id)
    return team, challenge


def test_seeded_leaderboard(seeded):
    board = _run(seeded.aggregator.get_leaderboard())
    assert [(e.name, e.score, e.challenges_solved) for e in board] == [
        ("Team Nexus", 1650, 2),
        ("Team Alpha", 1600, 3),
        ("Team Phoenix", 1300, 2),
        ("Team Omega", 1250, 2),
        ("Team Quantum", 1000, 1),
    ]


def test_seeded_challenge_stats(seeded):
    stats = {s.id: s for s in _run(seeded.aggregator.get_challenge_stats())}
    assert {cid: s.completion_percentage for cid, s in stats.items()} == {
        "c1": 60,
        "c2": 60,
        "c3": 40,
        "c4": 20,
        "c5": 20,
    }
    assert stats["c3"].points == 1000
    assert all(s.total_teams == 5 for s in stats.values())


def test_seeded_submission_stats(seeded):
    stats = _run(seeded.aggregator.get_submission_stats())
    rows = [
        (
            s.team_name,
            s.challenge_name,
            s.total_submissions,
            s.wrong_submissions,
            s.is_solved,
            s.penalty_points,
        )
        for s in stats
    ]
    assert rows == [
        ("Team Alpha", "Web Exploitation", 3, 2, True, 100),
        ("Team Omega", "Web Exploitation", 1, 0, True, 0),
        ("Team Phoenix", "Cryptography", 2, 2, False, 0),
    ]

    history = stats[0].submissions
    assert history[0].is_correct
    assert history[0].submitted_at > history[-1].submitted_at


def test_submission_stats_filters(seeded):
    by_team = _run(seeded.aggregator.get_submission_stats(team_id="1"))
    assert [(s.team_id, s.challenge_id) for s in by_team] == [("1", "c1")]

    by_challenge = _run(seeded.aggregator.get_submission_stats(challenge_id="c1"))
    assert [s.team_id for s in by_challenge] == ["1", "2"]

    assert _run(seeded.aggregator.get_submission_stats(challenge_id="c3")) == []


def test_ties_keep_higher_scores_first(make_config):
    pairs = [
        _team_with_score(team_id, points)
        for team_id, points in [("a", 300), ("b", 900), ("c", 900), ("d", 0)]
    ]
    store = _FakeStore(
        teams=[team for team, _ in pairs],
        challenges=[challenge for _, challenge in pairs],
    )

    board = _run(_aggregator(store, make_config).get_leaderboard())
    assert [e.score for e in board] == [900, 900, 300, 0]
    assert {e.id for e in board[:2]} == {"b", "c"}


def test_interactive_record_without_checkpoints_is_not_completed(make_config):
    challenge = Challenge(
        id="re",
        name="RE",
        description="",
        type="interactive",
        points=100,
        checkpoints=[Checkpoint(id="re-1", name="one", points=100)],
    )
    started = Team(id="t1", name="T1", solved_challenges={"re": SolvedChallenge("re")})
    progressed = Team(
        id="t2",
        name="T2",
        solved_challenges={"re": SolvedChallenge("re", {"re-1"})},
    )
    store = _FakeStore(teams=[started, progressed], challenges=[challenge])

    stats = _run(_aggregator(store, make_config).get_challenge_stats())
    assert stats[0].solved_count == 1
    assert stats[0].completion_percentage == 50


def test_cache_serves_until_invalidated(make_config):
    team, challenge = _team_with_score("a", 100)
    store = _FakeStore(teams=[team], challenges=[challenge])
    aggregator = _aggregator(store, make_config)

    assert len(_run(aggregator.get_leaderboard())) == 1
    store.teams = []
    assert len(_run(aggregator.get_leaderboard())) == 1

    aggregator.invalidate()
    assert _run(aggregator.get_leaderboard()) == []


def test_cache_disabled_with_zero_ttl(make_config):
    team, challenge = _team_with_score("a", 100)
    store = _FakeStore(teams=[team], challenges=[challenge])
    aggregator = _aggregator(store, make_config, cache__ttl_seconds=0)

    assert len(_run(aggregator.get_teams())) == 1
    store.teams = []
    assert _run(aggregator.get_teams()) == []


def test_read_failure_reinitializes_and_retries(make_config):
    team, challenge = _team_with_score("a", 100)
    store = _FakeStore(teams=[team], challenges=[challenge])
    store.failures["list_teams"] = 1

    teams = _run(_aggregator(store, make_config).get_teams())
    assert [t.id for t in teams] == ["a"]
    assert store.init_calls == 1


def test_read_failure_after_retry_is_store_error(make_config):
    store = _FakeStore()
    store.failures["list_challenges"] = 2

    with pytest.raises(StoreError, match="Failed to load scoreboard data"):
        _run(_aggregator(store, make_config).get_challenges())


def test_penalties_are_best_effort(make_config):
    challenge = Challenge(
        id="web",
        name="Web",
        description="",
        type="non-interactive",
        points=500,
        penalty_points=50,
    )
    team = Team(id="t", name="T", solved_challenges={"web": SolvedChallenge("web")})
    wrong = Submission(
        id=1, team_id="t", challenge_id="web", is_correct=False, submitted_at=utcnow()
    )
    store = _FakeStore(teams=[team], challenges=[challenge], submissions=[wrong])
    aggregator = _aggregator(store, make_config)

    store.failures["list_submissions"] = 1
    assert _run(aggregator.get_leaderboard())[0].score == 500

    aggregator.invalidate()
    assert _run(aggregator.get_leaderboard())[0].score == 450


def test_negative_scores_clamped_when_configured(make_config):
    challenge = Challenge(
        id="web",
        name="Web",
        description="",
        type="non-interactive",
        points=10,
        penalty_points=50,
    )
    team = Team(id="t", name="T", solved_challenges={"web": SolvedChallenge("web")})
    wrong = Submission(
        id=1, team_id="t", challenge_id="web", is_correct=False, submitted_at=utcnow()
    )
    store = _FakeStore(teams=[team], challenges=[challenge], submissions=[wrong])

    assert _run(_aggregator(store, make_config).get_leaderboard())[0].score == -40
    clamped = _aggregator(store, make_config, scoring__clamp_negative_scores=True)
    assert _run(clamped.get_leaderboard())[0].score == 0


def test_filtered_submission_stats_are_cached_per_filter(make_config):
    challenge = Challenge(
        id="web",
        name="Web",
        description="",
        type="non-interactive",
        points=500,
        penalty_points=50,
    )
    teams = [Team(id="t1", name="T1"), Team(id="t2", name="T2")]
    submissions = [
        Submission(
            id=i,
            team_id=team.id,
            challenge_id="web",
            is_correct=False,
            submitted_at=utcnow(),
        )
        for i, team in enumerate(teams, 1)
    ]
    store = _FakeStore(teams=teams, challenges=[challenge], submissions=submissions)
    aggregator = _aggregator(store, make_config)

    only_t1 = _run(aggregator.get_submission_stats(team_id="t1"))
    assert [s.team_id for s in only_t1] == ["t1"]
    key = ReadCache.make_key("submission_stats", "t1", "*")
    assert aggregator.cache.get(key) == only_t1

    assert [s.team_id for s in _run(aggregator.get_submission_stats())] == ["t1", "t2"]
