from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ctf_leaderboard import scoring
from ctf_leaderboard.models import (
    Challenge,
    Checkpoint,
    SolvedChallenge,
    Submission,
    Team,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _web():
    return Challenge(
        id="web",
        name="Web",
        description="",
        type="non-interactive",
        points=500,
        penalty_points=50,
    )


def _reverse_eng():
    values = [100, 150, 200, 250, 300]
    return Challenge(
        id="re",
        name="ReverseEng",
        description="",
        type="interactive",
        points=sum(values),
        checkpoints=[
            Checkpoint(id=f"re-{i}", name=f"Step {i}", points=value)
            for i, value in enumerate(values, 1)
        ],
    )


def _submissions(team_id, challenge_id, verdicts):
    return [
        Submission(
            id=i,
            team_id=team_id,
            challenge_id=challenge_id,
            is_correct=correct,
            submitted_at=T0 + timedelta(minutes=i),
        )
        for i, correct in enumerate(verdicts, 1)
    ]


def test_non_interactive_points_ignore_checkpoints():
    web = _web()
    assert scoring.challenge_points(web) == 500
    assert scoring.challenge_points(web, {"web-1", "bogus"}) == 500
    assert scoring.total_challenge_points(web) == 500


def test_interactive_points_bounds():
    re = _reverse_eng()
    assert scoring.challenge_points(re, set()) == 0
    assert scoring.challenge_points(re, re.checkpoint_ids) == 1000
    assert scoring.total_challenge_points(re) == re.points == 1000


def test_interactive_points_for_partial_progress():
    re = _reverse_eng()
    assert scoring.challenge_points(re, {"re-1", "re-2", "re-3"}) == 450
    assert scoring.challenge_points(re, {"re-1", "elsewhere-9"}) == 100


def test_wrong_submissions_are_free_until_solved():
    web = _web()
    team = Team(id="t", name="T")
    subs = _submissions("t", "web", [False, False, False])

    assert scoring.penalty_points(team, web, subs) == 0
    assert scoring.team_score(team, [web], subs) == 0

    team.solved_challenges["web"] = SolvedChallenge(challenge_id="web")
    assert scoring.penalty_points(team, web, subs) == 150


def test_solve_after_two_wrong_submissions():
    web = _web()
    team = Team(
        id="t", name="T", solved_challenges={"web": SolvedChallenge(challenge_id="web")}
    )
    subs = _submissions("t", "web", [False, False, True])
    assert scoring.team_score(team, [web], subs) == 400


def test_penalty_counts_only_matching_team_and_challenge():
    web = _web()
    team = Team(
        id="t", name="T", solved_challenges={"web": SolvedChallenge(challenge_id="web")}
    )
    subs = (
        _submissions("t", "web", [False, True])
        + _submissions("other", "web", [False, False])
        + _submissions("t", "crypto", [False])
    )
    assert scoring.wrong_submission_count("t", "web", subs) == 1
    assert scoring.team_score(team, [web], subs) == 450


def test_interactive_challenges_never_penalize():
    re = _reverse_eng()
    re.penalty_points = 40
    team = Team(
        id="t",
        name="T",
        solved_challenges={
            "re": SolvedChallenge(challenge_id="re", solved_checkpoint_ids={"re-1"})
        },
    )
    subs = _submissions("t", "re", [False, False])
    assert scoring.penalty_points(team, re, subs) == 0
    assert scoring.team_score(team, [re], subs) == 100


def test_score_can_go_negative_unless_clamped():
    cheap = Challenge(
        id="cheap",
        name="Cheap",
        description="",
        type="non-interactive",
        points=10,
        penalty_points=20,
    )
    team = Team(
        id="t", name="T", solved_challenges={"cheap": SolvedChallenge(challenge_id="cheap")}
    )
    subs = _submissions("t", "cheap", [False, False, True])

    assert scoring.team_score(team, [cheap], subs) == -30
    assert scoring.team_score(team, [cheap], subs, clamp_negative=True) == 0


def test_solved_records_of_unknown_challenges_are_ignored():
    team = Team(
        id="t",
        name="T",
        solved_challenges={
            "web": SolvedChallenge(challenge_id="web"),
            "gone": SolvedChallenge(challenge_id="gone"),
        },
    )
    assert scoring.team_score(team, [_web()], []) == 500
    assert scoring.challenges_solved(team, [_web()]) == 1


def test_interactive_completion_needs_a_checkpoint():
    re = _reverse_eng()
    assert not scoring.is_challenge_completed(re, None)
    assert not scoring.is_challenge_completed(re, SolvedChallenge(challenge_id="re"))
    assert scoring.is_challenge_completed(
        re, SolvedChallenge(challenge_id="re", solved_checkpoint_ids={"re-2"})
    )
    assert scoring.is_challenge_completed(_web(), SolvedChallenge(challenge_id="web"))


def test_completion_percentage_rounds_half_up():
    assert scoring.completion_percentage(0, 0) == 0
    assert scoring.completion_percentage(1, 8) == 13
    assert scoring.completion_percentage(1, 3) == 33
    assert scoring.completion_percentage(2, 3) == 67
    assert scoring.completion_percentage(5, 5) == 100
