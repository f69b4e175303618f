"""
nssportal.engine.scoring — Point Awards & Score Deltas
=======================================================

Pure calculation for the reporting rewards.  The workflows ask this module
*what* to credit and apply the returned :class:`ScoreDelta` themselves, in
the same transaction as the status change.

No database I/O and no hidden state: calling any function twice with the
same arguments yields the same result.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from nssportal.database.models import Severity
from nssportal.engine.badges import FIRST_REPORTER, RewardCounters, evaluate_badges

__all__ = [
    "ScoreDelta",
    "approval_points",
    "evaluate_badges",
    "first_report_bonus",
    "resolution_bonus",
    "score_approval",
    "score_resolution",
    "score_submission",
]

# ---------------------------------------------------------------------------
# Point table
# ---------------------------------------------------------------------------
PROBLEM_APPROVED_POINTS = 10
PROBLEM_RESOLVED_POINTS = 5
FIRST_REPORT_POINTS = 20

SEVERITY_BONUS: dict[str, int] = {
    Severity.HIGH: 5,
    Severity.CRITICAL: 10,
}


# ---------------------------------------------------------------------------
# ScoreDelta: what a workflow must add to the reporter
# ---------------------------------------------------------------------------
@dataclass
class ScoreDelta:
    """Counter increments and badges to grant for one transition."""

    reward_points: int = 0
    reporting_score: int = 0
    problems_reported: int = 0
    problems_approved: int = 0
    badges: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.reward_points
            or self.reporting_score
            or self.problems_reported
            or self.problems_approved
            or self.badges
        )


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
def first_report_bonus() -> int:
    return FIRST_REPORT_POINTS


def approval_points(severity: str) -> int:
    """Base approval bonus plus the severity bonus (high +5, critical +10)."""
    return PROBLEM_APPROVED_POINTS + SEVERITY_BONUS.get(severity, 0)


def resolution_bonus() -> int:
    return PROBLEM_RESOLVED_POINTS


# ---------------------------------------------------------------------------
# Per-transition deltas
# ---------------------------------------------------------------------------
def score_submission(counters: RewardCounters, existing_badges: Iterable[str]) -> ScoreDelta:
    """Delta for a newly submitted problem.

    *counters* is the snapshot **before** the submission.  The first-ever
    report earns the "First Reporter" badge and bonus, unless the badge is
    already held (a retried submission never pays twice).
    """
    delta = ScoreDelta(problems_reported=1)
    is_first = counters.problems_reported + 1 == 1
    if is_first and FIRST_REPORTER not in set(existing_badges):
        delta.reward_points += first_report_bonus()
        delta.badges.append(FIRST_REPORTER)
    return delta


def score_approval(
    severity: str,
    counters: RewardCounters,
    existing_badges: Iterable[str],
    monthly_submission_count: int,
) -> ScoreDelta:
    """Delta for an approved problem.

    *counters* is the snapshot **before** the approval; badge thresholds
    are evaluated against the incremented approved count.
    """
    award = approval_points(severity)
    after = RewardCounters(
        problems_reported=counters.problems_reported,
        problems_approved=counters.problems_approved + 1,
        reward_points=counters.reward_points + award,
        reporting_score=counters.reporting_score + award,
    )
    return ScoreDelta(
        reward_points=award,
        reporting_score=award,
        problems_approved=1,
        badges=evaluate_badges(after, existing_badges, monthly_submission_count),
    )


def score_resolution() -> ScoreDelta:
    """Delta for a resolved problem: the flat resolution bonus only."""
    return ScoreDelta(reward_points=resolution_bonus())
