"""
nssportal.engine.badges — Badge Threshold Rules
================================================

Fixed badge rules evaluated after a reporter's approved-problem count
changes.  Each badge maps to a pure predicate over a :class:`BadgeContext`;
the table is not user-configurable.

This module is pure calculation with no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Badge identifiers
# ---------------------------------------------------------------------------
FIRST_REPORTER = "First Reporter"
COMMUNITY_HERO = "Community Hero"
PROBLEM_SOLVER = "Problem Solver"
CHANGE_MAKER = "Change Maker"
ACTIVE_REPORTER = "Active Reporter"

COMMUNITY_HERO_APPROVALS = 5
PROBLEM_SOLVER_APPROVALS = 10
CHANGE_MAKER_APPROVALS = 20
ACTIVE_REPORTER_MONTHLY_REPORTS = 3


# ---------------------------------------------------------------------------
# Context passed to every rule
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardCounters:
    """Snapshot of a user's reward counters (after the current transition)."""

    problems_reported: int = 0
    problems_approved: int = 0
    reward_points: int = 0
    reporting_score: int = 0


@dataclass(frozen=True, slots=True)
class BadgeContext:
    counters: RewardCounters
    monthly_submission_count: int = 0


# ---------------------------------------------------------------------------
# Rules (pure predicates)
# ---------------------------------------------------------------------------
def _approved_at_least(threshold: int) -> Callable[[BadgeContext], bool]:
    def _check(ctx: BadgeContext) -> bool:
        return ctx.counters.problems_approved >= threshold
    return _check


def _active_this_month(ctx: BadgeContext) -> bool:
    return ctx.monthly_submission_count >= ACTIVE_REPORTER_MONTHLY_REPORTS


# Order here is the order new badges are reported in.
BADGE_RULES: dict[str, Callable[[BadgeContext], bool]] = {
    COMMUNITY_HERO: _approved_at_least(COMMUNITY_HERO_APPROVALS),
    PROBLEM_SOLVER: _approved_at_least(PROBLEM_SOLVER_APPROVALS),
    CHANGE_MAKER: _approved_at_least(CHANGE_MAKER_APPROVALS),
    ACTIVE_REPORTER: _active_this_month,
}


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def evaluate_badges(
    counters: RewardCounters,
    existing_badges: Iterable[str],
    monthly_submission_count: int = 0,
) -> list[str]:
    """Return the badges newly earned by a user.

    Parameters
    ----------
    counters : Reward counters after the transition being scored.
    existing_badges : Badges the user already holds, in any order.
    monthly_submission_count : Problems the user submitted in the current
        calendar month.

    Returns
    -------
    Newly earned badge identifiers, never including one already held.
    Identical inputs always produce the identical list.
    """
    held = set(existing_badges)
    ctx = BadgeContext(counters=counters, monthly_submission_count=monthly_submission_count)

    newly_earned: list[str] = []
    for badge, rule in BADGE_RULES.items():
        if badge in held:
            continue
        if rule(ctx):
            newly_earned.append(badge)
            logger.debug("Badge threshold met: %s", badge)
    return newly_earned
