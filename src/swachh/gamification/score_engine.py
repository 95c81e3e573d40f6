"""Points and badges.

A user's score is a pure function of two activity counts: issues created and
votes cast. ``users.points``/``users.badges`` only cache that function's
output; every read path goes through :func:`reconcile_user_score` (or the
batch form) which recounts from the ledger and repairs the cache when it has
drifted.

These values MUST match the badge copy shown by the frontend.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from swachh.exceptions import ValidationError

if TYPE_CHECKING:
    from swachh.gamification.ledger import ActivityLedger
    from swachh.users.store import UserStore

logger = logging.getLogger(__name__)

POINTS_PER_ISSUE = 10
POINTS_PER_VOTE = 5


@dataclass(frozen=True)
class BadgeRule:
    name: str
    metric: str  # "issues" | "votes" | "points"
    threshold: int


# Canonical display order.
BADGE_RULES: tuple[BadgeRule, ...] = (
    BadgeRule("First Issue", "issues", 1),
    BadgeRule("Issue Hunter", "issues", 5),
    BadgeRule("Community Helper", "votes", 10),
    BadgeRule("Voting Master", "votes", 25),
    BadgeRule("Local Hero", "points", 100),
)

_BADGE_ORDER = {rule.name: i for i, rule in enumerate(BADGE_RULES)}


@dataclass(frozen=True)
class Score:
    points: int
    badges: tuple[str, ...]

    def same_as(self, other: Score) -> bool:
        """Equal points and equal badge *sets* (order and duplicates ignored)."""
        return (
            self.points == other.points
            and len(self.badges) == len(set(self.badges))
            and len(other.badges) == len(set(other.badges))
            and set(self.badges) == set(other.badges)
        )


def canonical_badges(badges: Iterable[str]) -> tuple[str, ...]:
    """Deduplicate and order badges for display; unknown names sort last."""
    unique = set(badges)
    return tuple(sorted(unique, key=lambda b: (_BADGE_ORDER.get(b, len(_BADGE_ORDER)), b)))


def compute_score(issues_created: int, votes_cast: int) -> Score:
    """Compute points and badges from activity counts.

    Pure: same counts, same result. Raises ValidationError on negative counts.
    """
    if issues_created < 0 or votes_cast < 0:
        msg = f"Activity counts must be non-negative (issues={issues_created}, votes={votes_cast})"
        raise ValidationError(msg)

    points = issues_created * POINTS_PER_ISSUE + votes_cast * POINTS_PER_VOTE
    metrics = {"issues": issues_created, "votes": votes_cast, "points": points}
    badges = tuple(rule.name for rule in BADGE_RULES if metrics[rule.metric] >= rule.threshold)
    return Score(points=points, badges=badges)


async def reconcile_user_score(ledger: ActivityLedger, users: UserStore, user_id: int) -> Score:
    """Recount a user's activity and repair their stored score if it drifted.

    Returns the authoritative score whether or not a write happened. The
    write is one UPDATE; if it fails nothing stored changes.
    """
    issues = await ledger.count_issues_created_by(user_id)
    votes = await ledger.count_votes_cast_by(user_id)
    score = compute_score(issues, votes)

    stored = await users.get_score_fields(user_id)
    if not stored.same_as(score):
        await users.set_score_fields(user_id, score.points, score.badges)
        logger.info(
            "Reconciled score for user %d: %d -> %d points, badges=%s",
            user_id,
            stored.points,
            score.points,
            list(score.badges),
        )
    return score


async def reconcile_many(
    ledger: ActivityLedger,
    users: UserStore,
    user_ids: Sequence[int],
) -> dict[int, Score]:
    """Batch form of :func:`reconcile_user_score` using grouped counts."""
    if not user_ids:
        return {}

    issue_counts = await ledger.count_issues_for_users(user_ids)
    vote_counts = await ledger.count_votes_for_users(user_ids)
    stored = await users.get_score_fields_many(user_ids)

    scores: dict[int, Score] = {}
    drifted: dict[int, Score] = {}
    for uid in user_ids:
        if uid not in stored:
            continue
        score = compute_score(issue_counts.get(uid, 0), vote_counts.get(uid, 0))
        scores[uid] = score
        if not stored[uid].same_as(score):
            drifted[uid] = score

    if drifted:
        await users.set_score_fields_many(
            {uid: (s.points, s.badges) for uid, s in drifted.items()}
        )
        logger.info("Reconciled %d drifted scores: %s", len(drifted), sorted(drifted))
    return scores
