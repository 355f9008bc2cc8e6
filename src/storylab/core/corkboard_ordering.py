"""Lane ordering for corkboard cards backed by fractional ranks."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from storylab.core.lexorank import (
    initial_rank,
    is_valid_rank,
    rank_between,
    ranks_are_ordered,
    rebalance,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LaneMovePlan:
    """Rank for a moved card plus optional replacement ranks for its lane."""

    rank: str
    rebalanced_ranks: tuple[str, ...] | None = None

    @property
    def requires_rebalance(self) -> bool:
        return self.rebalanced_ranks is not None


def append_rank(lane_ranks: Sequence[str]) -> str:
    """Rank for a card appended to the end of a lane."""
    if not lane_ranks:
        return initial_rank()
    return rank_between(max(lane_ranks), None)


def plan_lane_move(lane_ranks: Sequence[str], target_index: int) -> LaneMovePlan:
    """Compute the rank that places a card at `target_index` in a lane.

    `lane_ranks` are the destination lane's ranks in display order, without the
    card being moved. A lane whose ranks no longer strictly increase, or that
    holds a rank with no room left after it, is renumbered first; the new
    ranks are returned so the caller can persist them alongside the moved card.
    """
    ranks = list(lane_ranks)
    rebalanced: tuple[str, ...] | None = None
    if not ranks_are_ordered(ranks) or not all(is_valid_rank(rank) for rank in ranks):
        rebalanced = tuple(rebalance(len(ranks)))
        logger.warning("corkboard.lane_rebalanced cards=%s", len(ranks))
        ranks = list(rebalanced)

    index = max(0, min(target_index, len(ranks)))
    prev = ranks[index - 1] if index > 0 else None
    next_rank = ranks[index] if index < len(ranks) else None
    return LaneMovePlan(rank=rank_between(prev, next_rank), rebalanced_ranks=rebalanced)
