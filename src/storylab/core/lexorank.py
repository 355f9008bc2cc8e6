"""Fractional ranks that sort lexicographically between existing neighbours."""

from __future__ import annotations

import logging
from collections.abc import Sequence

MIN_CHAR = "0"
MAX_CHAR = "z"
MID_CHAR = "U"

_MIN_CODE = ord(MIN_CHAR)
_MAX_CODE = ord(MAX_CHAR)
# Digits used by multi-character rebalancing; excludes MIN_CHAR so no rank ends with it.
_REBALANCE_BASE = _MAX_CODE - _MIN_CODE

logger = logging.getLogger(__name__)


def initial_rank() -> str:
    """Rank for the first item of an empty sequence."""
    return MID_CHAR


def is_valid_rank(rank: str) -> bool:
    """Return True when another rank can always be placed before and after `rank`."""
    if not rank:
        return False
    if any(not MIN_CHAR <= char <= MAX_CHAR for char in rank):
        return False
    return not rank.endswith(MIN_CHAR)


def ranks_are_ordered(ranks: Sequence[str]) -> bool:
    """Return True when ranks are strictly increasing."""
    return all(left < right for left, right in zip(ranks, ranks[1:]))


def rank_between(prev: str | None = None, next_rank: str | None = None) -> str:
    """Return a rank that sorts after `prev` and before `next_rank`.

    Either neighbour may be omitted to insert at the start or end of the
    sequence. When both are given but out of order the result is a
    deterministic fallback (`next_rank + MIN_CHAR`) and a warning is logged;
    the lane should then be renumbered with `rebalance`.
    """
    if not prev:
        return _rank_before(next_rank) if next_rank else initial_rank()
    if not next_rank:
        return _rank_after(prev)
    if prev >= next_rank:
        fallback = next_rank + MIN_CHAR
        logger.warning(
            "rank.order_anomaly prev=%s next=%s fallback=%s",
            prev,
            next_rank,
            fallback,
        )
        return fallback
    return _rank_inside(prev, next_rank)


def rebalance(count: int) -> list[str]:
    """Return `count` evenly spaced, strictly increasing ranks."""
    if count <= 0:
        return []
    if count < _REBALANCE_BASE:
        increment = (_MAX_CODE - _MIN_CODE) / (count + 1)
        return [chr(_MIN_CODE + int(increment * index)) for index in range(1, count + 1)]

    width = 1
    while _REBALANCE_BASE**width < count + 1:
        width += 1
    span = _REBALANCE_BASE**width
    return [
        _encode_fixed_width(index * span // (count + 1), width) for index in range(1, count + 1)
    ]


def _rank_before(rank: str) -> str:
    first = rank[0]
    mid_code = (_MIN_CODE + ord(first)) // 2
    if mid_code > _MIN_CODE:
        return chr(mid_code)
    if first > MIN_CHAR:
        # A bare MIN_CHAR would leave nothing below it.
        return MIN_CHAR + MID_CHAR
    return MIN_CHAR + rank


def _rank_after(rank: str) -> str:
    last_code = ord(rank[-1])
    if last_code < _MAX_CODE:
        mid_code = (last_code + _MAX_CODE) // 2
        if mid_code > last_code:
            return rank[:-1] + chr(mid_code)
    return rank + MID_CHAR


def _rank_inside(prev: str, next_rank: str) -> str:
    result = ""
    for index in range(max(len(prev), len(next_rank))):
        prev_char = prev[index] if index < len(prev) else MIN_CHAR
        next_char = next_rank[index] if index < len(next_rank) else MAX_CHAR
        if prev_char == next_char:
            result += prev_char
            continue

        prev_code = ord(prev_char)
        next_code = ord(next_char)
        if next_code - prev_code > 1:
            return result + chr((prev_code + next_code) // 2)

        # No gap at this position: keep prev's character and look further right.
        result += prev_char
        if index + 1 >= len(prev):
            return result + MID_CHAR
    return result + MID_CHAR


def _encode_fixed_width(value: int, width: int) -> str:
    digits: list[str] = []
    for _ in range(width):
        value, digit = divmod(value, _REBALANCE_BASE)
        digits.append(chr(_MIN_CODE + 1 + digit))
    return "".join(reversed(digits))
