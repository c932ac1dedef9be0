"""Ordering of candidate hypocenters.

A candidate with decisively more correct stations (more than 30% over the
other, after truncating to whole stations) wins regardless of its error.
Otherwise the candidate with the higher ``correct / (err^2 + 2)`` wins; ties
go to the second argument.

The ordering is not associative near the 30% boundary, so callers that reduce
many candidates do it in a fixed order.
"""

from __future__ import annotations

from typing import Iterable, Protocol, TypeVar

import numpy as np

MARGIN = 1.3


class Scored(Protocol):
    correct_stations: int
    err: float


T = TypeVar("T", bound=Scored)


def first_wins(correct1: int, err1: float, correct2: int, err2: float) -> bool:
    if correct1 > int(correct2 * MARGIN):
        return True
    if correct2 > int(correct1 * MARGIN):
        return False
    return correct1 / (err1 * err1 + 2.0) > correct2 / (err2 * err2 + 2.0)


def select_better(hypocenter1: T | None, hypocenter2: T | None) -> T | None:
    if hypocenter1 is None:
        return hypocenter2
    if hypocenter2 is None:
        return hypocenter1
    if first_wins(
        hypocenter1.correct_stations,
        hypocenter1.err,
        hypocenter2.correct_stations,
        hypocenter2.err,
    ):
        return hypocenter1
    return hypocenter2


def select_best(hypocenters: Iterable[T | None]) -> T | None:
    best = None
    for hypocenter in hypocenters:
        best = select_better(best, hypocenter)
    return best


def prefer_first(correct1, err1, valid1, correct2, err2, valid2) -> np.ndarray:
    """Elementwise ``select_better(first, second) is first`` over arrays.

    Invalid entries behave like None: they lose to any valid entry, and when
    both sides are invalid the result is False.
    """
    correct1 = np.asarray(correct1)
    correct2 = np.asarray(correct2)
    err1 = np.asarray(err1, dtype=float)
    err2 = np.asarray(err2, dtype=float)
    decisive1 = correct1 > np.floor(correct2 * MARGIN)
    decisive2 = correct2 > np.floor(correct1 * MARGIN)
    by_score = correct1 / (err1 * err1 + 2.0) > correct2 / (err2 * err2 + 2.0)
    wins = np.where(decisive1, True, np.where(decisive2, False, by_score))
    return np.asarray(valid1) & (~np.asarray(valid2) | wins)


def best_index(correct, err, valid) -> int | None:
    """Index of the winner of a left-to-right fold over flat candidate arrays."""
    best = None
    best_correct = 0
    best_err = 0.0
    for i, (c, e, v) in enumerate(zip(correct, err, valid)):
        if not v:
            continue
        if best is None or not first_wins(best_correct, best_err, c, e):
            best = i
            best_correct = c
            best_err = e
    return best
