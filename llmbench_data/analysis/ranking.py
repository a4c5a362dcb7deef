"""Deterministic multi-criterion ranking shared by every hierarchy level.

Each primary sort key maps to an ordered chain of ``(extractor, descending)``
pairs. The same chain orders configurations within a platform, platforms
within a model, and models within a response, always comparing the
representative configuration of each item. Missing values count as ``0.0``
and NaN pairs compare equal. Sorting is stable, so ties keep input order.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Sequence
from typing import Protocol, TypeVar

T = TypeVar("T")


class Rankable(Protocol):
    """Anything exposing the metrics a ranking chain reads."""

    @property
    def model_name(self) -> str: ...

    @property
    def quality_score(self) -> float | None: ...

    @property
    def tokens_per_second(self) -> float | None: ...

    @property
    def memory_gb(self) -> float | None: ...

    @property
    def tokens_per_kwh(self) -> float | None: ...


R = TypeVar("R", bound=Rankable)

QUALITY = "quality"
SPEED = "speed"
EFFICIENCY = "efficiency"
MEMORY = "memory"
MODEL_NAME = "model_name"

DEFAULT_SORT_BY = QUALITY

Extractor = Callable[[Rankable], float]


def _or_zero(v: float | None) -> float:
    return 0.0 if v is None else v


def _quality(r: Rankable) -> float:
    return _or_zero(r.quality_score)


def _speed(r: Rankable) -> float:
    return _or_zero(r.tokens_per_second)


def _efficiency(r: Rankable) -> float:
    return _or_zero(r.tokens_per_kwh)


def _memory(r: Rankable) -> float:
    return _or_zero(r.memory_gb)


RANKING_CHAINS: dict[str, tuple[tuple[Extractor, bool], ...]] = {
    QUALITY: ((_quality, True), (_speed, True), (_efficiency, True)),
    SPEED: ((_speed, True), (_quality, True), (_efficiency, True)),
    EFFICIENCY: ((_efficiency, True), (_quality, True), (_speed, True)),
}


def _cmp(a: float, b: float) -> int:
    # NaN is neither less nor greater, so it lands on 0.
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def compare_configurations(
    a: Rankable,
    b: Rankable,
    sort_by: str = DEFAULT_SORT_BY,
    *,
    reverse_primary: bool = False,
) -> int:
    """Three-way comparison where a negative result ranks ``a`` first.

    Args:
        a: First configuration.
        b: Second configuration.
        sort_by: Primary key; anything outside the chain table means quality.
        reverse_primary: Flip only the primary criterion. Tiebreakers keep
            their fixed direction.
    """
    chain = RANKING_CHAINS.get(sort_by, RANKING_CHAINS[DEFAULT_SORT_BY])
    for i, (extract, descending) in enumerate(chain):
        c = _cmp(extract(a), extract(b))
        if descending:
            c = -c
        if i == 0 and reverse_primary:
            c = -c
        if c:
            return c
    return 0


def rank(
    items: Sequence[T],
    representative: Callable[[T], Rankable],
    sort_by: str = DEFAULT_SORT_BY,
    *,
    reverse_primary: bool = False,
) -> list[T]:
    """Stable sort of ``items`` by the chain of their representative configurations."""

    def cmp(x: T, y: T) -> int:
        return compare_configurations(
            representative(x), representative(y), sort_by, reverse_primary=reverse_primary
        )

    return sorted(items, key=functools.cmp_to_key(cmp))


def rank_configurations(
    records: Sequence[R], sort_by: str = DEFAULT_SORT_BY
) -> list[R]:
    """Order configurations best first.

    Whole-response keys (``memory``, ``model_name``) rank by quality here.
    """
    return rank(records, lambda r: r, sort_by)


def rank_models(
    items: Sequence[T],
    representative: Callable[[T], Rankable],
    sort_by: str | None = None,
    sort_direction: str | None = None,
) -> list[T]:
    """Order models by their best configuration.

    ``memory`` sorts ascending by memory and ``model_name`` lexicographically;
    ``sort_direction="desc"`` reverses both. For the chain keys,
    ``sort_direction="asc"`` flips only the primary criterion. An absent or
    unknown ``sort_by`` ranks by quality, best first, regardless of direction.
    """
    if sort_by == MEMORY:
        sign = -1 if sort_direction == "desc" else 1
        return sorted(
            items,
            key=functools.cmp_to_key(
                lambda x, y: sign * _cmp(_memory(representative(x)), _memory(representative(y)))
            ),
        )
    if sort_by == MODEL_NAME:
        return sorted(
            items,
            key=lambda x: representative(x).model_name,
            reverse=sort_direction == "desc",
        )
    if sort_by in RANKING_CHAINS:
        return rank(items, representative, sort_by, reverse_primary=sort_direction == "asc")
    return rank(items, representative, DEFAULT_SORT_BY)
