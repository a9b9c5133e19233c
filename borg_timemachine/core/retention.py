"""Retention policy model and its translation for ``borg prune``.

Two views of the same policy live here. :func:`prune_directives` builds the
exact ``--keep-*`` arguments handed to borg, which performs the deletion.
:func:`plan` is a pure preview of a grandfather-father-son selection over a
list of archives, so the policy can be inspected without touching a
repository.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .archives import Archive

GRANULARITIES = ("yearly", "monthly", "weekly", "daily", "hourly")

_WITHIN_PATTERN = re.compile(r"^\s*(\d+)\s*([HhdwmyY])\s*$")
_WITHIN_UNITS = {
    "H": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "m": timedelta(days=31),
    "y": timedelta(days=365),
}


def normalize_within(text: str) -> str:
    match = _WITHIN_PATTERN.match(str(text))
    if not match:
        raise ValueError(
            f"invalid duration {text!r}, expected <number><unit> with unit H, d, w, m or y"
        )
    if int(match.group(1)) == 0:
        raise ValueError(f"invalid duration {text!r}, must be greater than zero")
    unit = match.group(2)
    if unit == "h":
        unit = "H"
    elif unit == "Y":
        unit = "y"
    return f"{int(match.group(1))}{unit}"


def parse_within(text: str) -> timedelta:
    normalized = normalize_within(text)
    return int(normalized[:-1]) * _WITHIN_UNITS[normalized[-1]]


@dataclass
class RetentionPolicy:
    within: str = "24H"
    hourly: int = 0
    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    yearly: int = 0

    @property
    def window(self) -> timedelta:
        return parse_within(self.within)

    def counts(self) -> list[tuple[str, int]]:
        return [(granularity, getattr(self, granularity)) for granularity in GRANULARITIES]

    @property
    def max_bucket_archives(self) -> int:
        return sum(count for _, count in self.counts())


def prune_directives(policy: RetentionPolicy, archive_prefix: str) -> list[str]:
    directives = [
        f"--glob-archives={archive_prefix}-*",
        f"--keep-within={normalize_within(policy.within)}",
    ]
    directives.extend(f"--keep-{granularity}={count}" for granularity, count in policy.counts())
    return directives


def _hour(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H")


def _day(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def _week(moment: datetime) -> str:
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def _month(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def _year(moment: datetime) -> str:
    return moment.strftime("%Y")


PERIODS: dict[str, Callable[[datetime], str]] = {
    "yearly": _year,
    "monthly": _month,
    "weekly": _week,
    "daily": _day,
    "hourly": _hour,
}


@dataclass
class RetentionPlan:
    keep: list[Archive] = field(default_factory=list)
    prune: list[Archive] = field(default_factory=list)
    # archive name -> ("within", n) or (granularity, rank within that granularity)
    reasons: dict[str, tuple[str, int]] = field(default_factory=dict)
    covered: dict[str, list[str]] = field(default_factory=dict)

    def reason_for(self, archive: Archive) -> str:
        rule = self.reasons.get(archive.name)
        if rule is None:
            return "prune"
        return f"{rule[0]} #{rule[1]}"


def _local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def _recency(archive: Archive) -> tuple[datetime, str]:
    return _local_naive(archive.time), archive.name


def plan(
    policy: RetentionPolicy,
    archives: Iterable[Archive],
    now: datetime,
) -> RetentionPlan:
    """Split ``archives`` into the ones ``policy`` keeps and the ones it prunes.

    Archives younger than ``policy.within`` are always kept. The remaining
    candidates are offered to each granularity from coarse to fine. A
    granularity walks candidates newest first and looks only at the newest
    archive of every period; that archive is kept and counted unless an
    earlier rule already kept it, in which case the period is covered for
    free. Walking stops once the granularity's count is reached.
    """
    ordered = sorted(archives, key=_recency, reverse=True)
    reference = _local_naive(now)
    window = policy.window
    result = RetentionPlan()

    within_rank = 0
    for archive in ordered:
        if reference - _local_naive(archive.time) < window:
            within_rank += 1
            result.reasons[archive.name] = ("within", within_rank)

    candidates = [archive for archive in ordered if archive.name not in result.reasons]
    for granularity, count in policy.counts():
        covered: list[str] = []
        result.covered[granularity] = covered
        if count <= 0:
            continue
        period_of = PERIODS[granularity]
        selected = 0
        last_period: str | None = None
        for archive in candidates:
            period = period_of(_local_naive(archive.time))
            if period == last_period:
                continue
            last_period = period
            covered.append(period)
            if archive.name in result.reasons:
                continue
            selected += 1
            result.reasons[archive.name] = (granularity, selected)
            if selected == count:
                break

    for archive in ordered:
        if archive.name in result.reasons:
            result.keep.append(archive)
        else:
            result.prune.append(archive)
    return result
