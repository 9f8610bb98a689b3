"""
Derived cluster views over a user's bookmarks.

Clusters are recomputed from a snapshot of bookmarks on every call and never
persisted. Everything here is pure and synchronous; the only side channel is
the ClusteringObserver, which receives each bucketing and suppression
decision.

Strategies:
- date: one cluster per non-empty recency bucket, in a fixed bucket order.
- category: one cluster per category carried by at least two bookmarks.
- auto: category clusters followed by date clusters, largest first.
"""
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal, Protocol

from schemas.bookmark import normalize_category_key
from services.utils import as_utc

logger = logging.getLogger(__name__)

CLUSTER_COLORS = (
    '#FF6B6B', '#4ECDC4', '#45B7D1', '#96CEB4', '#FFEAA7',
    '#DDA0DD', '#98D8C8', '#F7DC6F', '#BB8FCE', '#85C1E9',
)
DATE_ICON = 'time'
CATEGORY_ICON = 'pricetag'
MIN_CATEGORY_MEMBERS = 2

ClusterStrategy = Literal['auto', 'date', 'category']


class DateBucket(StrEnum):
    """Recency buckets, declared in emission order."""

    TODAY = 'today'
    YESTERDAY = 'yesterday'
    THIS_WEEK = 'this-week'
    THIS_MONTH = 'this-month'
    THIS_QUARTER = 'this-quarter'
    OLDER = 'older'


DATE_TITLES = {
    DateBucket.TODAY: 'Today',
    DateBucket.YESTERDAY: 'Yesterday',
    DateBucket.THIS_WEEK: 'This Week',
    DateBucket.THIS_MONTH: 'This Month',
    DateBucket.THIS_QUARTER: 'Past 3 Months',
    DateBucket.OLDER: 'Older Bookmarks',
}

DATE_DESCRIPTIONS = {
    DateBucket.TODAY: 'today',
    DateBucket.YESTERDAY: 'yesterday',
    DateBucket.THIS_WEEK: 'this week',
    DateBucket.THIS_MONTH: 'this month',
    DateBucket.THIS_QUARTER: 'in the past 3 months',
    DateBucket.OLDER: 'more than 3 months ago',
}


class ClusterableBookmark(Protocol):
    """What clustering needs from a bookmark (ORM rows satisfy it)."""

    id: int
    title: str
    categories: list[str]
    created_at: datetime


@dataclass
class Cluster:
    """A derived group of bookmarks. Members are ordered newest first."""

    id: str
    title: str
    description: str
    kind: Literal['date', 'category']
    member_ids: list[int]
    color: str
    icon: str
    metadata: dict[str, Any] = field(default_factory=dict)


class ClusteringObserver(Protocol):
    """Receives clustering decisions as they are made."""

    def bucket_assigned(self, bookmark_id: int, bucket: DateBucket, days: int) -> None:
        """A bookmark was placed in a date bucket ``days`` days old."""
        ...

    def category_suppressed(self, label: str, member_count: int) -> None:
        """A category had too few members to become a cluster."""
        ...

    def cluster_emitted(self, cluster: Cluster) -> None:
        """A cluster was produced."""
        ...


class LoggingObserver:
    """Default observer: forwards decisions to the module logger at DEBUG."""

    def bucket_assigned(self, bookmark_id: int, bucket: DateBucket, days: int) -> None:
        logger.debug("Bookmark %s -> %s (%s days old)", bookmark_id, bucket.value, days)

    def category_suppressed(self, label: str, member_count: int) -> None:
        logger.debug("Category '%s' suppressed (%s member)", label, member_count)

    def cluster_emitted(self, cluster: Cluster) -> None:
        logger.debug("Cluster %s emitted with %s members", cluster.id, len(cluster.member_ids))


@dataclass
class RecordingObserver:
    """Observer that keeps every decision, for tests and diagnostics."""

    buckets: dict[int, DateBucket] = field(default_factory=dict)
    ages: dict[int, int] = field(default_factory=dict)
    suppressed: list[tuple[str, int]] = field(default_factory=list)
    emitted: list[Cluster] = field(default_factory=list)

    def bucket_assigned(self, bookmark_id: int, bucket: DateBucket, days: int) -> None:
        self.buckets[bookmark_id] = bucket
        self.ages[bookmark_id] = days

    def category_suppressed(self, label: str, member_count: int) -> None:
        self.suppressed.append((label, member_count))

    def cluster_emitted(self, cluster: Cluster) -> None:
        self.emitted.append(cluster)


def days_between(created_at: datetime, now: datetime) -> int:
    """
    Whole days from created_at to now, floored.

    Naive datetimes are treated as UTC. A created_at in the future (clock
    skew) counts as 0 days.
    """
    delta = as_utc(now) - as_utc(created_at)
    return max(0, delta.days)


def bucket_for_days(days: int) -> DateBucket:
    """Map an age in whole days to its recency bucket."""
    if days <= 0:
        return DateBucket.TODAY
    if days == 1:
        return DateBucket.YESTERDAY
    if days <= 7:
        return DateBucket.THIS_WEEK
    if days <= 30:
        return DateBucket.THIS_MONTH
    if days <= 90:
        return DateBucket.THIS_QUARTER
    return DateBucket.OLDER


def date_bucket_for(created_at: datetime, now: datetime) -> DateBucket:
    """Recency bucket of a timestamp relative to now."""
    return bucket_for_days(days_between(created_at, now))


def category_slug(label: str) -> str:
    """Cluster id suffix for a category: case-folded, whitespace runs as '-'."""
    return re.sub(r'\s+', '-', normalize_category_key(label))


def _newest_first(bookmarks: Iterable[ClusterableBookmark]) -> list[int]:
    # sorted() is stable, so equal timestamps keep their input order
    ordered = sorted(bookmarks, key=lambda b: as_utc(b.created_at), reverse=True)
    return [b.id for b in ordered]


def cluster_by_date(
    bookmarks: Sequence[ClusterableBookmark],
    now: datetime,
    observer: ClusteringObserver,
) -> list[Cluster]:
    """One cluster per non-empty date bucket, in DateBucket order."""
    groups: dict[DateBucket, list[ClusterableBookmark]] = {}
    for bookmark in bookmarks:
        days = days_between(bookmark.created_at, now)
        bucket = bucket_for_days(days)
        observer.bucket_assigned(bookmark.id, bucket, days)
        groups.setdefault(bucket, []).append(bookmark)

    clusters: list[Cluster] = []
    for bucket in DateBucket:
        members = groups.get(bucket)
        if not members:
            continue
        clusters.append(
            Cluster(
                id=f'date-{bucket.value}',
                title=DATE_TITLES[bucket],
                description=f'{len(members)} items saved {DATE_DESCRIPTIONS[bucket]}',
                kind='date',
                member_ids=_newest_first(members),
                color=CLUSTER_COLORS[len(clusters) % len(CLUSTER_COLORS)],
                icon=DATE_ICON,
                metadata={'date_range': bucket.value},
            ),
        )
    return clusters


def cluster_by_category(
    bookmarks: Sequence[ClusterableBookmark],
    observer: ClusteringObserver,
) -> list[Cluster]:
    """
    One cluster per category carried by at least MIN_CATEGORY_MEMBERS bookmarks.

    Categories group case-insensitively after trimming; the first spelling
    seen is the display label. A bookmark is counted once per category even
    if it carries several spellings of it. Clusters are ordered by member
    count descending, ties in first-seen order.
    """
    labels: dict[str, str] = {}
    members: dict[str, dict[int, ClusterableBookmark]] = {}
    for bookmark in bookmarks:
        for category in bookmark.categories or []:
            label = category.strip()
            if not label:
                continue
            key = normalize_category_key(label)
            labels.setdefault(key, label)
            members.setdefault(key, {})[bookmark.id] = bookmark

    kept: list[tuple[str, list[ClusterableBookmark]]] = []
    for key, by_id in members.items():
        if len(by_id) < MIN_CATEGORY_MEMBERS:
            observer.category_suppressed(labels[key], len(by_id))
            continue
        kept.append((key, list(by_id.values())))
    kept.sort(key=lambda item: len(item[1]), reverse=True)

    clusters: list[Cluster] = []
    used_ids: set[str] = set()
    for key, group in kept:
        label = labels[key]
        # "Machine Learning" and "machine-learning" are distinct keys with one slug
        base_id = f'category-{category_slug(label)}'
        cluster_id = base_id
        suffix = 2
        while cluster_id in used_ids:
            cluster_id = f'{base_id}-{suffix}'
            suffix += 1
        used_ids.add(cluster_id)
        clusters.append(
            Cluster(
                id=cluster_id,
                title=label,
                description=f'{len(group)} items tagged with {label}',
                kind='category',
                member_ids=_newest_first(group),
                color=CLUSTER_COLORS[len(clusters) % len(CLUSTER_COLORS)],
                icon=CATEGORY_ICON,
                metadata={'keywords': [label]},
            ),
        )
    return clusters


def build_clusters(
    bookmarks: Sequence[ClusterableBookmark],
    strategy: ClusterStrategy = 'auto',
    *,
    now: datetime | None = None,
    observer: ClusteringObserver | None = None,
) -> list[Cluster]:
    """
    Partition bookmarks into clusters.

    Args:
        bookmarks: Snapshot of the user's bookmarks.
        strategy: 'date', 'category' or 'auto' (both, largest first).
        now: Reference time for date buckets (defaults to current UTC time).
        observer: Receives bucketing and suppression decisions
            (defaults to LoggingObserver).

    Returns:
        Clusters in emission order. In 'auto' a bookmark may belong to
        several clusters.
    """
    if not bookmarks:
        return []
    now = now or datetime.now(UTC)
    observer = observer or LoggingObserver()

    if strategy == 'date':
        clusters = cluster_by_date(bookmarks, now, observer)
    elif strategy == 'category':
        clusters = cluster_by_category(bookmarks, observer)
    else:
        combined = cluster_by_category(bookmarks, observer) + cluster_by_date(
            bookmarks, now, observer,
        )
        clusters = sorted(combined, key=lambda c: len(c.member_ids), reverse=True)
        # Palette follows the merged order, not the per-strategy one
        for position, cluster in enumerate(clusters):
            cluster.color = CLUSTER_COLORS[position % len(CLUSTER_COLORS)]

    for cluster in clusters:
        observer.cluster_emitted(cluster)
    logger.debug("Built %s clusters with strategy '%s'", len(clusters), strategy)
    return clusters
