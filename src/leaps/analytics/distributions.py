"""Map grouped aggregation rows into typed distribution buckets.

The distribution query returns one flat row set tagged by category
(status, activity, role, cohort, points_activity). Every row produces an
explicit outcome: accepted into a bucket, or rejected with a reason. The
caller decides whether rejected rows are logged or fatal.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from leaps.domain import ROLES, SUBMISSION_STATUSES, parse_activity_code

NO_COHORT = "No Cohort"

CATEGORY_BUCKETS: dict[str, str] = {
    "status": "submissionsByStatus",
    "activity": "submissionsByActivity",
    "role": "usersByRole",
    "cohort": "usersByCohort",
    "points_activity": "pointsByActivity",
}


@dataclass(frozen=True)
class DistributionRow:
    """One grouped row of the distribution query."""

    category: str
    item: str | None
    item_name: str | None = None
    count: int = 0
    points: int | None = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> DistributionRow:
        return cls(
            category=row["category"],
            item=row.get("item"),
            item_name=row.get("item_name"),
            count=int(row.get("count") or 0),
            points=None if row.get("points") is None else int(row["points"]),
        )


@dataclass(frozen=True)
class RowOutcome:
    """Accepted (bucket + entry) or rejected (reason) result for one row."""

    row: DistributionRow
    bucket: str | None = None
    entry: dict[str, Any] | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is None


@dataclass
class DistributionResult:
    buckets: dict[str, list[dict[str, Any]]] = field(
        default_factory=lambda: {name: [] for name in CATEGORY_BUCKETS.values()}
    )
    rejected: list[RowOutcome] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return sum(len(entries) for entries in self.buckets.values())


def _rejected(row: DistributionRow, reason: str) -> RowOutcome:
    return RowOutcome(row=row, reason=reason)


def classify_row(row: DistributionRow) -> RowOutcome:
    """Decide the outcome for a single row."""
    bucket = CATEGORY_BUCKETS.get(row.category)
    if bucket is None:
        return _rejected(row, f"unknown category '{row.category}'")

    if row.category == "status":
        status = (row.item or "").upper()
        if status not in SUBMISSION_STATUSES:
            return _rejected(row, f"unknown status '{row.item}'")
        return RowOutcome(row=row, bucket=bucket, entry={"status": status, "count": row.count})

    if row.category == "role":
        role = (row.item or "").upper()
        if role not in ROLES:
            return _rejected(row, f"unknown role '{row.item}'")
        return RowOutcome(row=row, bucket=bucket, entry={"role": role, "count": row.count})

    if row.category == "cohort":
        cohort = row.item or NO_COHORT
        return RowOutcome(row=row, bucket=bucket, entry={"cohort": cohort, "count": row.count})

    code = parse_activity_code(row.item)
    if code is None:
        return _rejected(row, f"unknown activity code '{row.item}'")
    name = row.item_name or "Unknown"
    if row.category == "activity":
        entry = {"activity": code, "activityName": name, "count": row.count}
    else:
        entry = {"activity": code, "activityName": name, "totalPoints": row.points or 0, "entries": row.count}
    return RowOutcome(row=row, bucket=bucket, entry=entry)


def map_distributions(rows: Iterable[DistributionRow | Mapping[str, Any]]) -> DistributionResult:
    """Partition rows into buckets, keeping input order within each bucket."""
    result = DistributionResult()
    for raw in rows:
        row = raw if isinstance(raw, DistributionRow) else DistributionRow.from_mapping(raw)
        outcome = classify_row(row)
        if outcome.accepted:
            result.buckets[outcome.bucket].append(outcome.entry)  # type: ignore[index]
        else:
            result.rejected.append(outcome)
    return result


def daily_submission_stats(submissions: Iterable[tuple[datetime | date, str]]) -> list[dict[str, Any]]:
    """Per-day total/approved/rejected/pending counts, sorted by date ascending.

    Input is (created_at, status) pairs. Unknown statuses still count in total.
    """
    days: dict[str, dict[str, int]] = {}
    for created_at, status in submissions:
        day = created_at.date().isoformat() if isinstance(created_at, datetime) else created_at.isoformat()
        stats = days.setdefault(day, {"total": 0, "approved": 0, "rejected": 0, "pending": 0})
        stats["total"] += 1
        key = status.lower()
        if key in stats and key != "total":
            stats[key] += 1
    return [{"date": day, **stats} for day, stats in sorted(days.items())]


def daily_counts(timestamps: Iterable[datetime | date]) -> list[dict[str, Any]]:
    """Per-day counts (e.g. registrations), sorted by date ascending."""
    counts: dict[str, int] = {}
    for ts in timestamps:
        day = ts.date().isoformat() if isinstance(ts, datetime) else ts.isoformat()
        counts[day] = counts.get(day, 0) + 1
    return [{"date": day, "count": n} for day, n in sorted(counts.items())]


def reviewer_performance(
    reviewers: Sequence[Mapping[str, Any]],
    performance: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Approved/rejected/total per reviewer.

    `performance` rows are (reviewer_id, status, count). Rows for unknown
    reviewers or other statuses are ignored. Reviewers without reviews are
    omitted; the rest are sorted by total descending.
    """
    by_id: dict[str, dict[str, Any]] = {
        str(r["id"]): {
            "id": str(r["id"]),
            "name": r["name"],
            "handle": r["handle"],
            "role": r["role"],
            "approved": 0,
            "rejected": 0,
            "total": 0,
        }
        for r in reviewers
    }
    for p in performance:
        reviewer = by_id.get(str(p.get("reviewer_id")))
        if reviewer is None:
            continue
        status = str(p.get("status", "")).lower()
        if status in ("approved", "rejected"):
            reviewer[status] += int(p["count"])
            reviewer["total"] += int(p["count"])

    ranked = [r for r in by_id.values() if r["total"] > 0]
    ranked.sort(key=lambda r: r["total"], reverse=True)
    for r in ranked:
        r["approvalRate"] = round(r["approved"] / r["total"] * 100, 2)
    return ranked


def top_badges(
    counts: Iterable[Mapping[str, Any]],
    catalog: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Join (badge_code, count, unique_earners) rows with the catalog; codes missing from it are dropped."""
    badges = {b["code"]: b for b in catalog}
    out: list[dict[str, Any]] = []
    for row in counts:
        badge = badges.get(row["badge_code"])
        if badge is None:
            continue
        out.append(
            {
                "code": badge["code"],
                "name": badge["name"],
                "earnedCount": int(row["count"]),
                "uniqueEarners": int(row.get("unique_earners") or row["count"]),
            }
        )
    return out
