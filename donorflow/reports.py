"""Performance, share, and dashboard aggregations over a fiscal year."""

from __future__ import annotations

import calendar
import sqlite3
from collections import defaultdict
from datetime import date, timedelta
from typing import Any

from .i18n import DEFAULT_LOCALE, translate
from .store import DonorFlowStore, RecordNotFoundError, member_display_name, sponsor_display_name

UNASSIGNED_ID = "unassigned"


def achievement_level(percentage: float) -> str:
    if percentage >= 100:
        return "success"
    if percentage >= 75:
        return "warning"
    return "danger"


def _percentage(actual: float, target: float) -> float:
    return actual / target * 100 if target > 0 else 100.0


def _year_payload(fiscal_year: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": fiscal_year["id"],
        "name": fiscal_year["name"],
        "start_date": fiscal_year["start_date"],
        "end_date": fiscal_year["end_date"],
    }


def _resolve_year(
    store: DonorFlowStore,
    today: date | None,
    fiscal_year_id: int | None,
) -> sqlite3.Row | None:
    if fiscal_year_id is not None:
        return store.get_fiscal_year(fiscal_year_id)
    return store.current_fiscal_year(today=today)


class _YearTotals:
    """Donation sums of one fiscal year keyed by the sponsor's assignment."""

    def __init__(self, rows: list[sqlite3.Row]) -> None:
        self.by_member: dict[int, int] = defaultdict(int)
        self.count_by_member: dict[int, int] = defaultdict(int)
        self.by_group: dict[int, int] = defaultdict(int)
        self.count_by_group: dict[int, int] = defaultdict(int)
        self.unassigned_total = 0
        self.unassigned_count = 0

        for row in rows:
            amount = int(row["amount_cents"])
            member_id = row["sponsor_member_id"]
            group_id = row["sponsor_group_id"]
            if member_id is not None:
                self.by_member[member_id] += amount
                self.count_by_member[member_id] += 1
            elif group_id is not None:
                self.by_group[group_id] += amount
                self.count_by_group[group_id] += 1
            else:
                self.unassigned_total += amount
                self.unassigned_count += 1


def _ungrouped_member_stats(
    members: list[sqlite3.Row],
    totals: _YearTotals,
    targets: dict[int, int],
) -> list[dict[str, Any]]:
    stats = []
    for member in members:
        if member["group_id"] is not None:
            continue
        member_id = int(member["id"])
        actual = totals.by_member.get(member_id, 0)
        target = targets.get(member_id, 0)
        if actual <= 0 and target <= 0:
            continue
        stats.append(
            {
                "member": {
                    "id": member_id,
                    "first_name": member["first_name"],
                    "last_name": member["last_name"],
                },
                "target_cents": target,
                "actual_cents": actual,
                "difference_cents": actual - target,
                "percentage": _percentage(actual, target),
                "donation_count": totals.count_by_member.get(member_id, 0),
            }
        )
    stats.sort(key=lambda stat: stat["percentage"], reverse=True)
    return stats


def _group_stats(
    groups: list[sqlite3.Row],
    members: list[sqlite3.Row],
    totals: _YearTotals,
    targets: dict[int, int],
) -> list[dict[str, Any]]:
    members_by_group: dict[int, list[sqlite3.Row]] = defaultdict(list)
    for member in members:
        if member["group_id"] is not None:
            members_by_group[int(member["group_id"])].append(member)

    stats = []
    for group in groups:
        group_id = int(group["id"])
        group_members = members_by_group.get(group_id, [])
        actual = totals.by_group.get(group_id, 0)
        target = sum(targets.get(int(member["id"]), 0) for member in group_members)
        if actual <= 0 and target <= 0:
            continue
        stats.append(
            {
                "group": {"id": group_id, "name": group["name"]},
                "target_cents": target,
                "actual_cents": actual,
                "difference_cents": actual - target,
                "percentage": _percentage(actual, target),
                "member_count": len(group_members),
                "donation_count": totals.count_by_group.get(group_id, 0),
                "members": [
                    {
                        "id": int(member["id"]),
                        "first_name": member["first_name"],
                        "last_name": member["last_name"],
                    }
                    for member in group_members
                ],
            }
        )
    stats.sort(key=lambda stat: stat["percentage"], reverse=True)
    return stats


def performance_report(
    store: DonorFlowStore,
    today: date | None = None,
    fiscal_year_id: int | None = None,
) -> dict[str, Any]:
    """Actual vs. target for ungrouped members and for groups.

    Donations of sponsors attached to grouped members count toward neither
    table; the group table only sums sponsors assigned to the group itself.
    """
    fiscal_year = _resolve_year(store, today, fiscal_year_id)
    if fiscal_year is None:
        return {"current_year": None}

    year_id = int(fiscal_year["id"])
    totals = _YearTotals(store.donation_rows_for_year(year_id))
    targets = store.targets_by_member(year_id)
    members = store.list_members()

    member_stats = _ungrouped_member_stats(members, totals, targets)
    group_stats = _group_stats(store.list_groups(), members, totals, targets)

    total_target = sum(targets.values())
    member_actual = sum(stat["actual_cents"] for stat in member_stats)
    group_actual = sum(stat["actual_cents"] for stat in group_stats)
    total_actual = member_actual + group_actual + totals.unassigned_total

    return {
        "current_year": _year_payload(fiscal_year),
        "member_stats": member_stats,
        "group_stats": group_stats,
        "unassigned_total_cents": totals.unassigned_total,
        "unassigned_count": totals.unassigned_count,
        "total_target_cents": total_target,
        "total_actual_cents": total_actual,
        "member_actual_cents": member_actual,
        "group_actual_cents": group_actual,
        "overall_percentage": total_actual / total_target * 100 if total_target > 0 else 0.0,
    }


def performance_detail(
    store: DonorFlowStore,
    member_id: int | None = None,
    group_id: int | None = None,
    today: date | None = None,
    fiscal_year_id: int | None = None,
) -> dict[str, Any]:
    """Break one performance row down by sponsor.

    Exactly one of ``member_id`` and ``group_id`` is given. Sponsors assigned
    to the member or group that gave nothing this year are listed apart.
    """
    if (member_id is None) == (group_id is None):
        raise ValueError("Pass either a member or a group.")

    if member_id is not None:
        member = store.get_member(member_id)
        if member is None:
            raise RecordNotFoundError("members", member_id)
        name = member_display_name(member)
        member_ids = [int(member_id)]
        assigned = [sponsor for sponsor in store.list_sponsors() if sponsor["member_id"] == member_id]
    else:
        group = store.get_group(group_id)
        if group is None:
            raise RecordNotFoundError("groups", group_id)
        name = group["name"]
        member_ids = [int(member["id"]) for member in store.group_members(group_id)]
        assigned = [sponsor for sponsor in store.list_sponsors() if sponsor["group_id"] == group_id]

    fiscal_year = _resolve_year(store, today, fiscal_year_id)
    rows: list[sqlite3.Row] = []
    target = 0
    if fiscal_year is not None:
        year_id = int(fiscal_year["id"])
        targets = store.targets_by_member(year_id)
        target = sum(targets.get(current_id, 0) for current_id in member_ids)
        for row in store.donation_rows_for_year(year_id):
            if member_id is not None and row["sponsor_member_id"] == member_id:
                rows.append(row)
            elif group_id is not None and row["sponsor_group_id"] == group_id:
                rows.append(row)

    names = {int(sponsor["id"]): sponsor_display_name(sponsor) for sponsor in assigned}
    by_sponsor: dict[int, dict[str, Any]] = {}
    for row in rows:
        sponsor_id = int(row["sponsor_id"])
        entry = by_sponsor.setdefault(
            sponsor_id,
            {"sponsor_id": sponsor_id, "name": names.get(sponsor_id, ""), "total_cents": 0, "donation_count": 0},
        )
        entry["total_cents"] += int(row["amount_cents"])
        entry["donation_count"] += 1

    actual = sum(int(row["amount_cents"]) for row in rows)
    donations = [
        {
            "id": row["id"],
            "sponsor_id": row["sponsor_id"],
            "sponsor_name": names.get(int(row["sponsor_id"]), ""),
            "amount_cents": int(row["amount_cents"]),
            "donation_date": row["donation_date"],
        }
        for row in rows
    ]
    donations.sort(key=lambda donation: (donation["donation_date"], donation["id"]), reverse=True)

    return {
        "current_year": _year_payload(fiscal_year) if fiscal_year is not None else None,
        "type": "member" if member_id is not None else "group",
        "id": member_id if member_id is not None else group_id,
        "name": name,
        "target_cents": target,
        "actual_cents": actual,
        "difference_cents": actual - target,
        "percentage": _percentage(actual, target),
        "donations": donations,
        "sponsors": sorted(by_sponsor.values(), key=lambda entry: entry["total_cents"], reverse=True),
        "sponsors_without_donations": [
            {"id": int(sponsor["id"]), "name": names[int(sponsor["id"])], "city": sponsor["city"]}
            for sponsor in assigned
            if int(sponsor["id"]) not in by_sponsor
        ],
    }


def share_report(
    store: DonorFlowStore,
    today: date | None = None,
    fiscal_year_id: int | None = None,
    locale: str = DEFAULT_LOCALE,
) -> dict[str, Any]:
    """Split the year's donations across members.

    Each member gets their own sponsors' donations plus an equal part of
    their group's sponsor donations.
    """
    fiscal_year = _resolve_year(store, today, fiscal_year_id)
    if fiscal_year is None:
        return {"error": "No active fiscal year found", "shares": []}

    totals = _YearTotals(store.donation_rows_for_year(int(fiscal_year["id"])))
    members = store.list_members()
    group_names = {int(group["id"]): group["name"] for group in store.list_groups()}

    member_counts: dict[int, int] = defaultdict(int)
    for member in members:
        if member["group_id"] is not None:
            member_counts[int(member["group_id"])] += 1

    shares: list[dict[str, Any]] = []
    for member in members:
        member_id = int(member["id"])
        amount: float = totals.by_member.get(member_id, 0)
        group_id = member["group_id"]
        if group_id is not None and member_counts[int(group_id)] > 0:
            amount += totals.by_group.get(int(group_id), 0) / member_counts[int(group_id)]
        if amount <= 0:
            continue
        shares.append(
            {
                "id": member_id,
                "name": member_display_name(member),
                "type": "member",
                "amount_cents": amount,
                "group_name": group_names.get(int(group_id)) if group_id is not None else None,
            }
        )

    if totals.unassigned_total > 0:
        shares.append(
            {
                "id": UNASSIGNED_ID,
                "name": translate(locale, "shares.unassigned", default="Unassigned"),
                "type": "member",
                "amount_cents": float(totals.unassigned_total),
                "group_name": None,
            }
        )

    total = sum(share["amount_cents"] for share in shares)
    for share in shares:
        share["percentage"] = share["amount_cents"] / total * 100 if total > 0 else 0.0
    shares.sort(key=lambda share: share["amount_cents"], reverse=True)

    return {
        "shares": shares,
        "total_cents": total,
        "fiscal_year": {"id": fiscal_year["id"], "name": fiscal_year["name"]},
    }


def dashboard_stats(store: DonorFlowStore, today: date | None = None) -> dict[str, Any]:
    counts = store.dashboard_counts()
    fiscal_year = store.current_fiscal_year(today=today)

    donation_count = 0
    donation_sum = 0
    total_target = 0
    member_actual = 0
    group_actual = 0
    unassigned_total = 0

    if fiscal_year is not None:
        donations = store.donations_between(fiscal_year["start_date"], fiscal_year["end_date"])
        donation_count = len(donations)
        donation_sum = sum(int(row["amount_cents"]) for row in donations)

        year_id = int(fiscal_year["id"])
        totals = _YearTotals(store.donation_rows_for_year(year_id))
        ungrouped = {int(member["id"]) for member in store.list_members() if member["group_id"] is None}

        total_target = sum(store.targets_by_member(year_id).values())
        member_actual = sum(amount for member_id, amount in totals.by_member.items() if member_id in ungrouped)
        group_actual = sum(totals.by_group.values())
        unassigned_total = totals.unassigned_total

    total_actual = member_actual + group_actual + unassigned_total

    return {
        **counts,
        "donation_count": donation_count,
        "donation_sum_cents": donation_sum,
        "current_year": dict(fiscal_year) if fiscal_year is not None else None,
        "performance": {
            "total_target_cents": total_target,
            "total_actual_cents": total_actual,
            "member_actual_cents": member_actual,
            "group_actual_cents": group_actual,
            "unassigned_total_cents": unassigned_total,
            "difference_cents": total_actual - total_target,
            "percentage": total_actual / total_target * 100 if total_target > 0 else 0.0,
        },
    }


def _anchor(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def suggest_fiscal_year_dates(
    today: date | None = None,
    start_month: int = 7,
    start_day: int = 1,
) -> dict[str, Any]:
    """Return name and bounds of the fiscal year containing ``today``.

    The year ends the day before the next start date.
    """
    today = today or date.today()
    start = _anchor(today.year, start_month, start_day)
    if today < start:
        start = _anchor(today.year - 1, start_month, start_day)
    next_start = _anchor(start.year + 1, start_month, start_day)
    end = next_start - timedelta(days=1)

    if start.year == end.year:
        name = str(start.year)
    else:
        name = f"{start.year}/{end.year}"

    return {"name": name, "start_date": start, "end_date": end}
