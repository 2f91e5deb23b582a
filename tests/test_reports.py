from __future__ import annotations

from datetime import date

import pytest

from donorflow.reports import (
    achievement_level,
    dashboard_stats,
    performance_detail,
    performance_report,
    share_report,
    suggest_fiscal_year_dates,
)
from donorflow.store import DonorFlowStore, RecordNotFoundError

TODAY = date(2025, 9, 15)


def _build_store(tmp_path) -> DonorFlowStore:  # type: ignore[no-untyped-def]
    store = DonorFlowStore(tmp_path / "donorflow_reports.db")
    store.init_db()
    return store


def _seed(store: DonorFlowStore) -> dict[str, int]:
    group_id = store.add_group("Seniors")
    ids = {
        "group": group_id,
        "anna": store.add_member(first_name="Anna", last_name="Muster"),
        "beat": store.add_member(first_name="Beat", last_name="Keller"),
        "carla": store.add_member(first_name="Carla", last_name="Rossi", group_id=group_id),
        "dario": store.add_member(first_name="Dario", last_name="Bianchi", group_id=group_id),
        "eva": store.add_member(first_name="Eva", last_name="Frei"),
    }
    year_id = store.add_fiscal_year("2025/2026", date(2025, 7, 1), date(2026, 6, 30))
    ids["year"] = year_id

    store.set_target(ids["anna"], year_id, 100000)
    store.set_target(ids["beat"], year_id, 50000)
    store.set_target(ids["carla"], year_id, 40000)
    store.set_target(ids["dario"], year_id, 60000)

    anna_sponsor = store.add_sponsor(last_name="Huber", member_id=ids["anna"])
    beat_sponsor = store.add_sponsor(last_name="Graf", member_id=ids["beat"])
    group_sponsor = store.add_sponsor(company="Bakery AG", group_id=group_id)
    carla_sponsor = store.add_sponsor(last_name="Weber", member_id=ids["carla"])
    loose_sponsor = store.add_sponsor(last_name="Loose", require_assignment=False)

    store.add_donation(sponsor_id=anna_sponsor, amount_cents=70000, donation_date=date(2025, 8, 1))
    store.add_donation(sponsor_id=anna_sponsor, amount_cents=50000, donation_date=date(2026, 3, 1))
    store.add_donation(sponsor_id=anna_sponsor, amount_cents=99900, donation_date=date(2024, 3, 1))
    store.add_donation(sponsor_id=beat_sponsor, amount_cents=25000, donation_date=date(2025, 9, 1))
    store.add_donation(sponsor_id=group_sponsor, amount_cents=80000, donation_date=date(2025, 10, 1))
    store.add_donation(sponsor_id=carla_sponsor, amount_cents=5000, donation_date=date(2025, 11, 1))
    store.add_donation(sponsor_id=loose_sponsor, amount_cents=10000, donation_date=date(2025, 12, 1))
    return ids


def test_achievement_level_thresholds() -> None:
    assert achievement_level(100) == "success"
    assert achievement_level(140.5) == "success"
    assert achievement_level(75) == "warning"
    assert achievement_level(99.9) == "warning"
    assert achievement_level(74.9) == "danger"
    assert achievement_level(0) == "danger"


def test_reports_without_fiscal_year(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    assert performance_report(store, today=TODAY) == {"current_year": None}
    assert share_report(store, today=TODAY) == {"error": "No active fiscal year found", "shares": []}

    stats = dashboard_stats(store, today=TODAY)
    assert stats["current_year"] is None
    assert stats["donation_count"] == 0
    assert stats["performance"]["percentage"] == 0.0


def test_performance_report_splits_members_groups_and_unassigned(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    ids = _seed(store)

    report = performance_report(store, today=TODAY)

    assert report["current_year"]["id"] == ids["year"]
    assert [stat["member"]["id"] for stat in report["member_stats"]] == [ids["anna"], ids["beat"]]

    anna = report["member_stats"][0]
    assert anna["actual_cents"] == 120000
    assert anna["target_cents"] == 100000
    assert anna["difference_cents"] == 20000
    assert anna["percentage"] == pytest.approx(120.0)
    assert anna["donation_count"] == 2

    assert report["member_stats"][1]["percentage"] == pytest.approx(50.0)

    assert len(report["group_stats"]) == 1
    group = report["group_stats"][0]
    assert group["actual_cents"] == 80000
    assert group["target_cents"] == 100000
    assert group["member_count"] == 2
    assert group["percentage"] == pytest.approx(80.0)
    assert {member["id"] for member in group["members"]} == {ids["carla"], ids["dario"]}

    assert report["unassigned_total_cents"] == 10000
    assert report["unassigned_count"] == 1
    assert report["total_target_cents"] == 250000
    assert report["member_actual_cents"] == 145000
    assert report["group_actual_cents"] == 80000
    assert report["total_actual_cents"] == 235000
    assert report["overall_percentage"] == pytest.approx(94.0)


def test_performance_report_gives_full_percentage_without_target(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    member_id = store.add_member(first_name="Anna", last_name="Muster")
    store.add_fiscal_year("2025/2026", date(2025, 7, 1), date(2026, 6, 30))
    sponsor_id = store.add_sponsor(last_name="Huber", member_id=member_id)
    store.add_donation(sponsor_id=sponsor_id, amount_cents=1000, donation_date=TODAY)

    report = performance_report(store, today=TODAY)

    assert report["member_stats"][0]["percentage"] == 100.0
    assert report["overall_percentage"] == 0.0


def test_share_report_splits_group_donations_evenly(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    ids = _seed(store)

    report = share_report(store, today=TODAY, locale="de")
    shares = report["shares"]

    assert [share["id"] for share in shares] == [ids["anna"], ids["carla"], ids["dario"], ids["beat"], "unassigned"]
    assert [share["amount_cents"] for share in shares] == [120000, 45000, 40000, 25000, 10000]
    assert shares[1]["group_name"] == "Seniors"
    assert shares[-1]["name"] == "Nicht zugeordnet"
    assert report["total_cents"] == 240000
    assert shares[0]["percentage"] == pytest.approx(50.0)
    assert sum(share["percentage"] for share in shares) == pytest.approx(100.0)
    assert ids["eva"] not in [share["id"] for share in shares]


def test_dashboard_stats_summarise_current_year(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    _seed(store)

    stats = dashboard_stats(store, today=TODAY)

    assert stats["member_count"] == 5
    assert stats["group_count"] == 1
    assert stats["sponsor_count"] == 5
    assert stats["current_year"]["name"] == "2025/2026"
    assert stats["donation_count"] == 6
    assert stats["donation_sum_cents"] == 240000

    performance = stats["performance"]
    assert performance["total_target_cents"] == 250000
    assert performance["member_actual_cents"] == 145000
    assert performance["group_actual_cents"] == 80000
    assert performance["unassigned_total_cents"] == 10000
    assert performance["difference_cents"] == -15000
    assert performance["percentage"] == pytest.approx(94.0)


@pytest.mark.parametrize(
    ("today", "start_month", "start_day", "expected"),
    [
        (date(2025, 9, 15), 7, 1, ("2025/2026", date(2025, 7, 1), date(2026, 6, 30))),
        (date(2025, 3, 1), 7, 1, ("2024/2025", date(2024, 7, 1), date(2025, 6, 30))),
        (date(2025, 5, 20), 1, 1, ("2025", date(2025, 1, 1), date(2025, 12, 31))),
        (date(2025, 3, 10), 2, 31, ("2025/2026", date(2025, 2, 28), date(2026, 2, 27))),
    ],
)
def test_suggest_fiscal_year_dates(today, start_month, start_day, expected) -> None:  # type: ignore[no-untyped-def]
    suggestion = suggest_fiscal_year_dates(today=today, start_month=start_month, start_day=start_day)

    assert (suggestion["name"], suggestion["start_date"], suggestion["end_date"]) == expected


def test_performance_detail_for_member_groups_donations_by_sponsor(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    ids = _seed(store)
    bakery = store.add_sponsor(company="Bakery Muster", member_id=ids["anna"])
    silent = store.add_sponsor(first_name="Urs", last_name="Zeller", city="Bern", member_id=ids["anna"])
    store.add_donation(sponsor_id=bakery, amount_cents=15000, donation_date=date(2025, 9, 10))

    detail = performance_detail(store, member_id=ids["anna"], today=TODAY)

    assert detail["type"] == "member"
    assert detail["name"] == "Anna Muster"
    assert detail["target_cents"] == 100000
    assert detail["actual_cents"] == 135000
    assert detail["difference_cents"] == 35000
    assert detail["percentage"] == pytest.approx(135.0)
    assert [(entry["name"], entry["total_cents"], entry["donation_count"]) for entry in detail["sponsors"]] == [
        ("Huber", 120000, 2),
        ("Bakery Muster", 15000, 1),
    ]
    assert detail["sponsors_without_donations"] == [{"id": silent, "name": "Urs Zeller", "city": "Bern"}]
    assert [donation["donation_date"] for donation in detail["donations"]] == [
        "2026-03-01",
        "2025-09-10",
        "2025-08-01",
    ]


def test_performance_detail_for_group_sums_member_targets(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    ids = _seed(store)

    detail = performance_detail(store, group_id=ids["group"], today=TODAY)

    assert detail["name"] == "Seniors"
    assert detail["target_cents"] == 100000
    assert detail["actual_cents"] == 80000
    assert detail["percentage"] == pytest.approx(80.0)
    assert [entry["name"] for entry in detail["sponsors"]] == ["Bakery AG"]
    assert detail["sponsors_without_donations"] == []


def test_performance_detail_argument_checks(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    ids = _seed(store)

    with pytest.raises(ValueError):
        performance_detail(store, today=TODAY)
    with pytest.raises(ValueError):
        performance_detail(store, member_id=ids["anna"], group_id=ids["group"], today=TODAY)
    with pytest.raises(RecordNotFoundError):
        performance_detail(store, member_id=999, today=TODAY)

    no_year = performance_detail(store, member_id=ids["beat"], today=date(2030, 1, 1))
    assert no_year["current_year"] is None
    assert no_year["actual_cents"] == 0
    assert [entry["name"] for entry in no_year["sponsors_without_donations"]] == ["Graf"]
