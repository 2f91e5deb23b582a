from __future__ import annotations

from datetime import date

import pytest

from donorflow.store import DomainError, DonorFlowStore, RecordNotFoundError, sponsor_display_name

YEAR_START = date(2025, 7, 1)
YEAR_END = date(2026, 6, 30)
IN_YEAR = date(2025, 9, 15)


def _build_store(tmp_path) -> DonorFlowStore:  # type: ignore[no-untyped-def]
    db_path = tmp_path / "donorflow_test.db"
    store = DonorFlowStore(db_path)
    store.init_db()
    return store


def test_init_db_seeds_default_settings_once(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.update_settings({"organizationName": "FC Example"})
    store.init_db()

    settings = store.get_settings()
    assert settings["organizationName"] == "FC Example"
    assert settings["defaultTargetAmount"] == "1000"
    assert settings["fiscalYearStartMonth"] == "7"
    assert settings["fiscalYearStartDay"] == "1"
    assert store.organization_name() == "FC Example"
    assert store.default_target_amount() == 1000.0


def test_add_member_validates_names_and_creates_current_target(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    with pytest.raises(ValueError):
        store.add_member(first_name="", last_name="Muster")
    with pytest.raises(ValueError):
        store.add_member(first_name="Anna", last_name="   ")

    no_year_member = store.add_member(first_name="Anna", last_name="Muster", today=IN_YEAR)
    year_id = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    store.update_settings({"defaultTargetAmount": "750"})
    member_id = store.add_member(first_name=" Beat ", last_name="Keller", today=IN_YEAR)

    targets = store.targets_by_member(year_id)
    assert no_year_member not in targets
    assert targets[member_id] == 75000

    member = store.get_member(member_id)
    assert member is not None
    assert member["first_name"] == "Beat"


def test_add_member_rejects_unknown_group(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    with pytest.raises(RecordNotFoundError):
        store.add_member(first_name="Anna", last_name="Muster", group_id=99)


def test_update_member_keeps_names_and_clears_group(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    group_id = store.add_group("Juniors")
    member_id = store.add_member(first_name="Anna", last_name="Muster", group_id=group_id)

    store.update_member(member_id, first_name=None, last_name="Meier", group_id=None)

    member = store.get_member(member_id)
    assert member["first_name"] == "Anna"
    assert member["last_name"] == "Meier"
    assert member["group_id"] is None


def test_sponsor_assignment_rules(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    group_id = store.add_group("Seniors")
    member_id = store.add_member(first_name="Anna", last_name="Muster")

    with pytest.raises(ValueError):
        store.add_sponsor(first_name="Hans", member_id=member_id)
    with pytest.raises(ValueError):
        store.add_sponsor(last_name="Huber")
    with pytest.raises(ValueError):
        store.add_sponsor(last_name="Huber", member_id=member_id, group_id=group_id)

    sponsor_id = store.add_sponsor(company="Bakery AG", group_id=group_id)
    with pytest.raises(ValueError):
        store.update_sponsor(sponsor_id, {"member_id": member_id})

    store.update_sponsor(sponsor_id, {"member_id": member_id, "group_id": None, "city": " Bern "})
    sponsor = store.get_sponsor(sponsor_id)
    assert sponsor["member_id"] == member_id
    assert sponsor["group_id"] is None
    assert sponsor["city"] == "Bern"
    assert [row["id"] for row in store.member_sponsors(member_id)] == [sponsor_id]


def test_sponsor_display_name_prefers_company() -> None:
    assert sponsor_display_name({"company": "Bakery AG", "first_name": "Hans", "last_name": "Huber"}) == "Bakery AG"
    assert sponsor_display_name({"company": None, "first_name": "Hans", "last_name": "Huber"}) == "Hans Huber"
    assert sponsor_display_name({"company": "", "first_name": None, "last_name": None}) == "Unknown"


def test_add_donation_defaults_assignment_and_resolves_fiscal_year(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    year_id = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    member_id = store.add_member(first_name="Anna", last_name="Muster", today=IN_YEAR)
    sponsor_id = store.add_sponsor(last_name="Huber", member_id=member_id)

    with pytest.raises(ValueError):
        store.add_donation(sponsor_id=sponsor_id, amount_cents=0, donation_date=IN_YEAR)
    with pytest.raises(RecordNotFoundError):
        store.add_donation(sponsor_id=999, amount_cents=100, donation_date=IN_YEAR)

    donation_id = store.add_donation(sponsor_id=sponsor_id, amount_cents=12500, donation_date=IN_YEAR, note="Gala")
    outside_id = store.add_donation(sponsor_id=sponsor_id, amount_cents=500, donation_date=date(2024, 1, 5))

    donation = store.get_donation(donation_id)
    assert donation["member_id"] == member_id
    assert donation["group_id"] is None
    assert donation["fiscal_year_id"] == year_id
    assert donation["donation_date"] == "2025-09-15"
    assert store.get_donation(outside_id)["fiscal_year_id"] is None

    details = store.list_donations(include_details=True)
    assert details[0]["id"] == donation_id
    assert details[0]["sponsor_member_name"] == "Anna Muster"
    assert details[0]["fiscal_year_name"] == "2025/2026"


def test_update_donation_moves_fiscal_year_and_clears_note(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    first_year = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    second_year = store.add_fiscal_year("2026/2027", date(2026, 7, 1), date(2027, 6, 30))
    group_id = store.add_group("Seniors")
    sponsor_id = store.add_sponsor(company="Bakery AG", group_id=group_id)
    donation_id = store.add_donation(sponsor_id=sponsor_id, amount_cents=1000, donation_date=IN_YEAR, note="old")
    assert store.get_donation(donation_id)["fiscal_year_id"] == first_year

    store.update_donation(donation_id, donation_date=date(2026, 8, 1), amount_cents=2000, clear_note=True)

    donation = store.get_donation(donation_id)
    assert donation["fiscal_year_id"] == second_year
    assert donation["amount_cents"] == 2000
    assert donation["note"] is None
    assert [row["id"] for row in store.group_donations(group_id)] == [donation_id]

    with pytest.raises(ValueError):
        store.update_donation(donation_id, amount_cents=-5)


def test_deleting_sponsor_removes_donations(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    member_id = store.add_member(first_name="Anna", last_name="Muster")
    sponsor_id = store.add_sponsor(last_name="Huber", member_id=member_id)
    store.add_donation(sponsor_id=sponsor_id, amount_cents=1000, donation_date=IN_YEAR)

    store.delete_sponsor(sponsor_id)

    assert store.list_donations() == []
    with pytest.raises(RecordNotFoundError):
        store.delete_sponsor(sponsor_id)


def test_deleting_group_detaches_members(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    group_id = store.add_group("Juniors")
    member_id = store.add_member(first_name="Anna", last_name="Muster", group_id=group_id)

    store.delete_group(group_id)

    assert store.get_member(member_id)["group_id"] is None
    assert store.get_group(group_id) is None


def test_list_details_aggregate_counts_and_totals(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    group_id = store.add_group("Seniors")
    member_id = store.add_member(first_name="Anna", last_name="Muster", group_id=group_id)
    member_sponsor = store.add_sponsor(last_name="Huber", member_id=member_id)
    group_sponsor = store.add_sponsor(company="Bakery AG", group_id=group_id)
    store.add_donation(sponsor_id=member_sponsor, amount_cents=1000, donation_date=IN_YEAR)
    store.add_donation(sponsor_id=member_sponsor, amount_cents=2500, donation_date=IN_YEAR)
    store.add_donation(sponsor_id=group_sponsor, amount_cents=4000, donation_date=IN_YEAR)

    member = store.list_members(include_details=True)[0]
    assert member["group_name"] == "Seniors"
    assert member["sponsor_count"] == 1
    assert member["donation_total_cents"] == 3500

    group = store.list_groups(include_details=True)[0]
    assert group["member_count"] == 1
    assert group["sponsor_count"] == 1
    assert group["donation_total_cents"] == 4000

    sponsors = {row["id"]: row for row in store.list_sponsors(include_details=True)}
    assert sponsors[member_sponsor]["donation_count"] == 2
    assert sponsors[member_sponsor]["member_first_name"] == "Anna"
    assert sponsors[group_sponsor]["group_name"] == "Seniors"

    assert store.dashboard_counts() == {"member_count": 1, "group_count": 1, "sponsor_count": 2}


def test_fiscal_year_rules_and_target_copy(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    with pytest.raises(DomainError) as excinfo:
        store.add_fiscal_year("Broken", YEAR_END, YEAR_START)
    assert excinfo.value.message_key == "fiscalYears.endBeforeStart"

    first_year = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    member_id = store.add_member(first_name="Anna", last_name="Muster", today=IN_YEAR)
    store.set_target(member_id, first_year, 180000)

    with pytest.raises(DomainError) as excinfo:
        store.add_fiscal_year("2025/2026", date(2027, 7, 1), date(2028, 6, 30))
    assert excinfo.value.message_key == "fiscalYears.nameAlreadyExists"

    copied_year = store.add_fiscal_year(
        "2026/2027",
        date(2026, 7, 1),
        date(2027, 6, 30),
        copy_previous_targets=True,
    )
    empty_year = store.add_fiscal_year(
        "2027/2028",
        date(2027, 7, 1),
        date(2028, 6, 30),
        copy_previous_targets=False,
    )

    assert store.targets_by_member(copied_year) == {member_id: 180000}
    assert store.targets_by_member(empty_year) == {}
    assert [row["name"] for row in store.list_fiscal_years()] == ["2027/2028", "2026/2027", "2025/2026"]
    assert store.current_fiscal_year(today=date(2026, 12, 24))["id"] == copied_year


def test_targets_for_year_and_bulk_create(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    assert store.targets_for_year(today=IN_YEAR) is None

    anna = store.add_member(first_name="Anna", last_name="Muster")
    beat = store.add_member(first_name="Beat", last_name="Keller")
    year_id = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    store.set_target(anna, year_id, 50000)

    created = store.bulk_create_targets(year_id, 100000)
    assert created == 1
    assert store.bulk_create_targets(year_id, 100000) == 0
    assert store.targets_by_member(year_id) == {anna: 50000, beat: 100000}

    selection = store.targets_for_year(today=IN_YEAR)
    assert selection is not None
    assert selection["fiscal_year"]["id"] == year_id
    assert len(selection["targets"]) == 2
    assert len(selection["all_years"]) == 1

    target_id = store.set_target(anna, year_id, 60000)
    store.update_target(target_id, 65000)
    assert store.get_target(target_id)["target_cents"] == 65000

    with pytest.raises(ValueError):
        store.update_target(target_id, -1)

    assert store.set_all_targets(30000) == 2
    assert set(store.targets_by_member(year_id).values()) == {30000}


def test_user_rules(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    with pytest.raises(ValueError):
        store.add_user(username="admin", password="short")

    admin_id = store.add_user(username="admin", password="secret1", name="Admin")
    with pytest.raises(DomainError) as excinfo:
        store.add_user(username="admin", password="secret2")
    assert excinfo.value.message_key == "users.usernameAlreadyTaken"

    with pytest.raises(DomainError) as excinfo:
        store.delete_user(admin_id, acting_user_id=admin_id)
    assert excinfo.value.message_key == "users.cannotDeleteLastUser"

    other_id = store.add_user(username="kasse", password="secret2")
    with pytest.raises(DomainError) as excinfo:
        store.delete_user(admin_id, acting_user_id=admin_id)
    assert excinfo.value.message_key == "users.cannotDeleteSelf"

    store.update_user(other_id, name="Kassier")
    assert store.get_user(other_id)["name"] == "Kassier"
    assert "password_hash" not in store.list_users()[0].keys()

    store.delete_user(other_id, acting_user_id=admin_id)
    assert store.count_users() == 1


def test_update_user_keeps_password_when_blank(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    user_id = store.add_user(username="admin", password="secret1")
    original_hash = store.get_user_by_username("admin")["password_hash"]

    store.update_user(user_id, password=None)
    assert store.get_user_by_username("admin")["password_hash"] == original_hash

    store.update_user(user_id, password="another1")
    assert store.get_user_by_username("admin")["password_hash"] != original_hash


def test_migrate_sponsor_assignments_picks_most_common(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    anna = store.add_member(first_name="Anna", last_name="Muster")
    beat = store.add_member(first_name="Beat", last_name="Keller")
    group_id = store.add_group("Seniors")

    assigned = store.add_sponsor(last_name="Assigned", member_id=anna)
    mixed = store.add_sponsor(last_name="Mixed", require_assignment=False)
    lonely = store.add_sponsor(last_name="Lonely", require_assignment=False)
    grouped = store.add_sponsor(last_name="Grouped", require_assignment=False)

    store.add_donation(sponsor_id=mixed, amount_cents=100, donation_date=IN_YEAR, member_id=beat)
    store.add_donation(sponsor_id=mixed, amount_cents=100, donation_date=IN_YEAR, member_id=anna)
    store.add_donation(sponsor_id=mixed, amount_cents=100, donation_date=IN_YEAR, member_id=beat)
    store.add_donation(sponsor_id=grouped, amount_cents=100, donation_date=IN_YEAR, group_id=group_id)

    summary = store.migrate_sponsor_assignments()

    assert summary == {"updated": 2, "skipped": 1, "no_assignment": 1, "conflicts": 1, "total": 4}
    assert store.get_sponsor(mixed)["member_id"] == beat
    assert store.get_sponsor(grouped)["group_id"] == group_id
    assert store.get_sponsor(lonely)["member_id"] is None
    assert store.get_sponsor(assigned)["member_id"] == anna


def test_deleting_member_detaches_sponsors_and_drops_targets(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    year_id = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    member_id = store.add_member(first_name="Anna", last_name="Muster", today=IN_YEAR)
    other_id = store.add_member(first_name="Beat", last_name="Keller", today=IN_YEAR)
    sponsor_id = store.add_sponsor(last_name="Huber", member_id=member_id)
    donation_id = store.add_donation(sponsor_id=sponsor_id, amount_cents=2500, donation_date=IN_YEAR)

    store.delete_member(member_id)

    sponsor = store.get_sponsor(sponsor_id)
    assert sponsor is not None
    assert sponsor["member_id"] is None
    assert store.get_donation(donation_id)["amount_cents"] == 2500
    assert store.targets_by_member(year_id) == {other_id: 100000}
    with pytest.raises(RecordNotFoundError):
        store.delete_member(member_id)


def test_deleting_fiscal_year_drops_targets_and_keeps_donations(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    year_id = store.add_fiscal_year("2025/2026", YEAR_START, YEAR_END)
    member_id = store.add_member(first_name="Anna", last_name="Muster", today=IN_YEAR)
    sponsor_id = store.add_sponsor(last_name="Huber", member_id=member_id)
    donation_id = store.add_donation(sponsor_id=sponsor_id, amount_cents=2500, donation_date=IN_YEAR)
    assert store.get_donation(donation_id)["fiscal_year_id"] == year_id

    store.delete_fiscal_year(year_id)

    donation = store.get_donation(donation_id)
    assert donation["fiscal_year_id"] is None
    assert donation["donation_date"] == IN_YEAR.isoformat()
    assert store.list_targets(year_id) == []
    assert store.get_fiscal_year(year_id) is None
    with pytest.raises(RecordNotFoundError):
        store.delete_fiscal_year(year_id)


def test_update_donation_overrides_and_resets_assignment(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    group_id = store.add_group("Seniors")
    member_id = store.add_member(first_name="Anna", last_name="Muster")
    sponsor_id = store.add_sponsor(last_name="Huber", member_id=member_id)
    donation_id = store.add_donation(sponsor_id=sponsor_id, amount_cents=1000, donation_date=IN_YEAR)

    store.update_donation(donation_id, group_id=group_id)
    donation = store.get_donation(donation_id)
    assert (donation["member_id"], donation["group_id"]) == (None, group_id)

    store.update_donation(donation_id, amount_cents=1500)
    assert store.get_donation(donation_id)["group_id"] == group_id

    store.update_donation(donation_id, reset_assignment=True)
    donation = store.get_donation(donation_id)
    assert (donation["member_id"], donation["group_id"]) == (member_id, None)
    assert donation["amount_cents"] == 1500

    with pytest.raises(ValueError):
        store.update_donation(donation_id, member_id=member_id, group_id=group_id)
    with pytest.raises(RecordNotFoundError):
        store.update_donation(donation_id, member_id=999)
