from __future__ import annotations

from datetime import date

import pytest

from donorflow.error_map import translate_error
from donorflow.validation import (
    BulkTargetsCreate,
    DonationCreate,
    FiscalYearCreate,
    Login,
    MemberCreate,
    SettingsUpdate,
    SponsorCreate,
    SponsorUpdate,
    UserCreate,
    UserUpdate,
    validate_request,
)


def test_donation_create_parses_amount_and_date() -> None:
    result = validate_request(
        DonationCreate,
        {"sponsor_id": "3", "amount": "150.50", "donation_date": "2025-09-15", "member_id": ""},
    )

    assert result.success
    assert result.data.sponsor_id == 3
    assert result.data.amount == 150.5
    assert result.data.donation_date == date(2025, 9, 15)
    assert result.data.member_id is None


@pytest.mark.parametrize(
    ("payload", "locale", "message", "field"),
    [
        ({"amount": 10, "donation_date": "2025-01-01"}, "en", "Required", "sponsor_id"),
        ({"sponsor_id": 1, "amount": 0, "donation_date": "2025-01-01"}, "en", "Must be greater than 0", "amount"),
        ({"sponsor_id": 1, "amount": "abc", "donation_date": "2025-01-01"}, "en", "Invalid type", "amount"),
        ({"sponsor_id": 1, "amount": 10, "donation_date": "15.09.2025"}, "en", "Invalid date", "donation_date"),
        ({"sponsor_id": 1, "amount": 0, "donation_date": "2025-01-01"}, "de", "Muss grösser als 0 sein", "amount"),
    ],
)
def test_donation_create_errors_are_translated(payload, locale, message, field) -> None:  # type: ignore[no-untyped-def]
    result = validate_request(DonationCreate, payload, locale=locale)

    assert not result.success
    assert result.error == message
    assert result.field == field


def test_donation_create_rejects_member_and_group() -> None:
    result = validate_request(
        DonationCreate,
        {"sponsor_id": 1, "amount": 5, "donation_date": "2025-01-01", "member_id": 1, "group_id": 2},
    )

    assert not result.success
    assert result.error == "Sponsor cannot be assigned to a member and a group at the same time"
    assert result.field is None


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ({"first_name": "Hans", "member_id": 1}, "Last name or company is required"),
        ({"last_name": "Huber"}, "Sponsor must be assigned to a member or a group"),
        (
            {"company": "Bakery AG", "member_id": 1, "group_id": 2},
            "Sponsor cannot be assigned to a member and a group at the same time",
        ),
        ({"last_name": "Huber", "member_id": 1, "email": "not-an-email"}, "Invalid email address"),
    ],
)
def test_sponsor_create_rules(payload, message) -> None:  # type: ignore[no-untyped-def]
    result = validate_request(SponsorCreate, payload)

    assert not result.success
    assert result.error == message


def test_sponsor_create_accepts_blank_optional_values() -> None:
    result = validate_request(
        SponsorCreate,
        {"company": "Bakery AG", "group_id": "4", "member_id": "", "email": ""},
    )

    assert result.success
    assert result.data.group_id == 4
    assert result.data.member_id is None


def test_sponsor_update_checks_assignment_only_when_both_ids_given() -> None:
    assert validate_request(SponsorUpdate, {"city": "Bern"}).success
    assert validate_request(SponsorUpdate, {"member_id": 2, "group_id": None}).success

    result = validate_request(SponsorUpdate, {"member_id": None, "group_id": None})
    assert not result.success
    assert result.error == "Sponsor must be assigned to a member or a group"


def test_member_create_requires_trimmed_names() -> None:
    result = validate_request(MemberCreate, {"first_name": "  ", "last_name": "Muster"}, locale="fr")

    assert not result.success
    assert result.field == "first_name"
    assert result.error == "Champ obligatoire"


def test_user_schemas_enforce_password_length() -> None:
    result = validate_request(UserCreate, {"username": "admin", "password": "abc"})
    assert not result.success
    assert result.error == "Must be at least 6 characters"

    update = validate_request(UserUpdate, {"password": ""})
    assert update.success
    assert update.data.password is None


def test_fiscal_year_end_before_start_is_rejected() -> None:
    result = validate_request(
        FiscalYearCreate,
        {"name": "2025/2026", "start_date": "2026-06-30", "end_date": "2025-07-01"},
        locale="it",
    )

    assert not result.success
    assert result.error == "La data di fine non può precedere la data di inizio"


def test_bulk_targets_allow_zero_but_not_negative() -> None:
    assert validate_request(BulkTargetsCreate, {"fiscal_year_id": 1, "default_amount": 0}).success

    result = validate_request(BulkTargetsCreate, {"fiscal_year_id": 1, "default_amount": -5})
    assert result.error == "Must be positive"


def test_login_requires_both_fields() -> None:
    result = validate_request(Login, {"username": "admin"})

    assert not result.success
    assert result.field == "password"


def test_settings_update_uses_camel_case_keys() -> None:
    result = validate_request(SettingsUpdate, {"organizationName": "FC Example", "fiscalYearStartMonth": "8"})
    assert result.success
    assert result.data.as_settings() == {"organizationName": "FC Example", "fiscalYearStartMonth": 8}

    assert validate_request(SettingsUpdate, {"fiscalYearStartMonth": 13}).error == "Must be at most 12"
    assert validate_request(SettingsUpdate, {"unknown": "x"}).error == "Unrecognized keys"


def test_translate_error_falls_back_to_key_and_message() -> None:
    assert translate_error({"type": "custom", "msg": "someRule"}, {}) == "someRule"
    assert translate_error({"type": "string_too_long", "ctx": {"max_length": 3}}, {}) == "Must be at most 3 characters"
    assert translate_error({"type": "multiple_of", "ctx": {"multiple_of": 5}}, {}) == "Must be a multiple of 5"
    assert translate_error({"type": "url_parsing", "msg": "Input should be a valid URL"}, {}) == (
        "Input should be a valid URL"
    )
