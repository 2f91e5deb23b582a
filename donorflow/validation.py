"""Request schemas and locale-aware validation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Annotated, Any, Generic, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from .error_map import translate_error
from .i18n import DEFAULT_LOCALE, get_messages, normalize_locale

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Password = Annotated[str, StringConstraints(min_length=6)]
OptionalText = str | None
Amount = Annotated[float, Field(gt=0, allow_inf_nan=False)]
NonNegativeAmount = Annotated[float, Field(ge=0, allow_inf_nan=False)]

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _rule(key: str) -> PydanticCustomError:
    return PydanticCustomError("custom", key)


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore")


class DonationCreate(_Schema):
    sponsor_id: int
    amount: Amount
    donation_date: date
    note: OptionalText = None
    member_id: int | None = None
    group_id: int | None = None

    _blank_ids = field_validator("member_id", "group_id", mode="before")(_blank_to_none)

    @model_validator(mode="after")
    def _single_assignment(self) -> "DonationCreate":
        if self.member_id is not None and self.group_id is not None:
            raise _rule("cannotAssignBoth")
        return self


class DonationUpdate(_Schema):
    sponsor_id: int | None = None
    amount: Amount | None = None
    donation_date: date | None = None
    note: OptionalText = None
    member_id: int | None = None
    group_id: int | None = None

    _blank_ids = field_validator("member_id", "group_id", mode="before")(_blank_to_none)

    @model_validator(mode="after")
    def _single_assignment(self) -> "DonationUpdate":
        if self.member_id is not None and self.group_id is not None:
            raise _rule("cannotAssignBoth")
        return self


class _SponsorFields(_Schema):
    company: OptionalText = None
    salutation: OptionalText = None
    first_name: OptionalText = None
    last_name: OptionalText = None
    street: OptionalText = None
    postal_code: OptionalText = None
    city: OptionalText = None
    phone: OptionalText = None
    email: OptionalText = None
    notes: OptionalText = None
    member_id: int | None = None
    group_id: int | None = None

    _blank_ids = field_validator("member_id", "group_id", mode="before")(_blank_to_none)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return value
        if not EMAIL_PATTERN.match(value.strip()):
            raise PydanticCustomError("email", "Invalid email address")
        return value.strip()


class SponsorCreate(_SponsorFields):
    @model_validator(mode="after")
    def _assignment_rules(self) -> "SponsorCreate":
        if not (self.last_name or "").strip() and not (self.company or "").strip():
            raise _rule("nameOrCompanyRequired")
        if self.member_id is None and self.group_id is None:
            raise _rule("memberOrGroupRequired")
        if self.member_id is not None and self.group_id is not None:
            raise _rule("cannotAssignBoth")
        return self


class SponsorUpdate(_SponsorFields):
    @model_validator(mode="after")
    def _assignment_rules(self) -> "SponsorUpdate":
        # Only checked when the request carries both ids
        if {"member_id", "group_id"} <= self.model_fields_set:
            if self.member_id is not None and self.group_id is not None:
                raise _rule("cannotAssignBoth")
            if self.member_id is None and self.group_id is None:
                raise _rule("memberOrGroupRequired")
        return self


class MemberCreate(_Schema):
    first_name: RequiredText
    last_name: RequiredText
    group_id: int | None = None

    _blank_ids = field_validator("group_id", mode="before")(_blank_to_none)


class MemberUpdate(_Schema):
    first_name: RequiredText | None = None
    last_name: RequiredText | None = None
    group_id: int | None = None

    _blank_ids = field_validator("group_id", mode="before")(_blank_to_none)


class GroupCreate(_Schema):
    name: RequiredText


class GroupUpdate(_Schema):
    name: RequiredText


class UserCreate(_Schema):
    username: RequiredText
    password: Password
    name: OptionalText = None


class UserUpdate(_Schema):
    username: RequiredText | None = None
    password: Password | None = None
    name: OptionalText = None

    @field_validator("password", mode="before")
    @classmethod
    def _empty_password_keeps_current(cls, value: Any) -> Any:
        return None if value == "" else value


class TargetUpdate(_Schema):
    target_amount: NonNegativeAmount


class BulkTargetsCreate(_Schema):
    fiscal_year_id: int
    default_amount: NonNegativeAmount


class FiscalYearCreate(_Schema):
    name: RequiredText
    start_date: date
    end_date: date
    copy_previous_targets: bool = False

    @model_validator(mode="after")
    def _end_after_start(self) -> "FiscalYearCreate":
        if self.end_date < self.start_date:
            raise _rule("endBeforeStart")
        return self


class Login(_Schema):
    username: RequiredText
    password: Annotated[str, StringConstraints(min_length=1)]


class SettingsUpdate(BaseModel):
    """Known settings keys; values are stored as strings."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    organization_name: RequiredText | None = Field(default=None, alias="organizationName")
    default_target_amount: NonNegativeAmount | None = Field(default=None, alias="defaultTargetAmount")
    fiscal_year_start_month: Annotated[int, Field(ge=1, le=12)] | None = Field(
        default=None, alias="fiscalYearStartMonth"
    )
    fiscal_year_start_day: Annotated[int, Field(ge=1, le=31)] | None = Field(
        default=None, alias="fiscalYearStartDay"
    )

    def as_settings(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


@dataclass
class ValidationResult(Generic[ModelT]):
    success: bool
    data: ModelT | None = None
    error: str | None = None
    field: str | None = None


def validate_request(
    schema: type[ModelT],
    data: Any,
    locale: str = DEFAULT_LOCALE,
) -> ValidationResult[ModelT]:
    """Validate ``data`` and return the parsed model or the first error, translated."""
    try:
        return ValidationResult(success=True, data=schema.model_validate(data))
    except ValidationError as exc:
        translations = get_messages(normalize_locale(locale)).get("validation", {})
        first_error = exc.errors()[0]
        location = ".".join(str(part) for part in first_error.get("loc", ()))
        return ValidationResult(
            success=False,
            error=translate_error(first_error, translations),
            field=location or None,
        )
