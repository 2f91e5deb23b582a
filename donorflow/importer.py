"""CSV import of members and sponsors."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import IO, Any

import pandas as pd

from .store import DonorFlowStore, cents_from_amount, member_display_name

logger = logging.getLogger(__name__)

CsvSource = str | Path | bytes | IO[Any]

MEMBER_COLUMNS = {
    "last_name": ("Nachname", "last_name"),
    "first_name": ("Vorname", "first_name"),
}
SPONSOR_COLUMNS = {
    "assignment": ("Member", "member"),
    "company": ("Firma", "company"),
    "salutation": ("Anrede", "salutation"),
    "first_name": ("Vorname", "first_name"),
    "last_name": ("Name", "last_name"),
    "street": ("Strasse", "street"),
    "postal_code": ("PLZ", "postal_code"),
    "city": ("Ort", "city"),
    "amount": ("Betrag", "amount"),
}
_CURRENCY_NOISE = re.compile(r"CHF|'|’|\s")


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    donations: int = 0
    messages: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "donations": self.donations,
            "messages": list(self.messages),
        }


def parse_currency(value: str | None) -> float:
    """Parse amounts such as "CHF 1'000.50" or "250,00"; unparsable input gives 0."""
    if not value:
        return 0.0
    cleaned = _CURRENCY_NOISE.sub("", str(value)).replace(",", ".", 1)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _read_csv(source: CsvSource, separator: str) -> pd.DataFrame:
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    frame = pd.read_csv(
        source,
        sep=separator,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        encoding="utf-8-sig",
    )
    frame.columns = [str(column).strip() for column in frame.columns]
    return frame


def _pick(row: pd.Series, candidates: tuple[str, ...]) -> str:
    for column in candidates:
        if column in row.index:
            return str(row[column] or "").strip()
    return ""


def import_members_csv(store: DonorFlowStore, source: CsvSource, separator: str = ";") -> ImportSummary:
    """Create one member per row; rows without first or last name are skipped."""
    summary = ImportSummary()
    frame = _read_csv(source, separator)

    for _, row in frame.iterrows():
        last_name = _pick(row, MEMBER_COLUMNS["last_name"])
        first_name = _pick(row, MEMBER_COLUMNS["first_name"])
        if not last_name or not first_name:
            summary.skipped += 1
            continue

        try:
            store.add_member(first_name=first_name, last_name=last_name)
        except ValueError as exc:
            summary.skipped += 1
            summary.messages.append(f"{first_name} {last_name}: {exc}")
            continue
        summary.imported += 1

    logger.info("Imported %s members, skipped %s", summary.imported, summary.skipped)
    return summary


def import_sponsors_csv(
    store: DonorFlowStore,
    source: CsvSource,
    separator: str = ",",
    donation_date: date | None = None,
) -> ImportSummary:
    """Create sponsors and assign them by the ``Member`` column.

    The assignment matches the start of a member's full name (case-insensitive)
    and otherwise a group name exactly. A positive ``Betrag`` is booked as a
    donation on ``donation_date``.
    """
    summary = ImportSummary()
    frame = _read_csv(source, separator)
    donation_date = donation_date or date.today()

    members = [(member_display_name(row).lower(), int(row["id"])) for row in store.list_members()]
    groups = {str(row["name"]).strip(): int(row["id"]) for row in store.list_groups()}

    for _, row in frame.iterrows():
        values = {key: _pick(row, columns) for key, columns in SPONSOR_COLUMNS.items()}
        label = values["company"] or f"{values['first_name']} {values['last_name']}".strip()

        if not values["last_name"] and not values["company"]:
            summary.skipped += 1
            continue

        assignment = values["assignment"]
        if not assignment:
            summary.skipped += 1
            summary.messages.append(f"{label}: no member or group given")
            continue

        member_id = next(
            (member_id for name, member_id in members if name.startswith(assignment.lower())),
            None,
        )
        group_id = groups.get(assignment) if member_id is None else None
        if member_id is None and group_id is None:
            summary.skipped += 1
            summary.messages.append(f"{label}: no member or group matches {assignment!r}")
            continue

        try:
            sponsor_id = store.add_sponsor(
                company=values["company"],
                salutation=values["salutation"],
                first_name=values["first_name"],
                last_name=values["last_name"],
                street=values["street"],
                postal_code=values["postal_code"],
                city=values["city"],
                member_id=member_id,
                group_id=group_id,
            )
        except ValueError as exc:
            summary.skipped += 1
            summary.messages.append(f"{label}: {exc}")
            continue
        summary.imported += 1

        amount_cents = cents_from_amount(parse_currency(values["amount"]))
        if amount_cents > 0:
            store.add_donation(sponsor_id=sponsor_id, amount_cents=amount_cents, donation_date=donation_date)
            summary.donations += 1

    logger.info(
        "Imported %s sponsors with %s donations, skipped %s",
        summary.imported,
        summary.donations,
        summary.skipped,
    )
    return summary
