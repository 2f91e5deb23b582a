"""SQLite-backed persistence layer for DonorFlow."""

from __future__ import annotations

import logging
import sqlite3
from collections import Counter
from datetime import date
from pathlib import Path
from typing import Any, Mapping

from .auth import hash_password

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZATION_NAME = "DonorFlow"
DEFAULT_TARGET_AMOUNT = 1000.0
DEFAULT_SETTINGS = {
    "organizationName": (DEFAULT_ORGANIZATION_NAME, "Name of the organization"),
    "defaultTargetAmount": ("1000", "Default target for new members (CHF)"),
    "fiscalYearStartMonth": ("7", "Start month for new fiscal years (1-12)"),
    "fiscalYearStartDay": ("1", "Start day for new fiscal years (1-31)"),
}

SPONSOR_COLUMNS = (
    "company",
    "salutation",
    "first_name",
    "last_name",
    "street",
    "postal_code",
    "city",
    "phone",
    "email",
    "notes",
    "member_id",
    "group_id",
)

MIN_PASSWORD_LENGTH = 6


class RecordNotFoundError(LookupError):
    """Raised when a referenced row does not exist."""

    def __init__(self, table_name: str, record_id: Any) -> None:
        super().__init__(f"{table_name} #{record_id} not found.")
        self.table_name = table_name
        self.record_id = record_id


class DomainError(ValueError):
    """A rule violation with a translatable message key."""

    def __init__(self, message_key: str, message: str) -> None:
        super().__init__(message)
        self.message_key = message_key


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def _clean_id(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _iso(value: date | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def _lastrowid(cursor: sqlite3.Cursor) -> int:
    row_id = cursor.lastrowid
    if row_id is None:
        raise RuntimeError("Insert did not return a row id.")
    return row_id


def cents_from_amount(amount: float) -> int:
    return int(round(amount * 100))


def amount_from_cents(cents: int | float) -> float:
    return cents / 100


def member_display_name(row: sqlite3.Row | Mapping[str, Any]) -> str:
    first_name = (row["first_name"] or "").strip()
    last_name = (row["last_name"] or "").strip()
    return f"{first_name} {last_name}".strip() or "Unnamed member"


def sponsor_display_name(row: sqlite3.Row | Mapping[str, Any]) -> str:
    company = (row["company"] or "").strip()
    if company:
        return company

    parts = [part.strip() for part in (row["first_name"], row["last_name"]) if part and part.strip()]
    return " ".join(parts) if parts else "Unknown"


def _table_columns(connection: sqlite3.Connection, table_name: str) -> set[str]:
    rows = connection.execute(f"PRAGMA table_info({table_name})").fetchall()
    return {str(row["name"]) for row in rows}


def _ensure_column(
    connection: sqlite3.Connection,
    table_name: str,
    column_name: str,
    definition: str,
) -> None:
    if column_name in _table_columns(connection, table_name):
        return
    connection.execute(
        f"ALTER TABLE {table_name} ADD COLUMN {column_name} {definition}"
    )


class DonorFlowStore:
    """Persistence operations for members, groups, sponsors, donations, and targets."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def init_db(self) -> None:
        with self._connect() as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    group_id INTEGER,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE SET NULL
                );

                CREATE TABLE IF NOT EXISTS sponsors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    company TEXT,
                    salutation TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    street TEXT,
                    postal_code TEXT,
                    city TEXT,
                    phone TEXT,
                    email TEXT,
                    notes TEXT,
                    member_id INTEGER,
                    group_id INTEGER,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CHECK (member_id IS NULL OR group_id IS NULL),
                    FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE SET NULL,
                    FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE SET NULL
                );

                CREATE TABLE IF NOT EXISTS fiscal_years (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS donations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    sponsor_id INTEGER NOT NULL,
                    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
                    donation_date TEXT NOT NULL,
                    fiscal_year_id INTEGER,
                    note TEXT,
                    member_id INTEGER,
                    group_id INTEGER,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    CHECK (member_id IS NULL OR group_id IS NULL),
                    FOREIGN KEY (sponsor_id) REFERENCES sponsors(id) ON DELETE CASCADE,
                    FOREIGN KEY (fiscal_year_id) REFERENCES fiscal_years(id) ON DELETE SET NULL,
                    FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE SET NULL,
                    FOREIGN KEY (group_id) REFERENCES groups(id) ON DELETE SET NULL
                );

                CREATE TABLE IF NOT EXISTS member_targets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    member_id INTEGER NOT NULL,
                    fiscal_year_id INTEGER NOT NULL,
                    target_cents INTEGER NOT NULL DEFAULT 0 CHECK (target_cents >= 0),
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (member_id, fiscal_year_id),
                    FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE,
                    FOREIGN KEY (fiscal_year_id) REFERENCES fiscal_years(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    name TEXT,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_members_group ON members (group_id);
                CREATE INDEX IF NOT EXISTS idx_sponsors_member ON sponsors (member_id);
                CREATE INDEX IF NOT EXISTS idx_sponsors_group ON sponsors (group_id);
                CREATE INDEX IF NOT EXISTS idx_donations_sponsor ON donations (sponsor_id);
                CREATE INDEX IF NOT EXISTS idx_donations_fiscal_year ON donations (fiscal_year_id);
                CREATE INDEX IF NOT EXISTS idx_donations_date ON donations (donation_date);
                CREATE INDEX IF NOT EXISTS idx_member_targets_year ON member_targets (fiscal_year_id);
                """
            )

            _ensure_column(
                connection=connection,
                table_name="settings",
                column_name="description",
                definition="TEXT",
            )

            for key, (value, description) in DEFAULT_SETTINGS.items():
                connection.execute(
                    """
                    INSERT OR IGNORE INTO settings (key, value, description)
                    VALUES (?, ?, ?)
                    """,
                    (key, value, description),
                )

    def _require(self, connection: sqlite3.Connection, table_name: str, record_id: Any) -> sqlite3.Row:
        row = connection.execute(
            f"SELECT * FROM {table_name} WHERE id = ?",
            (record_id,),
        ).fetchone()
        if row is None:
            raise RecordNotFoundError(table_name, record_id)
        return row

    # Members

    def add_member(
        self,
        first_name: str,
        last_name: str,
        group_id: int | None = None,
        today: date | None = None,
    ) -> int:
        clean_first = _clean(first_name)
        clean_last = _clean(last_name)
        if not clean_first or not clean_last:
            raise ValueError("Members require first and last name.")

        current_year = self.current_fiscal_year(today=today)
        default_target_cents = cents_from_amount(self.default_target_amount())

        with self._connect() as connection:
            if group_id is not None:
                self._require(connection, "groups", group_id)
            cursor = connection.execute(
                "INSERT INTO members (first_name, last_name, group_id) VALUES (?, ?, ?)",
                (clean_first, clean_last, group_id),
            )
            member_id = _lastrowid(cursor)

            if current_year is not None:
                connection.execute(
                    """
                    INSERT INTO member_targets (member_id, fiscal_year_id, target_cents)
                    VALUES (?, ?, ?)
                    """,
                    (member_id, current_year["id"], default_target_cents),
                )
            return member_id

    def get_member(self, member_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT m.*, g.name AS group_name
                FROM members m
                LEFT JOIN groups g ON g.id = m.group_id
                WHERE m.id = ?
                """,
                (member_id,),
            ).fetchone()

    def list_members(self, include_details: bool = False) -> list[sqlite3.Row]:
        if not include_details:
            query = "SELECT * FROM members ORDER BY last_name, first_name, id"
        else:
            query = """
                SELECT
                    m.*,
                    g.name AS group_name,
                    (
                        SELECT COUNT(*)
                        FROM sponsors s
                        WHERE s.member_id = m.id
                    ) AS sponsor_count,
                    (
                        SELECT COALESCE(SUM(d.amount_cents), 0)
                        FROM donations d
                        JOIN sponsors s ON s.id = d.sponsor_id
                        WHERE s.member_id = m.id
                    ) AS donation_total_cents
                FROM members m
                LEFT JOIN groups g ON g.id = m.group_id
                ORDER BY m.last_name, m.first_name, m.id
            """
        with self._connect() as connection:
            return connection.execute(query).fetchall()

    def update_member(
        self,
        member_id: int,
        first_name: str | None,
        last_name: str | None,
        group_id: int | None,
    ) -> None:
        """Update names (None keeps the stored value) and the group assignment.

        A missing group id removes the member from its group.
        """
        with self._connect() as connection:
            current = self._require(connection, "members", member_id)
            clean_group_id = _clean_id(group_id)
            if clean_group_id is not None:
                self._require(connection, "groups", clean_group_id)

            connection.execute(
                """
                UPDATE members
                SET first_name = ?, last_name = ?, group_id = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (
                    _clean(first_name) or current["first_name"],
                    _clean(last_name) or current["last_name"],
                    clean_group_id,
                    member_id,
                ),
            )

    def delete_member(self, member_id: int) -> None:
        with self._connect() as connection:
            self._require(connection, "members", member_id)
            connection.execute("DELETE FROM members WHERE id = ?", (member_id,))

    def member_sponsors(self, member_id: int) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM sponsors WHERE member_id = ? ORDER BY last_name, company, id",
                (member_id,),
            ).fetchall()

    def member_donations(self, member_id: int) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT
                    d.*,
                    s.company AS sponsor_company,
                    s.first_name AS sponsor_first_name,
                    s.last_name AS sponsor_last_name
                FROM donations d
                JOIN sponsors s ON s.id = d.sponsor_id
                WHERE s.member_id = ?
                ORDER BY d.donation_date DESC, d.id DESC
                """,
                (member_id,),
            ).fetchall()

    # Groups

    def add_group(self, name: str) -> int:
        clean_name = _clean(name)
        if not clean_name:
            raise ValueError("Group name is required.")

        with self._connect() as connection:
            cursor = connection.execute("INSERT INTO groups (name) VALUES (?)", (clean_name,))
            return _lastrowid(cursor)

    def get_group(self, group_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute("SELECT * FROM groups WHERE id = ?", (group_id,)).fetchone()

    def list_groups(self, include_details: bool = False) -> list[sqlite3.Row]:
        if not include_details:
            query = "SELECT * FROM groups ORDER BY name, id"
        else:
            query = """
                SELECT
                    g.*,
                    (
                        SELECT COUNT(*)
                        FROM members m
                        WHERE m.group_id = g.id
                    ) AS member_count,
                    (
                        SELECT COUNT(*)
                        FROM sponsors s
                        WHERE s.group_id = g.id
                    ) AS sponsor_count,
                    (
                        SELECT COALESCE(SUM(d.amount_cents), 0)
                        FROM donations d
                        JOIN sponsors s ON s.id = d.sponsor_id
                        WHERE s.group_id = g.id
                    ) AS donation_total_cents
                FROM groups g
                ORDER BY g.name, g.id
            """
        with self._connect() as connection:
            return connection.execute(query).fetchall()

    def update_group(self, group_id: int, name: str) -> None:
        clean_name = _clean(name)
        if not clean_name:
            raise ValueError("Group name is required.")

        with self._connect() as connection:
            self._require(connection, "groups", group_id)
            connection.execute(
                "UPDATE groups SET name = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (clean_name, group_id),
            )

    def delete_group(self, group_id: int) -> None:
        with self._connect() as connection:
            self._require(connection, "groups", group_id)
            connection.execute("DELETE FROM groups WHERE id = ?", (group_id,))

    def group_members(self, group_id: int) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM members WHERE group_id = ? ORDER BY last_name, first_name, id",
                (group_id,),
            ).fetchall()

    def group_donations(self, group_id: int) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT
                    d.*,
                    s.company AS sponsor_company,
                    s.first_name AS sponsor_first_name,
                    s.last_name AS sponsor_last_name
                FROM donations d
                JOIN sponsors s ON s.id = d.sponsor_id
                WHERE d.group_id = ? OR s.group_id = ?
                ORDER BY d.donation_date DESC, d.id DESC
                """,
                (group_id, group_id),
            ).fetchall()

    # Sponsors

    def add_sponsor(
        self,
        company: str | None = None,
        salutation: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        street: str | None = None,
        postal_code: str | None = None,
        city: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        notes: str | None = None,
        member_id: int | None = None,
        group_id: int | None = None,
        require_assignment: bool = True,
    ) -> int:
        clean_company = _clean(company)
        clean_last = _clean(last_name)
        clean_member_id = _clean_id(member_id)
        clean_group_id = _clean_id(group_id)

        if not clean_last and not clean_company:
            raise ValueError("Sponsors require a last name or a company.")
        if clean_member_id is not None and clean_group_id is not None:
            raise ValueError("A sponsor cannot be assigned to a member and a group.")
        if require_assignment and clean_member_id is None and clean_group_id is None:
            raise ValueError("A sponsor must be assigned to a member or a group.")

        with self._connect() as connection:
            if clean_member_id is not None:
                self._require(connection, "members", clean_member_id)
            if clean_group_id is not None:
                self._require(connection, "groups", clean_group_id)

            cursor = connection.execute(
                """
                INSERT INTO sponsors (
                    company,
                    salutation,
                    first_name,
                    last_name,
                    street,
                    postal_code,
                    city,
                    phone,
                    email,
                    notes,
                    member_id,
                    group_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    clean_company,
                    _clean(salutation),
                    _clean(first_name),
                    clean_last,
                    _clean(street),
                    _clean(postal_code),
                    _clean(city),
                    _clean(phone),
                    _clean(email),
                    _clean(notes),
                    clean_member_id,
                    clean_group_id,
                ),
            )
            return _lastrowid(cursor)

    def get_sponsor(self, sponsor_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute("SELECT * FROM sponsors WHERE id = ?", (sponsor_id,)).fetchone()

    def list_sponsors(self, include_details: bool = False) -> list[sqlite3.Row]:
        if not include_details:
            query = "SELECT * FROM sponsors ORDER BY last_name, company, id"
        else:
            query = """
                SELECT
                    s.*,
                    m.first_name AS member_first_name,
                    m.last_name AS member_last_name,
                    g.name AS group_name,
                    COUNT(d.id) AS donation_count,
                    COALESCE(SUM(d.amount_cents), 0) AS donation_total_cents
                FROM sponsors s
                LEFT JOIN members m ON m.id = s.member_id
                LEFT JOIN groups g ON g.id = s.group_id
                LEFT JOIN donations d ON d.sponsor_id = s.id
                GROUP BY s.id
                ORDER BY s.last_name, s.company, s.id
            """
        with self._connect() as connection:
            return connection.execute(query).fetchall()

    def sponsors_for_export(self) -> list[sqlite3.Row]:
        return self.list_sponsors(include_details=True)

    def update_sponsor(self, sponsor_id: int, changes: Mapping[str, Any]) -> None:
        """Apply a partial update; keys outside the sponsor columns are ignored."""
        updates: dict[str, Any] = {}
        for key, value in changes.items():
            if key not in SPONSOR_COLUMNS:
                continue
            updates[key] = _clean_id(value) if key in {"member_id", "group_id"} else _clean(value)

        with self._connect() as connection:
            current = self._require(connection, "sponsors", sponsor_id)
            merged = {**dict(current), **updates}

            if not merged["last_name"] and not merged["company"]:
                raise ValueError("Sponsors require a last name or a company.")
            if merged["member_id"] is not None and merged["group_id"] is not None:
                raise ValueError("A sponsor cannot be assigned to a member and a group.")
            if updates.get("member_id") is not None:
                self._require(connection, "members", updates["member_id"])
            if updates.get("group_id") is not None:
                self._require(connection, "groups", updates["group_id"])

            if not updates:
                return

            assignments = ", ".join(f"{column} = ?" for column in updates)
            connection.execute(
                f"UPDATE sponsors SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                [*updates.values(), sponsor_id],
            )

    def delete_sponsor(self, sponsor_id: int) -> None:
        with self._connect() as connection:
            self._require(connection, "sponsors", sponsor_id)
            connection.execute("DELETE FROM sponsors WHERE id = ?", (sponsor_id,))

    def sponsor_donations(self, sponsor_id: int) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM donations WHERE sponsor_id = ? ORDER BY donation_date DESC, id DESC",
                (sponsor_id,),
            ).fetchall()

    # Donations

    def add_donation(
        self,
        sponsor_id: int,
        amount_cents: int,
        donation_date: date,
        note: str | None = None,
        member_id: int | None = None,
        group_id: int | None = None,
    ) -> int:
        if amount_cents <= 0:
            raise ValueError("Donation amount must be greater than zero.")

        clean_member_id = _clean_id(member_id)
        clean_group_id = _clean_id(group_id)
        if clean_member_id is not None and clean_group_id is not None:
            raise ValueError("A donation cannot be assigned to a member and a group.")

        fiscal_year = self.fiscal_year_for_date(donation_date)

        with self._connect() as connection:
            sponsor = self._require(connection, "sponsors", sponsor_id)
            if clean_member_id is None and clean_group_id is None:
                clean_member_id = sponsor["member_id"]
                clean_group_id = sponsor["group_id"]

            cursor = connection.execute(
                """
                INSERT INTO donations (
                    sponsor_id,
                    amount_cents,
                    donation_date,
                    fiscal_year_id,
                    note,
                    member_id,
                    group_id
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sponsor_id,
                    amount_cents,
                    _iso(donation_date),
                    fiscal_year["id"] if fiscal_year else None,
                    _clean(note),
                    clean_member_id,
                    clean_group_id,
                ),
            )
            return _lastrowid(cursor)

    def get_donation(self, donation_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute("SELECT * FROM donations WHERE id = ?", (donation_id,)).fetchone()

    def list_donations(self, include_details: bool = False, limit: int | None = 100) -> list[sqlite3.Row]:
        if not include_details:
            query = "SELECT d.* FROM donations d"
        else:
            query = """
                SELECT
                    d.*,
                    s.company AS sponsor_company,
                    s.first_name AS sponsor_first_name,
                    s.last_name AS sponsor_last_name,
                    s.member_id AS sponsor_member_id,
                    s.group_id AS sponsor_group_id,
                    sm.first_name || ' ' || sm.last_name AS sponsor_member_name,
                    sg.name AS sponsor_group_name,
                    dm.first_name || ' ' || dm.last_name AS member_name,
                    dg.name AS group_name,
                    fy.name AS fiscal_year_name
                FROM donations d
                JOIN sponsors s ON s.id = d.sponsor_id
                LEFT JOIN members sm ON sm.id = s.member_id
                LEFT JOIN groups sg ON sg.id = s.group_id
                LEFT JOIN members dm ON dm.id = d.member_id
                LEFT JOIN groups dg ON dg.id = d.group_id
                LEFT JOIN fiscal_years fy ON fy.id = d.fiscal_year_id
            """
        query += " ORDER BY d.donation_date DESC, d.id DESC"
        params: list[Any] = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as connection:
            return connection.execute(query, params).fetchall()

    def update_donation(
        self,
        donation_id: int,
        sponsor_id: int | None = None,
        amount_cents: int | None = None,
        donation_date: date | None = None,
        note: str | None = None,
        clear_note: bool = False,
        member_id: int | None = None,
        group_id: int | None = None,
        reset_assignment: bool = False,
    ) -> None:
        """Change a donation in place.

        Passing ``member_id`` or ``group_id`` overrides the recorded assignment;
        ``reset_assignment`` copies it from the (possibly new) sponsor instead.
        """
        if amount_cents is not None and amount_cents <= 0:
            raise ValueError("Donation amount must be greater than zero.")

        clean_member_id = _clean_id(member_id)
        clean_group_id = _clean_id(group_id)
        if clean_member_id is not None and clean_group_id is not None:
            raise ValueError("A donation cannot be assigned to a member and a group.")

        fiscal_year = self.fiscal_year_for_date(donation_date) if donation_date is not None else None

        with self._connect() as connection:
            current = self._require(connection, "donations", donation_id)
            if sponsor_id is not None:
                sponsor = self._require(connection, "sponsors", sponsor_id)
            else:
                sponsor = self._require(connection, "sponsors", current["sponsor_id"])
            if clean_member_id is not None:
                self._require(connection, "members", clean_member_id)
            if clean_group_id is not None:
                self._require(connection, "groups", clean_group_id)

            if clean_member_id is not None or clean_group_id is not None:
                new_member_id, new_group_id = clean_member_id, clean_group_id
            elif reset_assignment:
                new_member_id, new_group_id = sponsor["member_id"], sponsor["group_id"]
            else:
                new_member_id, new_group_id = current["member_id"], current["group_id"]

            new_note = current["note"]
            if clear_note:
                new_note = None
            elif note is not None:
                new_note = _clean(note)

            connection.execute(
                """
                UPDATE donations
                SET
                    sponsor_id = ?,
                    amount_cents = ?,
                    donation_date = ?,
                    fiscal_year_id = ?,
                    note = ?,
                    member_id = ?,
                    group_id = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (
                    sponsor_id if sponsor_id is not None else current["sponsor_id"],
                    amount_cents if amount_cents is not None else current["amount_cents"],
                    _iso(donation_date) if donation_date is not None else current["donation_date"],
                    (fiscal_year["id"] if fiscal_year else None)
                    if donation_date is not None
                    else current["fiscal_year_id"],
                    new_note,
                    new_member_id,
                    new_group_id,
                    donation_id,
                ),
            )

    def delete_donation(self, donation_id: int) -> None:
        with self._connect() as connection:
            self._require(connection, "donations", donation_id)
            connection.execute("DELETE FROM donations WHERE id = ?", (donation_id,))

    def donation_rows_for_year(self, fiscal_year_id: int) -> list[sqlite3.Row]:
        """Donations of one fiscal year with the sponsor's member/group assignment."""
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT
                    d.id,
                    d.sponsor_id,
                    d.amount_cents,
                    d.donation_date,
                    s.member_id AS sponsor_member_id,
                    s.group_id AS sponsor_group_id
                FROM donations d
                JOIN sponsors s ON s.id = d.sponsor_id
                WHERE d.fiscal_year_id = ?
                ORDER BY d.id
                """,
                (fiscal_year_id,),
            ).fetchall()

    def donations_between(self, start_date: date | str, end_date: date | str) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT * FROM donations
                WHERE donation_date >= ? AND donation_date <= ?
                ORDER BY donation_date, id
                """,
                (_iso(start_date), _iso(end_date)),
            ).fetchall()

    # Fiscal years

    def add_fiscal_year(
        self,
        name: str,
        start_date: date,
        end_date: date,
        copy_previous_targets: bool = False,
    ) -> int:
        clean_name = _clean(name)
        if not clean_name:
            raise ValueError("Fiscal year name is required.")
        if _iso(end_date) < _iso(start_date):
            raise DomainError(
                "fiscalYears.endBeforeStart",
                "The end date must not be before the start date.",
            )

        with self._connect() as connection:
            existing = connection.execute(
                "SELECT id FROM fiscal_years WHERE name = ?",
                (clean_name,),
            ).fetchone()
            if existing is not None:
                raise DomainError(
                    "fiscalYears.nameAlreadyExists",
                    "A fiscal year with this name already exists.",
                )

            cursor = connection.execute(
                "INSERT INTO fiscal_years (name, start_date, end_date) VALUES (?, ?, ?)",
                (clean_name, _iso(start_date), _iso(end_date)),
            )
            fiscal_year_id = _lastrowid(cursor)

            if copy_previous_targets:
                previous = connection.execute(
                    """
                    SELECT id FROM fiscal_years
                    WHERE start_date < ? AND id != ?
                    ORDER BY start_date DESC
                    LIMIT 1
                    """,
                    (_iso(start_date), fiscal_year_id),
                ).fetchone()
                if previous is not None:
                    copied = connection.execute(
                        """
                        INSERT INTO member_targets (member_id, fiscal_year_id, target_cents)
                        SELECT member_id, ?, target_cents
                        FROM member_targets
                        WHERE fiscal_year_id = ?
                        """,
                        (fiscal_year_id, previous["id"]),
                    ).rowcount
                    logger.info(
                        "Copied %s targets from fiscal year #%s to #%s",
                        copied,
                        previous["id"],
                        fiscal_year_id,
                    )

            return fiscal_year_id

    def get_fiscal_year(self, fiscal_year_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM fiscal_years WHERE id = ?",
                (fiscal_year_id,),
            ).fetchone()

    def list_fiscal_years(self) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT
                    fy.*,
                    (
                        SELECT COUNT(*)
                        FROM member_targets mt
                        WHERE mt.fiscal_year_id = fy.id
                    ) AS target_count
                FROM fiscal_years fy
                ORDER BY fy.start_date DESC, fy.id DESC
                """
            ).fetchall()

    def fiscal_year_for_date(self, on_date: date | str) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT * FROM fiscal_years
                WHERE start_date <= ? AND end_date >= ?
                ORDER BY start_date DESC, id DESC
                LIMIT 1
                """,
                (_iso(on_date), _iso(on_date)),
            ).fetchone()

    def current_fiscal_year(self, today: date | None = None) -> sqlite3.Row | None:
        return self.fiscal_year_for_date(today or date.today())

    def delete_fiscal_year(self, fiscal_year_id: int) -> None:
        with self._connect() as connection:
            self._require(connection, "fiscal_years", fiscal_year_id)
            connection.execute("DELETE FROM fiscal_years WHERE id = ?", (fiscal_year_id,))

    # Targets

    def get_target(self, target_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM member_targets WHERE id = ?",
                (target_id,),
            ).fetchone()

    def list_targets(self, fiscal_year_id: int) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                """
                SELECT
                    mt.*,
                    m.first_name,
                    m.last_name,
                    m.group_id
                FROM member_targets mt
                JOIN members m ON m.id = mt.member_id
                WHERE mt.fiscal_year_id = ?
                ORDER BY m.last_name, m.first_name, mt.id
                """,
                (fiscal_year_id,),
            ).fetchall()

    def targets_by_member(self, fiscal_year_id: int) -> dict[int, int]:
        return {
            int(row["member_id"]): int(row["target_cents"])
            for row in self.list_targets(fiscal_year_id)
        }

    def targets_for_year(
        self,
        fiscal_year_id: int | None = None,
        today: date | None = None,
    ) -> dict[str, Any] | None:
        """Return the selected (or current) year, its targets, and all years."""
        if fiscal_year_id is not None:
            fiscal_year = self.get_fiscal_year(fiscal_year_id)
        else:
            fiscal_year = self.current_fiscal_year(today=today)

        if fiscal_year is None:
            return None

        return {
            "fiscal_year": fiscal_year,
            "targets": self.list_targets(int(fiscal_year["id"])),
            "all_years": self.list_fiscal_years(),
        }

    def bulk_create_targets(self, fiscal_year_id: int, default_cents: int) -> int:
        if default_cents < 0:
            raise ValueError("Target amount cannot be negative.")

        with self._connect() as connection:
            self._require(connection, "fiscal_years", fiscal_year_id)
            cursor = connection.execute(
                """
                INSERT INTO member_targets (member_id, fiscal_year_id, target_cents)
                SELECT m.id, ?, ?
                FROM members m
                WHERE NOT EXISTS (
                    SELECT 1 FROM member_targets mt
                    WHERE mt.member_id = m.id AND mt.fiscal_year_id = ?
                )
                """,
                (fiscal_year_id, default_cents, fiscal_year_id),
            )
            return max(cursor.rowcount, 0)

    def set_target(self, member_id: int, fiscal_year_id: int, target_cents: int) -> int:
        if target_cents < 0:
            raise ValueError("Target amount cannot be negative.")

        with self._connect() as connection:
            self._require(connection, "members", member_id)
            self._require(connection, "fiscal_years", fiscal_year_id)
            connection.execute(
                """
                INSERT INTO member_targets (member_id, fiscal_year_id, target_cents)
                VALUES (?, ?, ?)
                ON CONFLICT (member_id, fiscal_year_id)
                DO UPDATE SET target_cents = excluded.target_cents, updated_at = CURRENT_TIMESTAMP
                """,
                (member_id, fiscal_year_id, target_cents),
            )
            row = connection.execute(
                "SELECT id FROM member_targets WHERE member_id = ? AND fiscal_year_id = ?",
                (member_id, fiscal_year_id),
            ).fetchone()
            return int(row["id"])

    def update_target(self, target_id: int, target_cents: int) -> None:
        if target_cents < 0:
            raise ValueError("Target amount cannot be negative.")

        with self._connect() as connection:
            self._require(connection, "member_targets", target_id)
            connection.execute(
                """
                UPDATE member_targets
                SET target_cents = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (target_cents, target_id),
            )

    def set_all_targets(self, target_cents: int) -> int:
        if target_cents < 0:
            raise ValueError("Target amount cannot be negative.")

        with self._connect() as connection:
            cursor = connection.execute(
                "UPDATE member_targets SET target_cents = ?, updated_at = CURRENT_TIMESTAMP",
                (target_cents,),
            )
            return cursor.rowcount

    # Users

    def add_user(self, username: str, password: str, name: str | None = None) -> int:
        clean_username = _clean(username)
        if not clean_username:
            raise ValueError("Username is required.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        with self._connect() as connection:
            existing = connection.execute(
                "SELECT id FROM users WHERE username = ?",
                (clean_username,),
            ).fetchone()
            if existing is not None:
                raise DomainError("users.usernameAlreadyTaken", "Username is already taken.")

            cursor = connection.execute(
                "INSERT INTO users (username, password_hash, name) VALUES (?, ?, ?)",
                (clean_username, hash_password(password), _clean(name)),
            )
            return _lastrowid(cursor)

    def list_users(self) -> list[sqlite3.Row]:
        with self._connect() as connection:
            return connection.execute(
                "SELECT id, username, name, created_at, updated_at FROM users ORDER BY username"
            ).fetchall()

    def get_user(self, user_id: int) -> sqlite3.Row | None:
        with self._connect() as connection:
            return connection.execute(
                "SELECT id, username, name, created_at, updated_at FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()

    def get_user_by_username(self, username: str) -> sqlite3.Row | None:
        """Return the full user row, password hash included."""
        with self._connect() as connection:
            return connection.execute(
                "SELECT * FROM users WHERE username = ?",
                ((username or "").strip(),),
            ).fetchone()

    def count_users(self) -> int:
        with self._connect() as connection:
            row = connection.execute("SELECT COUNT(*) AS count FROM users").fetchone()
            return int(row["count"])

    def update_user(
        self,
        user_id: int,
        username: str | None = None,
        password: str | None = None,
        name: str | None = None,
        clear_name: bool = False,
    ) -> None:
        clean_username = _clean(username)
        if password and len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        with self._connect() as connection:
            current = self._require(connection, "users", user_id)

            if clean_username:
                taken = connection.execute(
                    "SELECT id FROM users WHERE username = ? AND id != ?",
                    (clean_username, user_id),
                ).fetchone()
                if taken is not None:
                    raise DomainError("users.usernameAlreadyTaken", "Username is already taken.")

            new_name = current["name"]
            if clear_name:
                new_name = None
            elif name is not None:
                new_name = _clean(name)

            connection.execute(
                """
                UPDATE users
                SET username = ?, password_hash = ?, name = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (
                    clean_username or current["username"],
                    hash_password(password) if password else current["password_hash"],
                    new_name,
                    user_id,
                ),
            )

    def delete_user(self, user_id: int, acting_user_id: int | None = None) -> None:
        with self._connect() as connection:
            self._require(connection, "users", user_id)

            count_row = connection.execute("SELECT COUNT(*) AS count FROM users").fetchone()
            if int(count_row["count"]) <= 1:
                raise DomainError("users.cannotDeleteLastUser", "Cannot delete the last user.")
            if acting_user_id is not None and int(acting_user_id) == int(user_id):
                raise DomainError("users.cannotDeleteSelf", "You cannot delete yourself.")

            connection.execute("DELETE FROM users WHERE id = ?", (user_id,))

    # Settings

    def get_settings(self) -> dict[str, str]:
        with self._connect() as connection:
            rows = connection.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        return {str(row["key"]): str(row["value"]) for row in rows}

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        with self._connect() as connection:
            row = connection.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row["value"])

    def update_settings(self, values: Mapping[str, Any]) -> None:
        with self._connect() as connection:
            for key, value in values.items():
                connection.execute(
                    """
                    INSERT INTO settings (key, value)
                    VALUES (?, ?)
                    ON CONFLICT (key)
                    DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
                    """,
                    (str(key), "" if value is None else str(value)),
                )

    def organization_name(self) -> str:
        return self.get_setting("organizationName") or DEFAULT_ORGANIZATION_NAME

    def default_target_amount(self) -> float:
        raw_value = self.get_setting("defaultTargetAmount")
        try:
            return float(raw_value) if raw_value else DEFAULT_TARGET_AMOUNT
        except ValueError:
            logger.warning("Ignoring invalid defaultTargetAmount setting %r", raw_value)
            return DEFAULT_TARGET_AMOUNT

    # Maintenance

    def migrate_sponsor_assignments(self) -> dict[str, int]:
        """Assign unassigned sponsors from the member/group recorded on their donations.

        When donations point to different assignments the most common one wins
        and the sponsor is counted as a conflict.
        """
        summary = {"updated": 0, "skipped": 0, "no_assignment": 0, "conflicts": 0, "total": 0}

        with self._connect() as connection:
            sponsors = connection.execute("SELECT * FROM sponsors ORDER BY id").fetchall()
            summary["total"] = len(sponsors)

            for sponsor in sponsors:
                if sponsor["member_id"] is not None or sponsor["group_id"] is not None:
                    summary["skipped"] += 1
                    continue

                donations = connection.execute(
                    "SELECT member_id, group_id FROM donations WHERE sponsor_id = ? ORDER BY id",
                    (sponsor["id"],),
                ).fetchall()
                assignments: Counter[tuple[int | None, int | None]] = Counter(
                    (row["member_id"], row["group_id"])
                    for row in donations
                    if row["member_id"] is not None or row["group_id"] is not None
                )
                if not assignments:
                    summary["no_assignment"] += 1
                    continue

                if len(assignments) > 1:
                    summary["conflicts"] += 1
                    logger.warning(
                        "Sponsor %s has donations for %s different assignments",
                        sponsor_display_name(sponsor),
                        len(assignments),
                    )

                (member_id, group_id), _ = assignments.most_common(1)[0]
                connection.execute(
                    """
                    UPDATE sponsors
                    SET member_id = ?, group_id = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                    """,
                    (member_id, group_id, sponsor["id"]),
                )
                summary["updated"] += 1

        return summary

    def dashboard_counts(self) -> dict[str, int]:
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM members) AS member_count,
                    (SELECT COUNT(*) FROM groups) AS group_count,
                    (SELECT COUNT(*) FROM sponsors) AS sponsor_count
                """
            ).fetchone()
        return {key: int(row[key]) for key in ("member_count", "group_count", "sponsor_count")}
