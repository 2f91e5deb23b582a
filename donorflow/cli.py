"""Flask CLI commands for maintenance tasks."""

from __future__ import annotations

from pathlib import Path

import click
from flask import Flask, current_app

from .config import STORE_EXTENSION
from .importer import import_members_csv, import_sponsors_csv
from .store import DonorFlowStore, cents_from_amount


def _store() -> DonorFlowStore:
    return current_app.extensions[STORE_EXTENSION]


def register_commands(flask_app: Flask) -> None:
    @flask_app.cli.command("init-db")
    def init_db() -> None:
        """Create tables and default settings."""
        _store().init_db()
        click.echo("Database initialized.")

    @flask_app.cli.command("create-user")
    @click.argument("username")
    @click.option("--name", default=None, help="Display name.")
    @click.password_option()
    def create_user(username: str, name: str | None, password: str) -> None:
        """Create a login user."""
        try:
            user_id = _store().add_user(username=username, password=password, name=name)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Created user {username} (#{user_id}).")

    @flask_app.cli.command("change-password")
    @click.argument("username")
    @click.password_option()
    def change_password(username: str, password: str) -> None:
        """Set a new password for an existing user."""
        store = _store()
        user = store.get_user_by_username(username)
        if user is None:
            raise click.ClickException(f"User {username!r} not found.")
        try:
            store.update_user(int(user["id"]), password=password)
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Password updated for {username}.")

    @flask_app.cli.command("import-csv")
    @click.argument("kind", type=click.Choice(["members", "sponsors"]))
    @click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    def import_csv(kind: str, path: Path) -> None:
        """Import members (';' separated) or sponsors (',' separated) from a CSV file."""
        if kind == "members":
            summary = import_members_csv(_store(), path)
        else:
            summary = import_sponsors_csv(_store(), path)
        click.echo(
            f"Imported {summary.imported}, skipped {summary.skipped}, donations {summary.donations}."
        )
        for message in summary.messages:
            click.echo(f"  {message}")

    @flask_app.cli.command("migrate-sponsors")
    def migrate_sponsors() -> None:
        """Assign unassigned sponsors from their donations."""
        summary = _store().migrate_sponsor_assignments()
        click.echo(
            "Updated {updated}, already assigned {skipped}, without assignment {no_assignment}, "
            "conflicts {conflicts} (of {total}).".format(**summary)
        )

    @flask_app.cli.command("set-targets")
    @click.argument("amount", type=float)
    def set_targets(amount: float) -> None:
        """Set every member target to AMOUNT (CHF)."""
        try:
            updated = _store().set_all_targets(cents_from_amount(amount))
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Updated {updated} targets.")
