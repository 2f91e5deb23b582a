"""REST API served by Flask."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, timedelta
from typing import Any, Mapping

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request, session
from pydantic import BaseModel
from werkzeug.exceptions import HTTPException

from . import config as settings
from .auth import authenticate
from .cli import register_commands
from .exports import performance_pdf, sponsors_csv
from .i18n import locale_from_accept_language, normalize_locale, translate
from .importer import import_members_csv, import_sponsors_csv
from .reports import dashboard_stats, performance_detail, performance_report, share_report
from .store import DomainError, DonorFlowStore, RecordNotFoundError, amount_from_cents, cents_from_amount
from .validation import (
    BulkTargetsCreate,
    DonationCreate,
    DonationUpdate,
    FiscalYearCreate,
    GroupCreate,
    GroupUpdate,
    Login,
    MemberCreate,
    MemberUpdate,
    SettingsUpdate,
    SponsorCreate,
    SponsorUpdate,
    TargetUpdate,
    UserCreate,
    UserUpdate,
    validate_request,
)

logger = logging.getLogger(__name__)

STORE_KEY = settings.STORE_EXTENSION
PUBLIC_ENDPOINTS = {
    "api.login",
    "api.logout",
    "api.current_session",
    "api.organization",
}
NO_STORE = "no-store, no-cache, must-revalidate"

api = Blueprint("api", __name__, url_prefix="/api")


class ApiError(Exception):
    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _store() -> DonorFlowStore:
    return current_app.extensions[STORE_KEY]


def _locale() -> str:
    requested = request.args.get("locale")
    if requested:
        return normalize_locale(requested)
    return locale_from_accept_language(request.headers.get("Accept-Language"))


def serialize(value: Any) -> Any:
    """Convert rows to JSON-ready data, adding a CHF amount next to every ``*_cents`` key."""
    if isinstance(value, sqlite3.Row):
        value = dict(value)
    if isinstance(value, Mapping):
        result: dict[str, Any] = {}
        for key, item in value.items():
            if key == "password_hash":
                continue
            result[key] = serialize(item)
            if isinstance(key, str) and key.endswith("_cents") and isinstance(item, (int, float)):
                result.setdefault(key[: -len("_cents")], amount_from_cents(item))
        return result
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    if isinstance(value, date):
        return value.isoformat()
    return value


def _json(value: Any, status: int = 200) -> tuple[Response, int]:
    return jsonify(serialize(value)), status


def _payload() -> Any:
    payload = request.get_json(silent=True)
    if payload is None:
        raise ApiError(translate(_locale(), "errors.invalidJson"))
    return payload


def _validated(schema: type[BaseModel]) -> Any:
    result = validate_request(schema, _payload(), _locale())
    if not result.success:
        raise ApiError(result.error or translate(_locale(), "errors.generic"))
    return result.data


def _found(row: sqlite3.Row | None, table_name: str, record_id: Any) -> sqlite3.Row:
    if row is None:
        raise RecordNotFoundError(table_name, record_id)
    return row


def _include_all() -> bool:
    return request.args.get("include") == "all"


def _user_payload(user: sqlite3.Row) -> dict[str, Any]:
    return {"id": user["id"], "username": user["username"], "name": user["name"]}


@api.before_request
def require_session() -> Any:
    if request.endpoint in PUBLIC_ENDPOINTS:
        return None

    user_id = session.get("user_id")
    user = _store().get_user(user_id) if user_id is not None else None
    if user is None:
        return jsonify({"error": "Unauthorized"}), 401
    g.user = user
    return None


@api.errorhandler(ApiError)
def handle_api_error(exc: ApiError) -> Any:
    return jsonify({"error": exc.message}), exc.status


@api.errorhandler(RecordNotFoundError)
def handle_not_found(exc: RecordNotFoundError) -> Any:
    return jsonify({"error": translate(_locale(), "errors.notFound"), "message": str(exc)}), 404


@api.errorhandler(ValueError)
def handle_value_error(exc: ValueError) -> Any:
    if isinstance(exc, DomainError):
        return jsonify({"error": translate(_locale(), exc.message_key, default=str(exc))}), 400
    return jsonify({"error": str(exc)}), 400


@api.errorhandler(sqlite3.IntegrityError)
def handle_integrity_error(exc: sqlite3.IntegrityError) -> Any:
    logger.warning("Integrity error on %s %s: %s", request.method, request.path, exc)
    return jsonify({"error": str(exc)}), 400


@api.errorhandler(Exception)
def handle_unexpected(exc: Exception) -> Any:
    if isinstance(exc, HTTPException):
        return exc
    logger.exception("API Error: %s %s", request.method, request.path)
    return jsonify({"error": "Internal Server Error", "message": str(exc)}), 500


# Auth


@api.post("/auth/login")
def login() -> Any:
    data = _validated(Login)
    user = authenticate(_store(), data.username, data.password)
    if user is None:
        raise ApiError(translate(_locale(), "errors.invalidCredentials"), status=401)

    session.clear()
    session["user_id"] = int(user["id"])
    session.permanent = True
    logger.info("User %s signed in", user["username"])
    return _json({"user": _user_payload(user)})


@api.post("/auth/logout")
def logout() -> Any:
    session.clear()
    return _json({"success": True})


@api.get("/auth/session")
def current_session() -> Any:
    user_id = session.get("user_id")
    user = _store().get_user(user_id) if user_id is not None else None
    return _json({"user": _user_payload(user) if user is not None else None})


# Members


@api.get("/members")
def list_members() -> Any:
    return _json(_store().list_members(include_details=_include_all()))


@api.post("/members")
def create_member() -> Any:
    data = _validated(MemberCreate)
    store = _store()
    member_id = store.add_member(first_name=data.first_name, last_name=data.last_name, group_id=data.group_id)
    return _json(store.get_member(member_id), status=201)


@api.put("/members/<int:member_id>")
def update_member(member_id: int) -> Any:
    data = _validated(MemberUpdate)
    store = _store()
    store.update_member(
        member_id,
        first_name=data.first_name,
        last_name=data.last_name,
        group_id=data.group_id,
    )
    return _json(store.get_member(member_id))


@api.delete("/members/<int:member_id>")
def delete_member(member_id: int) -> Any:
    _store().delete_member(member_id)
    return _json({"success": True})


@api.get("/members/<int:member_id>/donations")
def member_donations(member_id: int) -> Any:
    store = _store()
    _found(store.get_member(member_id), "members", member_id)
    return _json(store.member_donations(member_id))


@api.get("/members/<int:member_id>/sponsors")
def member_sponsors(member_id: int) -> Any:
    store = _store()
    _found(store.get_member(member_id), "members", member_id)
    return _json(store.member_sponsors(member_id))


# Groups


@api.get("/groups")
def list_groups() -> Any:
    return _json(_store().list_groups(include_details=_include_all()))


@api.post("/groups")
def create_group() -> Any:
    data = _validated(GroupCreate)
    store = _store()
    group_id = store.add_group(data.name)
    return _json(store.get_group(group_id), status=201)


@api.put("/groups/<int:group_id>")
def update_group(group_id: int) -> Any:
    data = _validated(GroupUpdate)
    store = _store()
    store.update_group(group_id, data.name)
    return _json(store.get_group(group_id))


@api.delete("/groups/<int:group_id>")
def delete_group(group_id: int) -> Any:
    _store().delete_group(group_id)
    return _json({"success": True})


@api.get("/groups/<int:group_id>/donations")
def group_donations(group_id: int) -> Any:
    store = _store()
    _found(store.get_group(group_id), "groups", group_id)
    return _json(store.group_donations(group_id))


# Sponsors


@api.get("/sponsors")
def list_sponsors() -> Any:
    return _json(_store().list_sponsors(include_details=_include_all()))


@api.get("/sponsors/export")
def export_sponsors() -> Any:
    filename, content = sponsors_csv(_store(), locale=_locale())
    return Response(
        content,
        mimetype="text/csv",
        headers={
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-cache",
        },
    )


@api.post("/sponsors")
def create_sponsor() -> Any:
    data = _validated(SponsorCreate)
    store = _store()
    sponsor_id = store.add_sponsor(**data.model_dump())
    return _json(store.get_sponsor(sponsor_id), status=201)


@api.put("/sponsors/<int:sponsor_id>")
def update_sponsor(sponsor_id: int) -> Any:
    data = _validated(SponsorUpdate)
    store = _store()
    store.update_sponsor(sponsor_id, data.model_dump(exclude_unset=True))
    return _json(store.get_sponsor(sponsor_id))


@api.delete("/sponsors/<int:sponsor_id>")
def delete_sponsor(sponsor_id: int) -> Any:
    _store().delete_sponsor(sponsor_id)
    return _json({"success": True})


@api.get("/sponsors/<int:sponsor_id>/donations")
def sponsor_donations(sponsor_id: int) -> Any:
    store = _store()
    _found(store.get_sponsor(sponsor_id), "sponsors", sponsor_id)
    return _json(store.sponsor_donations(sponsor_id))


# Donations


@api.get("/donations")
def list_donations() -> Any:
    return _json(_store().list_donations(include_details=_include_all()))


@api.post("/donations")
def create_donation() -> Any:
    data = _validated(DonationCreate)
    store = _store()
    donation_id = store.add_donation(
        sponsor_id=data.sponsor_id,
        amount_cents=cents_from_amount(data.amount),
        donation_date=data.donation_date,
        note=data.note,
        member_id=data.member_id,
        group_id=data.group_id,
    )
    return _json(store.get_donation(donation_id), status=201)


@api.put("/donations/<int:donation_id>")
def update_donation(donation_id: int) -> Any:
    data = _validated(DonationUpdate)
    store = _store()
    store.update_donation(
        donation_id,
        sponsor_id=data.sponsor_id,
        amount_cents=cents_from_amount(data.amount) if data.amount is not None else None,
        donation_date=data.donation_date,
        note=data.note,
        clear_note="note" in data.model_fields_set and data.note is None,
        member_id=data.member_id,
        group_id=data.group_id,
        reset_assignment=bool({"member_id", "group_id"} & data.model_fields_set)
        and data.member_id is None
        and data.group_id is None,
    )
    return _json(store.get_donation(donation_id))


@api.delete("/donations/<int:donation_id>")
def delete_donation(donation_id: int) -> Any:
    _store().delete_donation(donation_id)
    return _json({"success": True})


# Fiscal years and targets


@api.get("/fiscal-years")
def list_fiscal_years() -> Any:
    return _json(_store().list_fiscal_years())


@api.post("/fiscal-years")
def create_fiscal_year() -> Any:
    data = _validated(FiscalYearCreate)
    store = _store()
    fiscal_year_id = store.add_fiscal_year(
        name=data.name,
        start_date=data.start_date,
        end_date=data.end_date,
        copy_previous_targets=data.copy_previous_targets,
    )
    return _json(store.get_fiscal_year(fiscal_year_id), status=201)


@api.delete("/fiscal-years/<int:fiscal_year_id>")
def delete_fiscal_year(fiscal_year_id: int) -> Any:
    _store().delete_fiscal_year(fiscal_year_id)
    return _json({"success": True})


@api.get("/targets")
def list_targets() -> Any:
    store = _store()
    year = request.args.get("year", type=int)
    selection = store.targets_for_year(fiscal_year_id=year)
    if selection is None:
        return _json({"fiscal_year": None, "targets": [], "all_years": store.list_fiscal_years()})
    return _json(selection)


@api.post("/targets")
def create_targets() -> Any:
    data = _validated(BulkTargetsCreate)
    created = _store().bulk_create_targets(data.fiscal_year_id, cents_from_amount(data.default_amount))
    return _json({"message": translate(_locale(), "targets.created", params={"count": created}), "created": created})


@api.put("/targets/<int:target_id>")
def update_target(target_id: int) -> Any:
    data = _validated(TargetUpdate)
    store = _store()
    store.update_target(target_id, cents_from_amount(data.target_amount))
    return _json(store.get_target(target_id))


# Users


@api.get("/users")
def list_users() -> Any:
    return _json(_store().list_users())


@api.post("/users")
def create_user() -> Any:
    data = _validated(UserCreate)
    store = _store()
    user_id = store.add_user(username=data.username, password=data.password, name=data.name)
    return _json(store.get_user(user_id), status=201)


@api.put("/users/<int:user_id>")
def update_user(user_id: int) -> Any:
    data = _validated(UserUpdate)
    store = _store()
    store.update_user(
        user_id,
        username=data.username,
        password=data.password,
        name=data.name,
        clear_name="name" in data.model_fields_set and data.name is None,
    )
    return _json(store.get_user(user_id))


@api.delete("/users/<int:user_id>")
def delete_user(user_id: int) -> Any:
    _store().delete_user(user_id, acting_user_id=g.user["id"])
    return _json({"success": True})


# Settings


@api.get("/settings")
def get_settings() -> Any:
    return _json(_store().get_settings())


@api.post("/settings")
def update_settings() -> Any:
    data = _validated(SettingsUpdate)
    _store().update_settings(data.as_settings())
    return _json({"success": True})


@api.get("/organization")
def organization() -> Any:
    response = jsonify({"organization_name": _store().organization_name()})
    response.headers["Cache-Control"] = NO_STORE
    return response


# Reports


@api.get("/dashboard/stats")
def dashboard() -> Any:
    return _json(dashboard_stats(_store()))


@api.get("/reports")
def reports() -> Any:
    return _json(performance_report(_store(), fiscal_year_id=request.args.get("year", type=int)))


@api.get("/reports/shares")
def shares() -> Any:
    return _json(
        share_report(_store(), fiscal_year_id=request.args.get("year", type=int), locale=_locale())
    )


@api.get("/reports/members/<int:member_id>")
def member_performance(member_id: int) -> Any:
    return _json(
        performance_detail(_store(), member_id=member_id, fiscal_year_id=request.args.get("year", type=int))
    )


@api.get("/reports/groups/<int:group_id>")
def group_performance(group_id: int) -> Any:
    return _json(
        performance_detail(_store(), group_id=group_id, fiscal_year_id=request.args.get("year", type=int))
    )


@api.get("/reports/performance.pdf")
def performance_report_pdf() -> Any:
    locale = _locale()
    report = performance_report(_store(), fiscal_year_id=request.args.get("year", type=int))
    content = performance_pdf(report, locale=locale)
    prefix = translate(locale, "reports.filePrefix")
    return Response(
        content,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{prefix}_{date.today().isoformat()}.pdf"'},
    )


# Import


@api.post("/import")
def import_csv() -> Any:
    locale = _locale()
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ApiError(translate(locale, "errors.fileRequired"))

    kind = (request.form.get("type") or "").strip().lower()
    content = upload.read()
    if kind == "members":
        summary = import_members_csv(_store(), content)
    elif kind == "sponsors":
        summary = import_sponsors_csv(_store(), content)
    else:
        raise ApiError(translate(locale, "errors.unknownImportType"))
    return _json(summary.as_dict())


def create_app(store: DonorFlowStore | None = None, config: Mapping[str, Any] | None = None) -> Flask:
    flask_app = Flask(__name__)
    flask_app.config["SECRET_KEY"] = settings.SECRET_KEY
    flask_app.config["SESSION_COOKIE_SECURE"] = settings.COOKIE_SECURE
    flask_app.config["SESSION_COOKIE_HTTPONLY"] = True
    flask_app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    flask_app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=settings.SESSION_DAYS)
    flask_app.config["MAX_CONTENT_LENGTH"] = settings.MAX_UPLOAD_BYTES
    flask_app.config["DONORFLOW_DB_PATH"] = str(settings.DB_PATH)
    if config:
        flask_app.config.update(config)

    if store is None:
        store = DonorFlowStore(flask_app.config["DONORFLOW_DB_PATH"])
    store.init_db()
    flask_app.extensions[STORE_KEY] = store

    flask_app.register_blueprint(api)

    @flask_app.get("/healthz")
    def healthz() -> Any:
        return jsonify({"status": "ok"})

    register_commands(flask_app)
    return flask_app
