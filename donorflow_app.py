"""Streamlit app for managing members, sponsors, donations, and fundraising targets."""

from __future__ import annotations

import html
from datetime import date
from typing import Any, Iterable

import pandas as pd
import streamlit as st

from donorflow import (
    DonorFlowStore,
    achievement_level,
    authenticate,
    cents_from_amount,
    dashboard_stats,
    format_cents,
    format_date,
    format_percent,
    member_display_name,
    performance_detail,
    performance_pdf,
    performance_report,
    share_report,
    sponsor_display_name,
    sponsors_csv,
    suggest_fiscal_year_dates,
    translate,
)
from donorflow.config import DB_PATH, DEFAULT_LOCALE, configure_logging
from donorflow.i18n import LOCALE_NAMES, LOCALES, normalize_locale
from donorflow.importer import import_members_csv, import_sponsors_csv

STORE = DonorFlowStore(DB_PATH)
LEVEL_COLORS = {"success": "#198754", "warning": "#b8860b", "danger": "#dc3545"}
NO_SELECTION = 0


def _locale() -> str:
    return st.session_state.get("locale", normalize_locale(DEFAULT_LOCALE))


def _t(key: str, **params: Any) -> str:
    return translate(_locale(), key, params=params)


def _money(cents: int | float) -> str:
    return format_cents(cents, _locale())


def _percent(value: float) -> str:
    return format_percent(value, _locale())


def _date(value: Any) -> str:
    return format_date(value, _locale()) or "-"


def _inject_styles() -> None:
    st.markdown(
        """
        <style>
          :root {
            --df-green-700: #0f5132;
            --df-green-600: #198754;
            --df-sand-100: #f7f5f0;
            --df-card: #ffffff;
            --df-text: #1c1c1c;
            --df-muted: #4a4a48;
          }

          .stApp {
            background: linear-gradient(170deg, var(--df-sand-100) 0%, #eef3ef 60%, #f9fbf9 100%);
            color: var(--df-text);
          }

          .df-hero {
            background: linear-gradient(124deg, var(--df-green-700), var(--df-green-600));
            border-radius: 18px;
            padding: 1.1rem 1.25rem;
            margin-bottom: 1rem;
            box-shadow: 0 14px 28px rgba(15, 81, 50, 0.25);
          }

          .df-hero h1,
          .df-hero p {
            color: #ffffff !important;
            margin: 0;
          }

          .df-hero p {
            margin-top: 0.4rem;
            opacity: 0.9;
          }

          .metric-card {
            border-radius: 14px;
            border: 1px solid rgba(201, 199, 197, 0.6);
            background: var(--df-card);
            box-shadow: 0 6px 14px rgba(24, 24, 24, 0.06);
            padding: 0.75rem 0.8rem;
            min-height: 108px;
          }

          .metric-label {
            margin: 0;
            color: var(--df-muted);
            font-weight: 600;
            font-size: 0.84rem;
          }

          .metric-value {
            margin: 0.3rem 0 0;
            color: var(--df-green-700);
            font-size: 1.45rem;
            line-height: 1.1;
          }

          .metric-sub {
            margin: 0.4rem 0 0;
            color: #5a5a58;
            font-size: 0.82rem;
          }

          .section-note {
            color: #555453;
            margin-top: -0.2rem;
            margin-bottom: 0.8rem;
          }
        </style>
        """,
        unsafe_allow_html=True,
    )


def _render_metric_card(title: str, value: str, subtitle: str, color: str | None = None) -> None:
    style = f" style='color: {color}'" if color else ""
    st.markdown(
        f"""
        <div class="metric-card">
          <p class="metric-label">{title}</p>
          <p class="metric-value"{style}>{value}</p>
          <p class="metric-sub">{subtitle}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def _hero() -> None:
    st.markdown(
        f"""
        <div class="df-hero">
          <h1>{html.escape(STORE.organization_name())}</h1>
          <p>{_t("ui.appTitle")}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def _table_or_info(frame: pd.DataFrame, empty_message: str) -> None:
    if frame.empty:
        st.info(empty_message)
        return
    st.dataframe(frame, use_container_width=True, hide_index=True)


def _rows_to_dicts(rows: Iterable) -> list[dict]:
    return [dict(row) for row in rows]


def _group_options() -> dict[int, str]:
    options = {NO_SELECTION: "-"}
    options.update({int(row["id"]): row["name"] for row in STORE.list_groups()})
    return options


def _member_options() -> dict[int, str]:
    return {int(row["id"]): member_display_name(row) for row in STORE.list_members()}


def _assignment_label(row: dict) -> str:
    if row.get("member_id"):
        return member_display_name({"first_name": row["member_first_name"], "last_name": row["member_last_name"]})
    if row.get("group_id"):
        return f"{row['group_name']} ({_t('export.group')})"
    return "-"


def _colour_level(value: float) -> str:
    return f"color: {LEVEL_COLORS[achievement_level(value)]}"


def _render_login() -> bool:
    if st.session_state.get("user_id") is not None:
        return True

    if STORE.count_users() == 0:
        st.markdown(f"### {_t('ui.createFirstUser')}")
        with st.form("bootstrap-user-form"):
            username = st.text_input(_t("ui.username"))
            name = st.text_input(_t("ui.name"))
            password = st.text_input(_t("ui.password"), type="password")
            if st.form_submit_button(_t("ui.save"), use_container_width=True):
                try:
                    user_id = STORE.add_user(username=username, password=password, name=name)
                    st.session_state.user_id = user_id
                    st.session_state.username = username.strip()
                    st.rerun()
                except ValueError as exc:
                    st.error(str(exc))
        return False

    st.markdown(f"### {_t('ui.login')}")
    with st.form("login-form"):
        username = st.text_input(_t("ui.username"))
        password = st.text_input(_t("ui.password"), type="password")
        if st.form_submit_button(_t("ui.login"), use_container_width=True):
            user = authenticate(STORE, username, password)
            if user is None:
                st.error(_t("errors.invalidCredentials"))
            else:
                st.session_state.user_id = int(user["id"])
                st.session_state.username = user["username"]
                st.rerun()
    return False


def _render_sidebar() -> None:
    with st.sidebar:
        current = _locale()
        selected = st.selectbox(
            _t("ui.language"),
            options=list(LOCALES),
            index=list(LOCALES).index(current),
            format_func=lambda code: LOCALE_NAMES[code],
        )
        if selected != current:
            st.session_state.locale = selected
            st.rerun()

        if st.session_state.get("user_id") is not None:
            st.caption(_t("ui.signedInAs", username=st.session_state.get("username", "")))
            if st.button(_t("ui.logout"), use_container_width=True):
                st.session_state.pop("user_id", None)
                st.session_state.pop("username", None)
                st.rerun()


def render_dashboard() -> None:
    stats = dashboard_stats(STORE)
    performance = stats["performance"]
    current_year = stats["current_year"]

    if current_year is None:
        st.warning(_t("errors.noActiveFiscalYear"))

    metric_columns = st.columns(4)
    with metric_columns[0]:
        _render_metric_card(_t("ui.tabs.members"), str(stats["member_count"]), f"{stats['group_count']} {_t('ui.tabs.groups')}")
    with metric_columns[1]:
        _render_metric_card(_t("ui.tabs.sponsors"), str(stats["sponsor_count"]), "")
    with metric_columns[2]:
        _render_metric_card(
            _t("ui.tabs.donations"),
            _money(stats["donation_sum_cents"]),
            f"{stats['donation_count']} {_t('reports.donations')}",
        )
    with metric_columns[3]:
        _render_metric_card(
            _t("reports.achievement"),
            _percent(performance["percentage"]),
            current_year["name"] if current_year else "-",
            color=LEVEL_COLORS[achievement_level(performance["percentage"])],
        )

    if current_year is None:
        return

    st.markdown(f"### {_t('reports.overallSummary')}")
    summary_df = pd.DataFrame(
        [
            {"": _t("reports.targetTotal"), "CHF": _money(performance["total_target_cents"])},
            {"": _t("reports.members"), "CHF": _money(performance["member_actual_cents"])},
            {"": _t("reports.groups"), "CHF": _money(performance["group_actual_cents"])},
            {"": _t("reports.notAssigned"), "CHF": _money(performance["unassigned_total_cents"])},
            {"": _t("reports.actualTotal"), "CHF": _money(performance["total_actual_cents"])},
            {"": _t("reports.difference"), "CHF": _money(performance["difference_cents"])},
        ]
    )
    st.dataframe(summary_df, use_container_width=True, hide_index=True)


def _message(exc: ValueError) -> str:
    message_key = getattr(exc, "message_key", None)
    return _t(message_key) if message_key else str(exc)


def render_members_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.members')}")
    groups = _group_options()

    left, right = st.columns([1, 1.4], gap="large")
    with left:
        with st.form("member-create-form", clear_on_submit=True):
            first_name = st.text_input(f"{_t('ui.fields.firstName')} *")
            last_name = st.text_input(f"{_t('ui.fields.lastName')} *")
            group_id = st.selectbox(_t("ui.fields.group"), options=list(groups.keys()), format_func=groups.get)
            if st.form_submit_button(_t("ui.actions.createMember"), use_container_width=True):
                try:
                    STORE.add_member(
                        first_name=first_name,
                        last_name=last_name,
                        group_id=group_id or None,
                    )
                    st.success(_t("ui.notices.memberCreated"))
                    st.rerun()
                except ValueError as exc:
                    st.error(_message(exc))

    members = _rows_to_dicts(STORE.list_members(include_details=True))
    with right:
        members_df = pd.DataFrame(
            [
                {
                    _t("reports.name"): member_display_name(row),
                    _t("ui.fields.group"): row.get("group_name") or "-",
                    _t("ui.fields.sponsors"): int(row["sponsor_count"]),
                    _t("ui.fields.donations"): _money(int(row["donation_total_cents"])),
                }
                for row in members
            ]
        )
        _table_or_info(members_df, _t("ui.notices.noMembers"))

    if not members:
        return

    st.markdown(f"#### {_t('ui.actions.editMember')}")
    member_map = {row["id"]: row for row in members}
    selected_id = st.selectbox(
        _t("ui.fields.member"),
        options=list(member_map.keys()),
        format_func=lambda member_id: member_display_name(member_map[member_id]),
        key="member-edit-select",
    )
    selected = member_map[selected_id]

    with st.form("member-edit-form"):
        first_name = st.text_input(_t("ui.fields.firstName"), value=selected["first_name"], key=f"member-first-{selected_id}")
        last_name = st.text_input(_t("ui.fields.lastName"), value=selected["last_name"], key=f"member-last-{selected_id}")
        group_keys = list(groups.keys())
        group_id = st.selectbox(
            _t("ui.fields.group"),
            options=group_keys,
            index=group_keys.index(selected["group_id"]) if selected["group_id"] in groups else 0,
            format_func=groups.get,
            key=f"member-group-{selected_id}",
        )
        save_col, delete_col = st.columns(2)
        save = save_col.form_submit_button(_t("ui.save"), use_container_width=True)
        delete = delete_col.form_submit_button(_t("ui.delete"), use_container_width=True)
        try:
            if save:
                STORE.update_member(selected_id, first_name=first_name, last_name=last_name, group_id=group_id or None)
                st.success(_t("ui.notices.memberUpdated"))
                st.rerun()
            if delete:
                STORE.delete_member(selected_id)
                st.success(_t("ui.notices.memberDeleted"))
                st.rerun()
        except ValueError as exc:
            st.error(_message(exc))

    donations_df = pd.DataFrame(
        [
            {
                _t("ui.fields.date"): _date(row["donation_date"]),
                _t("ui.fields.sponsor"): sponsor_display_name(
                    {
                        "company": row["sponsor_company"],
                        "first_name": row["sponsor_first_name"],
                        "last_name": row["sponsor_last_name"],
                    }
                ),
                _t("reports.amount"): _money(int(row["amount_cents"])),
                _t("ui.fields.note"): row["note"] or "-",
            }
            for row in STORE.member_donations(selected_id)
        ]
    )
    _table_or_info(donations_df, _t("ui.notices.noMemberDonations"))


def render_groups_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.groups')}")

    left, right = st.columns([1, 1.4], gap="large")
    with left:
        with st.form("group-create-form", clear_on_submit=True):
            name = st.text_input(f"{_t('reports.name')} *")
            if st.form_submit_button(_t("ui.actions.createGroup"), use_container_width=True):
                try:
                    STORE.add_group(name)
                    st.success(_t("ui.notices.groupCreated"))
                    st.rerun()
                except ValueError as exc:
                    st.error(_message(exc))

    groups = _rows_to_dicts(STORE.list_groups(include_details=True))
    with right:
        groups_df = pd.DataFrame(
            [
                {
                    _t("ui.fields.group"): row["name"],
                    _t("reports.members"): int(row["member_count"]),
                    _t("ui.fields.sponsors"): int(row["sponsor_count"]),
                    _t("ui.fields.donations"): _money(int(row["donation_total_cents"])),
                }
                for row in groups
            ]
        )
        _table_or_info(groups_df, _t("ui.notices.noGroups"))

    if not groups:
        return

    st.markdown(f"#### {_t('ui.actions.editGroup')}")
    group_map = {row["id"]: row for row in groups}
    selected_id = st.selectbox(
        _t("ui.fields.group"),
        options=list(group_map.keys()),
        format_func=lambda group_id: group_map[group_id]["name"],
        key="group-edit-select",
    )

    with st.form("group-edit-form"):
        name = st.text_input(_t("reports.name"), value=group_map[selected_id]["name"], key=f"group-name-{selected_id}")
        save_col, delete_col = st.columns(2)
        save = save_col.form_submit_button(_t("ui.save"), use_container_width=True)
        delete = delete_col.form_submit_button(_t("ui.delete"), use_container_width=True)
        try:
            if save:
                STORE.update_group(selected_id, name)
                st.success(_t("ui.notices.groupUpdated"))
                st.rerun()
            if delete:
                STORE.delete_group(selected_id)
                st.success(_t("ui.notices.groupDeleted"))
                st.rerun()
        except ValueError as exc:
            st.error(_message(exc))

    members_col, donations_col = st.columns(2, gap="large")
    with members_col:
        st.markdown(f"##### {_t('reports.members')}")
        members_df = pd.DataFrame(
            [{_t("reports.name"): member_display_name(row)} for row in STORE.group_members(selected_id)]
        )
        _table_or_info(members_df, _t("ui.notices.noGroupMembers"))
    with donations_col:
        st.markdown(f"##### {_t('ui.fields.donations')}")
        donations_df = pd.DataFrame(
            [
                {_t("ui.fields.date"): _date(row["donation_date"]), _t("reports.amount"): _money(int(row["amount_cents"]))}
                for row in STORE.group_donations(selected_id)
            ]
        )
        _table_or_info(donations_df, _t("ui.notices.noGroupDonations"))


def _sponsor_form_fields(prefix: str, current: dict | None = None) -> dict[str, Any]:
    current = current or {}
    first_col, second_col = st.columns(2)
    with first_col:
        company = st.text_input(_t("ui.fields.company"), value=current.get("company") or "", key=f"{prefix}-company")
        salutation = st.text_input(
            _t("ui.fields.salutation"), value=current.get("salutation") or "", key=f"{prefix}-salutation"
        )
        first_name = st.text_input(_t("ui.fields.firstName"), value=current.get("first_name") or "", key=f"{prefix}-first")
        last_name = st.text_input(_t("ui.fields.lastName"), value=current.get("last_name") or "", key=f"{prefix}-last")
        email = st.text_input(_t("ui.fields.email"), value=current.get("email") or "", key=f"{prefix}-email")
        phone = st.text_input(_t("ui.fields.phone"), value=current.get("phone") or "", key=f"{prefix}-phone")
    with second_col:
        street = st.text_input(_t("ui.fields.street"), value=current.get("street") or "", key=f"{prefix}-street")
        postal_code = st.text_input(
            _t("ui.fields.postalCode"), value=current.get("postal_code") or "", key=f"{prefix}-postal"
        )
        city = st.text_input(_t("ui.fields.city"), value=current.get("city") or "", key=f"{prefix}-city")
        notes = st.text_area(_t("ui.fields.notes"), value=current.get("notes") or "", height=90, key=f"{prefix}-notes")

    return {
        "company": company,
        "salutation": salutation,
        "first_name": first_name,
        "last_name": last_name,
        "street": street,
        "postal_code": postal_code,
        "city": city,
        "phone": phone,
        "email": email,
        "notes": notes,
    }


def _assignment_picker(prefix: str, current: dict | None = None) -> tuple[int | None, int | None]:
    """Member and group selectors; the store rejects choosing both."""
    current = current or {}
    members = {NO_SELECTION: "-", **_member_options()}
    groups = _group_options()
    member_keys = list(members.keys())
    group_keys = list(groups.keys())

    member_col, group_col = st.columns(2)
    member_id = member_col.selectbox(
        _t("ui.fields.member"),
        options=member_keys,
        index=member_keys.index(current["member_id"]) if current.get("member_id") in members else 0,
        format_func=members.get,
        key=f"{prefix}-member",
    )
    group_id = group_col.selectbox(
        _t("ui.fields.group"),
        options=group_keys,
        index=group_keys.index(current["group_id"]) if current.get("group_id") in groups else 0,
        format_func=groups.get,
        key=f"{prefix}-group",
    )
    return member_id or None, group_id or None


def render_sponsors_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.sponsors')}")

    with st.expander(_t("ui.actions.createSponsor"), expanded=False):
        with st.form("sponsor-create-form", clear_on_submit=True):
            fields = _sponsor_form_fields("sponsor-create")
            member_id, group_id = _assignment_picker("sponsor-create")
            if st.form_submit_button(_t("ui.actions.createSponsor"), use_container_width=True):
                try:
                    STORE.add_sponsor(**fields, member_id=member_id, group_id=group_id)
                    st.success(_t("ui.notices.sponsorCreated"))
                    st.rerun()
                except ValueError as exc:
                    st.error(_message(exc))

    sponsors = _rows_to_dicts(STORE.list_sponsors(include_details=True))
    search_term = (
        st.text_input(_t("ui.fields.search"), placeholder=_t("ui.fields.searchPlaceholder")).strip().lower()
    )
    if search_term:
        sponsors = [
            row
            for row in sponsors
            if search_term
            in " ".join(str(row.get(key) or "") for key in ("company", "first_name", "last_name", "city")).lower()
        ]

    sponsors_df = pd.DataFrame(
        [
            {
                _t("ui.fields.sponsor"): sponsor_display_name(row),
                _t("ui.fields.city"): row.get("city") or "-",
                _t("ui.fields.assignedTo"): _assignment_label(row),
                _t("ui.fields.donations"): int(row["donation_count"]),
                _t("ui.fields.total"): _money(int(row["donation_total_cents"])),
            }
            for row in sponsors
        ]
    )
    _table_or_info(sponsors_df, _t("ui.notices.noSponsors"))

    filename, content = sponsors_csv(STORE, locale=_locale())
    st.download_button(
        _t("ui.actions.downloadCsv"),
        data=content,
        file_name=filename,
        mime="text/csv",
        key="sponsors-export-download",
    )

    if not sponsors:
        return

    st.markdown(f"#### {_t('ui.actions.editSponsor')}")
    sponsor_map = {row["id"]: row for row in sponsors}
    selected_id = st.selectbox(
        _t("ui.fields.sponsor"),
        options=list(sponsor_map.keys()),
        format_func=lambda sponsor_id: sponsor_display_name(sponsor_map[sponsor_id]),
        key="sponsor-edit-select",
    )
    selected = sponsor_map[selected_id]

    with st.form("sponsor-edit-form"):
        fields = _sponsor_form_fields(f"sponsor-edit-{selected_id}", selected)
        member_id, group_id = _assignment_picker(f"sponsor-edit-{selected_id}", selected)
        save_col, delete_col = st.columns(2)
        save = save_col.form_submit_button(_t("ui.save"), use_container_width=True)
        delete = delete_col.form_submit_button(_t("ui.delete"), use_container_width=True)
        try:
            if save:
                STORE.update_sponsor(selected_id, {**fields, "member_id": member_id, "group_id": group_id})
                st.success(_t("ui.notices.sponsorUpdated"))
                st.rerun()
            if delete:
                STORE.delete_sponsor(selected_id)
                st.success(_t("ui.notices.sponsorDeleted"))
                st.rerun()
        except ValueError as exc:
            st.error(_message(exc))


def _donation_label(row: dict) -> str:
    sponsor = sponsor_display_name(
        {
            "company": row["sponsor_company"],
            "first_name": row["sponsor_first_name"],
            "last_name": row["sponsor_last_name"],
        }
    )
    return f"{_date(row['donation_date'])} | {sponsor} | {_money(int(row['amount_cents']))}"


def render_donations_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.donations')}")

    sponsors = _rows_to_dicts(STORE.list_sponsors())
    if not sponsors:
        st.info(_t("ui.notices.createSponsorFirst"))
        return

    sponsor_map = {row["id"]: row for row in sponsors}
    sponsor_ids = list(sponsor_map.keys())
    with st.form("donation-create-form", clear_on_submit=True):
        first_col, second_col = st.columns(2)
        with first_col:
            sponsor_id = st.selectbox(
                _t("ui.fields.sponsor"),
                options=sponsor_ids,
                format_func=lambda item_id: sponsor_display_name(sponsor_map[item_id]),
            )
            amount = st.number_input(f"{_t('ui.fields.amountChf')} *", min_value=0.0, step=10.0, format="%.2f")
        with second_col:
            donation_date = st.date_input(_t("ui.fields.date"), value=date.today())
            note = st.text_input(_t("ui.fields.note"))
        member_id, group_id = _assignment_picker("donation-create")
        st.caption(_t("ui.notices.assignmentHint"))
        if st.form_submit_button(_t("ui.actions.recordDonation"), use_container_width=True):
            try:
                STORE.add_donation(
                    sponsor_id=sponsor_id,
                    amount_cents=cents_from_amount(amount),
                    donation_date=donation_date,
                    note=note,
                    member_id=member_id,
                    group_id=group_id,
                )
                st.success(_t("ui.notices.donationRecorded"))
                st.rerun()
            except ValueError as exc:
                st.error(_message(exc))

    donations = _rows_to_dicts(STORE.list_donations(include_details=True))
    donations_df = pd.DataFrame(
        [
            {
                _t("ui.fields.date"): _date(row["donation_date"]),
                _t("ui.fields.sponsor"): sponsor_display_name(
                    {
                        "company": row["sponsor_company"],
                        "first_name": row["sponsor_first_name"],
                        "last_name": row["sponsor_last_name"],
                    }
                ),
                _t("ui.fields.assignedTo"): row.get("member_name") or row.get("group_name") or "-",
                _t("reports.amount"): _money(int(row["amount_cents"])),
                _t("ui.fields.fiscalYear"): row.get("fiscal_year_name") or "-",
                _t("ui.fields.note"): row.get("note") or "-",
            }
            for row in donations
        ]
    )
    _table_or_info(donations_df, _t("ui.notices.noDonations"))

    if not donations:
        return

    st.markdown(f"#### {_t('ui.actions.editDonation')}")
    donation_map = {row["id"]: row for row in donations}
    selected_id = st.selectbox(
        _t("ui.fields.donation"),
        options=list(donation_map.keys()),
        format_func=lambda item_id: _donation_label(donation_map[item_id]),
        key="donation-edit-select",
    )
    selected = donation_map[selected_id]

    with st.form("donation-edit-form"):
        first_col, second_col = st.columns(2)
        with first_col:
            sponsor_id = st.selectbox(
                _t("ui.fields.sponsor"),
                options=sponsor_ids,
                index=sponsor_ids.index(selected["sponsor_id"]) if selected["sponsor_id"] in sponsor_map else 0,
                format_func=lambda item_id: sponsor_display_name(sponsor_map[item_id]),
                key=f"donation-sponsor-{selected_id}",
            )
            amount = st.number_input(
                _t("ui.fields.amountChf"),
                min_value=0.0,
                value=int(selected["amount_cents"]) / 100,
                step=10.0,
                format="%.2f",
                key=f"donation-amount-{selected_id}",
            )
        with second_col:
            donation_date = st.date_input(
                _t("ui.fields.date"),
                value=date.fromisoformat(selected["donation_date"]),
                key=f"donation-date-{selected_id}",
            )
            note = st.text_input(_t("ui.fields.note"), value=selected.get("note") or "", key=f"donation-note-{selected_id}")
        member_id, group_id = _assignment_picker(f"donation-edit-{selected_id}", selected)
        st.caption(_t("ui.notices.assignmentHint"))
        save_col, delete_col = st.columns(2)
        save = save_col.form_submit_button(_t("ui.save"), use_container_width=True)
        delete = delete_col.form_submit_button(_t("ui.delete"), use_container_width=True)
        try:
            if save:
                STORE.update_donation(
                    selected_id,
                    sponsor_id=sponsor_id,
                    amount_cents=cents_from_amount(amount),
                    donation_date=donation_date,
                    note=note,
                    clear_note=not note.strip(),
                    member_id=member_id,
                    group_id=group_id,
                    reset_assignment=member_id is None and group_id is None,
                )
                st.success(_t("ui.notices.donationUpdated"))
                st.rerun()
            if delete:
                STORE.delete_donation(selected_id)
                st.success(_t("ui.notices.donationDeleted"))
                st.rerun()
        except ValueError as exc:
            st.error(_message(exc))


def render_fiscal_years_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.fiscalYears')}")

    app_settings = STORE.get_settings()
    suggestion = suggest_fiscal_year_dates(
        start_month=int(app_settings.get("fiscalYearStartMonth") or 7),
        start_day=int(app_settings.get("fiscalYearStartDay") or 1),
    )

    with st.form("fiscal-year-create-form", clear_on_submit=True):
        name = st.text_input(f"{_t('reports.name')} *", value=suggestion["name"])
        start_col, end_col = st.columns(2)
        start_date = start_col.date_input(_t("ui.fields.startDate"), value=suggestion["start_date"])
        end_date = end_col.date_input(_t("ui.fields.endDate"), value=suggestion["end_date"])
        copy_previous = st.checkbox(_t("ui.actions.copyTargets"), value=True)
        if st.form_submit_button(_t("ui.actions.createFiscalYear"), use_container_width=True):
            try:
                STORE.add_fiscal_year(
                    name=name,
                    start_date=start_date,
                    end_date=end_date,
                    copy_previous_targets=copy_previous,
                )
                st.success(_t("ui.notices.fiscalYearCreated"))
                st.rerun()
            except ValueError as exc:
                st.error(_message(exc))

    years = _rows_to_dicts(STORE.list_fiscal_years())
    current = STORE.current_fiscal_year()
    years_df = pd.DataFrame(
        [
            {
                _t("reports.name"): row["name"],
                _t("ui.fields.startDate"): _date(row["start_date"]),
                _t("ui.fields.endDate"): _date(row["end_date"]),
                _t("ui.tabs.targets"): int(row["target_count"]),
                _t("ui.fields.current"): _t("ui.notices.yes")
                if current is not None and row["id"] == current["id"]
                else "",
            }
            for row in years
        ]
    )
    _table_or_info(years_df, _t("ui.notices.noFiscalYears"))

    if years:
        year_map = {row["id"]: row for row in years}
        delete_id = st.selectbox(
            _t("ui.fields.fiscalYear"),
            options=list(year_map.keys()),
            format_func=lambda item_id: year_map[item_id]["name"],
            key="fiscal-year-delete-select",
        )
        if st.button(_t("ui.delete"), key="fiscal-year-delete"):
            STORE.delete_fiscal_year(delete_id)
            st.rerun()


def render_targets_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.targets')}")

    years = _rows_to_dicts(STORE.list_fiscal_years())
    if not years:
        st.info(_t("ui.notices.createFiscalYearFirst"))
        return

    year_map = {row["id"]: row for row in years}
    current = STORE.current_fiscal_year()
    year_ids = list(year_map.keys())
    year_id = st.selectbox(
        _t("reports.fiscalYear"),
        options=year_ids,
        index=year_ids.index(current["id"]) if current is not None and current["id"] in year_map else 0,
        format_func=lambda item_id: year_map[item_id]["name"],
        key="targets-year-select",
    )

    selection = STORE.targets_for_year(fiscal_year_id=year_id)
    targets = _rows_to_dicts(selection["targets"]) if selection else []
    targets_df = pd.DataFrame(
        [
            {_t("ui.fields.member"): member_display_name(row), _t("reports.target"): _money(int(row["target_cents"]))}
            for row in targets
        ]
    )
    _table_or_info(targets_df, _t("ui.notices.noTargets"))

    left, right = st.columns(2, gap="large")
    with left:
        with st.form("targets-bulk-form"):
            default_amount = st.number_input(
                _t("ui.fields.defaultTargetChf"),
                min_value=0.0,
                value=STORE.default_target_amount(),
                step=100.0,
            )
            if st.form_submit_button(_t("ui.actions.createMissingTargets"), use_container_width=True):
                created = STORE.bulk_create_targets(year_id, cents_from_amount(default_amount))
                st.success(_t("targets.created", count=created))
                st.rerun()

    with right:
        if targets:
            target_map = {row["id"]: row for row in targets}
            target_id = st.selectbox(
                _t("ui.fields.member"),
                options=list(target_map.keys()),
                format_func=lambda item_id: member_display_name(target_map[item_id]),
                key="target-edit-select",
            )
            with st.form("target-edit-form"):
                amount = st.number_input(
                    _t("ui.fields.targetChf"),
                    min_value=0.0,
                    value=int(target_map[target_id]["target_cents"]) / 100,
                    step=100.0,
                    key=f"target-amount-{target_id}",
                )
                if st.form_submit_button(_t("ui.save"), use_container_width=True):
                    try:
                        STORE.update_target(target_id, cents_from_amount(amount))
                        st.success(_t("ui.notices.targetSaved"))
                        st.rerun()
                    except ValueError as exc:
                        st.error(_message(exc))


def _styled_performance(frame: pd.DataFrame) -> Any:
    column = _t("reports.achievement")
    return frame.style.map(_colour_level, subset=[column]).format(_percent, subset=[column])


def _render_performance_detail(report: dict[str, Any]) -> None:
    choices: dict[tuple[str, int], str] = {}
    for stat in report["group_stats"]:
        choices[("group", stat["group"]["id"])] = f"{stat['group']['name']} ({_t('ui.fields.group')})"
    for stat in report["member_stats"]:
        choices[("member", stat["member"]["id"])] = member_display_name(stat["member"])
    if not choices:
        return

    st.markdown(f"#### {_t('ui.detail.title')}")
    kind, item_id = st.selectbox(
        _t("ui.detail.select"),
        options=list(choices.keys()),
        format_func=choices.get,
        key="performance-detail-select",
    )
    if kind == "member":
        detail = performance_detail(STORE, member_id=item_id, fiscal_year_id=report["current_year"]["id"])
    else:
        detail = performance_detail(STORE, group_id=item_id, fiscal_year_id=report["current_year"]["id"])

    metric_columns = st.columns(4)
    with metric_columns[0]:
        _render_metric_card(_t("reports.target"), _money(detail["target_cents"]), detail["name"])
    with metric_columns[1]:
        _render_metric_card(
            _t("reports.actual"),
            _money(detail["actual_cents"]),
            f"{len(detail['donations'])} {_t('reports.donations')}",
        )
    with metric_columns[2]:
        _render_metric_card(_t("reports.difference"), _money(detail["difference_cents"]), "")
    with metric_columns[3]:
        _render_metric_card(
            _t("reports.achievement"),
            _percent(detail["percentage"]),
            "",
            color=LEVEL_COLORS[achievement_level(detail["percentage"])],
        )

    given_col, silent_col = st.columns([1.4, 1], gap="large")
    with given_col:
        st.markdown(f"##### {_t('ui.detail.sponsorsWithDonations')}")
        sponsors_df = pd.DataFrame(
            [
                {
                    _t("ui.fields.sponsor"): entry["name"],
                    _t("ui.fields.total"): _money(entry["total_cents"]),
                    _t("ui.fields.count"): entry["donation_count"],
                }
                for entry in detail["sponsors"]
            ]
        )
        _table_or_info(sponsors_df, _t("reports.noData"))
    with silent_col:
        st.markdown(f"##### {_t('ui.detail.sponsorsWithoutDonations')}")
        silent_df = pd.DataFrame(
            [
                {_t("ui.fields.sponsor"): entry["name"], _t("ui.fields.city"): entry["city"] or "-"}
                for entry in detail["sponsors_without_donations"]
            ]
        )
        _table_or_info(silent_df, _t("ui.detail.allSponsorsGave"))

    st.markdown(f"##### {_t('ui.detail.donationList')}")
    donations_df = pd.DataFrame(
        [
            {
                _t("ui.fields.date"): _date(donation["donation_date"]),
                _t("ui.fields.sponsor"): donation["sponsor_name"],
                _t("reports.amount"): _money(donation["amount_cents"]),
            }
            for donation in detail["donations"]
        ]
    )
    _table_or_info(donations_df, _t("reports.noData"))


def render_reports_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.reports')}")

    report = performance_report(STORE)
    if report["current_year"] is None:
        st.info(_t("errors.noActiveFiscalYear"))
        return

    st.caption(f"{_t('reports.fiscalYear')}: {report['current_year']['name']}")
    metric_columns = st.columns(3)
    with metric_columns[0]:
        _render_metric_card(_t("reports.targetTotal"), _money(report["total_target_cents"]), "")
    with metric_columns[1]:
        _render_metric_card(_t("reports.actualTotal"), _money(report["total_actual_cents"]), "")
    with metric_columns[2]:
        _render_metric_card(
            _t("reports.achievement"),
            _percent(report["overall_percentage"]),
            "",
            color=LEVEL_COLORS[achievement_level(report["overall_percentage"])],
        )

    pdf_bytes = performance_pdf(report, locale=_locale())
    st.download_button(
        _t("ui.actions.downloadPdf"),
        data=pdf_bytes,
        file_name=f"{_t('reports.filePrefix')}_{date.today().isoformat()}.pdf",
        mime="application/pdf",
        key="performance-pdf-download",
    )

    st.markdown(f"#### {_t('reports.groupPerformance')}")
    group_df = pd.DataFrame(
        [
            {
                _t("reports.name"): stat["group"]["name"],
                _t("reports.memberCount"): stat["member_count"],
                _t("reports.target"): _money(stat["target_cents"]),
                _t("reports.actual"): _money(stat["actual_cents"]),
                _t("reports.difference"): _money(stat["difference_cents"]),
                _t("reports.achievement"): stat["percentage"],
            }
            for stat in report["group_stats"]
        ]
    )
    if group_df.empty:
        st.info(_t("reports.noData"))
    else:
        st.dataframe(_styled_performance(group_df), use_container_width=True, hide_index=True)

    st.markdown(f"#### {_t('reports.memberPerformance')}")
    member_df = pd.DataFrame(
        [
            {
                _t("reports.name"): member_display_name(stat["member"]),
                _t("reports.donations"): stat["donation_count"],
                _t("reports.target"): _money(stat["target_cents"]),
                _t("reports.actual"): _money(stat["actual_cents"]),
                _t("reports.difference"): _money(stat["difference_cents"]),
                _t("reports.achievement"): stat["percentage"],
            }
            for stat in report["member_stats"]
        ]
    )
    if member_df.empty:
        st.info(_t("reports.noData"))
    else:
        st.dataframe(_styled_performance(member_df), use_container_width=True, hide_index=True)

    _render_performance_detail(report)

    st.markdown(f"#### {_t('reports.shares')}")
    shares = share_report(STORE, locale=_locale())
    shares_df = pd.DataFrame(
        [
            {
                _t("reports.name"): share["name"],
                _t("export.group"): share.get("group_name") or "-",
                _t("reports.amount"): share["amount_cents"] / 100,
                _t("reports.share"): _percent(share["percentage"]),
            }
            for share in shares["shares"]
        ]
    )
    if shares_df.empty:
        st.info(_t("reports.noData"))
        return
    st.bar_chart(shares_df.set_index(_t("reports.name"))[[_t("reports.amount")]], color="#198754")
    shares_df[_t("reports.amount")] = [_money(share["amount_cents"]) for share in shares["shares"]]
    st.dataframe(shares_df, use_container_width=True, hide_index=True)


def render_import_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.import')}")
    st.markdown(
        f"<p class='section-note'>{html.escape(_t('ui.notices.importHelp'))}</p>",
        unsafe_allow_html=True,
    )

    kind = st.radio(
        _t("ui.fields.importType"),
        options=["members", "sponsors"],
        horizontal=True,
        format_func=lambda option: _t(f"ui.tabs.{option}"),
    )
    upload = st.file_uploader(_t("ui.fields.csvFile"), type=["csv"])
    if upload is None:
        return

    if st.button(_t("ui.actions.import"), use_container_width=True):
        try:
            if kind == "members":
                summary = import_members_csv(STORE, upload.getvalue())
            else:
                summary = import_sponsors_csv(STORE, upload.getvalue())
        except ValueError as exc:
            st.error(_t("ui.notices.importFailed", error=exc))
            return

        st.success(
            _t(
                "ui.notices.importSummary",
                imported=summary.imported,
                skipped=summary.skipped,
                donations=summary.donations,
            )
        )
        for message in summary.messages:
            st.caption(message)


def render_users_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.users')}")

    left, right = st.columns([1, 1.3], gap="large")
    with left:
        with st.form("user-create-form", clear_on_submit=True):
            username = st.text_input(_t("ui.username"))
            name = st.text_input(_t("ui.name"))
            password = st.text_input(_t("ui.password"), type="password")
            if st.form_submit_button(_t("ui.actions.createUser"), use_container_width=True):
                try:
                    STORE.add_user(username=username, password=password, name=name)
                    st.success(_t("ui.notices.userCreated"))
                    st.rerun()
                except ValueError as exc:
                    st.error(_message(exc))

    users = _rows_to_dicts(STORE.list_users())
    with right:
        users_df = pd.DataFrame(
            [
                {
                    _t("ui.username"): row["username"],
                    _t("ui.name"): row.get("name") or "-",
                    _t("ui.fields.created"): _date(row["created_at"]),
                }
                for row in users
            ]
        )
        _table_or_info(users_df, _t("ui.notices.noUsers"))

    user_map = {row["id"]: row for row in users}
    with st.form("user-edit-form"):
        user_id = st.selectbox(
            _t("ui.fields.user"),
            options=list(user_map.keys()),
            format_func=lambda item_id: user_map[item_id]["username"],
        )
        new_password = st.text_input(_t("ui.fields.newPassword"), type="password")
        save_col, delete_col = st.columns(2)
        save = save_col.form_submit_button(_t("ui.save"), use_container_width=True)
        delete = delete_col.form_submit_button(_t("ui.delete"), use_container_width=True)
        try:
            if save and new_password:
                STORE.update_user(user_id, password=new_password)
                st.success(_t("ui.notices.passwordChanged"))
            if delete:
                STORE.delete_user(user_id, acting_user_id=st.session_state.get("user_id"))
                st.rerun()
        except ValueError as exc:
            st.error(_message(exc))


def render_settings_tab() -> None:
    st.markdown(f"### {_t('ui.tabs.settings')}")
    current = STORE.get_settings()

    with st.form("settings-form"):
        organization_name = st.text_input(_t("ui.fields.organizationName"), value=current.get("organizationName", ""))
        default_target = st.number_input(
            _t("ui.fields.defaultTargetChf"),
            min_value=0.0,
            value=STORE.default_target_amount(),
            step=100.0,
        )
        month_col, day_col = st.columns(2)
        start_month = month_col.number_input(
            _t("ui.fields.startMonth"),
            min_value=1,
            max_value=12,
            value=int(current.get("fiscalYearStartMonth") or 7),
        )
        start_day = day_col.number_input(
            _t("ui.fields.startDay"),
            min_value=1,
            max_value=31,
            value=int(current.get("fiscalYearStartDay") or 1),
        )
        if st.form_submit_button(_t("ui.save"), use_container_width=True):
            STORE.update_settings(
                {
                    "organizationName": organization_name.strip() or current.get("organizationName"),
                    "defaultTargetAmount": f"{default_target:g}",
                    "fiscalYearStartMonth": int(start_month),
                    "fiscalYearStartDay": int(start_day),
                }
            )
            st.success(_t("ui.notices.settingsSaved"))
            st.rerun()


def main() -> None:
    st.set_page_config(
        page_title="DonorFlow",
        page_icon=":handshake:",
        layout="wide",
    )
    configure_logging()
    STORE.init_db()
    _inject_styles()
    _render_sidebar()
    _hero()

    if not _render_login():
        return

    tab_keys = [
        "home",
        "members",
        "groups",
        "sponsors",
        "donations",
        "fiscalYears",
        "targets",
        "reports",
        "import",
        "users",
        "settings",
    ]
    renderers = [
        render_dashboard,
        render_members_tab,
        render_groups_tab,
        render_sponsors_tab,
        render_donations_tab,
        render_fiscal_years_tab,
        render_targets_tab,
        render_reports_tab,
        render_import_tab,
        render_users_tab,
        render_settings_tab,
    ]
    tabs = st.tabs([_t(f"ui.tabs.{key}") for key in tab_keys])
    for tab, render in zip(tabs, renderers):
        with tab:
            render()


if __name__ == "__main__":
    main()
