"""CSV and PDF exports."""

from __future__ import annotations

import io
import logging
from datetime import date
from typing import Any, Mapping
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .i18n import DEFAULT_LOCALE, format_cents, format_date, format_percent, translate
from .reports import achievement_level
from .store import DonorFlowStore, amount_from_cents, member_display_name

logger = logging.getLogger(__name__)

SPONSOR_EXPORT_COLUMNS = (
    ("company", "company"),
    ("salutation", "salutation"),
    ("first_name", "firstName"),
    ("last_name", "lastName"),
    ("street", "street"),
    ("postal_code", "postalCode"),
    ("city", "city"),
    ("phone", "phone"),
    ("email", "email"),
    ("notes", "notes"),
    ("assigned_type", "assignedType"),
    ("assigned_name", "assignedName"),
    ("donation_count", "donationCount"),
    ("donation_sum", "donationSum"),
)

HEADER_FILL = colors.HexColor("#343a40")
LEVEL_COLORS = {
    "success": colors.HexColor("#198754"),
    "warning": colors.HexColor("#b8860b"),
    "danger": colors.HexColor("#dc3545"),
}


def sponsors_export_frame(store: DonorFlowStore, locale: str = DEFAULT_LOCALE) -> pd.DataFrame:
    records = []
    for sponsor in store.sponsors_for_export():
        if sponsor["member_id"] is not None:
            assigned_type = translate(locale, "export.member")
            assigned_name = member_display_name(
                {"first_name": sponsor["member_first_name"], "last_name": sponsor["member_last_name"]}
            )
        elif sponsor["group_id"] is not None:
            assigned_type = translate(locale, "export.group")
            assigned_name = sponsor["group_name"]
        else:
            assigned_type = "-"
            assigned_name = "-"

        records.append(
            {
                "company": sponsor["company"],
                "salutation": sponsor["salutation"],
                "first_name": sponsor["first_name"],
                "last_name": sponsor["last_name"],
                "street": sponsor["street"],
                "postal_code": sponsor["postal_code"],
                "city": sponsor["city"],
                "phone": sponsor["phone"],
                "email": sponsor["email"],
                "notes": sponsor["notes"],
                "assigned_type": assigned_type,
                "assigned_name": assigned_name,
                "donation_count": int(sponsor["donation_count"]),
                "donation_sum": f"{amount_from_cents(int(sponsor['donation_total_cents'])):.2f}",
            }
        )

    frame = pd.DataFrame.from_records(records, columns=[column for column, _ in SPONSOR_EXPORT_COLUMNS])
    return frame.rename(
        columns={column: translate(locale, f"export.columns.{key}") for column, key in SPONSOR_EXPORT_COLUMNS}
    )


def sponsors_csv(
    store: DonorFlowStore,
    locale: str = DEFAULT_LOCALE,
    today: date | None = None,
) -> tuple[str, bytes]:
    """Return ``(filename, content)`` for the sponsor list export."""
    today = today or date.today()
    prefix = translate(locale, "export.sponsorsFilePrefix")
    frame = sponsors_export_frame(store, locale=locale)
    return f"{prefix}_{today.isoformat()}.csv", frame.to_csv(index=False).encode("utf-8")


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("ReportTitle", parent=base["Heading1"], fontSize=18, spaceAfter=6),
        "subtitle": ParagraphStyle("ReportSubtitle", parent=base["Normal"], fontSize=11, textColor=colors.HexColor("#323232")),
        "heading": ParagraphStyle("ReportHeading", parent=base["Heading2"], fontSize=13, spaceBefore=8, spaceAfter=6),
        "normal": base["Normal"],
    }


def _table(rows: list[list[Any]], column_widths: list[float]) -> Table:
    table = Table(rows, colWidths=column_widths, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#dee2e6")),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f8f9fa")]),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )
    return table


def _colour_cells(
    table: Table,
    stats: list[Mapping[str, Any]],
    difference_column: int,
    achievement_column: int,
) -> None:
    commands = []
    for index, stat in enumerate(stats, start=1):
        difference_colour = LEVEL_COLORS["success"] if stat["difference_cents"] >= 0 else LEVEL_COLORS["danger"]
        level = achievement_level(stat["percentage"])
        commands.append(("TEXTCOLOR", (difference_column, index), (difference_column, index), difference_colour))
        commands.append(("TEXTCOLOR", (achievement_column, index), (achievement_column, index), LEVEL_COLORS[level]))
        if level == "success":
            commands.append(
                ("FONTNAME", (achievement_column, index), (achievement_column, index), "Helvetica-Bold")
            )
    if commands:
        table.setStyle(TableStyle(commands))


def performance_pdf(
    report: Mapping[str, Any],
    locale: str = DEFAULT_LOCALE,
    today: date | None = None,
) -> bytes:
    """Render a performance report as an A4 PDF."""
    today = today or date.today()
    styles = _styles()

    def t(key: str, **params: Any) -> str:
        return translate(locale, f"reports.{key}", params=params)

    def money(cents: float) -> str:
        return format_cents(cents, locale)

    def percent(value: float) -> str:
        return format_percent(value, locale)

    created_on = t("createdOn", date=format_date(today, locale))

    def draw_footer(canvas: Any, document: Any) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(colors.HexColor("#646464"))
        canvas.drawString(document.leftMargin, 10 * mm, created_on)
        canvas.drawRightString(
            document.pagesize[0] - document.rightMargin,
            10 * mm,
            t("page", page=document.page),
        )
        canvas.restoreState()

    buffer = io.BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=20 * mm,
        title=t("title"),
    )
    story: list[Any] = [Paragraph(escape(t("title")), styles["title"])]

    current_year = report.get("current_year")
    if not current_year:
        story.append(Paragraph(escape(t("noData")), styles["normal"]))
        document.build(story, onFirstPage=draw_footer, onLaterPages=draw_footer)
        return buffer.getvalue()

    story.append(Paragraph(escape(f"{t('fiscalYear')}: {current_year['name']}"), styles["subtitle"]))
    story.append(Spacer(1, 8))

    total_target = report["total_target_cents"]
    total_actual = report["total_actual_cents"]
    difference = total_actual - total_target

    summary_rows: list[list[Any]] = [
        [t("overallSummary"), ""],
        [t("targetTotal"), money(total_target)],
        [t("actualTotal"), money(total_actual)],
        [t("members"), money(report["member_actual_cents"])],
        [t("groups"), money(report["group_actual_cents"])],
    ]
    if report["unassigned_total_cents"] > 0:
        summary_rows.append([t("notAssigned"), money(report["unassigned_total_cents"])])
    summary_rows.append([t("difference"), money(difference)])
    summary_rows.append([t("achievement"), percent(report["overall_percentage"])])

    summary = _table(summary_rows, [90 * mm, 60 * mm])
    summary.setStyle(
        TableStyle(
            [
                ("SPAN", (0, 0), (-1, 0)),
                ("ALIGN", (0, 0), (-1, 0), "LEFT"),
                ("TEXTCOLOR", (1, -2), (1, -2), LEVEL_COLORS["success"] if difference >= 0 else LEVEL_COLORS["danger"]),
                ("TEXTCOLOR", (1, -1), (1, -1), LEVEL_COLORS[achievement_level(report["overall_percentage"])]),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ]
        )
    )
    story.extend([summary, Spacer(1, 10)])

    group_stats = report.get("group_stats") or []
    if group_stats:
        story.append(Paragraph(escape(t("groupPerformance")), styles["heading"]))
        rows: list[list[Any]] = [
            [t("name"), t("memberCount"), t("target"), t("actual"), t("difference"), t("achievement")]
        ]
        for stat in group_stats:
            rows.append(
                [
                    stat["group"]["name"],
                    str(stat["member_count"]),
                    money(stat["target_cents"]),
                    money(stat["actual_cents"]),
                    money(stat["difference_cents"]),
                    percent(stat["percentage"]),
                ]
            )
        table = _table(rows, [50 * mm, 20 * mm, 28 * mm, 28 * mm, 28 * mm, 26 * mm])
        _colour_cells(table, group_stats, difference_column=4, achievement_column=5)
        story.extend([table, Spacer(1, 10)])

    member_stats = report.get("member_stats") or []
    if member_stats:
        story.append(Paragraph(escape(t("memberPerformance")), styles["heading"]))
        rows = [[t("name"), t("donations"), t("target"), t("actual"), t("difference"), t("achievement")]]
        for stat in member_stats:
            rows.append(
                [
                    member_display_name(stat["member"]),
                    str(stat["donation_count"]),
                    money(stat["target_cents"]),
                    money(stat["actual_cents"]),
                    money(stat["difference_cents"]),
                    percent(stat["percentage"]),
                ]
            )
        table = _table(rows, [50 * mm, 20 * mm, 28 * mm, 28 * mm, 28 * mm, 26 * mm])
        _colour_cells(table, member_stats, difference_column=4, achievement_column=5)
        story.append(table)

    document.build(story, onFirstPage=draw_footer, onLaterPages=draw_footer)
    logger.info("Rendered performance PDF for fiscal year %s", current_year["name"])
    return buffer.getvalue()
