"""Data, reporting, and export helpers for the DonorFlow app."""

from .auth import authenticate, hash_password, verify_password
from .exports import performance_pdf, sponsors_csv, sponsors_export_frame
from .i18n import format_cents, format_currency, format_date, format_percent, translate
from .reports import (
    achievement_level,
    dashboard_stats,
    performance_detail,
    performance_report,
    share_report,
    suggest_fiscal_year_dates,
)
from .store import (
    DomainError,
    DonorFlowStore,
    RecordNotFoundError,
    amount_from_cents,
    cents_from_amount,
    member_display_name,
    sponsor_display_name,
)

__all__ = [
    "achievement_level",
    "amount_from_cents",
    "authenticate",
    "cents_from_amount",
    "dashboard_stats",
    "DomainError",
    "DonorFlowStore",
    "format_cents",
    "format_currency",
    "format_date",
    "format_percent",
    "hash_password",
    "member_display_name",
    "performance_detail",
    "performance_pdf",
    "performance_report",
    "RecordNotFoundError",
    "share_report",
    "sponsor_display_name",
    "sponsors_csv",
    "sponsors_export_frame",
    "suggest_fiscal_year_dates",
    "translate",
    "verify_password",
]
