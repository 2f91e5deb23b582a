"""Locale negotiation, message catalogs, and locale-aware formatting."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

LOCALES = ("de", "en", "fr", "it")
DEFAULT_LOCALE = "en"
LOCALE_NAMES = {
    "de": "Deutsch",
    "en": "English",
    "fr": "Français",
    "it": "Italiano",
}
DISPLAY_TIMEZONE = ZoneInfo("Europe/Zurich")
MESSAGES_DIR = Path(__file__).parent / "messages"

# (thousands separator, decimal separator, currency prefix, currency suffix)
_NUMBER_STYLES = {
    "de": ("’", ".", "CHF ", ""),
    "en": (",", ".", "CHF ", ""),
    "fr": (" ", ",", "", " CHF"),
    "it": (".", ",", "", " CHF"),
}
_DATE_FORMATS = {
    "de": "%d.%m.%Y",
    "en": "%m/%d/%Y",
    "fr": "%d/%m/%Y",
    "it": "%d/%m/%Y",
}
_DATETIME_SEPARATORS = {
    "de": ", ",
    "en": ", ",
    "fr": " ",
    "it": ", ",
}
_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def normalize_locale(locale: str | None) -> str:
    if not locale:
        return DEFAULT_LOCALE
    candidate = locale.strip().lower().replace("_", "-")
    if candidate in LOCALES:
        return candidate
    prefix = candidate.split("-")[0]
    return prefix if prefix in LOCALES else DEFAULT_LOCALE


def locale_from_accept_language(header: str | None) -> str:
    """Pick the best supported locale from an Accept-Language header.

    "de-CH, de;q=0.9, en;q=0.8" -> "de". Falls back to the default locale.
    """
    if not header:
        return DEFAULT_LOCALE

    languages: list[tuple[float, str]] = []
    for part in header.split(","):
        pieces = part.strip().split(";")
        tag = pieces[0].strip().lower()
        if not tag:
            continue
        quality = 1.0
        for parameter in pieces[1:]:
            name, _, raw_value = parameter.strip().partition("=")
            if name.strip() == "q":
                try:
                    quality = float(raw_value)
                except ValueError:
                    quality = 0.0
        languages.append((quality, tag))

    # sorted() is stable, so equal qualities keep header order
    for _, tag in sorted(languages, key=lambda item: item[0], reverse=True):
        if tag in LOCALES:
            return tag
        prefix = tag.split("-")[0]
        if prefix in LOCALES:
            return prefix

    return DEFAULT_LOCALE


@lru_cache(maxsize=None)
def get_messages(locale: str) -> dict[str, Any]:
    path = MESSAGES_DIR / f"{locale}.json"
    try:
        with path.open(encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError):
        logger.exception("Failed to load messages for locale %s", locale)
        if locale != DEFAULT_LOCALE:
            return get_messages(DEFAULT_LOCALE)
        raise


def interpolate(template: str, params: Mapping[str, Any] | None = None) -> str:
    """Replace ``{name}`` placeholders; unknown placeholders stay as they are."""
    if not params:
        return template

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in params:
            return str(params[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def translate(locale: str, key: str, params: Mapping[str, Any] | None = None, default: str | None = None) -> str:
    """Look up a dotted message key, e.g. ``users.cannotDeleteSelf``."""
    node: Any = get_messages(normalize_locale(locale))
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            node = None
            break
        node = node[part]

    if not isinstance(node, str):
        if normalize_locale(locale) != DEFAULT_LOCALE:
            return translate(DEFAULT_LOCALE, key, params=params, default=default)
        return interpolate(default if default is not None else key, params)
    return interpolate(node, params)


def _group_digits(amount: float, thousands: str, decimal: str, digits: int) -> str:
    formatted = f"{abs(amount):,.{digits}f}"
    formatted = formatted.replace(",", "\x00").replace(".", decimal).replace("\x00", thousands)
    return formatted


def format_number(value: float, locale: str = DEFAULT_LOCALE, digits: int = 2) -> str:
    thousands, decimal, _, _ = _NUMBER_STYLES[normalize_locale(locale)]
    sign = "-" if value < 0 and round(abs(value), digits) != 0 else ""
    return sign + _group_digits(value, thousands, decimal, digits)


def format_currency(amount: float, locale: str = DEFAULT_LOCALE) -> str:
    """Format a CHF amount, e.g. "CHF 1’000.00" (de) or "1 000,00 CHF" (fr)."""
    thousands, decimal, prefix, suffix = _NUMBER_STYLES[normalize_locale(locale)]
    sign = "-" if amount < 0 and round(abs(amount), 2) != 0 else ""
    return f"{sign}{prefix}{_group_digits(amount, thousands, decimal, 2)}{suffix}"


def format_cents(cents: int | float, locale: str = DEFAULT_LOCALE) -> str:
    return format_currency(cents / 100, locale)


def format_percent(value: float, locale: str = DEFAULT_LOCALE, digits: int = 1) -> str:
    number = format_number(value, locale, digits=digits)
    if normalize_locale(locale) == "fr":
        return f"{number} %"
    return f"{number}%"


def _to_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_local_datetime(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        # SQLite CURRENT_TIMESTAMP values are UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(DISPLAY_TIMEZONE)


def format_date(value: date | datetime | str | None, locale: str = DEFAULT_LOCALE) -> str:
    if value is None or value == "":
        return ""
    return _to_date(value).strftime(_DATE_FORMATS[normalize_locale(locale)])


def format_datetime(value: datetime | str | None, locale: str = DEFAULT_LOCALE) -> str:
    if value is None or value == "":
        return ""
    code = normalize_locale(locale)
    local = _to_local_datetime(value)
    return f"{local.strftime(_DATE_FORMATS[code])}{_DATETIME_SEPARATORS[code]}{local.strftime('%H:%M')}"
