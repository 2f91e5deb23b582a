"""Translate pydantic validation errors into localized messages."""

from __future__ import annotations

from typing import Any, Mapping

from .i18n import interpolate

TYPE_ERRORS = {
    "string_type",
    "int_type",
    "int_parsing",
    "int_from_float",
    "float_type",
    "float_parsing",
    "decimal_type",
    "decimal_parsing",
    "bool_type",
    "bool_parsing",
    "dict_type",
    "model_type",
    "model_attributes_type",
    "list_type",
    "none_required",
    "is_instance_of",
}
DATE_ERRORS = {
    "date_type",
    "date_parsing",
    "date_from_datetime_parsing",
    "date_from_datetime_inexact",
    "datetime_type",
    "datetime_parsing",
    "datetime_from_date_parsing",
}


def _text(translations: Mapping[str, str], key: str, fallback: str, **params: Any) -> str:
    return interpolate(translations.get(key) or fallback, params)


def _is_zero(value: Any) -> bool:
    try:
        return float(value) == 0
    except (TypeError, ValueError):
        return False


def translate_error(error: Mapping[str, Any], translations: Mapping[str, str]) -> str:
    """Map a single pydantic error dict to a message from ``translations``.

    ``translations`` is the ``validation`` section of a message catalog.
    Custom rule errors carry their message key as ``msg``.
    """
    error_type = error.get("type", "")
    ctx = error.get("ctx") or {}

    if error_type == "missing":
        return _text(translations, "required", "Required")

    if error_type in TYPE_ERRORS:
        return _text(translations, "invalidType", "Invalid type")

    if error_type in DATE_ERRORS:
        return _text(translations, "invalidDate", "Invalid date")

    if error_type == "string_too_short":
        min_length = ctx.get("min_length")
        if min_length == 1:
            return _text(translations, "required", "Required")
        return _text(translations, "minLength", "Must be at least {min} characters", min=min_length)

    if error_type == "string_too_long":
        return _text(translations, "maxLength", "Must be at most {max} characters", max=ctx.get("max_length"))

    if error_type == "greater_than":
        if _is_zero(ctx.get("gt")):
            return _text(translations, "positive", "Must be greater than 0")
        return _text(translations, "minValue", "Must be at least {min}", min=ctx.get("gt"))

    if error_type == "greater_than_equal":
        if _is_zero(ctx.get("ge")):
            return _text(translations, "nonnegative", "Must be positive")
        return _text(translations, "minValue", "Must be at least {min}", min=ctx.get("ge"))

    if error_type == "less_than":
        return _text(translations, "maxValue", "Must be at most {max}", max=ctx.get("lt"))

    if error_type == "less_than_equal":
        return _text(translations, "maxValue", "Must be at most {max}", max=ctx.get("le"))

    if error_type == "too_short":
        return _text(translations, "minItems", "Must contain at least {min} items", min=ctx.get("min_length"))

    if error_type == "too_long":
        return _text(translations, "maxItems", "Must contain at most {max} items", max=ctx.get("max_length"))

    if error_type == "literal_error":
        return _text(translations, "invalidLiteral", "Invalid literal value")

    if error_type == "enum":
        return _text(translations, "invalidEnumValue", "Invalid enum value")

    if error_type == "extra_forbidden":
        return _text(translations, "unrecognizedKeys", "Unrecognized keys")

    if error_type in {"union_tag_invalid", "union_tag_not_found"}:
        return _text(translations, "invalidUnion", "Invalid input")

    if error_type == "multiple_of":
        return _text(
            translations,
            "notMultipleOf",
            "Must be a multiple of {multipleOf}",
            multipleOf=ctx.get("multiple_of"),
        )

    if error_type == "finite_number":
        return _text(translations, "notFinite", "Number must be finite")

    if error_type == "email":
        return _text(translations, "email", "Invalid email address")

    if error_type == "custom":
        key = str(error.get("msg", ""))
        return translations.get(key) or key

    return str(error.get("msg", ""))
