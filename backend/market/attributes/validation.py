from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator, validate_email
from django.utils.dateparse import parse_date, parse_datetime

from market.models import FieldType

from .errors import (
    FieldValidationError,
    InvalidDate,
    InvalidType,
    NotANumber,
    NotAnOption,
    OutOfRange,
    PatternMismatch,
    RequiredFieldMissing,
    TooLong,
    TooShort,
)

NUMERIC_TYPES = {FieldType.NUMBER, FieldType.RANGE}
TEXT_TYPES = {FieldType.TEXT, FieldType.TEXTAREA, FieldType.TEL, FieldType.EMAIL, FieldType.URL}
CHOICE_TYPES = {FieldType.SELECT, FieldType.RADIO}

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}

_url_validator = URLValidator()


def option_values(field_options: Any) -> list[Any]:
    """Flatten options given either as raw values or as ``{value, label}`` objects."""
    out: list[Any] = []
    for option in field_options or []:
        if isinstance(option, dict):
            out.append(option.get("value"))
        else:
            out.append(option)
    return out


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, (list, tuple)) and not value:
        return True
    return False


def _decimal(raw: Any) -> Decimal | None:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        number = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _rule(definition, key: str) -> Any:
    rules = definition.validation_rules or {}
    value = rules.get(key)
    if value in (None, ""):
        return None
    return value


def _length_rule(definition, key: str) -> int | None:
    # Accepts 5, "5" and "5.0".
    number = _decimal(_rule(definition, key))
    return int(number) if number is not None else None


def _coerce_number(definition, value: Any) -> int | float:
    name = definition.field_name
    number = _decimal(value)
    if number is None:
        raise NotANumber(name, f"{name} must be a number")

    low = _decimal(_rule(definition, "min"))
    high = _decimal(_rule(definition, "max"))
    if low is not None and number < low:
        raise OutOfRange(name, f"{name} must be at least {low}", min=str(low))
    if high is not None and number > high:
        raise OutOfRange(name, f"{name} must be at most {high}", max=str(high))

    if number == number.to_integral_value():
        return int(number)
    return float(number)


def _coerce_text(definition, value: Any) -> str:
    name = definition.field_name
    if isinstance(value, (list, tuple, dict)) or isinstance(value, bool):
        raise InvalidType(name, f"{name} must be text")
    text = str(value).strip()

    min_length = _length_rule(definition, "minLength")
    max_length = _length_rule(definition, "maxLength")
    if min_length is not None and len(text) < min_length:
        raise TooShort(name, f"{name} must be at least {min_length} characters", min_length=min_length)
    if max_length is not None and len(text) > max_length:
        raise TooLong(name, f"{name} must be at most {max_length} characters", max_length=max_length)

    pattern = _rule(definition, "pattern")
    if pattern is not None and re.fullmatch(str(pattern), text) is None:
        raise PatternMismatch(name, f"{name} does not match the expected format")

    try:
        if definition.field_type == FieldType.EMAIL:
            validate_email(text)
        elif definition.field_type == FieldType.URL:
            _url_validator(text)
    except DjangoValidationError:
        raise PatternMismatch(name, f"{name} is not a valid {definition.field_type}")

    return text


def _match_option(options: list[Any], value: Any) -> tuple[bool, Any]:
    for option in options:
        if option == value and type(option) is type(value):
            return True, option
    # Form transport turns everything into strings.
    for option in options:
        if str(option) == str(value):
            return True, option
    return False, None


def _coerce_choice(definition, value: Any) -> Any:
    name = definition.field_name
    if isinstance(value, (list, tuple, dict)):
        raise InvalidType(name, f"{name} accepts a single option")
    found, option = _match_option(option_values(definition.field_options), value)
    if not found:
        raise NotAnOption(name, f"{value!r} is not a valid option for {name}", value=str(value))
    return option


def _coerce_multi(definition, value: Any) -> list[Any]:
    name = definition.field_name
    if isinstance(value, dict):
        raise InvalidType(name, f"{name} must be a list of options")
    items = list(value) if isinstance(value, (list, tuple)) else [value]
    options = option_values(definition.field_options)

    out: list[Any] = []
    for item in items:
        found, option = _match_option(options, item)
        if not found:
            raise NotAnOption(name, f"{item!r} is not a valid option for {name}", value=str(item))
        if option not in out:
            out.append(option)
    return out


def _coerce_checkbox(definition, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise InvalidType(definition.field_name, f"{definition.field_name} must be true or false")


def parse_calendar_date(raw: Any) -> dt.date | None:
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    text = str(raw).strip()
    try:
        parsed = parse_date(text)
        if parsed is None:
            moment = parse_datetime(text)
            parsed = moment.date() if moment is not None else None
    except ValueError:
        return None
    return parsed


def _coerce_date(definition, value: Any) -> str:
    name = definition.field_name
    if isinstance(value, (list, tuple, dict, bool, int, float)):
        raise InvalidDate(name, f"{name} must be a calendar date")
    parsed = parse_calendar_date(value)
    if parsed is None:
        raise InvalidDate(name, f"{name} must be a calendar date (YYYY-MM-DD)")

    low = _rule(definition, "min")
    high = _rule(definition, "max")
    low_date = parse_calendar_date(low) if low is not None else None
    high_date = parse_calendar_date(high) if high is not None else None
    if low_date is not None and parsed < low_date:
        raise OutOfRange(name, f"{name} must be on or after {low_date.isoformat()}", min=low_date.isoformat())
    if high_date is not None and parsed > high_date:
        raise OutOfRange(name, f"{name} must be on or before {high_date.isoformat()}", max=high_date.isoformat())
    return parsed.isoformat()


_COERCERS = {
    FieldType.NUMBER: _coerce_number,
    FieldType.RANGE: _coerce_number,
    FieldType.SELECT: _coerce_choice,
    FieldType.RADIO: _coerce_choice,
    FieldType.MULTISELECT: _coerce_multi,
    FieldType.CHECKBOX: _coerce_checkbox,
    FieldType.DATE: _coerce_date,
}


def validate(definition, value: Any, *, visible: bool = True) -> Any:
    """Check ``value`` against ``definition`` and return the coerced value.

    Returns None when the value is absent and that is acceptable: the field is
    optional, or it is required but currently hidden. Raises a
    ``FieldValidationError`` subclass otherwise.
    """
    if is_empty(value):
        if definition.is_required and visible:
            raise RequiredFieldMissing(definition.field_name, f"{definition.field_name} is required")
        return None

    coerce = _COERCERS.get(definition.field_type, _coerce_text)
    return coerce(definition, value)


def validate_many(definitions, values: dict[str, Any], visible_names: set[str]) -> tuple[dict[str, Any], list[FieldValidationError]]:
    """Validate every definition at once and collect all failures."""
    cleaned: dict[str, Any] = {}
    errors: list[FieldValidationError] = []
    for definition in definitions:
        name = definition.field_name
        try:
            coerced = validate(definition, values.get(name), visible=name in visible_names)
        except FieldValidationError as exc:
            errors.append(exc)
            continue
        if coerced is not None:
            cleaned[name] = coerced
    return cleaned, errors
