"""Exceptions raised by the category attribute core.

Every class carries a stable ``code`` so REST callers can branch on it without
parsing messages. None of these are retried internally.
"""

from __future__ import annotations

from typing import Any


class AttributeCoreError(Exception):
    code = "attribute_error"

    def __init__(self, message: str = "", **context: Any):
        self.message = message or self.__class__.__doc__ or self.code
        self.context = context
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        out.update({k: v for k, v in self.context.items() if v is not None})
        return out


# Configuration errors: raised to the category-management caller at write time.


class AttributeConfigurationError(AttributeCoreError):
    code = "invalid_configuration"


class DuplicateFieldName(AttributeConfigurationError):
    """An attribute with this name already exists for this category."""

    code = "duplicate_field_name"


class InvalidFieldType(AttributeConfigurationError):
    code = "invalid_field_type"


class InvalidConditionalDisplay(AttributeConfigurationError):
    code = "invalid_conditional_display"


class InvalidReorder(AttributeConfigurationError):
    code = "invalid_reorder"


# Lookup errors.


class NotFound(AttributeCoreError):
    code = "not_found"


class UnknownAttribute(AttributeCoreError):
    code = "unknown_attribute"


class AttributeNotSearchable(UnknownAttribute):
    code = "attribute_not_searchable"


class FilterRequestTooLarge(AttributeCoreError):
    code = "filter_request_too_large"


# Validation errors, always scoped to one field.


class FieldValidationError(AttributeCoreError):
    code = "invalid_value"

    def __init__(self, field_name: str, message: str = "", **context: Any):
        self.field_name = field_name
        super().__init__(message, field_name=field_name, **context)


class OutOfRange(FieldValidationError):
    code = "out_of_range"


class NotANumber(FieldValidationError):
    code = "not_a_number"


class TooShort(FieldValidationError):
    code = "too_short"


class TooLong(FieldValidationError):
    code = "too_long"


class PatternMismatch(FieldValidationError):
    code = "pattern_mismatch"


class NotAnOption(FieldValidationError):
    code = "not_an_option"


class InvalidDate(FieldValidationError):
    code = "invalid_date"


class InvalidType(FieldValidationError):
    code = "invalid_type"


class RequiredFieldMissing(FieldValidationError):
    code = "required"


# Consistency errors.


class UnexpectedField(FieldValidationError):
    code = "unexpected_field"


class AttributeOutsideCategory(FieldValidationError):
    code = "attribute_outside_category"


class AttributeValidationFailed(AttributeCoreError):
    """Attribute validation failed."""

    code = "attribute_validation_failed"

    def __init__(self, errors: list[FieldValidationError]):
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} attribute value(s) failed validation")

    def by_field(self) -> dict[str, list[dict[str, Any]]]:
        out: dict[str, list[dict[str, Any]]] = {}
        for err in self.errors:
            out.setdefault(err.field_name, []).append(err.as_dict())
        return out
