from __future__ import annotations

import re
from typing import Any, Iterable


# National mobile format: 05XXXXXXXX or 5XXXXXXXX once non-digits are stripped
_MOBILE_RE = re.compile(r"^(05)[0-9]{8}$|^(5)[0-9]{8}$")

SERIAL_MAX_LENGTH = 64
NAME_MAX_LENGTH = 128
NOTES_MAX_LENGTH = 2000


class ValidationError(ValueError):
    """
    400-level input problem.

    `errors` maps a client-facing field name to a reason. A single-field
    error can be raised with `field=`; multi-field errors pass the whole
    dict so the caller can surface every problem at once.
    """

    def __init__(self, message: str = "Validation failed", *, field: str | None = None,
                 errors: dict[str, str] | None = None):
        super().__init__(message)
        self.field = field
        self.errors: dict[str, str] = dict(errors or {})
        if field and field not in self.errors:
            self.errors[field] = message

    def to_dict(self) -> dict:
        return {"error": str(self), "errors": self.errors}


class NonPositiveAmount(ValidationError):
    """Amount must be greater than zero."""


class ExcessPayment(ValidationError):
    """Payment would overshoot the remaining balance."""


class InvalidAmount(ValidationError):
    """A computed balance came out negative; the caller applied things out of order."""


class ConflictError(ValueError):
    """409-level conflict: duplicate serial number or a lost balance race."""

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def is_valid_phone(phone: str | None) -> bool:
    if not phone:
        return False
    return bool(_MOBILE_RE.match(digits_only(phone)))


def clean_text(value: Any, *, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]


def collect_customer_errors(payload: dict) -> dict[str, str]:
    """
    Field errors for the non-monetary part of an order form.

    serialNumber, customerName and customerPhone are all required; the phone
    must match the national mobile pattern.
    """
    errors: dict[str, str] = {}

    serial = clean_text(payload.get("serial_number"), max_length=SERIAL_MAX_LENGTH + 1)
    if not serial:
        errors["serialNumber"] = "serial number is required"
    elif len(serial) > SERIAL_MAX_LENGTH:
        errors["serialNumber"] = f"serial number must be at most {SERIAL_MAX_LENGTH} characters"

    if not clean_text(payload.get("customer_name"), max_length=NAME_MAX_LENGTH):
        errors["customerName"] = "customer name is required"

    phone = clean_text(payload.get("customer_phone"), max_length=32)
    if not phone:
        errors["customerPhone"] = "customer phone is required"
    elif not is_valid_phone(phone):
        errors["customerPhone"] = "customer phone must be a mobile number like 05XXXXXXXX"

    return errors


def validate_patch(patch: dict, writable_fields: Iterable[str]) -> dict:
    """Reject keys outside the allowlist; return a shallow copy of the patch."""
    allowed = set(writable_fields)
    unknown = sorted(k for k in patch if k not in allowed)
    if unknown:
        raise ValidationError(
            f"Fields not writable: {', '.join(unknown)}",
            errors={k: "not writable" for k in unknown},
        )
    return dict(patch)
