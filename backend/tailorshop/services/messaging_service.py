# Overview: Customer message templates and WhatsApp deep-link composition.

"""
Customer Messaging

The shop talks to customers over WhatsApp by opening a wa.me deep link
with a pre-filled message on the staff member's phone. Nothing is sent
from the server; this module only builds the text and the link.

Templates are Arabic, one per customer-facing event.
"""

from __future__ import annotations

from urllib.parse import quote

from flask import current_app, has_app_context

from ..money import format_amount
from ..validation import ValidationError, digits_only, is_valid_phone


DEFAULT_COUNTRY_CODE = "966"
DEFAULT_SHOP_NAME = "الريان للخياطة الرجالية"

STATUS_LABELS = {
    "pending": "قيد الانتظار",
    "stitched": "تم الخياطة",
    "delivered": "تم التسليم",
}

TEMPLATES = {
    "order_ready": (
        "السلام عليكم {customer_name}، طلبك رقم {serial_number} جاهز للاستلام. "
        "شكرًا لك على ثقتك في {shop_name}."
    ),
    "review_request": (
        "السلام عليكم {customer_name}، نشكرك على اختيار {shop_name}. "
        "نرجو أن تكون راضياً عن خدماتنا. سنكون ممتنين لتقييمك 🙏"
    ),
    "payment_reminder": (
        "السلام عليكم {customer_name}، نود تذكيركم بأن المبلغ المتبقي على طلبكم رقم {serial_number} "
        "هو {remaining_amount} ريال. نرجو تسديد المبلغ عند استلام الطلب. شكراً لتفهمكم."
    ),
    "order_update": (
        "السلام عليكم {customer_name}، نود إعلامكم بأن طلبكم رقم {serial_number} "
        "تم تحديث حالته إلى \"{status_label}\". شكراً لتفهمكم."
    ),
}


def _config(key: str, default: str) -> str:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def format_phone_for_whatsapp(phone: str, country_code: str | None = None) -> str:
    """
    Normalize a national mobile number to international digits.

    '0501234567' -> '966501234567', '501234567' -> '966501234567'.
    """
    code = country_code or _config("WHATSAPP_COUNTRY_CODE", DEFAULT_COUNTRY_CODE)
    digits = digits_only(phone)
    if digits.startswith("0"):
        return f"{code}{digits[1:]}"
    if not digits.startswith(code):
        return f"{code}{digits}"
    return digits


def compose_customer_message(template: str, **params) -> str:
    """
    Fill a template. Missing parameters raise ValidationError.

    `shop_name` defaults to the configured SHOP_NAME; `status_label` is
    derived from `status` when not given.
    """
    text = TEMPLATES.get(template)
    if text is None:
        raise ValidationError(f"Unknown message template '{template}'", field="template")

    values = {"shop_name": _config("SHOP_NAME", DEFAULT_SHOP_NAME)}
    values.update(params)
    if "status" in values and "status_label" not in values:
        values["status_label"] = STATUS_LABELS.get(values["status"], values["status"])

    try:
        return text.format(**values)
    except KeyError as exc:
        raise ValidationError(f"Template '{template}' needs {exc.args[0]}", field="template") from exc


def whatsapp_link(phone: str, message: str) -> str:
    if not is_valid_phone(phone):
        raise ValidationError("Invalid phone number format", field="customerPhone")
    return f"https://wa.me/{format_phone_for_whatsapp(phone)}?text={quote(message, safe='')}"


def customer_suggestion(phone: str, template: str, **params) -> dict:
    """Message text plus a ready-to-open deep link."""
    message = compose_customer_message(template, **params)
    return {
        "template": template,
        "message": message,
        "whatsapp_url": whatsapp_link(phone, message),
    }


def payment_reminder(order) -> dict:
    """
    Reminder for an order that still owes money.

    Raises ValidationError when nothing is outstanding.
    """
    if order.remaining_cents <= 0:
        raise ValidationError("Order has no outstanding balance", field="remainingAmount")
    return customer_suggestion(
        order.customer_phone,
        "payment_reminder",
        customer_name=order.customer_name,
        serial_number=order.serial_number,
        remaining_amount=format_amount(order.remaining_amount),
    )
