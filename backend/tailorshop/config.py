# backend/tailorshop/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tailorshop.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Measurement-sheet photos
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
    PUBLIC_UPLOAD_BASE_URL = os.environ.get("PUBLIC_UPLOAD_BASE_URL", "/uploads")
    MAX_ATTACHMENT_BYTES = int(os.environ.get("MAX_ATTACHMENT_BYTES", str(5 * 1024 * 1024)))

    # Customer messaging
    WHATSAPP_COUNTRY_CODE = os.environ.get("WHATSAPP_COUNTRY_CODE", "966")
    SHOP_NAME = os.environ.get("SHOP_NAME", "الريان للخياطة الرجالية")

    # Immediate re-reads allowed when a payment loses the balance race
    PAYMENT_CONFLICT_ATTEMPTS = int(os.environ.get("PAYMENT_CONFLICT_ATTEMPTS", "3"))
