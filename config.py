"""
Application configuration.

This module defines the configuration settings for the Flask application, including database connection,
secret key, invoice numbering and logging. It uses environment variables for sensitive information and
defaults for development. In production, make sure to set the appropriate environment variables and secure
the secret key.

Business settings that admins edit at runtime (letterhead, invoice prefix, default VAT) live in the
settings table; the values here are only the fallbacks.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'tka_invoice.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Seconds a connection waits on a locked database before giving up.
    # Bounds each attempt of the invoice number increment.
    DB_LOCK_TIMEOUT = float(os.environ.get("DB_LOCK_TIMEOUT", "10"))
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": DB_LOCK_TIMEOUT}}

    # CSRF protection for forms
    WTF_CSRF_ENABLED = True

    # App UI name (used in templates)
    APP_NAME = "TKA Invoice"

    # Invoice numbering
    INVOICE_NUMBER_PREFIX = os.environ.get("INVOICE_NUMBER_PREFIX", "FSN")
    DEFAULT_VAT_PERCENTAGE = os.environ.get("DEFAULT_VAT_PERCENTAGE", "11.00")
    SEQUENCE_MAX_ATTEMPTS = int(os.environ.get("SEQUENCE_MAX_ATTEMPTS", "5"))
    SEQUENCE_RETRY_BACKOFF = float(os.environ.get("SEQUENCE_RETRY_BACKOFF", "0.05"))

    # Lists / stats cache
    QUERY_CACHE_TTL = int(os.environ.get("QUERY_CACHE_TTL", "300"))
    DEFAULT_PAGE_SIZE = 50

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Excel uploads
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024


class TestConfig(Config):
    """In-memory database, no CSRF, no retry delay."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WTF_CSRF_ENABLED = False
    SEQUENCE_RETRY_BACKOFF = 0.0
    QUERY_CACHE_TTL = 60
    LOG_LEVEL = "WARNING"
